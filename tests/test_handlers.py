import base64
from dataclasses import replace
from pathlib import Path

import openpyxl

from hsa_receipts.handlers import build_services, on_edit, refresh_file_organization, upload_receipt_file
from hsa_receipts.models import FileCategory, UploadData

BASE = Path("financial") / "hsa-receipts"
NAME = "2024-03-15_jane-doe_receipt_acme-health_x-ray.pdf"


def _upload_data(record, content=b"%PDF-1.4", filename="scan.pdf"):
    return UploadData(
        filename=filename,
        content=base64.b64encode(content).decode("ascii"),
        mime_type="application/pdf",
        record=record,
    )


def _set_cell(path, coordinate, value, sheet="2024"):
    wb = openpyxl.load_workbook(path)
    wb[sheet][coordinate] = value
    wb.save(path)


def _upload_row_two(settings):
    store, _ = build_services(settings)
    record = store.get_record("2024", 2)
    result = upload_receipt_file(_upload_data(record), "receipt", "2024", 2, settings=settings)
    assert result["success"] is True
    return record


def test_upload_receipt_file_success(settings, drive_root, workbook):
    store, _ = build_services(settings)
    record = store.get_record("2024", 2)

    result = upload_receipt_file(_upload_data(record), "receipt", "2024", 2, settings=settings)

    stored = drive_root / BASE / "2024" / "to-be-paid-out" / "receipts" / NAME
    assert result["success"] is True
    assert result["message"] == f"File uploaded successfully as {NAME}"
    assert result["fileId"] == str(stored.resolve())
    assert stored.read_bytes() == b"%PDF-1.4"
    assert openpyxl.load_workbook(workbook)["2024"]["G2"].value == "Yes"


def test_upload_receipt_file_invoice(settings, drive_root):
    store, _ = build_services(settings)
    record = store.get_record("2024", 2)
    result = upload_receipt_file(_upload_data(record), "invoice", "2024", 2, settings=settings)
    assert result["success"] is True
    assert (drive_root / BASE / "2024" / "to-be-paid-out" / "invoices").is_dir()


def test_upload_receipt_file_bad_content_returns_failure(settings, record, drive_root):
    data = replace(_upload_data(record), content="not base64!!")
    result = upload_receipt_file(data, "receipt", "2024", 2, settings=settings)
    assert result["success"] is False
    assert result["fileId"] == ""
    assert result["message"].startswith("Upload failed:")
    assert not (drive_root / BASE).exists()


def test_upload_receipt_file_unknown_sheet_returns_failure(settings, record):
    result = upload_receipt_file(_upload_data(record), "receipt", "1999", 2, settings=settings)
    assert result["success"] is False
    assert "Sheet 1999 not found" in result["message"]


def test_upload_data_from_payload():
    payload = {
        "filename": "scan.pdf",
        "content": base64.b64encode(b"x").decode("ascii"),
        "mimeType": "application/pdf",
        "row": {
            "paymentDate": "2024-03-15T08:00:00.000Z",
            "patient": "Jane Doe",
            "service": "X-Ray",
            "cost": 125,
            "company": "Acme Health",
            "hsaApproved": True,
            "receiptUploaded": False,
            "paidOut": False,
            "rowIndex": 2,
            "year": 2024,
        },
    }
    data = UploadData.from_payload(payload)
    assert data.record.year == 2024
    assert data.record.patient == "Jane Doe"
    assert data.mime_type == "application/pdf"


def test_on_edit_moves_file_when_paid_out_changes(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "H2", settings=settings)

    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()
    assert not (drive_root / BASE / "2024" / "to-be-paid-out" / "receipts" / NAME).exists()


def test_on_edit_moves_invoice_by_filename_category(settings, drive_root, workbook):
    store, _ = build_services(settings)
    record = store.get_record("2024", 2)
    upload_receipt_file(_upload_data(record), "invoice", "2024", 2, settings=settings)
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "H2", settings=settings)

    invoice = NAME.replace("_receipt_", "_invoice_")
    assert (drive_root / BASE / "2024" / "paid-out" / "invoices" / invoice).exists()


def test_on_edit_multi_column_range_includes_paid_out(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "H2", "yes")

    on_edit("2024", "F2:H2", settings=settings)

    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()


def test_on_edit_ignores_untracked_columns(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "D2", settings=settings)  # cost

    assert (drive_root / BASE / "2024" / "to-be-paid-out" / "receipts" / NAME).exists()


def test_on_edit_ignores_header_row(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "H1:H2", settings=settings)

    assert (drive_root / BASE / "2024" / "to-be-paid-out" / "receipts" / NAME).exists()


def test_on_edit_ignores_non_year_sheets(settings, drive_root):
    on_edit("Totals", "H2", settings=settings)
    on_edit("Notes", "H2", settings=settings)
    assert list(drive_root.iterdir()) == []


def test_on_edit_never_raises(settings):
    on_edit("2024", "not a range", settings=settings)
    on_edit("2024", "H2", settings={**settings, "workbook": "/nonexistent/book.xlsx"})


def test_on_edit_continues_after_file_error(settings, drive_root, workbook, monkeypatch):
    store, _ = build_services(settings)
    record = store.get_record("2024", 2)
    upload_receipt_file(_upload_data(record), "receipt", "2024", 2, settings=settings)
    upload_receipt_file(_upload_data(record), "invoice", "2024", 2, settings=settings)
    _set_cell(workbook, "H2", "Yes")

    from hsa_receipts.organizer import FileOrganizer

    original = FileOrganizer.reconcile

    def flaky(self, old_record, new_record, category, file):
        if category is FileCategory.RECEIPT:
            raise OSError("disk unplugged")
        return original(self, old_record, new_record, category, file)

    monkeypatch.setattr(FileOrganizer, "reconcile", flaky)
    on_edit("2024", "H2", settings=settings)

    invoice = NAME.replace("_receipt_", "_invoice_")
    assert (drive_root / BASE / "2024" / "paid-out" / "invoices" / invoice).exists()
    assert (drive_root / BASE / "2024" / "to-be-paid-out" / "receipts" / NAME).exists()


def test_refresh_reorganizes_out_of_place_files(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "H2", "Yes")  # edited without a change notification

    counts = refresh_file_organization(settings=settings)

    assert counts == {"records": 2, "files": 1, "moved": 1, "renamed": 0, "errors": 0}
    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()


def test_refresh_leaves_organized_files_alone(settings):
    _upload_row_two(settings)
    counts = refresh_file_organization(settings=settings)
    assert counts["files"] == 1
    assert counts["moved"] == 0
    assert counts["renamed"] == 0


SMITH = "2024-06-01_john-smith_receipt_beta-clinic_physical-therapy.pdf"


def test_on_edit_multi_row_range_moves_every_row(settings, drive_root, workbook):
    store, _ = build_services(settings)
    _upload_row_two(settings)
    smith = store.get_record("2024", 4)  # already paid out
    upload_receipt_file(_upload_data(smith), "receipt", "2024", 4, settings=settings)
    _set_cell(workbook, "H2", "Yes")
    _set_cell(workbook, "H4", "No")

    on_edit("2024", "H2:H4", settings=settings)

    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()
    assert (drive_root / BASE / "2024" / "to-be-paid-out" / "receipts" / SMITH).exists()
    assert not (drive_root / BASE / "2024" / "paid-out" / "receipts" / SMITH).exists()


def test_on_edit_whole_row_range(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "2:2", settings=settings)

    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()


def test_on_edit_tolerates_unparseable_cost(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "D2", "TBD")
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "H2", settings=settings)

    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()


def test_on_edit_bad_date_row_does_not_stop_other_rows(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "A3", "someday")
    _set_cell(workbook, "H2", "Yes")

    on_edit("2024", "H2:H3", settings=settings)

    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()


def test_refresh_tolerates_unparseable_cost(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "D2", "TBD")
    _set_cell(workbook, "H2", "Yes")

    counts = refresh_file_organization(settings=settings)

    assert counts["moved"] == 1
    assert (drive_root / BASE / "2024" / "paid-out" / "receipts" / NAME).exists()


def test_refresh_skips_rows_with_bad_dates(settings, drive_root, workbook):
    _upload_row_two(settings)
    _set_cell(workbook, "A3", "someday")
    _set_cell(workbook, "H2", "Yes")

    counts = refresh_file_organization(settings=settings)

    assert counts["records"] == 2
    assert counts["moved"] == 1
