import base64
from dataclasses import replace

from openpyxl.utils.cell import range_boundaries

from hsa_receipts.drive import Drive
from hsa_receipts.logging_setup import get_logger
from hsa_receipts.models import FileCategory, PayoutStatus, UploadData
from hsa_receipts.organizer import FileOrganizer, category_for_file
from hsa_receipts.settings import drive_config, get_workbook_path, load_settings
from hsa_receipts.sheets import (
    HEADER_ROW, TRACKED_COLUMNS, YEAR_SHEET_PATTERN, Column, RecordStore,
)

logger = get_logger(__name__)


def build_services(settings: dict | None = None) -> tuple[RecordStore, FileOrganizer]:
    """Construct the record store and organizer for one invocation."""
    settings = settings or load_settings()
    config = drive_config(settings)
    store = RecordStore(get_workbook_path(settings), settings["excluded_sheets"])
    organizer = FileOrganizer(Drive(config.drive_root), config)
    return store, organizer


def upload_receipt_file(
    upload: UploadData,
    file_type: str,
    sheet_name: str,
    row_index: int,
    *,
    settings: dict | None = None,
) -> dict:
    """Upload a receipt/invoice and mark the row as uploaded. Never raises."""
    try:
        store, organizer = build_services(settings)
        category = FileCategory.parse(file_type)
        content = base64.b64decode(upload.content, validate=True)

        file = organizer.upload(content, upload.mime_type, upload.filename, upload.record, category)
        store.set_uploaded_flag(sheet_name, row_index, True)

        return {
            "success": True,
            "fileId": file.id,
            "message": f"File uploaded successfully as {file.name}",
        }
    except Exception as e:
        logger.exception("Error uploading file")
        return {"success": False, "fileId": "", "message": f"Upload failed: {e}"}


def on_edit(sheet_name: str, edited_range: str, *, settings: dict | None = None) -> None:
    """Move/rename a row's files after an edit to one of its tracked columns.

    The previous row state isn't available, so the old record is the current
    one with Paid Out inverted when that column was edited.
    """
    try:
        settings = settings or load_settings()
        if sheet_name in settings["excluded_sheets"] or not YEAR_SHEET_PATTERN.match(sheet_name):
            return

        min_col, min_row, max_col, max_row = range_boundaries(edited_range)
        if min_row is None or min_row <= HEADER_ROW:
            return

        if min_col is None:  # whole-row range such as "5:5"
            min_col, max_col = 1, len(Column)
        edited_columns = {col - 1 for col in range(min_col, max_col + 1)}
        if not edited_columns & TRACKED_COLUMNS:
            return

        store, organizer = build_services(settings)
        for row_index in range(min_row, max_row + 1):
            try:
                record = store.get_record(sheet_name, row_index)
            except ValueError as e:
                logger.warning("Skipping %s row %d: %s", sheet_name, row_index, e)
                continue
            if record is None:
                continue

            for file in organizer.find_files_for_record(record):
                try:
                    old_record = replace(record)
                    if Column.PAID_OUT in edited_columns:
                        old_record.paid_out = not record.paid_out
                    organizer.reconcile(old_record, record, category_for_file(file), file)
                except Exception:
                    logger.exception("Error moving file %s", file.name)
    except Exception:
        logger.exception("Error in on_edit handler")


def refresh_file_organization(*, settings: dict | None = None) -> dict:
    """Reconcile every row's files against the row's current values."""
    store, organizer = build_services(settings)
    counts = {"records": 0, "files": 0, "moved": 0, "renamed": 0, "errors": 0}

    for sheet_name in store.year_sheets():
        for record in store.iter_records(sheet_name):
            counts["records"] += 1
            for file in organizer.find_files_for_record(record):
                counts["files"] += 1
                try:
                    before_folder, before_name = file.parent, file.name
                    # The status folder the file actually sits in is its old payout state
                    stored_paid_out = before_folder.parent.name == PayoutStatus.PAID_OUT.value
                    old_record = replace(record, paid_out=stored_paid_out)
                    organizer.reconcile(old_record, record, category_for_file(file), file)
                    if file.parent != before_folder:
                        counts["moved"] += 1
                    if file.name != before_name:
                        counts["renamed"] += 1
                except Exception:
                    logger.exception("Error reorganizing file %s", file.name)
                    counts["errors"] += 1

    return counts
