import re
from datetime import date, datetime, timedelta
from enum import IntEnum
from pathlib import Path
from typing import Iterator

from openpyxl import Workbook, load_workbook
from openpyxl.utils.cell import coordinate_from_string
from openpyxl.worksheet.worksheet import Worksheet

from hsa_receipts.logging_setup import get_logger
from hsa_receipts.models import Record, RowContext

logger = get_logger(__name__)

HEADER_ROW = 1
YEAR_SHEET_PATTERN = re.compile(r"^\d{4}$")

HEADERS = [
    "Payment Date", "Patient", "Service", "Cost", "Company",
    "HSA Approved", "Receipt Uploaded", "Paid Out",
]


class Column(IntEnum):
    """0-based column positions in a year sheet."""
    PAYMENT_DATE = 0
    PATIENT = 1
    SERVICE = 2
    COST = 3
    COMPANY = 4
    HSA_APPROVED = 5
    RECEIPT_UPLOADED = 6
    PAID_OUT = 7


# Edits to these columns can change where a row's files belong.
TRACKED_COLUMNS = frozenset({
    Column.PAYMENT_DATE, Column.PATIENT, Column.SERVICE, Column.COMPANY, Column.PAID_OUT,
})


def parse_amount(raw) -> float:
    """Strip currency symbols and thousands separators, return float.

    Text that still isn't a number ("TBD", "N/A") counts as 0.0.
    """
    if raw is None:
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw)
    cleaned = str(raw).replace("$", "").replace(",", "").strip()
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        logger.warning("Unparseable cost %r, using 0.0", raw)
        return 0.0


def parse_bool(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in ("yes", "true")
    return False


def excel_serial_to_date(serial: int | float) -> date:
    base = datetime(1899, 12, 30)  # Excel epoch (accounting for the 1900 leap year bug)
    return (base + timedelta(days=int(serial))).date()


def parse_date(raw) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)):
        return excel_serial_to_date(raw)
    text = str(raw).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized payment date: {text!r}")


def _text(raw) -> str:
    return "" if raw is None else str(raw).strip()


def record_from_values(values: list, row_index: int) -> Record | None:
    """Build a Record from one row of cell values. Blank date means a blank row."""
    values = list(values) + [None] * (len(Column) - len(values))
    if _text(values[Column.PAYMENT_DATE]) == "":
        return None
    return Record(
        payment_date=parse_date(values[Column.PAYMENT_DATE]),
        patient=_text(values[Column.PATIENT]),
        service=_text(values[Column.SERVICE]),
        cost=parse_amount(values[Column.COST]),
        company=_text(values[Column.COMPANY]),
        hsa_approved=parse_bool(values[Column.HSA_APPROVED]),
        receipt_uploaded=parse_bool(values[Column.RECEIPT_UPLOADED]),
        paid_out=parse_bool(values[Column.PAID_OUT]),
        row_index=row_index,
    )


def create_workbook(path: Path, year: int) -> None:
    """Write an empty workbook with a header row for `year` and a Totals sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = str(year)
    ws.append(HEADERS)
    wb.create_sheet("Totals")
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)


class RecordStore:
    """Reads records from, and writes the uploaded flag to, the receipts workbook."""

    def __init__(self, workbook_path: Path, excluded_sheets: tuple[str, ...] | list[str] = ("Totals",)):
        self.workbook_path = Path(workbook_path)
        self.excluded_sheets = set(excluded_sheets)

    def get_record(self, sheet_name: str, row_index: int) -> Record | None:
        wb = load_workbook(self.workbook_path, data_only=True)
        try:
            ws = self._get_sheet(wb, sheet_name)
            return self._read_record(ws, row_index)
        finally:
            wb.close()

    def iter_records(self, sheet_name: str) -> Iterator[Record]:
        wb = load_workbook(self.workbook_path, read_only=True, data_only=True)
        try:
            ws = self._get_sheet(wb, sheet_name)
            rows = ws.iter_rows(min_row=HEADER_ROW + 1, max_col=len(Column), values_only=True)
            records = []
            for row_index, values in enumerate(rows, start=HEADER_ROW + 1):
                try:
                    record = record_from_values(values, row_index)
                except ValueError as e:
                    logger.warning("Skipping %s row %d: %s", sheet_name, row_index, e)
                    continue
                if record is not None:
                    records.append(record)
        finally:
            wb.close()
        return iter(records)

    def year_sheets(self) -> list[str]:
        wb = load_workbook(self.workbook_path, read_only=True)
        try:
            names = wb.sheetnames
        finally:
            wb.close()
        return [n for n in names if YEAR_SHEET_PATTERN.match(n) and n not in self.excluded_sheets]

    def set_uploaded_flag(self, sheet_name: str, row_index: int, value: bool = True) -> None:
        """Write Yes/No to the Receipt Uploaded cell. Errors propagate."""
        wb = load_workbook(self.workbook_path)
        try:
            ws = self._get_sheet(wb, sheet_name)
            ws.cell(row=row_index, column=Column.RECEIPT_UPLOADED + 1).value = "Yes" if value else "No"
            wb.save(self.workbook_path)
        finally:
            wb.close()
        logger.info(
            "Updated receipt uploaded status for %s row %d to %s",
            sheet_name, row_index, "Yes" if value else "No",
        )

    def get_active_record_context(self) -> RowContext | None:
        """The row under the workbook's saved active cell, if it is a data row."""
        wb = load_workbook(self.workbook_path, data_only=True)
        try:
            ws = wb.active
            if ws is None or not ws.sheet_view.selection:
                logger.info("No active sheet or range found")
                return None
            active_cell = ws.sheet_view.selection[0].activeCell
            if not active_cell:
                logger.info("No active sheet or range found")
                return None
            _, row_index = coordinate_from_string(active_cell.split(":")[0])
            if row_index <= HEADER_ROW or ws.title in self.excluded_sheets:
                logger.info("Skipping header row or excluded sheet %s", ws.title)
                return None
            return RowContext(ws.title, row_index, self._read_record(ws, row_index))
        finally:
            wb.close()

    def _get_sheet(self, wb, sheet_name: str) -> Worksheet:
        if sheet_name not in wb.sheetnames:
            raise ValueError(f"Sheet {sheet_name} not found")
        return wb[sheet_name]

    def _read_record(self, ws: Worksheet, row_index: int) -> Record | None:
        values = [ws.cell(row=row_index, column=col + 1).value for col in Column]
        return record_from_values(values, row_index)
