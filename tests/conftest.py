from datetime import date, datetime

import openpyxl
import pytest

from hsa_receipts.drive import Drive
from hsa_receipts.models import DriveConfig, Record
from hsa_receipts.organizer import FileOrganizer
from hsa_receipts.settings import DEFAULTS
from hsa_receipts.sheets import HEADERS


@pytest.fixture
def drive_root(tmp_path):
    root = tmp_path / "drive"
    root.mkdir()
    return root


@pytest.fixture
def organizer(drive_root):
    config = DriveConfig(
        drive_root=drive_root,
        base_path="financial/hsa-receipts",
        alternate_root="Computers/My Computers",
    )
    return FileOrganizer(Drive(drive_root), config)


@pytest.fixture
def record():
    return Record(
        payment_date=date(2024, 3, 15),
        patient="Jane Doe",
        service="X-Ray",
        cost=125.00,
        company="Acme Health",
        row_index=2,
    )


def create_receipts_workbook(path):
    """Year sheet with a data row, a blank row, a second data row, plus Totals."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "2024"
    ws.append(HEADERS)
    ws.append([datetime(2024, 3, 15), "Jane Doe", "X-Ray", "$1,250.00", "Acme Health", "Yes", "No", "No"])
    ws.append([None, "John Doe", "Cleaning", 90, "Smile Dental", "No", "No", "No"])
    ws.append(["2024-06-01", "John Smith", "Physical Therapy", 80, "Beta Clinic", True, "TRUE", "yes"])
    totals = wb.create_sheet("Totals")
    totals.append(["Year", "Total"])
    wb.save(path)


@pytest.fixture
def make_workbook():
    return create_receipts_workbook


@pytest.fixture
def workbook(tmp_path):
    path = tmp_path / "receipts.xlsx"
    create_receipts_workbook(path)
    return path


@pytest.fixture
def settings(workbook, drive_root):
    return {**DEFAULTS, "workbook": str(workbook), "drive_root": str(drive_root)}
