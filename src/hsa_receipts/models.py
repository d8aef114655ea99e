from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path


class FileCategory(Enum):
    RECEIPT = "receipt"
    INVOICE = "invoice"

    @property
    def folder_name(self) -> str:
        return {
            FileCategory.RECEIPT: "receipts",
            FileCategory.INVOICE: "invoices",
        }[self]

    @classmethod
    def parse(cls, raw: str | None) -> "FileCategory":
        """Anything that isn't 'invoice' is treated as a receipt."""
        if raw and raw.strip().lower() == cls.INVOICE.value:
            return cls.INVOICE
        return cls.RECEIPT


class PayoutStatus(Enum):
    PAID_OUT = "paid-out"
    TO_BE_PAID_OUT = "to-be-paid-out"

    @classmethod
    def for_record(cls, paid_out: bool) -> "PayoutStatus":
        return cls.PAID_OUT if paid_out else cls.TO_BE_PAID_OUT


@dataclass
class Record:
    """One row of the HSA receipts workbook."""
    payment_date: date
    patient: str
    service: str
    cost: float
    company: str
    hsa_approved: bool = False
    receipt_uploaded: bool = False
    paid_out: bool = False
    row_index: int = 0

    @property
    def year(self) -> int:
        return self.payment_date.year

    def to_dict(self) -> dict:
        """Serializable form used by web-form payloads (ISO date string)."""
        return {
            "paymentDate": self.payment_date.isoformat(),
            "patient": self.patient,
            "service": self.service,
            "cost": self.cost,
            "company": self.company,
            "hsaApproved": self.hsa_approved,
            "receiptUploaded": self.receipt_uploaded,
            "paidOut": self.paid_out,
            "rowIndex": self.row_index,
            "year": self.year,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Record":
        # Payloads carry a full ISO timestamp or a bare date; "year" is ignored.
        raw_date = str(data["paymentDate"])
        return cls(
            payment_date=date.fromisoformat(raw_date[:10]),
            patient=str(data.get("patient") or ""),
            service=str(data.get("service") or ""),
            cost=float(data.get("cost") or 0),
            company=str(data.get("company") or ""),
            hsa_approved=bool(data.get("hsaApproved", False)),
            receipt_uploaded=bool(data.get("receiptUploaded", False)),
            paid_out=bool(data.get("paidOut", False)),
            row_index=int(data.get("rowIndex") or 0),
        )


@dataclass
class RowContext:
    """The row the user has selected in the workbook."""
    sheet_name: str
    row_index: int
    record: Record | None


@dataclass
class DriveConfig:
    drive_root: Path
    base_path: str  # "financial/hsa-receipts"
    alternate_root: str | None = None  # "Computers/My Computers", relative to drive_root


@dataclass
class UploadData:
    filename: str
    content: str  # base64 encoded file content
    mime_type: str
    record: Record

    @classmethod
    def from_payload(cls, payload: dict) -> "UploadData":
        return cls(
            filename=payload["filename"],
            content=payload["content"],
            mime_type=payload.get("mimeType") or "application/octet-stream",
            record=Record.from_dict(payload["row"]),
        )
