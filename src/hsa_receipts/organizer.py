import re
from dataclasses import dataclass, replace

from hsa_receipts.drive import Drive, Folder, StoredFile
from hsa_receipts.logging_setup import get_logger
from hsa_receipts.models import DriveConfig, FileCategory, PayoutStatus, Record

logger = get_logger(__name__)


@dataclass
class FolderPath:
    root_folder: Folder  # base path folder, e.g. .../financial/hsa-receipts
    year_folder: Folder
    status_folder: Folder  # "paid-out" or "to-be-paid-out"
    type_folder: Folder  # "receipts" or "invoices"

    @property
    def segments(self) -> list[str]:
        return [
            self.root_folder.name,
            self.year_folder.name,
            self.status_folder.name,
            self.type_folder.name,
        ]


def slugify(text: str) -> str:
    return re.sub(r"\s+", "-", text.lower())


def file_extension(filename: str) -> str:
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot else ""


def compute_filename(record: Record, category: FileCategory, extension: str) -> str:
    date_str = record.payment_date.strftime("%Y-%m-%d")
    return (
        f"{date_str}_{slugify(record.patient)}_{category.value}_"
        f"{slugify(record.company)}_{slugify(record.service)}.{extension}"
    )


def is_file_for_record(filename: str, record: Record) -> bool:
    """Loose ownership check: prefix on date+patient, substrings for company and service."""
    name = filename.lower()
    prefix = f"{record.payment_date.strftime('%Y-%m-%d')}_{slugify(record.patient)}_"
    return (
        name.startswith(prefix)
        and f"_{slugify(record.company)}_" in name
        and f"_{slugify(record.service)}" in name
    )


def category_for_file(file: StoredFile) -> FileCategory:
    if f"_{FileCategory.INVOICE.value}_" in file.name.lower():
        return FileCategory.INVOICE
    return FileCategory.RECEIPT


class FileOrganizer:
    """Places receipt/invoice files in year/status/type folders and keeps them there."""

    def __init__(self, drive: Drive, config: DriveConfig):
        self.drive = drive
        self.config = config

    def resolve_folder_path(self, record: Record, category: FileCategory) -> FolderPath:
        """Return the folder chain for a record, creating missing folders."""
        root = self._get_root_folder()
        year_folder = root.get_or_create_folder(str(record.year))
        status_folder = year_folder.get_or_create_folder(PayoutStatus.for_record(record.paid_out).value)
        type_folder = status_folder.get_or_create_folder(category.folder_name)
        return FolderPath(root, year_folder, status_folder, type_folder)

    def find_folder_path(
        self, record: Record, category: FileCategory, root: Folder | None = None,
    ) -> FolderPath | None:
        """Like resolve_folder_path, but returns None instead of creating folders."""
        root = root or self._get_root_folder(create=False)
        if root is None:
            return None
        year_folder = root.get_folder(str(record.year))
        if year_folder is None:
            return None
        status_folder = year_folder.get_folder(PayoutStatus.for_record(record.paid_out).value)
        if status_folder is None:
            return None
        type_folder = status_folder.get_folder(category.folder_name)
        if type_folder is None:
            return None
        return FolderPath(root, year_folder, status_folder, type_folder)

    def upload(
        self,
        content: bytes,
        mime_type: str,
        filename: str,
        record: Record,
        category: FileCategory,
    ) -> StoredFile:
        """Store `content` under the record's canonical folder and name."""
        folder_path = self.resolve_folder_path(record, category)
        name = compute_filename(record, category, file_extension(filename))
        file = folder_path.type_folder.create_file(name, content)
        logger.info("File uploaded: %s (%s) to %s", file.name, mime_type, "/".join(folder_path.segments))
        return file

    def reconcile(
        self,
        old_record: Record,
        new_record: Record,
        category: FileCategory,
        file: StoredFile,
    ) -> StoredFile:
        """Move and/or rename a stored file so it matches `new_record`."""
        old_path = self.resolve_folder_path(old_record, category)
        new_path = self.resolve_folder_path(new_record, category)

        if old_path.type_folder != new_path.type_folder:
            source = file.parent
            if file.move_to(new_path.type_folder):
                logger.info(
                    "File moved from %s to %s",
                    source.path, new_path.type_folder.path,
                )

        new_name = compute_filename(new_record, category, file_extension(file.name))
        if file.name != new_name:
            previous = file.name
            final = file.rename(new_name)
            if final != previous:
                logger.info("File renamed from %s to %s", previous, final)

        return file

    def find_files_for_record(self, record: Record) -> list[StoredFile]:
        """Every stored file matching the record, in any category or payout folder."""
        files: list[StoredFile] = []
        root = self._get_root_folder(create=False)
        if root is None:
            return files
        for category in (FileCategory.RECEIPT, FileCategory.INVOICE):
            for status in (PayoutStatus.TO_BE_PAID_OUT, PayoutStatus.PAID_OUT):
                search = replace(record, paid_out=status is PayoutStatus.PAID_OUT)
                folder_path = self.find_folder_path(search, category, root)
                if folder_path is None:
                    continue
                for file in folder_path.type_folder.files():
                    if is_file_for_record(file.name, record):
                        files.append(file)
        return files

    def _get_root_folder(self, create: bool = True) -> Folder | None:
        if self.config.alternate_root:
            try:
                alternate = self.drive.find_folder_by_path(self.config.alternate_root)
                if alternate is not None:
                    if create:
                        return alternate.get_or_create_folder_path(self.config.base_path)
                    return alternate.find_folder_path(self.config.base_path)
                logger.warning("%s not found, falling back to drive root", self.config.alternate_root)
            except OSError as e:
                logger.warning(
                    "Could not access %s (%s), falling back to drive root",
                    self.config.alternate_root, e,
                )

        if create:
            return self.drive.get_root_folder().get_or_create_folder_path(self.config.base_path)
        root = self.drive.find_folder_by_path("")
        if root is None:
            return None
        return root.find_folder_path(self.config.base_path)

