import os
import shutil
import tempfile
from pathlib import Path

UPLOAD_PREFIX = ".upload-"


def _current_umask() -> int:
    # mkstemp creates files 0600; uploads should get the mode a plain open() would
    mask = os.umask(0)
    os.umask(mask)
    return mask


class Folder:
    """A directory in the drive. Identity is the resolved path, not the name."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"Folder({str(self.path)!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Folder) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def id(self) -> str:
        return str(self.path.resolve())

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def parent(self) -> "Folder":
        return Folder(self.path.parent)

    def get_folder(self, name: str) -> "Folder | None":
        """Find a direct subfolder by exact (case-sensitive) name."""
        with os.scandir(self.path) as entries:
            for entry in entries:
                if entry.name == name and entry.is_dir():
                    return Folder(Path(entry.path))
        return None

    def get_or_create_folder(self, name: str) -> "Folder":
        folder = self.get_folder(name)
        if folder is not None:
            return folder
        path = self.path / name
        path.mkdir()
        return Folder(path)

    def get_or_create_folder_path(self, path: str) -> "Folder":
        current = self
        for part in _split_path(path):
            current = current.get_or_create_folder(part)
        return current

    def find_folder_path(self, path: str) -> "Folder | None":
        current = self
        for part in _split_path(path):
            current = current.get_folder(part)
            if current is None:
                return None
        return current

    def files(self) -> list["StoredFile"]:
        """Direct files in this folder, skipping in-flight uploads."""
        with os.scandir(self.path) as entries:
            found = [
                StoredFile(Path(entry.path)) for entry in entries
                if entry.is_file() and not entry.name.startswith(UPLOAD_PREFIX)
            ]
        return sorted(found, key=lambda f: f.name)

    def available_name(self, name: str, owner: "StoredFile | None" = None) -> str:
        """Return `name`, or `name (n).ext` if another file already holds it."""
        candidate = name
        stem, dot, ext = name.rpartition(".")
        if not dot:
            stem, ext = name, ""
        counter = 1
        while True:
            path = self.path / candidate
            if not path.exists():
                return candidate
            if owner is not None and path.resolve() == owner.path.resolve():
                return candidate
            candidate = f"{stem} ({counter}){dot}{ext}"
            counter += 1

    def create_file(self, name: str, data: bytes) -> "StoredFile":
        """Write a new file; it only appears under its final name once complete."""
        fd, tmp = tempfile.mkstemp(prefix=UPLOAD_PREFIX, dir=self.path)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            target = self.path / self.available_name(name)
            os.replace(tmp, target)
            os.chmod(target, 0o666 & ~_current_umask())
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return StoredFile(target)


class StoredFile:
    """A file in the drive, identified by its current path."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"StoredFile({str(self.path)!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, StoredFile) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def id(self) -> str:
        return str(self.path.resolve())

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def parent(self) -> Folder:
        return Folder(self.path.parent)

    def move_to(self, folder: Folder) -> bool:
        """Detach from the current parent and attach to `folder`. Returns False if already there."""
        if self.parent == folder:
            return False
        target = folder.path / folder.available_name(self.name)
        # shutil.move is a single rename on the same filesystem
        self.path = Path(shutil.move(str(self.path), str(target)))
        return True

    def rename(self, name: str) -> str:
        """Rename in place; returns the name actually used."""
        final = self.parent.available_name(name, owner=self)
        if final != self.name:
            self.path = self.path.rename(self.path.with_name(final))
        return final


class Drive:
    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def get_root_folder(self) -> Folder:
        self.root.mkdir(parents=True, exist_ok=True)
        return Folder(self.root)

    def find_folder_by_path(self, path: str) -> Folder | None:
        """Walk `path` from the drive root without creating anything."""
        if not self.root.is_dir():
            return None
        return Folder(self.root).find_folder_path(path)


def _split_path(path: str) -> list[str]:
    return [part for part in path.split("/") if part]
