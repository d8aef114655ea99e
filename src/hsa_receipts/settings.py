import json
from pathlib import Path

from hsa_receipts.models import DriveConfig

CONFIG_DIR = Path.home() / ".config" / "hsa-receipts"
SETTINGS_PATH = CONFIG_DIR / "settings.json"

DEFAULT_WORKBOOK = Path.home() / "Documents" / "hsa-receipts" / "HSA Receipts.xlsx"
DEFAULT_DRIVE_ROOT = Path.home() / "Google Drive"

DEFAULTS = {
    "workbook": str(DEFAULT_WORKBOOK),
    "drive_root": str(DEFAULT_DRIVE_ROOT),
    "alternate_root": "Computers/My Computers",  # empty string disables
    "base_path": "financial/hsa-receipts",
    "excluded_sheets": ["Totals"],
    "log_level": "INFO",
}


def load_settings() -> dict:
    if SETTINGS_PATH.exists():
        with open(SETTINGS_PATH) as f:
            saved = json.loads(f.read())
        return {**DEFAULTS, **saved}
    return dict(DEFAULTS)


def save_settings(settings: dict) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    with open(SETTINGS_PATH, "w") as f:
        f.write(json.dumps(settings, indent=2) + "\n")


def get_workbook_path(settings: dict | None = None) -> Path:
    settings = settings or load_settings()
    return Path(settings["workbook"]).expanduser()


def drive_config(settings: dict | None = None) -> DriveConfig:
    settings = settings or load_settings()
    return DriveConfig(
        drive_root=Path(settings["drive_root"]).expanduser(),
        base_path=settings["base_path"],
        alternate_root=settings.get("alternate_root") or None,
    )
