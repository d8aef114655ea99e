import base64
import mimetypes
import os
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from hsa_receipts.handlers import build_services, on_edit, refresh_file_organization, upload_receipt_file
from hsa_receipts.logging_setup import LOG_LEVEL_ENV, configure_logging
from hsa_receipts.models import RowContext, UploadData
from hsa_receipts.settings import DEFAULTS, load_settings, save_settings
from hsa_receipts.sheets import RecordStore, create_workbook

app = typer.Typer(help="HSA receipt uploader — keeps receipt files organized by year and payout status.", invoke_without_command=True)

console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
):
    """HSA receipt uploader — keeps receipt files organized by year and payout status."""
    configure_logging(log_level or os.getenv(LOG_LEVEL_ENV) or load_settings()["log_level"])


@app.command()
def init(
    workbook: str = typer.Option(None, "--workbook", help="Path to the receipts workbook (.xlsx)"),
    drive_root: str = typer.Option(None, "--drive-root", help="Folder receipts are organized under"),
):
    """Save settings and create the workbook and drive root if missing."""
    settings = load_settings()

    if workbook:
        settings["workbook"] = str(Path(workbook).expanduser().resolve())
    if drive_root:
        settings["drive_root"] = str(Path(drive_root).expanduser().resolve())
    if not workbook and not drive_root and settings == DEFAULTS:
        # First run — prompt for locations
        chosen = typer.prompt("Workbook", default=settings["workbook"])
        settings["workbook"] = str(Path(chosen).expanduser().resolve())
        chosen = typer.prompt("Drive root", default=settings["drive_root"])
        settings["drive_root"] = str(Path(chosen).expanduser().resolve())

    save_settings(settings)

    Path(settings["drive_root"]).mkdir(parents=True, exist_ok=True)
    workbook_path = Path(settings["workbook"])
    if not workbook_path.exists():
        create_workbook(workbook_path, date.today().year)
        typer.echo(f"Created workbook {workbook_path}")

    typer.echo(f"Initialized HSA receipts with drive root {settings['drive_root']}")


def _resolve_row(store: RecordStore, sheet: str | None, row: int | None) -> RowContext | None:
    """Explicit --sheet/--row, or the workbook's active cell."""
    if sheet is None and row is None:
        return store.get_active_record_context()
    if sheet is None or row is None:
        typer.echo("Pass both --sheet and --row, or neither to use the active row.")
        raise typer.Exit(1)
    try:
        return RowContext(sheet, row, store.get_record(sheet, row))
    except ValueError as e:
        typer.echo(str(e))
        raise typer.Exit(1)


@app.command()
def show(
    sheet: str = typer.Option(None, help="Sheet name, e.g. 2024"),
    row: int = typer.Option(None, help="Row number (1 is the header)"),
):
    """Show a row and the files stored for it."""
    store, organizer = build_services()
    ctx = _resolve_row(store, sheet, row)
    if ctx is None or ctx.record is None:
        typer.echo("No data in the selected row.")
        raise typer.Exit(1)

    record = ctx.record
    table = Table(title=f"{ctx.sheet_name} row {ctx.row_index}")
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Payment Date", record.payment_date.isoformat())
    table.add_row("Patient", record.patient)
    table.add_row("Service", record.service)
    table.add_row("Cost", f"${record.cost:,.2f}")
    table.add_row("Company", record.company)
    table.add_row("HSA Approved", "Yes" if record.hsa_approved else "No")
    table.add_row("Receipt Uploaded", "Yes" if record.receipt_uploaded else "No")
    paid_color = "green" if record.paid_out else "yellow"
    table.add_row("Paid Out", f"[{paid_color}]{'Yes' if record.paid_out else 'No'}[/{paid_color}]")
    console.print(table)

    files = organizer.find_files_for_record(record)
    if not files:
        typer.echo("No files stored for this row.")
        return

    ftable = Table(title=f"Files ({len(files)})")
    ftable.add_column("Name")
    ftable.add_column("Folder", style="dim")
    for f in files:
        ftable.add_row(f.name, str(f.parent.path))
    console.print(ftable)


@app.command()
def upload(
    file: Path = typer.Argument(help="Receipt or invoice file to upload"),
    sheet: str = typer.Option(None, help="Sheet name, e.g. 2024"),
    row: int = typer.Option(None, help="Row number (1 is the header)"),
    type: str = typer.Option("receipt", help="File type: receipt or invoice"),
):
    """Upload a file for a row and mark its receipt as uploaded."""
    settings = load_settings()
    store, _ = build_services(settings)
    ctx = _resolve_row(store, sheet, row)
    if ctx is None or ctx.record is None:
        typer.echo("Please select a row with data before uploading a receipt.")
        raise typer.Exit(1)

    mime_type = mimetypes.guess_type(file.name)[0] or "application/octet-stream"
    data = UploadData(
        filename=file.name,
        content=base64.b64encode(file.read_bytes()).decode("ascii"),
        mime_type=mime_type,
        record=ctx.record,
    )
    result = upload_receipt_file(data, type, ctx.sheet_name, ctx.row_index, settings=settings)
    typer.echo(result["message"])
    if not result["success"]:
        raise typer.Exit(1)


@app.command()
def sync(
    sheet: str = typer.Option(help="Sheet that was edited, e.g. 2024"),
    edited_range: str = typer.Option(..., "--range", help="Edited range in A1 notation, e.g. H5 or A5:C5"),
):
    """Move/rename a row's files after its cells were edited."""
    on_edit(sheet, edited_range)


@app.command()
def refresh(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Check every row's files and reorganize any that are out of place."""
    if not yes and not typer.confirm(
        "This will check all files and ensure they are properly organized. Continue?"
    ):
        raise typer.Exit()

    try:
        counts = refresh_file_organization()
    except (OSError, ValueError) as e:
        typer.echo(f"Error refreshing file organization: {e}")
        raise typer.Exit(1)

    typer.echo(
        f"{counts['records']} rows checked, {counts['files']} files found: "
        f"{counts['moved']} moved, {counts['renamed']} renamed, {counts['errors']} errors"
    )


if __name__ == "__main__":
    app()
