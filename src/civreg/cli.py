"""Typer-based operator CLI for the registry store."""

import logging
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .accounts import find_account, public_view
from .backup import list_snapshots
from .birth_records import full_name, get_birth_record, search_birth_records, set_status, status_of
from .config import RegistryConfig
from .errors import RegistryError
from .locking import clear_stale_lock, read_owner
from .models.records import ACCOUNTS, BIRTH_RECORDS, LedgerLayout
from .models.search import SearchQuery
from .paths import StorePaths, open_ledger

app = typer.Typer(
    name="civreg",
    help="civreg - civil registry record store",
    add_completion=False,
)

console = Console()

LEDGERS: dict[str, LedgerLayout] = {"accounts": ACCOUNTS, "births": BIRTH_RECORDS}

DATA_DIR_OPTION = typer.Option(
    None,
    "--data-dir",
    "-d",
    help="Data directory (default: CIVREG_DATA_DIR env or ./registry_data)",
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code=1)


def _print_record(record: dict[str, str], title: str) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("Column", style="cyan", no_wrap=True)
    table.add_column("Value")
    for column, value in record.items():
        table.add_row(column, value or "[dim]-[/dim]")
    console.print(table)


@app.command()
def init(data_dir: Optional[str] = DATA_DIR_OPTION):
    """Create the data directory layout. Existing ledgers are left untouched."""
    config = RegistryConfig.from_env(cli_data_dir=data_dir)
    paths = StorePaths.from_config(config)

    created = 0
    for directory in paths.get_all_directories():
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            created += 1

    if created:
        console.print(f"[green]+[/green] Created {created} directories")
    else:
        console.print("[dim]All directories already exist[/dim]")
    console.print(f"[dim]Data directory:[/dim] {paths.root.absolute()}")


accounts_app = typer.Typer(help="Account commands")
app.add_typer(accounts_app, name="accounts")


@accounts_app.command("show")
def accounts_show(
    email: str = typer.Argument(..., help="Account email (case-insensitive)"),
    data_dir: Optional[str] = DATA_DIR_OPTION,
):
    """Show one account without its credential fields."""
    ledger = open_ledger(RegistryConfig.from_env(cli_data_dir=data_dir), ACCOUNTS)
    try:
        record = find_account(ledger, email)
    except RegistryError as e:
        _fail(str(e))
    _print_record(public_view(record), f"Account {record.get('ID', '')}")


births_app = typer.Typer(help="Birth record commands")
app.add_typer(births_app, name="births")


@births_app.command("show")
def births_show(
    record_id: Optional[str] = typer.Option(None, "--id", help="Record ID"),
    certificate: Optional[str] = typer.Option(None, "--certificate", "-c", help="Certificate number"),
    data_dir: Optional[str] = DATA_DIR_OPTION,
):
    """Show one birth record by ID or certificate number."""
    if not record_id and not certificate:
        _fail("Must provide either --id or --certificate")

    ledger = open_ledger(RegistryConfig.from_env(cli_data_dir=data_dir), BIRTH_RECORDS)
    try:
        record = get_birth_record(ledger, record_id=record_id, certificate_no=certificate)
    except RegistryError as e:
        _fail(str(e))
    _print_record(record, f"Birth record {record.get('CERTIFICATE_NO', '')}")


@births_app.command("status")
def births_status(
    record_id: str = typer.Argument(..., help="Record ID"),
    status: str = typer.Argument(..., help="pending, approved or rejected"),
    reason: str = typer.Option("", "--reason", "-r", help="Reject reason (rejected only)"),
    data_dir: Optional[str] = DATA_DIR_OPTION,
):
    """Change the review status of a birth record."""
    ledger = open_ledger(RegistryConfig.from_env(cli_data_dir=data_dir), BIRTH_RECORDS)
    try:
        record = set_status(ledger, record_id, status, reason)
    except RegistryError as e:
        _fail(str(e))

    console.print(f"[green]{record['ID']}[/green] -> [magenta]{status_of(record)}[/magenta]")
    if record.get("REJECT_REASON"):
        console.print(f"  [dim]Reason:[/dim] {record['REJECT_REASON']}")


@births_app.command("search")
def births_search(
    name: str = typer.Argument(..., help="Child name or surname"),
    dob: str = typer.Option("", "--dob", help="Date of birth (YYYY-MM-DD)"),
    data_dir: Optional[str] = DATA_DIR_OPTION,
):
    """Fuzzy search birth records by name, optionally boosted by date of birth."""
    config = RegistryConfig.from_env(cli_data_dir=data_dir)
    ledger = open_ledger(config, BIRTH_RECORDS)
    try:
        matches = search_birth_records(
            ledger,
            SearchQuery(name=name, dob=dob),
            threshold=config.search_threshold,
            limit=config.search_limit,
        )
    except RegistryError as e:
        _fail(str(e))

    if not matches:
        console.print("[dim]No matching records[/dim]")
        return

    table = Table(title=f"{len(matches)} match(es) for {name!r}")
    table.add_column("Score", style="cyan", justify="right")
    table.add_column("Certificate", style="yellow")
    table.add_column("Name")
    table.add_column("Date of birth", style="dim")
    table.add_column("Status", style="magenta")
    for match in matches:
        table.add_row(
            f"{match.score:.3f}",
            match.record.get("CERTIFICATE_NO", ""),
            full_name(match.record),
            match.record.get("DATE_OF_BIRTH", ""),
            status_of(match.record),
        )
    console.print(table)


ledger_app = typer.Typer(help="Ledger maintenance commands")
app.add_typer(ledger_app, name="ledger")


@ledger_app.command("backups")
def ledger_backups(
    which: Optional[str] = typer.Argument(None, help="accounts or births (default: all)"),
    data_dir: Optional[str] = DATA_DIR_OPTION,
):
    """List pre-mutation snapshots, oldest first."""
    paths = StorePaths.from_config(RegistryConfig.from_env(cli_data_dir=data_dir))
    ledger_name = None
    if which:
        if which not in LEDGERS:
            _fail(f"Unknown ledger {which!r}; expected one of {', '.join(LEDGERS)}")
        ledger_name = paths.ledger_file(LEDGERS[which]).name

    snapshots = list_snapshots(paths.backups, ledger_name)
    if not snapshots:
        console.print("[dim]No backups[/dim]")
        return
    for snap in snapshots:
        console.print(f"{snap.name}  [dim]{snap.stat().st_size} bytes[/dim]")


@ledger_app.command("unlock")
def ledger_unlock(
    which: str = typer.Argument(..., help="accounts or births"),
    data_dir: Optional[str] = DATA_DIR_OPTION,
):
    """Remove a stale lock marker left behind by a crashed writer.

    Only run this when no writer is active.
    """
    if which not in LEDGERS:
        _fail(f"Unknown ledger {which!r}; expected one of {', '.join(LEDGERS)}")
    paths = StorePaths.from_config(RegistryConfig.from_env(cli_data_dir=data_dir))
    ledger_path = paths.ledger_file(LEDGERS[which])

    owner = read_owner(ledger_path)
    if clear_stale_lock(ledger_path):
        console.print(f"[yellow]Removed lock on {ledger_path.name}[/yellow] [dim](held by {owner})[/dim]")
    else:
        console.print(f"[dim]{ledger_path.name} is not locked[/dim]")


if __name__ == "__main__":
    app()
