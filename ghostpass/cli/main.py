"""ghostpass CLI - Privacy-first secrets store."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..config.settings import get_settings, make_workspace
from ..store import StoreError, StoreExistsError, get_store_manager
from ..store.exceptions import NameRequiredError
from ..store.secure import get_key_guard
from ..utils.logging import setup_logging

app = typer.Typer(
    name="ghostpass",
    help="Privacy-first secrets store with plainsight distribution.",
    no_args_is_help=True,
)

console = Console()

DESCRIPTION = "Privacy-first secrets store with plainsight distribution"


def _banner() -> None:
    console.print(f"\n[bold]ghostpass[/bold] v{__version__}")
    console.print(f"{DESCRIPTION}\n")


def _fail(message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]")
    raise typer.Exit(1)


def _require_name(name: Optional[str]) -> str:
    if not name:
        raise NameRequiredError()
    return name


def _read_master_key(confirm: bool = False) -> str:
    return typer.prompt("Master key", hide_input=True, confirmation_prompt=confirm)


def _read_corpus(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        _fail(f"Cannot read corpus {path}: {e.strerror or e}")
    except UnicodeDecodeError:
        _fail(f"Corpus is not valid UTF-8 text: {path}")


@app.callback()
def callback(
    ctx: typer.Context,
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Do not print the banner",
    ),
):
    """Set up logging, the workspace and the key guard."""
    settings = get_settings()
    settings.quiet = settings.quiet or quiet

    setup_logging(level=settings.log_level, log_file=settings.log_file)

    try:
        make_workspace(settings.workspace_dir)
    except OSError as e:
        _fail(f"Cannot create workspace {settings.workspace_dir}: {e.strerror or e}")

    get_key_guard().install()

    if not settings.quiet and ctx.invoked_subcommand != "version":
        _banner()


@app.command()
def init(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of secret store to create locally",
    ),
):
    """Create a new secret store."""
    try:
        name = _require_name(name)
        manager = get_store_manager()
        if manager.store_exists(name):
            raise StoreExistsError(name)

        master_key = _read_master_key(confirm=True)
        with manager.init(name, master_key) as store:
            store.commit()
            path = store.path
    except StoreError as e:
        _fail(str(e))

    console.print(f"[green]Created secret store '{name}'[/green]")
    console.print(f"Location: {path}")


@app.command()
def stores():
    """List existing secret stores."""
    names = get_store_manager().list_stores()

    if not names:
        console.print("[yellow]No secret stores found.[/yellow]")
        return

    table = Table(title=f"Secret Stores ({len(names)})")
    table.add_column("Name", style="cyan")

    for store_name in names:
        table.add_row(store_name)

    console.print(table)


@app.command()
def destruct(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of secret store to delete permanently",
    ),
):
    """Permanently destroy a secret store."""
    try:
        name = _require_name(name)
        master_key = _read_master_key()

        with get_store_manager().open(name, master_key) as store:
            if not typer.confirm(
                f"Destroy secret store '{name}'? This cannot be undone.",
                default=False,
            ):
                console.print("Exiting...")
                return
            store.destroy()
    except StoreError as e:
        _fail(str(e))

    console.print(f"[green]Destroyed secret store '{name}'[/green]")


@app.command()
def add(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of secret store to add field to",
    ),
    service: Optional[str] = typer.Option(
        None,
        "--service", "-s",
        help="Name of the service, the key for the field",
    ),
    username: Optional[str] = typer.Option(
        None,
        "--username", "-u",
        help="Username for the service",
    ),
):
    """
    Add a field to a secret store.

    The password is always read from a hidden prompt. An existing field
    for the same service is overwritten after confirmation.
    """
    try:
        name = _require_name(name)
        master_key = _read_master_key()

        with get_store_manager().open(name, master_key) as store:
            if not service:
                service = typer.prompt("Service")
            if not username:
                username = typer.prompt("Username")
            password = typer.prompt(f"Password for '{service}'", hide_input=True)

            if store.field_exists(service) and not typer.confirm(
                f"Field '{service}' already exists. Overwrite?",
                default=False,
            ):
                console.print("Exiting...")
                return

            store.add_field(service, username, password)
            store.commit()
    except (StoreError, ValueError) as e:
        _fail(str(e))

    console.print(f"[green]Added field '{service}' to '{name}'[/green]")


@app.command()
def remove(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of the secret store to remove field from",
    ),
    service: Optional[str] = typer.Option(
        None,
        "--service", "-s",
        help="Service that identifies the field to delete",
    ),
):
    """Remove a field from a secret store."""
    try:
        name = _require_name(name)
        master_key = _read_master_key()

        with get_store_manager().open(name, master_key) as store:
            if not service:
                service = typer.prompt("Service")
            store.remove_field(service)
            store.commit()
    except StoreError as e:
        _fail(str(e))

    console.print(f"[green]Removed field '{service}' from '{name}'[/green]")


app.command(name="rm", help="Remove a field from a secret store (alias of remove).")(remove)


@app.command()
def view(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of the secret store to view field in",
    ),
    service: Optional[str] = typer.Option(
        None,
        "--service", "-s",
        help="Service that identifies the field to view",
    ),
):
    """Decrypt and view a single field."""
    try:
        name = _require_name(name)
        master_key = _read_master_key()

        with get_store_manager().open(name, master_key) as store:
            if not service:
                service = typer.prompt("Service")
            field_service, field_username, field_password = store.get_field(service)
    except StoreError as e:
        _fail(str(e))

    table = Table(title=f"Field in '{name}'")
    table.add_column("Service", style="cyan")
    table.add_column("Username")
    table.add_column("Password", style="magenta")
    table.add_row(field_service, field_username, field_password)

    console.print(table)


@app.command()
def fields(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of secret store to list all fields in",
    ),
):
    """List all fields in a secret store (passwords are not shown)."""
    try:
        name = _require_name(name)
        master_key = _read_master_key()

        with get_store_manager().open(name, master_key) as store:
            rows = [store.get_field(service)[:2] for service in store.get_fields()]
    except StoreError as e:
        _fail(str(e))

    if not rows:
        console.print(f"[yellow]No fields in '{name}'.[/yellow]")
        return

    table = Table(title=f"Fields in '{name}' ({len(rows)})")
    table.add_column("Service", style="cyan")
    table.add_column("Username")

    for field_service, field_username in rows:
        table.add_row(field_service, field_username)

    console.print(table)


@app.command(name="import")
def import_(
    corpus: Optional[Path] = typer.Option(
        None,
        "--corpus", "-c",
        help="Path to a previously exported plainsight file",
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Local name for the imported store (default: exported name)",
    ),
):
    """Import a secret store from a plainsight file."""
    if corpus is None:
        _fail("No path to corpus provided for plainsight decoding.")

    text = _read_corpus(corpus)

    try:
        master_key = _read_master_key()
        manager = get_store_manager()

        try:
            store = manager.import_store(master_key, text, name=name)
        except StoreExistsError as e:
            if not typer.confirm(f"{e} Overwrite?", default=False):
                console.print("Exiting...")
                return
            store = manager.import_store(master_key, text, name=name, overwrite=True)

        with store:
            store.commit()
            imported = store.name
            count = store.field_count
    except StoreError as e:
        _fail(str(e))

    console.print(f"[green]Imported secret store '{imported}' ({count} fields)[/green]")


@app.command()
def export(
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Name of the secret store to export",
    ),
    corpus: Optional[Path] = typer.Option(
        None,
        "--corpus", "-c",
        help="Path to a text file to hide the store in",
    ),
    outfile: Optional[Path] = typer.Option(
        None,
        "--outfile", "-o",
        help="Output path (default: plainsight_<name>.out)",
    ),
):
    """Hide a secret store inside a text file for distribution."""
    try:
        name = _require_name(name)
    except StoreError as e:
        _fail(str(e))

    if corpus is None:
        _fail("No corpus provided for plainsight encoding.")

    if outfile is None:
        outfile = get_settings().export_path(name)

    text = _read_corpus(corpus)

    try:
        master_key = _read_master_key()
        with get_store_manager().open(name, master_key) as store:
            encoded = store.export(text)
    except StoreError as e:
        _fail(str(e))

    try:
        outfile.write_text(encoded, encoding="utf-8")
    except OSError as e:
        _fail(f"Cannot write {outfile}: {e.strerror or e}")

    console.print(f"[green]Wrote plainsight file to {outfile}[/green]")


@app.command()
def version():
    """Show version information."""
    console.print(f"ghostpass v{__version__}")
    console.print(DESCRIPTION)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
