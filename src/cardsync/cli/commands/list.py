"""List command for CLI."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from cardsync.cli.formatting import format_size
from cardsync.cli.main import app, build_runtime, fail
from cardsync.core.exceptions import CardsyncError
from cardsync.core.models import RemoteEntryKind, is_character_file


_KIND_STYLES = {
    RemoteEntryKind.FILE: "",
    RemoteEntryKind.FOLDER: "blue",
    RemoteEntryKind.DELETED: "red",
}


@app.command(name="list")
def list_cards(
    ctx: typer.Context,
    deleted: bool = typer.Option(
        False,
        "--deleted",
        help="Also show deleted cards (versioned buckets only).",
    ),
    all_files: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Show every entry, not just character cards.",
    ),
) -> None:
    """List the cards in the remote folder."""
    runtime = build_runtime(ctx)
    folder = runtime.settings.remote_folder
    try:
        entries = runtime.storage.list_folder(folder, include_deleted=deleted)
    except CardsyncError as e:
        raise fail(e) from None
    finally:
        runtime.close()

    if not all_files:
        entries = [
            e
            for e in entries
            if e.kind is not RemoteEntryKind.FOLDER and is_character_file(e.filename)
        ]

    if not entries:
        typer.echo(f"No cards in '{folder}'.")
        return

    table = Table()
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Size", justify="right")
    for entry in entries:
        kind = Text(entry.kind.value, style=_KIND_STYLES[entry.kind])
        table.add_row(entry.filename, kind, format_size(entry.size))

    console = Console(force_terminal=True)
    console.print(table)
