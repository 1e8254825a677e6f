"""Status command for CLI."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from cardsync.cli.formatting import format_flag, format_timestamp
from cardsync.cli.main import app, load_cli_settings, open_status_store


@app.command()
def status(ctx: typer.Context) -> None:
    """Show authentication state and the result of the last sync."""
    settings = load_cli_settings(ctx)
    current = open_status_store(settings).get()

    table = Table(show_header=False)
    table.add_column("Field")
    table.add_column("Value")

    table.add_row("Authenticated", format_flag(current.is_authenticated))
    table.add_row("Syncing", format_flag(current.is_syncing))
    table.add_row("Last sync", format_timestamp(current.last_sync_time))
    table.add_row("Last attempt", format_timestamp(current.last_sync_attempt_time))
    table.add_row(
        "Last result", format_flag(current.last_sync_success, "success", "failed")
    )
    table.add_row("Cards shared", str(current.shared_characters_count))
    table.add_row("Message", current.last_sync_message or "-")
    table.add_row("Bucket", settings.bucket or "(not configured)")
    table.add_row("Remote folder", settings.remote_folder)
    table.add_row("Character directory", str(settings.characters_dir))
    table.add_row("Version", current.server_version)

    # Force terminal output to ensure tables render correctly in all environments
    console = Console(force_terminal=True)
    console.print(table)
