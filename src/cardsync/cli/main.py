"""CLI commands for cardsync."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.logging import RichHandler

from cardsync.core.exceptions import CardsyncError


if TYPE_CHECKING:
    from cardsync.adapters.auth import StsTokenProvider
    from cardsync.adapters.executor import ThreadPoolExecutorAdapter
    from cardsync.adapters.status import FileStatusStore
    from cardsync.adapters.storage import S3Storage
    from cardsync.config import Settings
    from cardsync.core.services import SyncContext


app = typer.Typer(
    name="cardsync",
    help="Share AI character cards through cloud storage.",
    no_args_is_help=True,
)


@dataclass
class CliState:
    """Options shared by every command."""

    data_dir: Path | None = None
    verbose: bool = False


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # botocore is chatty at DEBUG and would log request signing details
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)


@app.callback()
def _main(
    ctx: typer.Context,
    data_dir: Path | None = typer.Option(
        None,
        "--data-dir",
        help="Directory holding settings, status and token files.",
        envvar="CARDSYNC_DATA_DIR",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output."),
) -> None:
    """Share AI character cards through cloud storage."""
    _setup_logging(verbose)
    ctx.obj = CliState(data_dir=data_dir.resolve() if data_dir else None, verbose=verbose)


def fail(error: CardsyncError) -> typer.Exit:
    """Print an error with its recovery hint and return the exit to raise."""
    typer.echo(f"Error: {error}", err=True)
    if error.recovery_hint:
        typer.echo(f"Hint: {error.recovery_hint}", err=True)
    return typer.Exit(1)


@dataclass
class Runtime:
    """Adapters wired together for one CLI invocation."""

    settings: Settings
    storage: S3Storage
    token_provider: StsTokenProvider | None
    status_store: FileStatusStore
    executor: ThreadPoolExecutorAdapter

    def context(self) -> SyncContext:
        from cardsync.core.services import SyncContext

        return SyncContext(
            storage=self.storage,
            settings=self.settings,
            token_provider=self.token_provider,
            executor=self.executor,
            call_timeout=CALL_TIMEOUT,
        )

    def close(self) -> None:
        if self.token_provider is not None:
            self.token_provider.close()
        self.executor.shutdown(wait=False)


# Seconds each remote call may take before it is abandoned
CALL_TIMEOUT = 10.0


def load_cli_settings(ctx: typer.Context) -> Settings:
    """Load settings for the data directory chosen on the command line.

    Raises:
        typer.Exit: If the settings file cannot be read.
    """
    from cardsync.config import load_settings

    state: CliState = ctx.obj or CliState()
    try:
        return load_settings(state.data_dir)
    except CardsyncError as e:
        raise fail(e) from None


def open_status_store(settings: Settings) -> FileStatusStore:
    from cardsync import __version__
    from cardsync.adapters.status import FileStatusStore

    return FileStatusStore(settings.status_file, server_version=__version__)


def build_runtime(
    ctx: typer.Context, *, schedule_refresh: bool = False
) -> Runtime:
    """Wire storage, credentials and status for a command that talks to S3.

    Session credentials from `cardsync login` are used when present;
    otherwise boto3's default credential chain applies.

    Raises:
        typer.Exit: If settings are unreadable or no bucket is configured.
    """
    from cardsync.adapters.auth import StsTokenProvider
    from cardsync.adapters.executor import ThreadPoolExecutorAdapter
    from cardsync.adapters.storage import S3Storage

    settings = load_cli_settings(ctx)
    try:
        bucket = settings.require_bucket()
    except CardsyncError as e:
        raise fail(e) from None

    status_store = open_status_store(settings)
    token_provider: StsTokenProvider | None = None
    if settings.token_file.exists():
        token_provider = StsTokenProvider(
            settings.token_file,
            role_arn=settings.role_arn,
            status_store=status_store,
            region=settings.region,
            schedule_refresh=schedule_refresh,
        )
        if not token_provider.load():
            typer.echo("Saved session expired; run 'cardsync login'.", err=True)
            token_provider = None

    storage = S3Storage(
        bucket,
        root_prefix=settings.root_prefix,
        credentials=token_provider.get_credentials if token_provider else None,
        region=settings.region,
    )
    return Runtime(
        settings=settings,
        storage=storage,
        token_provider=token_provider,
        status_store=status_store,
        executor=ThreadPoolExecutorAdapter(),
    )


@app.command()
def sync(ctx: typer.Context) -> None:
    """Run one sync pass: remove disallowed remote cards, upload newer ones."""
    from cardsync.progress import RichProgressReporter
    from cardsync.scheduling import SyncService

    runtime = build_runtime(ctx)
    try:
        with RichProgressReporter() as progress:
            service = SyncService(runtime.context(), runtime.status_store, progress)
            outcome = service.run_once("manual")
    finally:
        runtime.close()

    if outcome is None:
        typer.echo("A sync is already in progress.")
        raise typer.Exit(1)
    typer.echo(
        f"Uploaded {outcome.uploaded_count}, removed {outcome.removed_count}."
    )
    if not outcome.success:
        typer.echo("Sync did not complete; see the log for details.", err=True)
        raise typer.Exit(1)


@app.command()
def watch(
    ctx: typer.Context,
    interval: int | None = typer.Option(
        None,
        "--interval",
        "-i",
        help="Seconds between syncs. Defaults to the sync_interval setting.",
    ),
    now: bool = typer.Option(
        True, "--now/--no-now", help="Sync once immediately before waiting."
    ),
) -> None:
    """Sync on an interval until interrupted."""
    from cardsync.scheduling import SyncScheduler, SyncService

    runtime = build_runtime(ctx, schedule_refresh=True)
    if not runtime.settings.auto_sync:
        runtime.close()
        typer.echo("Automatic sync is disabled; enable it with 'cardsync config --auto-sync'.")
        raise typer.Exit(1)

    seconds = interval if interval is not None else runtime.settings.sync_interval
    if seconds <= 0:
        runtime.close()
        typer.echo("Error: --interval must be positive.", err=True)
        raise typer.Exit(1)

    service = SyncService(runtime.context(), runtime.status_store)
    scheduler = SyncScheduler(service, seconds)
    typer.echo(f"Watching {runtime.settings.characters_dir}, syncing every {seconds}s. Ctrl-C to stop.")
    try:
        if now:
            service.run_once("startup")
        scheduler.start()
        threading.Event().wait()
    except KeyboardInterrupt:
        typer.echo("Stopping.")
    finally:
        scheduler.stop()
        runtime.close()


@app.command()
def check(
    ctx: typer.Context,
    attempts: int = typer.Option(3, "--attempts", help="Attempts before giving up."),
) -> None:
    """Check that the bucket is reachable."""
    from cardsync.core.remote_calls import RetryPolicy, check_connectivity

    runtime = build_runtime(ctx)
    try:
        reachable = check_connectivity(
            runtime.storage,
            runtime.token_provider,
            RetryPolicy(max_attempts=max(attempts, 1), timeout=CALL_TIMEOUT),
            executor=runtime.executor,
        )
    finally:
        runtime.close()

    if not reachable:
        typer.echo(f"Cannot reach s3://{runtime.storage.bucket}.", err=True)
        raise typer.Exit(1)
    typer.echo(f"s3://{runtime.storage.bucket} is reachable.")


@app.command()
def inspect(
    ctx: typer.Context,
    file: Path | None = typer.Argument(
        None,
        help="Card to inspect. Defaults to every card in the character directory.",
    ),
) -> None:
    """Show the name, version and tags the sync would read from local cards."""
    from rich.table import Table

    from cardsync.core.png_utils import extract_from_card
    from cardsync.core.services import inspect_local_cards

    settings = load_cli_settings(ctx)
    console = Console(force_terminal=True)

    if file is not None:
        if not file.is_file():
            typer.echo(f"Error: {file} is not a file.", err=True)
            raise typer.Exit(1)
        data = extract_from_card(file.name, file.read_bytes())
        if data is None:
            typer.echo(f"{file.name}: no character data found.")
            raise typer.Exit(1)
        typer.echo(f"Card: {file.name}")
        typer.echo(f"  Name: {data.name or '-'}")
        typer.echo(f"  Version: {data.version:g}")
        typer.echo(f"  Tags: {', '.join(data.tags) or '-'}")
        return

    reports = inspect_local_cards(settings.characters_dir, settings.exclude_tags)
    if not reports:
        typer.echo(f"No character cards found in {settings.characters_dir}.")
        return

    table = Table()
    table.add_column("File")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Tags")
    table.add_column("Uploads")
    for report in reports:
        data = report.data
        if data is None:
            version, tags, uploads = "-", "-", "[yellow]unreadable[/yellow]"
        else:
            version = f"{data.version:g}"
            tags = ", ".join(data.tags) or "-"
            uploads = "[red]excluded[/red]" if report.excluded else "[green]yes[/green]"
        table.add_row(report.card.filename, report.display_name, version, tags, uploads)
    console.print(table)


@app.command()
def login(
    ctx: typer.Context,
    role_arn: str | None = typer.Option(
        None, "--role-arn", help="Role to assume. Saved to settings when given."
    ),
) -> None:
    """Assume the configured role and save the session credentials."""
    from cardsync.adapters.auth import StsTokenProvider
    from cardsync.config import save_settings

    settings = load_cli_settings(ctx)
    if role_arn and role_arn != settings.role_arn:
        settings = settings.with_updates(role_arn=role_arn)
        save_settings(settings)

    provider = StsTokenProvider(
        settings.token_file,
        role_arn=settings.role_arn,
        status_store=open_status_store(settings),
        region=settings.region,
        schedule_refresh=False,
    )
    try:
        creds = provider.login()
    except CardsyncError as e:
        raise fail(e) from None
    typer.echo(f"Logged in; session expires at {creds.expires_at:%Y-%m-%d %H:%M:%S %Z}.")


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget the saved session credentials."""
    from cardsync.adapters.auth import StsTokenProvider

    settings = load_cli_settings(ctx)
    provider = StsTokenProvider(
        settings.token_file,
        status_store=open_status_store(settings),
        schedule_refresh=False,
    )
    provider.logout()
    typer.echo("Logged out.")


@app.command()
def config(
    ctx: typer.Context,
    bucket: str | None = typer.Option(None, "--bucket", help="S3 bucket."),
    region: str | None = typer.Option(None, "--region", help="AWS region."),
    root_prefix: str | None = typer.Option(
        None, "--root-prefix", help="Key prefix for everything cardsync stores."
    ),
    remote_folder: str | None = typer.Option(
        None, "--remote-folder", help="Remote folder holding the cards."
    ),
    role_arn: str | None = typer.Option(None, "--role-arn", help="Role for 'login'."),
    characters_dir: Path | None = typer.Option(
        None, "--characters-dir", help="Local character directory."
    ),
    interval: int | None = typer.Option(
        None, "--interval", help="Seconds between scheduled syncs."
    ),
    auto_sync: bool | None = typer.Option(
        None, "--auto-sync/--no-auto-sync", help="Enable scheduled syncs."
    ),
    exclude_tags: list[str] | None = typer.Option(
        None, "--exclude-tag", help="Tag that blocks uploading. Repeat for more."
    ),
    allow: list[str] | None = typer.Option(
        None, "--allow", help="Filename the sync may manage. Repeat for more."
    ),
    clear_exclude_tags: bool = typer.Option(
        False, "--clear-exclude-tags", help="Upload cards regardless of tags."
    ),
    clear_allow_list: bool = typer.Option(
        False, "--clear-allow-list", help="Manage every card again."
    ),
) -> None:
    """Show settings, or update the given ones."""
    from rich.table import Table

    from cardsync.config import save_settings

    settings = load_cli_settings(ctx)
    changes = {
        name: value
        for name, value in {
            "bucket": bucket,
            "region": region,
            "root_prefix": root_prefix,
            "remote_folder": remote_folder,
            "role_arn": role_arn,
            "characters_dir": characters_dir,
            "sync_interval": interval,
            "auto_sync": auto_sync,
            "exclude_tags": exclude_tags,
            "allow_list": allow,
        }.items()
        if value is not None and value != []
    }
    if clear_exclude_tags:
        if exclude_tags:
            typer.echo("Error: --exclude-tag and --clear-exclude-tags are mutually exclusive.")
            raise typer.Exit(1)
        changes["exclude_tags"] = []
    if clear_allow_list:
        if allow:
            typer.echo("Error: --allow and --clear-allow-list are mutually exclusive.")
            raise typer.Exit(1)
        changes["allow_list"] = []

    if changes:
        try:
            settings = settings.with_updates(**changes)
        except CardsyncError as e:
            raise fail(e) from None
        path = save_settings(settings)
        typer.echo(f"Saved {path}")

    table = Table()
    table.add_column("Setting")
    table.add_column("Value")
    for name, value in settings.to_dict().items():
        if isinstance(value, list):
            value = ", ".join(value) or "(none)"
        table.add_row(name, "" if value is None else str(value))
    Console(force_terminal=True).print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()

