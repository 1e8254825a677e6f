"""Rich-based upload progress for terminal output."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)


if TYPE_CHECKING:
    from types import TracebackType

    from rich.console import Console

    from cardsync.core.ports import ProgressCallback


class RichProgressReporter:
    """Progress reporter showing one bar per uploaded card.

    Finished bars are removed so long runs do not flood the terminal.

    Example:
        with RichProgressReporter() as reporter:
            outcome = reconcile(context, local_dir, tags, progress=reporter)
    """

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=True,
        )
        self._tasks: dict[str, TaskID] = {}
        self._started = False

    def __enter__(self) -> RichProgressReporter:
        self._progress.start()
        self._started = True
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._progress.stop()
        self._started = False

    def start_task(self, name: str, total: int) -> ProgressCallback:
        """Add a bar for an upload and return its update callback."""
        if not self._started:
            self._progress.start()
            self._started = True

        task_id = self._progress.add_task(f"Uploading {name}", total=total)
        self._tasks[name] = task_id

        def callback(uploaded: int, _total: int) -> None:
            self._progress.update(task_id, completed=uploaded)

        return callback

    def finish_task(self, name: str) -> None:
        """Remove the bar for a finished (or abandoned) upload."""
        task_id = self._tasks.pop(name, None)
        if task_id is not None:
            self._progress.remove_task(task_id)
