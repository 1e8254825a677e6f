"""Port interfaces for hexagonal architecture.

Ports define contracts that adapters must implement. The core domain
depends only on these protocols, never on concrete implementations.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:
    from concurrent.futures import Future
    from pathlib import Path

    from cardsync.core.models import RemoteEntry, SyncStatus

ProgressCallback = Callable[[int, int], None]


@runtime_checkable
class RemoteStoragePort(Protocol):
    """Remote file/folder store holding the shared character cards.

    Paths are POSIX-style and relative to the storage root
    (e.g., "characters/Alice.png").
    """

    def list_folder(
        self, path: str, include_deleted: bool = False
    ) -> list[RemoteEntry]:
        """List the direct children of a folder.

        Args:
            path: Folder path.
            include_deleted: Also report deleted files as DELETED entries.

        Raises:
            StorageNotFoundError: If the folder does not exist.
        """
        ...

    def get_metadata(self, path: str) -> RemoteEntry:
        """Describe a single file or folder.

        Raises:
            StorageNotFoundError: If nothing exists at path.
        """
        ...

    def create_folder(self, path: str) -> RemoteEntry:
        """Create a folder.

        Raises:
            StorageConflictError: If the folder already exists.
        """
        ...

    def upload(
        self,
        path: str,
        content: bytes,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> RemoteEntry:
        """Write a file, replacing any existing copy when overwrite is set.

        Args:
            path: Destination path.
            content: File bytes.
            overwrite: Replace an existing file instead of failing.
            progress: Optional callback function(bytes_uploaded, total_bytes).

        Raises:
            StorageConflictError: If the file exists and overwrite is False.
        """
        ...

    def download(self, path: str, dest: Path) -> None:
        """Copy a remote file's bytes to a local path.

        Raises:
            StorageNotFoundError: If the file does not exist.
        """
        ...

    def delete(self, path: str) -> None:
        """Delete a file.

        Raises:
            StorageNotFoundError: If the file does not exist.
        """
        ...


@runtime_checkable
class TokenProviderPort(Protocol):
    """Source of currently valid credentials for the remote store."""

    def get_access_token(self) -> str | None:
        """Return a currently valid access token, refreshing on demand.

        Returns:
            The token, or None when not authenticated.
        """
        ...

    def has_refresh_credential(self) -> bool:
        """Whether refresh() has anything to refresh with."""
        ...

    def refresh(self) -> bool:
        """Replace the current credentials with fresh ones.

        Returns:
            True on success, False when the refresh was rejected.
        """
        ...


@runtime_checkable
class StatusStorePort(Protocol):
    """Persistence for the sync service status."""

    def get(self) -> SyncStatus:
        """Return the current status."""
        ...

    def set_authenticated(self, is_authenticated: bool) -> None:
        """Record whether valid credentials are available."""
        ...

    def set_syncing(self, is_syncing: bool, message: str | None = None) -> None:
        """Record the start (or abandonment) of a sync attempt."""
        ...

    def record_sync_completion(
        self, success: bool, count: int, message: str | None = None
    ) -> None:
        """Record the end of a sync run."""
        ...


@runtime_checkable
class ProgressReporter(Protocol):
    """Reports upload progress to the user.

    The core domain uses this to report progress without depending
    on any specific UI library.
    """

    def start_task(self, name: str, total: int) -> ProgressCallback:
        """Start tracking an upload.

        Args:
            name: Human-readable name for the task (card filename).
            total: Total bytes to upload.

        Returns:
            A ProgressCallback to call with (bytes_uploaded, total_bytes).
        """
        ...

    def finish_task(self, name: str) -> None:
        """Mark a task as complete."""
        ...


class NullProgressReporter:
    """A ProgressReporter that produces no output."""

    def start_task(self, name: str, total: int) -> ProgressCallback:  # noqa: ARG002
        """Return a no-op callback."""
        return lambda _uploaded, _total: None

    def finish_task(self, name: str) -> None:
        """Do nothing."""
        _ = name  # Unused but required by protocol


@runtime_checkable
class ExecutorPort(Protocol):
    """Executor used to race remote calls against a timeout.

    Abstracts over concurrent.futures executors so the core never imports
    ThreadPoolExecutor directly.
    """

    def submit(
        self, fn: Callable[..., object], *args: object, **kwargs: object
    ) -> Future[object]:  # type: ignore[name-defined, unused-ignore]
        """Submit a function for execution."""
        ...
