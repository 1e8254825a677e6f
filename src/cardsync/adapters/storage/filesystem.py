"""Filesystem storage adapter for local development and testing."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from cardsync.core.exceptions import (
    StorageConflictError,
    StorageNotFoundError,
)
from cardsync.core.models import RemoteEntry, RemoteEntryKind


if TYPE_CHECKING:
    from cardsync.core.ports import ProgressCallback


# Chunk size for copying files (64KB)
_CHUNK_SIZE = 64 * 1024


class FilesystemStorage:
    """Storage adapter backed by a local directory.

    Implements RemoteStoragePort with the root directory standing in for the
    bucket. Useful for local development and testing without S3.
    """

    def __init__(self, root: Path) -> None:
        """Initialize filesystem storage.

        Args:
            root: Directory that remote paths are resolved against.
        """
        self.root = root

    def _resolve(self, path: str) -> Path:
        return self.root / path.strip("/") if path.strip("/") else self.root

    def _entry(self, path: str, target: Path) -> RemoteEntry:
        if target.is_dir():
            return RemoteEntry(path=path.strip("/"), kind=RemoteEntryKind.FOLDER)
        return RemoteEntry(
            path=path.strip("/"),
            kind=RemoteEntryKind.FILE,
            size=target.stat().st_size,
        )

    def list_folder(
        self,
        path: str,
        include_deleted: bool = False,  # noqa: ARG002
    ) -> list[RemoteEntry]:
        """List the direct children of a directory.

        Deleted files leave no trace locally, so include_deleted has no effect.

        Raises:
            StorageNotFoundError: If the directory does not exist.
        """
        base = self._resolve(path)
        if not base.is_dir():
            raise StorageNotFoundError(f"Directory not found: {path}", source=path)

        prefix = path.strip("/")
        return sorted(
            (
                self._entry(f"{prefix}/{child.name}" if prefix else child.name, child)
                for child in base.iterdir()
            ),
            key=lambda e: e.path,
        )

    def get_metadata(self, path: str) -> RemoteEntry:
        """Describe a file or directory.

        Raises:
            StorageNotFoundError: If nothing exists at path.
        """
        target = self._resolve(path)
        if not target.exists():
            raise StorageNotFoundError(f"File not found: {path}", source=path)
        return self._entry(path, target)

    def create_folder(self, path: str) -> RemoteEntry:
        """Create a directory.

        Raises:
            StorageConflictError: If the directory already exists.
        """
        target = self._resolve(path)
        try:
            target.mkdir(parents=True)
        except FileExistsError as e:
            raise StorageConflictError(
                f"Folder already exists: {path}", source=path, cause=e
            ) from e
        return RemoteEntry(path=path.strip("/"), kind=RemoteEntryKind.FOLDER)

    def upload(
        self,
        path: str,
        content: bytes,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> RemoteEntry:
        """Write bytes to a file with optional progress reporting.

        Raises:
            StorageConflictError: If overwrite is False and the file exists.
        """
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        mode = "wb" if overwrite else "xb"
        total_size = len(content)
        try:
            with target.open(mode) as dst:
                for offset in range(0, total_size, _CHUNK_SIZE):
                    chunk = content[offset : offset + _CHUNK_SIZE]
                    dst.write(chunk)
                    if progress:
                        progress(offset + len(chunk), total_size)
        except FileExistsError as e:
            raise StorageConflictError(
                f"File already exists: {path}", source=path, cause=e
            ) from e
        return RemoteEntry(path=path.strip("/"), kind=RemoteEntryKind.FILE, size=total_size)

    def download(self, path: str, dest: Path) -> None:
        """Copy a file to dest.

        Raises:
            StorageNotFoundError: If the file does not exist.
        """
        source = self._resolve(path)
        if not source.is_file():
            raise StorageNotFoundError(f"File not found: {path}", source=path)
        shutil.copyfile(source, dest)

    def delete(self, path: str) -> None:
        """Delete a file.

        Raises:
            StorageNotFoundError: If the file does not exist.
        """
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as e:
            raise StorageNotFoundError(
                f"File not found: {path}", source=path, cause=e
            ) from e
