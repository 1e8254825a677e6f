"""File-based status store implementing StatusStorePort."""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cardsync.core.models import SyncStatus


if TYPE_CHECKING:
    from pathlib import Path


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class FileStatusStore:
    """Sync status persisted as a JSON document.

    The file is read once on construction, merged over the defaults so
    missing keys are filled in, and rewritten after every change.

    Attributes:
        path: Location of the status file.
    """

    def __init__(self, path: Path, server_version: str = "0.0.0") -> None:
        """Load the status file, creating it with defaults if absent.

        Args:
            path: Location of the status file.
            server_version: Version recorded in the status on start-up.
        """
        self.path = path
        self._lock = threading.Lock()
        loaded = self._load()
        self._status = dataclasses.replace(loaded, server_version=server_version)
        self._save()

    def _load(self) -> SyncStatus:
        if not self.path.exists():
            logger.debug("No status file at %s, using defaults", self.path)
            return SyncStatus()
        try:
            with self.path.open() as f:
                data: Any = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Status file %s unreadable, using defaults: %s", self.path, e)
            return SyncStatus()
        if not isinstance(data, dict):
            logger.warning("Status file %s does not hold an object, using defaults", self.path)
            return SyncStatus()

        known = {f.name for f in dataclasses.fields(SyncStatus)}
        return SyncStatus(**{k: v for k, v in data.items() if k in known})

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w") as f:
            json.dump(dataclasses.asdict(self._status), f, indent=2)

    def _update(self, **changes: Any) -> None:
        with self._lock:
            self._status = dataclasses.replace(self._status, **changes)
            self._save()

    def get(self) -> SyncStatus:
        """Return the current status."""
        return self._status

    def set_authenticated(self, is_authenticated: bool) -> None:
        self._update(is_authenticated=is_authenticated)

    def set_syncing(self, is_syncing: bool, message: str | None = None) -> None:
        """Record the start or abandonment of a sync attempt.

        The attempt time is stamped either way; the message is kept unless
        a new one is given.
        """
        changes: dict[str, Any] = {
            "is_syncing": is_syncing,
            "last_sync_attempt_time": _now(),
        }
        if message is not None:
            changes["last_sync_message"] = message
        self._update(**changes)

    def record_sync_completion(
        self, success: bool, count: int, message: str | None = None
    ) -> None:
        """Record the end of a sync run.

        Args:
            success: Whether the run completed.
            count: Number of cards shared by the run.
            message: Status message; a default is derived from success.
        """
        if message is None:
            message = "Sync completed successfully." if success else "Sync failed."
        self._update(
            is_syncing=False,
            last_sync_time=_now(),
            last_sync_success=success,
            shared_characters_count=count,
            last_sync_message=message,
        )
