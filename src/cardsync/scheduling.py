"""Sync triggers: the guarded sync service and the interval scheduler."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING

from cardsync.core.services import Reconciler


if TYPE_CHECKING:
    from cardsync.config import Settings
    from cardsync.core.models import SyncOutcome
    from cardsync.core.ports import ProgressReporter, StatusStorePort
    from cardsync.core.services import SyncContext


logger = logging.getLogger(__name__)

# One sync at a time per process, however many services are built
_sync_running = threading.Lock()


class SyncService:
    """Runs reconciliation passes one at a time.

    Manual and scheduled runs share one non-blocking guard, process-wide
    unless a guard is passed in: a run that finds another in progress is
    skipped, not queued.
    """

    def __init__(
        self,
        context: SyncContext,
        status_store: StatusStorePort | None = None,
        progress: ProgressReporter | None = None,
        guard: threading.Lock | None = None,
    ) -> None:
        self._context = context
        self._status_store = status_store
        self._progress = progress
        self._guard = guard if guard is not None else _sync_running

    @property
    def settings(self) -> Settings:
        return self._context.settings

    @property
    def is_syncing(self) -> bool:
        return self._guard.locked()

    def update_settings(self, settings: Settings) -> None:
        """Use new settings from the next run on."""
        self._context = dataclasses.replace(self._context, settings=settings)

    def run_once(self, trigger: str = "manual") -> SyncOutcome | None:
        """Run one reconciliation pass unless one is already running.

        Args:
            trigger: Label for logs and the status message ("manual",
                "scheduled").

        Returns:
            The outcome, or None if the run was skipped.
        """
        if not self._guard.acquire(blocking=False):
            logger.warning("Skipping %s sync: a sync is already in progress", trigger)
            return None

        try:
            settings = self._context.settings
            logger.info("Starting %s sync of %s", trigger, settings.characters_dir)
            if self._status_store is not None:
                self._status_store.set_syncing(True, f"Running {trigger} sync")

            outcome = Reconciler(self._context, progress=self._progress).reconcile(
                settings.characters_dir,
                settings.exclude_tags,
                settings.allow_list,
            )

            if self._status_store is not None:
                self._status_store.record_sync_completion(
                    outcome.success,
                    outcome.uploaded_count,
                    _describe(outcome),
                )
            return outcome
        except BaseException:
            if self._status_store is not None:
                self._status_store.set_syncing(False, f"{trigger.capitalize()} sync aborted")
            raise
        finally:
            self._guard.release()


def _describe(outcome: SyncOutcome) -> str:
    if not outcome.success:
        return (
            f"Sync failed after {outcome.uploaded_count} uploads"
            f" and {outcome.removed_count} removals."
        )
    return (
        f"Sync completed: {outcome.uploaded_count} uploaded,"
        f" {outcome.removed_count} removed."
    )


class SyncScheduler:
    """Fires SyncService.run_once("scheduled") every interval seconds.

    Each firing runs on a daemon timer thread and arms the next timer when it
    finishes, so a slow run delays the schedule instead of overlapping it.
    """

    def __init__(self, service: SyncService, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._service = service
        self._interval = interval
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._running = False

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Arm the first timer. Starting twice is a no-op."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._arm()
        logger.info("Scheduled sync every %s seconds", self._interval)

    def stop(self) -> None:
        """Cancel the pending timer. A run already in progress finishes."""
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info("Scheduled sync stopped")

    def reschedule(self, interval: float) -> None:
        """Change the interval, restarting the countdown."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        with self._lock:
            self._interval = interval
            if self._running:
                if self._timer is not None:
                    self._timer.cancel()
                self._arm()

    def _arm(self) -> None:
        self._timer = threading.Timer(self._interval, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self) -> None:
        try:
            self._service.run_once("scheduled")
        except Exception:
            logger.exception("Scheduled sync failed")
        with self._lock:
            if self._running:
                self._arm()
