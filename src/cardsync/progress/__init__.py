"""Progress reporting adapters."""

from cardsync.progress.rich_progress import RichProgressReporter


__all__ = ["RichProgressReporter"]
