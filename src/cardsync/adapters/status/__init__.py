"""Status persistence adapters."""

from cardsync.adapters.status.file_status import FileStatusStore


__all__ = ["FileStatusStore"]
