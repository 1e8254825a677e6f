"""Core domain module for cardsync.

This module contains pure Python domain models, card metadata parsing and
port definitions. It performs no network I/O and can be tested in isolation.
"""

from cardsync.core.models import (
    AllowList,
    CardFile,
    ExtractedCardData,
    RemoteEntry,
    SyncOutcome,
    UploadDecision,
)
from cardsync.core.ports import (
    ProgressCallback,
    RemoteStoragePort,
    StatusStorePort,
    TokenProviderPort,
)


__all__ = [
    "AllowList",
    "CardFile",
    "ExtractedCardData",
    "ProgressCallback",
    "RemoteEntry",
    "RemoteStoragePort",
    "StatusStorePort",
    "SyncOutcome",
    "TokenProviderPort",
    "UploadDecision",
]
