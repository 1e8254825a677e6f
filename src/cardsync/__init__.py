"""cardsync - share AI character cards through cloud storage.

Scans a local directory of character cards (PNG images with embedded JSON
metadata, or plain JSON), compares each card's version with the copy in a
remote folder and uploads the newer ones. Remote cards outside an optional
allow-list are removed.

Example:
    >>> from cardsync import S3Storage, SyncContext, load_settings, reconcile
    >>> settings = load_settings()
    >>> context = SyncContext(S3Storage(settings.require_bucket()), settings)
    >>> outcome = reconcile(context, settings.characters_dir, settings.exclude_tags)
"""

from cardsync.adapters.auth import StsTokenProvider
from cardsync.adapters.executor import SynchronousExecutor, ThreadPoolExecutorAdapter
from cardsync.adapters.status import FileStatusStore
from cardsync.adapters.storage import FilesystemStorage, S3Storage
from cardsync.config import Settings, load_settings, save_settings
from cardsync.core.exceptions import (
    AuthError,
    CardsyncError,
    ConfigurationError,
    ExpiredCredentialError,
    RateLimitError,
    SettingsLoadError,
    StorageAccessError,
    StorageConflictError,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
)
from cardsync.core.models import (
    AllowList,
    CardFile,
    Credentials,
    ExtractedCardData,
    RemoteEntry,
    RemoteEntryKind,
    SyncOutcome,
    SyncStatus,
    UploadDecision,
)
from cardsync.core.png_utils import extract_card_data, extract_chunks
from cardsync.core.ports import (
    NullProgressReporter,
    ProgressCallback,
    ProgressReporter,
    RemoteStoragePort,
    StatusStorePort,
    TokenProviderPort,
)
from cardsync.core.remote_calls import RetryPolicy, call_with_retry, check_connectivity
from cardsync.core.services import Reconciler, SyncContext, decide_upload, reconcile
from cardsync.progress import RichProgressReporter
from cardsync.scheduling import SyncScheduler, SyncService


__version__ = "0.1.0"

__all__ = [
    "AllowList",
    "AuthError",
    "CardFile",
    "CardsyncError",
    "ConfigurationError",
    "Credentials",
    "ExpiredCredentialError",
    "ExtractedCardData",
    "FileStatusStore",
    "FilesystemStorage",
    "NullProgressReporter",
    "ProgressCallback",
    "ProgressReporter",
    "RateLimitError",
    "Reconciler",
    "RemoteEntry",
    "RemoteEntryKind",
    "RemoteStoragePort",
    "RetryPolicy",
    "RichProgressReporter",
    "S3Storage",
    "Settings",
    "SettingsLoadError",
    "StatusStorePort",
    "StorageAccessError",
    "StorageConflictError",
    "StorageError",
    "StorageNotFoundError",
    "StsTokenProvider",
    "SyncContext",
    "SyncOutcome",
    "SyncScheduler",
    "SyncService",
    "SyncStatus",
    "SynchronousExecutor",
    "ThreadPoolExecutorAdapter",
    "TokenProviderPort",
    "TransientStorageError",
    "UploadDecision",
    "__version__",
    "call_with_retry",
    "check_connectivity",
    "decide_upload",
    "extract_card_data",
    "extract_chunks",
    "load_settings",
    "reconcile",
    "save_settings",
]
