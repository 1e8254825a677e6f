"""Core domain models for cardsync.

These models are pure Python dataclasses with no I/O dependencies.
They represent the core domain concepts of character card synchronization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Self


if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


CHARACTER_FILE_EXTENSIONS = (".png", ".json")


def is_character_file(filename: str) -> bool:
    """Return True if the filename looks like a character card."""
    return filename.endswith(CHARACTER_FILE_EXTENSIONS)


class CardKind(Enum):
    """Storage format of a character card."""

    PNG = "png"
    JSON = "json"

    @classmethod
    def from_filename(cls, filename: str) -> CardKind | None:
        """Return the kind for a filename, or None for non-card files."""
        if filename.endswith(".png"):
            return cls.PNG
        if filename.endswith(".json"):
            return cls.JSON
        return None


@dataclass(frozen=True, slots=True)
class CardFile:
    """A character card read from the local character directory.

    Attributes:
        filename: Base name of the file (e.g., "Alice.png").
        path: Absolute path of the file.
        content: Raw file bytes.
        kind: PNG or JSON.
    """

    filename: str
    path: Path
    content: bytes
    kind: CardKind

    @property
    def size(self) -> int:
        """Size of the card in bytes."""
        return len(self.content)


@dataclass(frozen=True, slots=True)
class MetadataChunk:
    """One PNG tEXt record."""

    keyword: str
    text: str


@dataclass(frozen=True, slots=True)
class ExtractedCardData:
    """Normalized metadata pulled out of a card.

    Attributes:
        name: Display name, if the card carries one.
        tags: Tags in card order (may be empty).
        version: Numeric card version, 1.0 when the card has none.
        raw: The parsed JSON object.
    """

    name: str | None
    tags: tuple[str, ...]
    version: float
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


class RemoteEntryKind(Enum):
    """Kind of item in a remote folder listing."""

    FILE = "file"
    FOLDER = "folder"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class RemoteEntry:
    """One item of a remote folder listing.

    Attributes:
        path: Remote path relative to the storage root (e.g., "characters/Alice.png").
        kind: File, folder or deleted marker.
        size: Size in bytes for files, if known.
    """

    path: str
    kind: RemoteEntryKind
    size: int | None = None

    @property
    def filename(self) -> str:
        """Last path component."""
        return PurePosixPath(self.path).name


@dataclass(frozen=True, slots=True)
class AllowList:
    """Set of filenames a sync run is permitted to manage.

    An empty allow-list means "no restriction", not "manage nothing".

    Example:
        >>> AllowList.from_names([]).permits("Alice.png")
        True
        >>> AllowList.from_names(["Bob.png"]).permits("Alice.png")
        False
    """

    names: frozenset[str] = frozenset()

    @classmethod
    def from_names(cls, names: Iterable[str] | None) -> Self:
        """Build an allow-list from any iterable of filenames."""
        return cls(frozenset(names or ()))

    @property
    def is_unrestricted(self) -> bool:
        """True when every file may be managed."""
        return not self.names

    def permits(self, filename: str) -> bool:
        """Check whether a file may be kept, uploaded or compared."""
        return self.is_unrestricted or filename in self.names


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    """Result of one reconciliation run."""

    success: bool
    uploaded_count: int = 0
    removed_count: int = 0

    @classmethod
    def failed(cls, uploaded_count: int = 0, removed_count: int = 0) -> Self:
        """Outcome for a run that could not complete."""
        return cls(
            success=False,
            uploaded_count=uploaded_count,
            removed_count=removed_count,
        )


class UploadDecision(Enum):
    """Terminal state of the upload decision for a single local file."""

    SKIP_EXCLUDED = "skip-excluded"
    UPLOAD_REMOTE_MISSING = "upload-remote-missing"
    UPLOAD_REMOTE_OLDER = "upload-remote-older"
    UPLOAD_UNREADABLE = "upload-unreadable"
    SKIP_REMOTE_EQUAL = "skip-remote-equal"
    SKIP_REMOTE_NEWER = "skip-remote-newer"

    @property
    def uploads(self) -> bool:
        """Whether this decision results in a transfer."""
        return self.value.startswith("upload")


class FailureKind(Enum):
    """Classification of a failed remote call."""

    EXPIRED_CREDENTIAL = "expired-credential"
    RATE_LIMITED = "rate-limited"
    TRANSIENT = "transient"
    AUTH_FAILED = "auth-failed"


@dataclass(frozen=True, slots=True)
class Credentials:
    """Short-lived session credentials for the remote store.

    Attributes:
        access_key_id: Session access key.
        secret_access_key: Session secret key.
        session_token: Session token.
        expires_at: When the session expires (timezone-aware).
        role_arn: Role the session was minted from; this is the refresh
            credential. None means the session cannot be refreshed.
    """

    access_key_id: str
    secret_access_key: str
    session_token: str | None
    expires_at: datetime
    role_arn: str | None = None

    def expires_within(self, window: timedelta, now: datetime | None = None) -> bool:
        """Check whether the session expires within the given window."""
        current = now or datetime.now(UTC)
        return self.expires_at <= current + window

    def to_dict(self) -> dict[str, str | None]:
        """Serialize for the token file."""
        return {
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
            "session_token": self.session_token,
            "expires_at": self.expires_at.isoformat(),
            "role_arn": self.role_arn,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Deserialize from the token file.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If expires_at is not an ISO timestamp.
        """
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return cls(
            access_key_id=data["access_key_id"],
            secret_access_key=data["secret_access_key"],
            session_token=data.get("session_token"),
            expires_at=expires_at,
            role_arn=data.get("role_arn"),
        )


@dataclass(frozen=True, slots=True)
class SyncStatus:
    """Persisted status of the sync service.

    Timestamps are ISO-8601 strings so the record round-trips through JSON.
    """

    is_authenticated: bool = False
    is_syncing: bool = False
    last_sync_time: str | None = None
    last_sync_attempt_time: str | None = None
    last_sync_success: bool | None = None
    shared_characters_count: int = 0
    last_sync_message: str | None = None
    server_version: str = "0.0.0"
