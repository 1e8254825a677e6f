"""Domain exceptions for cardsync.

All library errors inherit from CardsyncError, allowing callers to catch
any library exception with a single except clause. Each exception provides
a recovery_hint property with guidance on resolving the error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from pathlib import Path


class CardsyncError(Exception):
    """Base class for all cardsync exceptions.

    Catch this to handle any error from the library.
    """

    @property
    def recovery_hint(self) -> str | None:
        """Optional guidance on how to resolve this error."""
        return None


class StorageError(CardsyncError):
    """Base class for remote storage errors.

    Attributes:
        source: The remote path that caused the error.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        source: str,
        cause: Exception | None = None,
    ) -> None:
        self.source = source
        self.cause = cause
        super().__init__(message)


class StorageNotFoundError(StorageError):
    """Raised when the requested file or folder doesn't exist remotely."""

    @property
    def recovery_hint(self) -> str:
        """Suggest verifying the path."""
        return f"Verify the remote path exists: {self.source}"


class StorageConflictError(StorageError):
    """Raised when creating something that already exists remotely."""


class StorageAccessError(StorageError):
    """Raised when access is denied (permissions, invalid credentials)."""

    @property
    def recovery_hint(self) -> str:
        """Suggest checking permissions."""
        return "Check credentials and bucket permissions, or run 'cardsync login'"


class ExpiredCredentialError(StorageAccessError):
    """Raised when the remote rejects a call because the session expired."""

    @property
    def recovery_hint(self) -> str:
        """Suggest refreshing the session."""
        return "Session credentials expired; run 'cardsync login' to refresh them"


class RateLimitError(StorageError):
    """Raised when the remote throttles requests."""

    @property
    def recovery_hint(self) -> str:
        """Suggest waiting."""
        return "The remote is throttling requests; wait and retry"


class TransientStorageError(StorageError):
    """Raised for timeouts, connection failures and 5xx responses."""


class AuthError(CardsyncError):
    """Raised when credentials cannot be obtained or refreshed.

    Attributes:
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest logging in again."""
        return "Run 'cardsync login' with a valid role ARN"


class ConfigurationError(CardsyncError):
    """Raised for configuration problems (missing required settings).

    Attributes:
        hint: Specific advice for this problem, if any.
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        self.hint = hint
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        return self.hint or "Run 'cardsync config' to review the current settings"


class SettingsLoadError(CardsyncError):
    """Raised when a persisted JSON state file cannot be read.

    Attributes:
        path: Path to the file that failed to load.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        path: Path,
        cause: Exception | None = None,
    ) -> None:
        self.path = path
        self.cause = cause
        super().__init__(message)

    @property
    def recovery_hint(self) -> str:
        """Suggest fixing or removing the file."""
        return f"Fix or delete {self.path.name} to fall back to defaults"
