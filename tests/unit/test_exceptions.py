"""Unit tests for domain exception hierarchy."""

from pathlib import Path

import pytest


@pytest.mark.core
@pytest.mark.tier(0)
class TestCardsyncError:
    """Tests for base exception class."""

    def test_recovery_hint_returns_none_by_default(self) -> None:
        """Base exception should return None for recovery_hint."""
        from cardsync.core.exceptions import CardsyncError

        assert CardsyncError("something went wrong").recovery_hint is None

    @pytest.mark.parametrize(
        "name",
        [
            "StorageError",
            "AuthError",
            "ConfigurationError",
            "SettingsLoadError",
        ],
    )
    def test_is_cardsync_error_subclass(self, name: str) -> None:
        from cardsync.core import exceptions

        assert issubclass(getattr(exceptions, name), exceptions.CardsyncError)


@pytest.mark.core
@pytest.mark.tier(0)
class TestStorageErrors:
    """Tests for the storage error family."""

    def test_stores_source_and_cause(self) -> None:
        from cardsync.core.exceptions import StorageNotFoundError

        cause = KeyError("x")
        err = StorageNotFoundError("missing", source="characters/a.png", cause=cause)

        assert err.source == "characters/a.png"
        assert err.cause is cause
        assert "characters/a.png" in err.recovery_hint

    def test_expired_is_an_access_error(self) -> None:
        """Callers that only handle access errors still see expired sessions."""
        from cardsync.core.exceptions import ExpiredCredentialError, StorageAccessError

        assert issubclass(ExpiredCredentialError, StorageAccessError)
        assert "cardsync login" in ExpiredCredentialError("e", source="x").recovery_hint

    def test_rate_limit_hint(self) -> None:
        from cardsync.core.exceptions import RateLimitError

        assert RateLimitError("slow", source="x").recovery_hint

    def test_conflict_and_transient_have_no_hint(self) -> None:
        from cardsync.core.exceptions import StorageConflictError, TransientStorageError

        assert StorageConflictError("c", source="x").recovery_hint is None
        assert TransientStorageError("t", source="x").recovery_hint is None


@pytest.mark.core
@pytest.mark.tier(0)
class TestOtherErrors:
    def test_auth_error_cause(self) -> None:
        from cardsync.core.exceptions import AuthError

        cause = RuntimeError("sts down")
        err = AuthError("refresh failed", cause=cause)

        assert err.cause is cause
        assert "login" in err.recovery_hint

    def test_configuration_error_hint(self) -> None:
        from cardsync.core.exceptions import ConfigurationError

        assert "cardsync config" in ConfigurationError("bad").recovery_hint
        assert ConfigurationError("bad", hint="do this").recovery_hint == "do this"

    def test_settings_load_error_names_file(self) -> None:
        from cardsync.core.exceptions import SettingsLoadError

        err = SettingsLoadError("bad", path=Path("/tmp/cardsync-settings.json"))

        assert err.recovery_hint == "Fix or delete cardsync-settings.json to fall back to defaults"
