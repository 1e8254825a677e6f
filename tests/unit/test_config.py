"""Unit tests for settings loading and persistence."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from cardsync.config import (
    SETTINGS_FILE_NAME,
    Settings,
    load_settings,
    resolve_data_dir,
    save_settings,
)
from cardsync.core.exceptions import ConfigurationError, SettingsLoadError


if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CARDSYNC_DATA_DIR", "CARDSYNC_CHARACTERS_DIR", "CARDSYNC_BUCKET"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.core
@pytest.mark.tra("Config.Settings")
@pytest.mark.tier(0)
class TestSettingsDefaults:
    """Default values and validation."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Missing settings file gives the documented defaults."""
        settings = load_settings(tmp_path)

        assert settings.bucket == ""
        assert settings.remote_folder == "characters"
        assert settings.auto_sync is True
        assert settings.sync_interval == 1800
        assert settings.exclude_tags == ("Private",)
        assert settings.allow_list == ()
        assert settings.data_dir == tmp_path

    def test_file_locations(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path)

        assert settings.settings_file == tmp_path / "cardsync-settings.json"
        assert settings.status_file == tmp_path / "cardsync-status.json"
        assert settings.token_file == tmp_path / "cardsync-token.json"
        assert settings.scratch_dir == tmp_path / "temp-cache"

    @pytest.mark.parametrize("interval", [0, -5])
    def test_non_positive_interval_rejected(self, tmp_path: Path, interval: int) -> None:
        with pytest.raises(ConfigurationError):
            Settings(sync_interval=interval, data_dir=tmp_path)

    def test_require_bucket(self, tmp_path: Path) -> None:
        """require_bucket() raises with a recovery hint when unset."""
        with pytest.raises(ConfigurationError, match="No bucket configured") as exc_info:
            Settings(data_dir=tmp_path).require_bucket()
        assert "cardsync config --bucket NAME" in exc_info.value.recovery_hint
        assert "CARDSYNC_BUCKET" in exc_info.value.recovery_hint
        assert Settings(bucket="b", data_dir=tmp_path).require_bucket() == "b"


@pytest.mark.core
@pytest.mark.tra("Config.Settings")
@pytest.mark.tier(1)
class TestLoadSave:
    """Round trips through the settings file."""

    def test_round_trip(self, tmp_path: Path) -> None:
        # Arrange
        settings = Settings(
            bucket="cards",
            region="eu-west-1",
            exclude_tags=("Private", "NSFW"),
            allow_list=("Alice.png",),
            characters_dir=tmp_path / "chars",
            sync_interval=60,
            data_dir=tmp_path,
        )

        # Act
        path = save_settings(settings)
        loaded = load_settings(tmp_path)

        # Assert
        assert path == tmp_path / SETTINGS_FILE_NAME
        assert loaded == settings

    def test_save_creates_data_dir(self, tmp_path: Path) -> None:
        data_dir = tmp_path / "nested" / "data"
        save_settings(Settings(data_dir=data_dir))
        assert (data_dir / SETTINGS_FILE_NAME).exists()

    def test_data_dir_not_persisted(self, tmp_path: Path) -> None:
        save_settings(Settings(data_dir=tmp_path))
        raw = json.loads((tmp_path / SETTINGS_FILE_NAME).read_text())
        assert "data_dir" not in raw

    def test_partial_file_merges_over_defaults(self, tmp_path: Path) -> None:
        (tmp_path / SETTINGS_FILE_NAME).write_text(json.dumps({"bucket": "cards"}))

        settings = load_settings(tmp_path)

        assert settings.bucket == "cards"
        assert settings.exclude_tags == ("Private",)

    def test_unknown_keys_ignored(self, tmp_path: Path) -> None:
        (tmp_path / SETTINGS_FILE_NAME).write_text(
            json.dumps({"bucket": "cards", "dropboxToken": "x"})
        )

        assert load_settings(tmp_path).bucket == "cards"

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        (tmp_path / SETTINGS_FILE_NAME).write_text("{not json")

        with pytest.raises(SettingsLoadError) as exc_info:
            load_settings(tmp_path)
        assert exc_info.value.path == tmp_path / SETTINGS_FILE_NAME
        assert SETTINGS_FILE_NAME in exc_info.value.recovery_hint

    def test_non_object_raises(self, tmp_path: Path) -> None:
        (tmp_path / SETTINGS_FILE_NAME).write_text("[1, 2]")

        with pytest.raises(SettingsLoadError):
            load_settings(tmp_path)

    def test_string_lists_are_split_on_commas(self, tmp_path: Path) -> None:
        """A hand-edited file may hold a single string instead of a list."""
        (tmp_path / SETTINGS_FILE_NAME).write_text(
            json.dumps({"exclude_tags": "Private", "allow_list": "A.png, B.png,"})
        )

        settings = load_settings(tmp_path)

        assert settings.exclude_tags == ("Private",)
        assert settings.allow_list == ("A.png", "B.png")

    @pytest.mark.parametrize(
        "values",
        [{"sync_interval": "often"}, {"sync_interval": 0}, {"exclude_tags": 5}],
    )
    def test_invalid_values_raise(self, tmp_path: Path, values: dict) -> None:
        (tmp_path / SETTINGS_FILE_NAME).write_text(json.dumps(values))

        with pytest.raises(SettingsLoadError) as exc_info:
            load_settings(tmp_path)
        assert exc_info.value.path == tmp_path / SETTINGS_FILE_NAME

    def test_with_updates_coerces(self, tmp_path: Path) -> None:
        settings = Settings(data_dir=tmp_path).with_updates(
            exclude_tags=["A", "B"], characters_dir=str(tmp_path / "c")
        )

        assert settings.exclude_tags == ("A", "B")
        assert settings.characters_dir == tmp_path / "c"


@pytest.mark.core
@pytest.mark.tier(0)
class TestEnvironmentOverrides:
    """Environment variables override the file."""

    def test_bucket_and_characters_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / SETTINGS_FILE_NAME).write_text(json.dumps({"bucket": "from-file"}))
        monkeypatch.setenv("CARDSYNC_BUCKET", "from-env")
        monkeypatch.setenv("CARDSYNC_CHARACTERS_DIR", str(tmp_path / "env-chars"))

        settings = load_settings(tmp_path)

        assert settings.bucket == "from-env"
        assert settings.characters_dir == tmp_path / "env-chars"

    def test_resolve_data_dir(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        assert resolve_data_dir(tmp_path) == (tmp_path / "data").resolve()

        monkeypatch.setenv("CARDSYNC_DATA_DIR", str(tmp_path / "elsewhere"))
        assert resolve_data_dir(tmp_path) == (tmp_path / "elsewhere").resolve()
