"""Configuration for cardsync.

Settings are persisted as JSON in the data directory and merged over
defaults on load. A few environment variables override the file.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from cardsync.core.exceptions import ConfigurationError, SettingsLoadError


logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "cardsync-settings.json"
STATUS_FILE_NAME = "cardsync-status.json"
TOKEN_FILE_NAME = "cardsync-token.json"
SCRATCH_DIR_NAME = "temp-cache"

ENV_DATA_DIR = "CARDSYNC_DATA_DIR"
ENV_CHARACTERS_DIR = "CARDSYNC_CHARACTERS_DIR"
ENV_BUCKET = "CARDSYNC_BUCKET"

_TUPLE_FIELDS = ("exclude_tags", "allow_list")
_PATH_FIELDS = ("characters_dir", "data_dir")


def resolve_data_dir(start: Path | None = None) -> Path:
    """Return the data directory: $CARDSYNC_DATA_DIR or <start>/data."""
    env = os.environ.get(ENV_DATA_DIR)
    if env:
        return Path(env).resolve()
    base = start if start is not None else Path.cwd()
    return (base / "data").resolve()


@dataclass(frozen=True, slots=True)
class Settings:
    """User-facing sync settings.

    Attributes:
        bucket: S3 bucket holding the shared cards.
        region: AWS region of the bucket (None uses the default chain).
        root_prefix: Key prefix under which everything is stored.
        remote_folder: Folder (below root_prefix) holding the cards.
        role_arn: Role that session credentials are minted from.
        auto_sync: Whether `cardsync watch` syncs on an interval.
        sync_interval: Seconds between scheduled syncs.
        exclude_tags: Cards carrying any of these tags are never uploaded.
        allow_list: Filenames a run may manage; empty means all.
        characters_dir: Local character directory.
        data_dir: Directory for settings, status, token and scratch files.
    """

    bucket: str = ""
    region: str | None = None
    root_prefix: str = ""
    remote_folder: str = "characters"
    role_arn: str | None = None
    auto_sync: bool = True
    sync_interval: int = 1800
    exclude_tags: tuple[str, ...] = ("Private",)
    allow_list: tuple[str, ...] = ()
    characters_dir: Path = field(default_factory=lambda: Path("characters"))
    data_dir: Path = field(default_factory=resolve_data_dir)

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.sync_interval <= 0:
            raise ConfigurationError("sync_interval must be a positive number of seconds")

    @property
    def settings_file(self) -> Path:
        return self.data_dir / SETTINGS_FILE_NAME

    @property
    def status_file(self) -> Path:
        return self.data_dir / STATUS_FILE_NAME

    @property
    def token_file(self) -> Path:
        return self.data_dir / TOKEN_FILE_NAME

    @property
    def scratch_dir(self) -> Path:
        return self.data_dir / SCRATCH_DIR_NAME

    def require_bucket(self) -> str:
        """Return the bucket name.

        Raises:
            ConfigurationError: If no bucket is configured.
        """
        if not self.bucket:
            raise ConfigurationError(
                "No bucket configured",
                hint=f"Run 'cardsync config --bucket NAME' or set {ENV_BUCKET}",
            )
        return self.bucket

    def with_updates(self, **changes: Any) -> Self:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **_coerce(changes))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the settings file (data_dir is implied by location)."""
        data = dataclasses.asdict(self)
        data.pop("data_dir")
        for name in _TUPLE_FIELDS:
            data[name] = list(data[name])
        data["characters_dir"] = str(self.characters_dir)
        return data


def _as_tuple(value: Any) -> tuple[str, ...]:
    """Accept a list of strings or a single comma-separated string."""
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(str(v) for v in value)


def _coerce(raw: dict[str, Any]) -> dict[str, Any]:
    """Convert JSON values to the types Settings expects."""
    values = dict(raw)
    for name in _TUPLE_FIELDS:
        if name in values and values[name] is not None:
            values[name] = _as_tuple(values[name])
    for name in _PATH_FIELDS:
        if name in values and values[name] is not None:
            values[name] = Path(values[name])
    return values


def load_settings(data_dir: Path | None = None) -> Settings:
    """Load settings from <data_dir>/cardsync-settings.json.

    Missing files give defaults. Unknown keys are ignored. Environment
    overrides are applied last.

    Raises:
        SettingsLoadError: If the file exists but is not a JSON object, or
            holds values of the wrong type.
    """
    data_dir = data_dir if data_dir is not None else resolve_data_dir()
    path = data_dir / SETTINGS_FILE_NAME
    known = {f.name for f in dataclasses.fields(Settings)} - {"data_dir"}

    values: dict[str, Any] = {}
    if path.exists():
        try:
            with path.open() as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            raise SettingsLoadError(
                f"Settings file is not valid JSON: {path}", path=path, cause=e
            ) from e
        if not isinstance(loaded, dict):
            raise SettingsLoadError(f"Settings file must hold an object: {path}", path=path)
        ignored = sorted(set(loaded) - known)
        if ignored:
            logger.warning("Ignoring unknown settings keys: %s", ", ".join(ignored))
        values = {k: v for k, v in loaded.items() if k in known}
    else:
        logger.debug("No settings file at %s, using defaults", path)

    if os.environ.get(ENV_CHARACTERS_DIR):
        values["characters_dir"] = os.environ[ENV_CHARACTERS_DIR]
    if os.environ.get(ENV_BUCKET):
        values["bucket"] = os.environ[ENV_BUCKET]

    try:
        return Settings(data_dir=data_dir, **_coerce(values))
    except (TypeError, ValueError, ConfigurationError) as e:
        raise SettingsLoadError(
            f"Settings file has invalid values: {path}: {e}", path=path, cause=e
        ) from e


def save_settings(settings: Settings) -> Path:
    """Write settings to their file, creating the data directory if needed."""
    path = settings.settings_file
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(settings.to_dict(), f, indent=2)
    logger.info("Settings saved to %s", path)
    return path
