"""Pytest configuration and shared fixtures.

This module registers custom markers for CI job separation and provides
shared fixtures for the test suite: an in-memory remote store, a scripted
token provider and a builder for character card files.
"""

from __future__ import annotations

import base64
import json
import struct
import zlib
from pathlib import Path, PurePosixPath
from typing import Any

import pytest

from cardsync.config import Settings
from cardsync.core.exceptions import (
    StorageConflictError,
    StorageNotFoundError,
)
from cardsync.core.models import RemoteEntry, RemoteEntryKind
from cardsync.core.ports import ProgressCallback


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "core: Core models, parsing, and services")
    config.addinivalue_line("markers", "storage: Storage adapters (s3, filesystem)")
    config.addinivalue_line("markers", "auth: Token provider and status adapters")
    config.addinivalue_line("markers", "progress: Rich progress integration")
    config.addinivalue_line("markers", "cli: CLI tests")
    config.addinivalue_line(
        "markers", "tra: Test Responsibility Anchor (TRA) - namespace.Anchor format"
    )
    config.addinivalue_line(
        "markers",
        "tier: Test tier for CI job separation (0=instant, 1=fast, 2=standard, 3=slow, 4=manual)",
    )


class InMemoryStorage:
    """RemoteStoragePort backed by a dict, with scripted failures.

    Failures are queued per (method, path) with fail(); each call pops one.
    Every call is recorded in ``calls`` as (method, path).
    """

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.folders: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], list[Exception]] = {}

    def fail(self, method: str, path: str, *errors: Exception) -> None:
        self._failures.setdefault((method, path), []).extend(errors)

    def put(self, path: str, content: bytes) -> None:
        """Seed a remote file without recording a call."""
        self.files[path] = content
        parent = str(PurePosixPath(path).parent)
        if parent != ".":
            self.folders.add(parent)

    def calls_to(self, method: str) -> list[str]:
        return [path for m, path in self.calls if m == method]

    def _check(self, method: str, path: str) -> None:
        self.calls.append((method, path))
        queue = self._failures.get((method, path))
        if queue:
            raise queue.pop(0)

    def list_folder(
        self, path: str, include_deleted: bool = False
    ) -> list[RemoteEntry]:
        self._check("list_folder", path)
        if path not in self.folders:
            raise StorageNotFoundError(f"Folder not found: {path}", source=path)
        entries = [
            RemoteEntry(path=p, kind=RemoteEntryKind.FILE, size=len(data))
            for p, data in self.files.items()
            if str(PurePosixPath(p).parent) == path
        ]
        return sorted(entries, key=lambda e: e.path)

    def get_metadata(self, path: str) -> RemoteEntry:
        self._check("get_metadata", path)
        if path == "":
            return RemoteEntry(path="", kind=RemoteEntryKind.FOLDER)
        if path in self.files:
            return RemoteEntry(
                path=path, kind=RemoteEntryKind.FILE, size=len(self.files[path])
            )
        if path in self.folders:
            return RemoteEntry(path=path, kind=RemoteEntryKind.FOLDER)
        raise StorageNotFoundError(f"Not found: {path}", source=path)

    def create_folder(self, path: str) -> RemoteEntry:
        self._check("create_folder", path)
        if path in self.folders:
            raise StorageConflictError(f"Exists: {path}", source=path)
        self.folders.add(path)
        return RemoteEntry(path=path, kind=RemoteEntryKind.FOLDER)

    def upload(
        self,
        path: str,
        content: bytes,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> RemoteEntry:
        self._check("upload", path)
        if not overwrite and path in self.files:
            raise StorageConflictError(f"Exists: {path}", source=path)
        self.files[path] = content
        if progress:
            progress(len(content), len(content))
        return RemoteEntry(path=path, kind=RemoteEntryKind.FILE, size=len(content))

    def download(self, path: str, dest: Path) -> None:
        self._check("download", path)
        if path not in self.files:
            raise StorageNotFoundError(f"Not found: {path}", source=path)
        dest.write_bytes(self.files[path])

    def delete(self, path: str) -> None:
        self._check("delete", path)
        if path not in self.files:
            raise StorageNotFoundError(f"Not found: {path}", source=path)
        del self.files[path]


class ScriptedTokenProvider:
    """TokenProviderPort whose refresh results are scripted."""

    def __init__(self, can_refresh: bool = True, refresh_results: list[bool] | None = None):
        self.can_refresh = can_refresh
        self.refresh_results = list(refresh_results or [True])
        self.refresh_calls = 0

    def get_access_token(self) -> str | None:
        return "token"

    def has_refresh_credential(self) -> bool:
        return self.can_refresh

    def refresh(self) -> bool:
        self.refresh_calls += 1
        if len(self.refresh_results) > 1:
            return self.refresh_results.pop(0)
        return self.refresh_results[0]


def _png_chunk(chunk_type: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + chunk_type + payload + struct.pack(">I", crc)


class CardFactory:
    """Builds character card bytes for tests."""

    SIGNATURE = b"\x89PNG\r\n\x1a\n"

    def png(self, text_chunks: list[tuple[str, str]] | None = None) -> bytes:
        """A minimal 1x1 PNG carrying the given tEXt chunks."""
        ihdr = struct.pack(">IIBBBBB", 1, 1, 8, 6, 0, 0, 0)
        idat = zlib.compress(b"\x00\x00\x00\x00\x00")
        parts = [self.SIGNATURE, _png_chunk(b"IHDR", ihdr)]
        for keyword, text in text_chunks or []:
            parts.append(
                _png_chunk(b"tEXt", keyword.encode("ascii") + b"\x00" + text.encode("ascii"))
            )
        parts.append(_png_chunk(b"IDAT", idat))
        parts.append(_png_chunk(b"IEND", b""))
        return b"".join(parts)

    def encode(self, obj: dict[str, Any]) -> str:
        return base64.b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")

    def card_png(self, obj: dict[str, Any], keyword: str = "chara") -> bytes:
        """A PNG card with obj base64-encoded in one tEXt chunk."""
        return self.png([(keyword, self.encode(obj))])

    def card(
        self,
        name: str,
        version: str | None = "1.0",
        tags: list[str] | None = None,
    ) -> bytes:
        """A V2-style PNG card."""
        data: dict[str, Any] = {"name": name, "tags": tags or []}
        if version is not None:
            data["character_version"] = version
        return self.card_png({"spec": "chara_card_v2", "data": data})

    def card_json(self, obj: dict[str, Any]) -> bytes:
        return json.dumps(obj).encode("utf-8")


@pytest.fixture
def cards() -> CardFactory:
    """Builder for PNG and JSON character cards."""
    return CardFactory()


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """In-memory remote store implementing RemoteStoragePort."""
    return InMemoryStorage()


@pytest.fixture
def token_provider() -> ScriptedTokenProvider:
    """Token provider whose refresh always succeeds."""
    return ScriptedTokenProvider()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path with no excluded tags beyond the default."""
    characters = tmp_path / "characters"
    characters.mkdir()
    return Settings(
        bucket="test-bucket",
        characters_dir=characters,
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def token_provider_factory() -> type[ScriptedTokenProvider]:
    """Factory for token providers with scripted refresh outcomes."""
    return ScriptedTokenProvider
