"""Core domain services for cardsync."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from functools import partial
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from cardsync.core.card_fields import is_excluded
from cardsync.core.exceptions import (
    AuthError,
    CardsyncError,
    StorageAccessError,
    StorageConflictError,
    StorageNotFoundError,
)
from cardsync.core.models import (
    AllowList,
    CardFile,
    ExtractedCardData,
    RemoteEntry,
    RemoteEntryKind,
    SyncOutcome,
    UploadDecision,
    is_character_file,
)
from cardsync.core.png_utils import extract_from_card
from cardsync.core.ports import (
    ExecutorPort,
    NullProgressReporter,
    ProgressReporter,
    RemoteStoragePort,
    TokenProviderPort,
)
from cardsync.core.remote_calls import RemoteCaller
from cardsync.discovery import iter_cards


if TYPE_CHECKING:
    from cardsync.config import Settings


logger = logging.getLogger(__name__)

# Failures that no amount of per-file skipping can work around
_FATAL_ERRORS = (AuthError, StorageAccessError)


@dataclass(frozen=True, slots=True)
class SyncContext:
    """Everything a sync run needs from the outside world.

    Attributes:
        storage: Remote store adapter.
        settings: Current settings (remote folder, scratch directory).
        token_provider: Credential source used to refresh expired sessions.
        executor: Executor used to race calls against call_timeout.
        call_timeout: Seconds to wait for each remote call.
    """

    storage: RemoteStoragePort
    settings: Settings
    token_provider: TokenProviderPort | None = None
    executor: ExecutorPort | None = None
    call_timeout: float | None = None


def decide_upload(
    local: ExtractedCardData | None,
    remote_version: float | None,
    exclude_tags: Iterable[str],
) -> UploadDecision:
    """Decide whether a local card should be uploaded.

    Args:
        local: Metadata of the local card, None if unreadable.
        remote_version: Version of the remote copy, None if there is no
            remote copy or its metadata is unreadable.
        exclude_tags: Tags that block uploading.

    Returns:
        The terminal decision. Equal versions keep the remote copy.
    """
    if local is not None and is_excluded(local.tags, exclude_tags):
        return UploadDecision.SKIP_EXCLUDED
    if local is None:
        return UploadDecision.UPLOAD_UNREADABLE
    if remote_version is None:
        return UploadDecision.UPLOAD_REMOTE_MISSING
    if local.version > remote_version:
        return UploadDecision.UPLOAD_REMOTE_OLDER
    if local.version == remote_version:
        return UploadDecision.SKIP_REMOTE_EQUAL
    return UploadDecision.SKIP_REMOTE_NEWER


@dataclass(slots=True)
class _PassCounts:
    uploaded: int = 0
    removed: int = 0


class Reconciler:
    """Reconciles a local character directory with the remote folder."""

    def __init__(
        self,
        context: SyncContext,
        scratch_dir: Path | None = None,
        progress: ProgressReporter | None = None,
    ) -> None:
        self._storage = context.storage
        self._caller = RemoteCaller(
            context.token_provider, context.executor, context.call_timeout
        )
        self._folder = context.settings.remote_folder.strip("/")
        self._scratch_dir = (
            scratch_dir if scratch_dir is not None else context.settings.scratch_dir
        )
        self._progress = progress if progress is not None else NullProgressReporter()

    def _remote_path(self, filename: str) -> str:
        return str(PurePosixPath(self._folder) / filename)

    def reconcile(
        self,
        local_dir: Path,
        exclude_tags: Iterable[str],
        allow_list: AllowList | Iterable[str] | None = None,
    ) -> SyncOutcome:
        """Run one removal-then-upload pass.

        Args:
            local_dir: Local character directory.
            exclude_tags: Cards with any of these tags are never uploaded.
            allow_list: Filenames this run may manage; empty means all.
                Remote cards outside a non-empty allow-list are deleted.

        Returns:
            SyncOutcome with the number of uploads and deletions. success is
            False when the remote folder could not be prepared or listed, or
            when authentication failed mid-run.
        """
        allow = (
            allow_list
            if isinstance(allow_list, AllowList)
            else AllowList.from_names(allow_list)
        )
        excluded = frozenset(exclude_tags)

        try:
            self._ensure_folder()
            remote_cards = self._list_remote_cards()
        except CardsyncError as e:
            logger.error("Cannot use remote folder '%s': %s", self._folder, e)
            return SyncOutcome.failed()

        counts = _PassCounts()
        self._clear_scratch()
        try:
            remaining = self._removal_pass(remote_cards, allow, counts)
            self._upload_pass(local_dir, excluded, allow, remaining, counts)
        except _FATAL_ERRORS as e:
            logger.error("Authentication failed, aborting sync: %s", e)
            return SyncOutcome.failed(counts.uploaded, counts.removed)
        finally:
            self._clear_scratch()

        logger.info(
            "Sync finished: %d uploaded, %d removed", counts.uploaded, counts.removed
        )
        return SyncOutcome(
            success=True,
            uploaded_count=counts.uploaded,
            removed_count=counts.removed,
        )

    def _ensure_folder(self) -> None:
        try:
            self._caller.call(
                partial(self._storage.get_metadata, self._folder), "probe folder"
            )
            return
        except StorageNotFoundError:
            logger.info("Remote folder '%s' not found, creating it", self._folder)

        try:
            self._caller.call(
                partial(self._storage.create_folder, self._folder), "create folder"
            )
        except StorageConflictError:
            logger.info("Remote folder '%s' was created concurrently", self._folder)

    def _list_remote_cards(self) -> dict[str, RemoteEntry]:
        entries = self._caller.call(
            partial(self._storage.list_folder, self._folder), "list folder"
        )
        return {
            entry.filename: entry
            for entry in entries
            if entry.kind is RemoteEntryKind.FILE and is_character_file(entry.filename)
        }

    def _removal_pass(
        self,
        remote_cards: dict[str, RemoteEntry],
        allow: AllowList,
        counts: _PassCounts,
    ) -> dict[str, RemoteEntry]:
        """Delete remote cards outside the allow-list; return the survivors."""
        remaining = dict(remote_cards)
        for filename in sorted(remote_cards):
            if allow.permits(filename):
                continue
            entry = remote_cards[filename]
            try:
                self._caller.call(
                    partial(self._storage.delete, entry.path), f"delete {filename}"
                )
            except _FATAL_ERRORS:
                raise
            except CardsyncError as e:
                logger.error("Could not remove %s: %s", filename, e)
                continue
            del remaining[filename]
            counts.removed += 1
            logger.info("Removed %s", filename)
        return remaining

    def _upload_pass(
        self,
        local_dir: Path,
        exclude_tags: frozenset[str],
        allow: AllowList,
        remote_cards: dict[str, RemoteEntry],
        counts: _PassCounts,
    ) -> None:
        for card in iter_cards(local_dir):
            if not allow.permits(card.filename):
                continue
            try:
                decision = self._decide(card, exclude_tags, remote_cards)
                logger.debug("%s: %s", card.filename, decision.value)
                if not decision.uploads:
                    continue
                self._upload(card)
            except _FATAL_ERRORS:
                raise
            except Exception as e:
                logger.error("Skipping %s: %s", card.filename, e)
                continue
            counts.uploaded += 1
            logger.info("Uploaded %s (%s)", card.filename, decision.value)

    def _decide(
        self,
        card: CardFile,
        exclude_tags: frozenset[str],
        remote_cards: dict[str, RemoteEntry],
    ) -> UploadDecision:
        local = extract_from_card(card.filename, card.content)
        if local is None:
            logger.warning("No character data in %s, uploading anyway", card.filename)
        remote_version = None
        if (
            local is not None
            and not is_excluded(local.tags, exclude_tags)
            and card.filename in remote_cards
        ):
            remote_version = self._remote_version(remote_cards[card.filename])
        return decide_upload(local, remote_version, exclude_tags)

    def _remote_version(self, entry: RemoteEntry) -> float | None:
        """Download the remote copy to scratch space and read its version."""
        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        scratch = self._scratch_dir / f"remote-{entry.filename}"
        try:
            try:
                self._caller.call(
                    partial(self._storage.download, entry.path, scratch),
                    f"download {entry.filename}",
                )
            except StorageNotFoundError:
                return None
            remote = extract_from_card(entry.filename, scratch.read_bytes())
        finally:
            self._remove_scratch_file(scratch)
        return remote.version if remote is not None else None

    def _upload(self, card: CardFile) -> None:
        callback = self._progress.start_task(card.filename, card.size)
        try:
            # A timed-out upload may still land remotely; the next run's
            # version comparison sees it as equal and skips.
            self._caller.call(
                partial(
                    self._storage.upload,
                    self._remote_path(card.filename),
                    card.content,
                    True,
                    callback,
                ),
                f"upload {card.filename}",
            )
        finally:
            self._progress.finish_task(card.filename)

    def _remove_scratch_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove scratch file %s: %s", path, e)

    def _clear_scratch(self) -> None:
        if not self._scratch_dir.is_dir():
            return
        for path in self._scratch_dir.iterdir():
            if path.is_file():
                self._remove_scratch_file(path)


def reconcile(
    context: SyncContext,
    local_dir: Path,
    exclude_tags: Iterable[str],
    allow_list: AllowList | Iterable[str] | None = None,
    *,
    scratch_dir: Path | None = None,
    progress: ProgressReporter | None = None,
) -> SyncOutcome:
    """Reconcile local_dir against the remote folder in one pass.

    Convenience wrapper around Reconciler for callers holding a SyncContext.
    """
    reconciler = Reconciler(context, scratch_dir=scratch_dir, progress=progress)
    return reconciler.reconcile(local_dir, exclude_tags, allow_list)


@dataclass(frozen=True, slots=True)
class LocalCardReport:
    """What the sync would see for one local card."""

    card: CardFile
    data: ExtractedCardData | None
    excluded: bool

    @property
    def display_name(self) -> str:
        if self.data is not None and self.data.name:
            return self.data.name
        return Path(self.card.filename).stem


def inspect_local_cards(
    local_dir: Path, exclude_tags: Iterable[str]
) -> list[LocalCardReport]:
    """Extract metadata for every local card without touching the remote."""
    excluded = frozenset(exclude_tags)
    reports = []
    for card in iter_cards(local_dir):
        data = extract_from_card(card.filename, card.content)
        reports.append(
            LocalCardReport(
                card=card,
                data=data,
                excluded=data is not None and is_excluded(data.tags, excluded),
            )
        )
    return reports
