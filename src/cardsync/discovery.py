"""Local character card discovery.

Scans a character directory for ``*.png`` and ``*.json`` cards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cardsync.core.models import CardFile, CardKind


if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


logger = logging.getLogger(__name__)


def discover_card_paths(directory: Path) -> list[Path]:
    """Find character card files directly inside directory.

    Args:
        directory: The local character directory.

    Returns:
        Card paths sorted by filename. Empty if the directory does not exist.
    """
    if not directory.is_dir():
        logger.warning("Character directory not found: %s", directory)
        return []

    return sorted(
        (
            p
            for p in directory.iterdir()
            if p.is_file() and CardKind.from_filename(p.name) is not None
        ),
        key=lambda p: p.name,
    )


def read_card(path: Path) -> CardFile:
    """Read one card file.

    Raises:
        ValueError: If the file is not a character card.
        OSError: If the file cannot be read.
    """
    kind = CardKind.from_filename(path.name)
    if kind is None:
        raise ValueError(f"Not a character card: {path.name}")
    return CardFile(
        filename=path.name,
        path=path.resolve(),
        content=path.read_bytes(),
        kind=kind,
    )


def iter_cards(directory: Path) -> Iterator[CardFile]:
    """Yield each readable card in directory, logging unreadable ones."""
    for path in discover_card_paths(directory):
        try:
            yield read_card(path)
        except OSError as e:
            logger.error("Could not read %s: %s", path.name, e)
