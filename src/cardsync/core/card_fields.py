"""Field derivation for heterogeneous character card JSON.

Character cards come in several shapes (flat V1 cards, V2/V3 cards nesting
everything under ``data``, exporter-specific ``spec``/``metadata`` blocks).
Each derived field is an ordered tuple of independent strategies; the first
strategy that yields a value wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from pathlib import PurePath
from typing import Any


DEFAULT_VERSION = 1.0

Strategy = Callable[[dict[str, Any]], Any]

# Leading numeric prefix accepted by a lenient float parse ("2.5beta" -> 2.5)
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _lookup(obj: Any, path: str) -> Any:
    """Walk a dotted path through nested dicts, returning None on any miss."""
    current = obj
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def path_strategy(path: str) -> Strategy:
    """Build a strategy that reads a dotted path from the card object."""

    def strategy(obj: dict[str, Any]) -> Any:
        return _lookup(obj, path)

    strategy.__name__ = f"path:{path}"
    return strategy


def first_match(
    obj: dict[str, Any],
    strategies: Iterable[Strategy],
    accept: Callable[[Any], bool] = lambda value: value is not None,
) -> Any:
    """Return the first strategy result accepted by ``accept``, or None."""
    for strategy in strategies:
        value = strategy(obj)
        if accept(value):
            return value
    return None


VERSION_STRATEGIES: tuple[Strategy, ...] = tuple(
    path_strategy(p)
    for p in (
        "data.data.character_version",
        "character_version",
        "data.character_version",
        "version",
        "data.version",
        "metadata.character_version",
        "metadata.version",
        "creator.character_version",
        "creator.version",
    )
)

NAME_STRATEGIES: tuple[Strategy, ...] = tuple(
    path_strategy(p)
    for p in (
        "name",
        "char_name",
        "spec.v2_spec.character.name",
        "spec.name",
        "v2_spec.name",
        "data.name",
    )
)

TAG_STRATEGIES: tuple[Strategy, ...] = (
    path_strategy("tags"),
    path_strategy("data.tags"),
)


def parse_version(value: Any) -> float:
    """Coerce a raw version value to a float.

    The value is stringified and its leading numeric prefix parsed, so
    ``"2"`` gives 2.0 and ``"2.5.1"`` gives 2.5. Anything without a numeric
    prefix (``""``, ``"abc"``, ``"v2"``) gives the default of 1.0.
    """
    if value is None:
        return DEFAULT_VERSION
    match = _FLOAT_PREFIX.match(str(value))
    if match is None:
        return DEFAULT_VERSION
    try:
        parsed = float(match.group(1))
    except ValueError:
        return DEFAULT_VERSION
    if parsed != parsed:  # NaN
        return DEFAULT_VERSION
    return parsed


def derive_version(obj: Any) -> float:
    """Find the card version, defaulting to 1.0. Never raises."""
    if not isinstance(obj, dict):
        return DEFAULT_VERSION
    return parse_version(first_match(obj, VERSION_STRATEGIES))


def _normalize_tags(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, list):
        return tuple(str(tag).strip() for tag in value)
    if isinstance(value, str):
        return tuple(piece.strip() for piece in value.split(","))
    return None


def derive_tags(obj: Any) -> tuple[str, ...]:
    """Read the card tags as a tuple of trimmed strings.

    A list is stringified element-wise, a single string is split on commas.
    Other shapes yield no tags.
    """
    if not isinstance(obj, dict):
        return ()
    for strategy in TAG_STRATEGIES:
        tags = _normalize_tags(strategy(obj))
        if tags is not None:
            return tags
    return ()


def derive_name(obj: Any, fallback_filename: str) -> str:
    """Read the character name, falling back to the filename stem."""
    if isinstance(obj, dict):
        name = first_match(
            obj,
            NAME_STRATEGIES,
            accept=lambda value: isinstance(value, str) and bool(value.strip()),
        )
        if name is not None:
            return name.strip()
    return PurePath(fallback_filename).stem


def is_excluded(tags: Iterable[str], exclude_tags: Iterable[str]) -> bool:
    """Check whether any tag is in the exclusion set (exact, case-sensitive)."""
    excluded = set(exclude_tags)
    return any(tag in excluded for tag in tags)
