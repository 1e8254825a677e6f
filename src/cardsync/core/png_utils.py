"""PNG tEXt chunk reading and card metadata extraction.

Character cards smuggle their JSON definition inside PNG ``tEXt`` chunks,
usually base64-encoded under the ``chara`` keyword. Everything here works on
in-memory bytes and never raises: unreadable input degrades to an empty
chunk list or ``None``.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
import struct
from typing import Any

from cardsync.core.card_fields import derive_name, derive_tags, derive_version
from cardsync.core.models import CardKind, ExtractedCardData, MetadataChunk


logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
TEXT_CHUNK_TYPE = b"tEXt"

# Keywords tried in order when looking for the card definition
CARD_KEYWORDS = ("chara", "character", "tavern", "card", "data")

# Keys that mark a decoded object as character data in the fallback scan
CARD_MARKER_KEYS = ("name", "char_name", "description", "personality")

_FALLBACK_MIN_TEXT_LENGTH = 100
_BASE64_MIN_LENGTH = 10
_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")

# 4-byte length + 4-byte type
_CHUNK_HEADER = struct.Struct(">I4s")
_CRC_SIZE = 4


def is_base64_like(text: str) -> bool:
    """Heuristic check for base64 text."""
    return len(text) >= _BASE64_MIN_LENGTH and bool(_BASE64_PATTERN.match(text))


def extract_chunks(data: bytes) -> list[MetadataChunk]:
    """Read every tEXt chunk from a PNG buffer.

    Args:
        data: Raw file bytes.

    Returns:
        The keyword/text pairs in file order. Empty when the buffer is not a
        PNG. A truncated stream returns the chunks read before the cut.
    """
    if data[: len(PNG_SIGNATURE)] != PNG_SIGNATURE:
        logger.debug("Buffer does not start with the PNG signature")
        return []

    chunks: list[MetadataChunk] = []
    pos = len(PNG_SIGNATURE)
    total = len(data)

    while pos + _CHUNK_HEADER.size <= total:
        length, chunk_type = _CHUNK_HEADER.unpack_from(data, pos)
        pos += _CHUNK_HEADER.size

        if pos + length > total:
            logger.debug("Chunk at offset %d runs past end of buffer", pos)
            break

        if chunk_type == TEXT_CHUNK_TYPE:
            payload = data[pos : pos + length]
            keyword, sep, text = payload.partition(b"\x00")
            if sep:
                chunks.append(
                    MetadataChunk(
                        keyword=keyword.decode("ascii", errors="replace"),
                        text=text.decode("ascii", errors="replace"),
                    )
                )

        pos += length + _CRC_SIZE

    return chunks


def _decode_base64_json(text: str) -> Any:
    return json.loads(base64.b64decode(text, validate=True).decode("utf-8"))


def _parse_chunk_text(text: str) -> dict[str, Any] | None:
    """Parse a chunk's text as (possibly base64-wrapped) JSON."""
    try:
        if is_base64_like(text):
            value = _decode_base64_json(text)
        else:
            value = json.loads(text)
    except (binascii.Error, UnicodeDecodeError, ValueError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def _find_card_object(chunks: list[MetadataChunk]) -> dict[str, Any] | None:
    for keyword in CARD_KEYWORDS:
        chunk = next((c for c in chunks if c.keyword == keyword), None)
        if chunk is None or not chunk.text:
            continue
        obj = _parse_chunk_text(chunk.text)
        if obj is not None:
            return obj
        logger.debug("Could not parse card JSON from '%s' chunk", keyword)

    # Some exporters use their own keyword; look for long base64 payloads
    for chunk in chunks:
        if len(chunk.text) <= _FALLBACK_MIN_TEXT_LENGTH or not is_base64_like(
            chunk.text
        ):
            continue
        try:
            obj = _decode_base64_json(chunk.text)
        except (binascii.Error, UnicodeDecodeError, ValueError, RecursionError):
            continue
        if isinstance(obj, dict) and any(obj.get(key) for key in CARD_MARKER_KEYS):
            return obj

    return None


def card_data_from_object(
    obj: dict[str, Any], filename: str = ""
) -> ExtractedCardData:
    """Normalize a parsed card object, stamping its numeric version."""
    version = derive_version(obj)
    obj["version"] = version
    return ExtractedCardData(
        name=derive_name(obj, filename) or None,
        tags=derive_tags(obj),
        version=version,
        raw=obj,
    )


def extract_card_data(data: bytes, filename: str = "") -> ExtractedCardData | None:
    """Extract the embedded card definition from a PNG buffer.

    Args:
        data: Raw PNG bytes.
        filename: Used as the name fallback when the card has no name.

    Returns:
        Normalized card data, or None when nothing recognizable is embedded.
    """
    obj = _find_card_object(extract_chunks(data))
    if obj is None:
        logger.debug("No character data found in PNG metadata")
        return None
    return card_data_from_object(obj, filename)


def extract_json_card_data(
    data: bytes, filename: str = ""
) -> ExtractedCardData | None:
    """Parse a JSON card file. Returns None for invalid JSON or non-objects."""
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError):
        logger.debug("Could not parse JSON card %s", filename or "<bytes>")
        return None
    if not isinstance(obj, dict):
        return None
    return card_data_from_object(obj, filename)


def extract_from_card(filename: str, data: bytes) -> ExtractedCardData | None:
    """Dispatch extraction on the card's file extension."""
    kind = CardKind.from_filename(filename)
    if kind is CardKind.PNG:
        return extract_card_data(data, filename)
    if kind is CardKind.JSON:
        return extract_json_card_data(data, filename)
    return None
