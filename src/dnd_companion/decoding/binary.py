"""
Decoding for non-critical binary attachments (character portraits).

Older saves wrote the image as base64 text; newer in-memory trees may carry
the raw bytes. Both decode to the same buffer. Anything else resolves to
None: a broken portrait never blocks loading a character.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Mapping
from typing import Any

from ..errors import UnrecoverableBinary
from .rules import MISSING, lookup

logger = logging.getLogger("dnd-companion.decoding")


def _from_base64(value: Any) -> bytes | None:
    if not isinstance(value, str):
        return None
    text = "".join(value.split())
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    if not text:
        return None
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None


def _from_raw(value: Any) -> bytes | None:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, list) and all(
        isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value
    ):
        return bytes(value)
    return None


def decode_binary(field: str, value: Any) -> bytes | None:
    """Decode a binary field: base64 text first, raw bytes second, else None.

    Args:
        field: Field name, used only for logging.
        value: The raw JSON value.

    Returns:
        The decoded bytes, or None when the field is absent or unreadable.
    """
    if value is None or value is MISSING:
        return None
    data = _from_base64(value)
    if data is None:
        data = _from_raw(value)
    if data is None:
        logger.warning(f"🖼️ {UnrecoverableBinary(field)}; treating as absent")
    return data


def decode_binary_field(doc: Mapping[str, Any], *keys: str) -> bytes | None:
    """Try each key in order and return the first attachment that decodes."""
    for key in keys:
        value = lookup(doc, (key,))
        if value is MISSING or value is None:
            continue
        data = decode_binary(key, value)
        if data is not None:
            return data
    return None


__all__ = ["decode_binary", "decode_binary_field"]
