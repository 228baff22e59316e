"""
Reading and unwrapping sheet-builder exports.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..base import ImportError
from .schema import ENVELOPE_KEYS, PAYLOAD_KEYS, PAYLOAD_MARKER_KEYS

logger = logging.getLogger("dnd-companion.importers")


def is_external_document(doc: Any) -> bool:
    """True for a builder envelope or an already-unwrapped builder payload.

    Older native saves share the ``info``/``stats``/``vitality`` layout and
    may box their ``name`` too, so a bare payload also needs the builder's
    own ``jsonType``/``template`` marker and its ``proficiency`` number.
    """
    if not isinstance(doc, Mapping):
        return False
    if "data" in doc and ENVELOPE_KEYS & doc.keys():
        return True
    return (
        PAYLOAD_KEYS <= doc.keys()
        and bool(PAYLOAD_MARKER_KEYS & doc.keys())
        and "proficiency" in doc
    )


def parse_external_document(doc: Any) -> dict:
    """Unwrap a builder export into its character payload.

    Args:
        doc: The envelope as JSON text, bytes or a parsed object. The
            envelope's ``data`` member may be a JSON string (as written by
            the builder) or an already-decoded object.

    Returns:
        The character payload dictionary.

    Raises:
        ImportError: The document is not valid JSON or not a builder export.
    """
    if isinstance(doc, (str, bytes)):
        try:
            doc = json.loads(doc)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportError(f"Invalid JSON in character export: {e}") from None

    if not isinstance(doc, Mapping):
        raise ImportError(
            f"Invalid character export: expected JSON object, got {type(doc).__name__}"
        )

    payload: Any = doc
    if "data" in doc:
        payload = doc["data"]
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ImportError(f"Invalid JSON in the export's 'data' member: {e}") from None

    if not isinstance(payload, Mapping):
        raise ImportError(
            f"Invalid character export: 'data' must hold a JSON object, got {type(payload).__name__}"
        )

    if "name" not in payload or "stats" not in payload:
        raise ImportError(
            "Unrecognized character export: missing required fields (name, stats). "
            "Ensure this is a sheet-builder character file."
        )

    logger.debug(f"📦 Unwrapped builder export (jsonType={doc.get('jsonType', '?')})")
    return dict(payload)


def read_character_file(file_path: str | Path) -> Any:
    """Read a character file as parsed JSON.

    Raises:
        ImportError: If the file is missing, unreadable or not valid JSON.
    """
    path = Path(file_path)

    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise ImportError(f"Character file not found: {file_path}") from None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportError(f"Invalid JSON in character file: {e}") from None
    except OSError as e:
        raise ImportError(f"Failed to read character file: {e}") from None
