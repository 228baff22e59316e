"""
Extended character export: one character bundled with its relationships,
notes and favourite spells for sharing between devices.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from pydantic import Field

from .decoding.character import decode_character
from .decoding.entities import decode_note, decode_relationship, decode_spell
from .decoding.rules import (
    CollectionPolicy,
    FieldSpec,
    date_rules,
    decode_collection,
    resolve_field,
)
from .errors import DecodeError
from .models import Character, CompanionModel, Note, Relationship, Spell

logger = logging.getLogger("dnd-companion.export")

EXPORT_FORMAT_VERSION = "1.0"

_EXPORT_DATE = FieldSpec("export_date", date_rules("exportDate"), default=datetime.now)


class CharacterExport(CompanionModel):
    """Export bundle written as ``{version, exportDate, character, ...}``."""
    version: str = EXPORT_FORMAT_VERSION
    export_date: datetime = Field(default_factory=datetime.now)
    character: Character
    relationships: list[Relationship] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    favorite_spells: list[Spell] = Field(default_factory=list)


def build_export(
    character: Character,
    relationships: Iterable[Relationship] = (),
    notes: Iterable[Note] = (),
    favorite_spells: Iterable[Spell] = (),
    version: str = EXPORT_FORMAT_VERSION,
) -> CharacterExport:
    """Bundle a character with its related records, stamped with ``version``."""
    return CharacterExport(
        version=version,
        character=character,
        relationships=list(relationships),
        notes=list(notes),
        favorite_spells=list(favorite_spells),
    )


def dump_export(export: CharacterExport) -> str:
    """Serialize an export to pretty-printed JSON text."""
    return json.dumps(export.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2)


def _members(doc: Mapping[str, Any], key: str) -> list[Any]:
    value = doc.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"⚠️ Export member '{key}' is not a list, ignoring it")
        return []
    return value


def load_export(source: str | bytes | Mapping[str, Any]) -> CharacterExport:
    """Read an export bundle, decoding every member through the tolerant decoders.

    The character is fatal (its decode errors propagate); relationships,
    notes and spells are drop-tolerant.

    Args:
        source: JSON text or an already-parsed export object.

    Returns:
        The decoded CharacterExport.

    Raises:
        DecodeError: Invalid JSON, a missing ``character`` member, or any
            fatal error from the character decoder.
    """
    if isinstance(source, (str, bytes)):
        try:
            source = json.loads(source)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError("<export>", f"Invalid JSON: {e}") from e
    if not isinstance(source, Mapping):
        raise DecodeError("<export>", "Export must be a JSON object")
    if "character" not in source:
        raise DecodeError("character", "Export has no character")

    version = source.get("version")
    if version != EXPORT_FORMAT_VERSION:
        logger.warning(f"⚠️ Export version {version!r} differs from {EXPORT_FORMAT_VERSION}, reading anyway")

    drop = CollectionPolicy.DROP_TOLERANT
    export = CharacterExport(
        version=version if isinstance(version, str) else EXPORT_FORMAT_VERSION,
        export_date=resolve_field(source, _EXPORT_DATE),
        character=decode_character(source["character"]),
        relationships=decode_collection(
            "relationships", _members(source, "relationships"), decode_relationship, drop
        ),
        notes=decode_collection("notes", _members(source, "notes"), decode_note, drop),
        favorite_spells=decode_collection(
            "favoriteSpells", _members(source, "favoriteSpells"), decode_spell, drop
        ),
    )
    logger.info(
        f"📂 Loaded export for '{export.character.name}' "
        f"({len(export.relationships)} relationships, {len(export.notes)} notes, "
        f"{len(export.favorite_spells)} spells)"
    )
    return export
