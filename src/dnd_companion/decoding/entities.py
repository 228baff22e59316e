"""
Tolerant decoders for the smaller records: notes, relationships, quotes and
compendium spells.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from ..errors import DecodeError
from ..models import Note, NoteCategory, Quote, Relationship, Spell
from .character import build_model
from .rules import (
    FieldSpec,
    MigrationRule,
    bounded_int,
    coerce_enum,
    date_rules,
    id_field,
    is_bool,
    is_int,
    is_list,
    is_mapping,
    is_str,
    optional_str,
    parse_bool,
    resolve_fields,
)

logger = logging.getLogger("dnd-companion.decoding")


def _require_mapping(doc: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(doc, Mapping):
        raise DecodeError("<document>", f"{kind} document must be a JSON object, got {type(doc).__name__}")
    return doc


def _string(name: str, *keys: str, default: str = "") -> FieldSpec:
    return FieldSpec(
        name,
        tuple(MigrationRule(f"string under '{key}'", (key,), is_str) for key in keys),
        default=lambda: default,
    )


def _required_string(name: str, *keys: str) -> FieldSpec:
    return FieldSpec(
        name,
        tuple(MigrationRule(f"string under '{key}'", (key,), is_str) for key in keys),
    )


def _optional_string(name: str, key: str) -> FieldSpec:
    return FieldSpec(
        name,
        (MigrationRule("string or null", (key,), lambda v: v is None or is_str(v), optional_str),),
        default=lambda: None,
    )


def _flag(name: str, *keys: str, default: bool = False) -> FieldSpec:
    rules: list[MigrationRule] = []
    for key in keys:
        rules.append(MigrationRule(f"boolean under '{key}'", (key,), is_bool))
        rules.append(MigrationRule(f"0/1 under '{key}'", (key,), lambda v: not is_bool(v), parse_bool))
    return FieldSpec(name, tuple(rules), default=lambda: default)


def _bounded(name: str, key: str, low: int, high: int, default: int) -> FieldSpec:
    convert = bounded_int(low, high)
    return FieldSpec(
        name,
        (
            MigrationRule("integer", (key,), is_int, convert),
            MigrationRule("numeric string", (key,), is_str, convert),
        ),
        default=lambda: default,
    )


def _dates() -> tuple[FieldSpec, FieldSpec]:
    return (
        FieldSpec("date_created", date_rules("dateCreated", "createdAt"), default=datetime.now),
        FieldSpec("date_modified", date_rules("dateModified", "updatedAt"), default=datetime.now),
    )


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

NOTE_OPTIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("race", "race"),
    ("occupation", "occupation"),
    ("organization", "organization"),
    ("age", "age"),
    ("appearance", "appearance"),
    ("location_type", "locationType"),
    ("population", "population"),
    ("government", "government"),
    ("climate", "climate"),
    ("item_type", "itemType"),
    ("rarity", "rarity"),
    ("value", "value"),
    ("quest_type", "questType"),
    ("status", "status"),
    ("reward", "reward"),
    ("lore_type", "loreType"),
    ("era", "era"),
)

NOTE_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _required_string("title", "title", "name"),
    _string("description", "description", "text"),
    _bounded("importance", "importance", 1, 5, 3),
    FieldSpec(
        "category",
        (
            MigrationRule(
                "category value or label", ("category",), is_str,
                lambda v: coerce_enum(NoteCategory, v, NoteCategory.ALL),
            ),
        ),
        default=lambda: NoteCategory.ALL,
    ),
    _flag("is_alive", "isAlive", default=True),
    *_dates(),
    *(_optional_string(name, key) for name, key in NOTE_OPTIONAL_FIELDS),
)


def decode_note(doc: Any) -> Note:
    """Decode a note. ``title`` is required; everything else defaults."""
    values = resolve_fields(_require_mapping(doc, "Note"), NOTE_FIELDS)
    return build_model(Note, values)


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------

RELATIONSHIP_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _required_string("name", "name"),
    _string("description", "description"),
    _bounded("relationship_level", "relationshipLevel", 0, 10, 5),
    _flag("is_alive", "isAlive", default=True),
    _optional_string("organization", "organization"),
    *_dates(),
)


def decode_relationship(doc: Any) -> Relationship:
    """Decode a relationship; the level is clamped by falling back to neutral (5)."""
    values = resolve_fields(_require_mapping(doc, "Relationship"), RELATIONSHIP_FIELDS)
    return build_model(Relationship, values)


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

QUOTE_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _required_string("text", "text"),
    _string("category", "category"),
)


def decode_quote(doc: Any) -> Quote:
    values = resolve_fields(_require_mapping(doc, "Quote"), QUOTE_FIELDS)
    return build_model(Quote, values)


def decode_quotes_data(doc: Any) -> list[Quote]:
    """Flatten ``{"categories": {name: [text, ...]}}`` into Quote records.

    Non-string entries are skipped with a warning; a missing or malformed
    ``categories`` member yields an empty list.
    """
    categories = doc.get("categories") if isinstance(doc, Mapping) else None
    if not is_mapping(categories):
        logger.warning("⚠️ Quotes document has no 'categories' map")
        return []

    quotes: list[Quote] = []
    for category, texts in categories.items():
        if not is_list(texts):
            logger.warning(f"⚠️ Quote category '{category}' is not a list, skipping")
            continue
        for index, text in enumerate(texts):
            if not is_str(text):
                logger.warning(f"⚠️ Dropping quote {category}[{index}]: not a string")
                continue
            quotes.append(Quote(text=text, category=category))
    return quotes


# ---------------------------------------------------------------------------
# Spells
# ---------------------------------------------------------------------------

# (attribute, key the library writes, key of the Russian compendium file)
SPELL_STRING_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("casting_time", "castingTime", "Время сотворения"),
    ("level", "level", "Уровень"),
    ("range", "range", "Дистанция"),
    ("components", "components", "Компоненты"),
    ("duration", "duration", "Длительность"),
    ("classes", "classes", "Классы"),
    ("subclasses", "subclasses", "Подклассы"),
    ("school", "school", "Школа"),
    ("description", "description", "Описание"),
    ("upgrades", "upgrades", "Улучшения"),
)


def _as_text(value: Any) -> str:
    if is_int(value):
        return str(value)
    if is_str(value):
        return value
    raise TypeError(f"not text: {type(value).__name__}")


SPELL_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _required_string("name", "name", "Название"),
    *(
        FieldSpec(
            attr,
            (
                MigrationRule("string", (key,), lambda v: True, _as_text),
                MigrationRule("compendium key", (legacy,), lambda v: True, _as_text),
            ),
            default=lambda: "",
        )
        for attr, key, legacy in SPELL_STRING_FIELDS
    ),
    _flag("ritual", "ritual", "Ритуал"),
    _flag("concentration", "concentration", "Концентрация"),
    _flag("is_favorite", "isFavorite"),
)


def decode_spell(doc: Any) -> Spell:
    """Decode a spell from the library's own shape or the compendium's Russian keys."""
    values = resolve_fields(_require_mapping(doc, "Spell"), SPELL_FIELDS)
    return build_model(Spell, values)


__all__ = [
    "decode_note",
    "decode_relationship",
    "decode_quote",
    "decode_quotes_data",
    "decode_spell",
]
