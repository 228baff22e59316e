"""
Tolerant decoders for the reference compendium: magic items, feats,
backgrounds and class progression tables.

The bundled compendium files use Russian display keys ("Название",
"Описание") and snake_case keys (``name_ru``, ``source_url``). Records this
library writes back are camelCase. Both are accepted. A whole compendium
file never fails because of one bad entry: list decoders drop it with a
warning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from ..models import (
    CLASS_TABLE_CORE_COLUMNS,
    Background,
    ClassTable,
    ClassTableRow,
    Feat,
    MagicItem,
    MagicItemName,
    MagicItemTable,
)
from .character import build_model
from .entities import _as_text, _flag, _require_mapping, _string
from .rules import (
    CollectionPolicy,
    FieldSpec,
    MigrationRule,
    collection_rule,
    decode_collection,
    id_field,
    is_int,
    is_list,
    is_mapping,
    is_nonempty_str,
    is_str,
    optional_str,
    resolve_fields,
)

logger = logging.getLogger("dnd-companion.decoding")

T = TypeVar("T")


def _text_field(name: str, *keys: str, required: bool = False) -> FieldSpec:
    """Text under the first present key; numbers are rendered as text."""
    rules = tuple(MigrationRule(f"text under '{key}'", (key,), lambda v: True, _as_text) for key in keys)
    if required:
        return FieldSpec(name, rules)
    return FieldSpec(name, rules, default=lambda: "")


def _text_list(value: Any) -> list[str]:
    """A list of strings; a bare string becomes a one-item list. Non-text items are skipped."""
    if is_str(value):
        return [value]
    if not is_list(value):
        raise TypeError(f"not a list: {type(value).__name__}")
    return [_as_text(item) for item in value if is_str(item) or is_int(item)]


def _text_list_field(name: str, *keys: str) -> FieldSpec:
    return FieldSpec(
        name,
        tuple(MigrationRule(f"text list under '{key}'", (key,), lambda v: True, _text_list) for key in keys),
        default=list,
    )


def _decode_list(name: str, doc: Any, decode: Callable[[Any], T]) -> list[T]:
    if not is_list(doc):
        logger.warning(f"⚠️ Compendium '{name}' is not a list, ignoring it")
        return []
    return decode_collection(name, doc, decode, CollectionPolicy.DROP_TOLERANT)


# ---------------------------------------------------------------------------
# Magic items
# ---------------------------------------------------------------------------

MAGIC_ITEM_NAME_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(
        "name_ru",
        (
            MigrationRule("nameRu", ("nameRu",), is_nonempty_str, str.strip),
            MigrationRule("name_ru", ("name_ru",), is_nonempty_str, str.strip),
        ),
    ),
    _string("name_en", "nameEn", "name_en"),
)


def decode_magic_item_name(raw: Any) -> MagicItemName:
    values = resolve_fields(_require_mapping(raw, "Magic item name"), MAGIC_ITEM_NAME_FIELDS)
    return build_model(MagicItemName, values)


MAGIC_ITEM_TABLE_FIELDS: tuple[FieldSpec, ...] = (
    _string("title", "title"),
    _text_list_field("headers", "headers"),
    FieldSpec(
        "rows",
        (collection_rule("rows", ("rows",), _text_list, CollectionPolicy.DROP_TOLERANT),),
        default=list,
    ),
)


def decode_magic_item_table(raw: Any) -> MagicItemTable:
    values = resolve_fields(_require_mapping(raw, "Magic item table"), MAGIC_ITEM_TABLE_FIELDS)
    return build_model(MagicItemTable, values)


def _names(items: list[Any]) -> list[MagicItemName]:
    names = decode_collection("names", items, decode_magic_item_name, CollectionPolicy.DROP_TOLERANT)
    if not names:
        raise ValueError("no readable name")
    return names


MAGIC_ITEM_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    FieldSpec(
        "names",
        (
            MigrationRule("name list", ("names",), is_list, _names),
            MigrationRule(
                "single name", ("name",), is_nonempty_str,
                lambda v: [MagicItemName(name_ru=v.strip())],
            ),
            MigrationRule(
                "compendium Название", ("Название",), is_nonempty_str,
                lambda v: [MagicItemName(name_ru=v.strip())],
            ),
        ),
    ),
    _text_field("rarity", "rarity"),
    _text_field("type", "type"),
    _text_list_field("descriptions", "descriptions"),
    _text_list_field("properties", "properties"),
    FieldSpec(
        "tables",
        (collection_rule("tables", ("tables",), decode_magic_item_table, CollectionPolicy.DROP_TOLERANT),),
        default=list,
    ),
    FieldSpec(
        "url",
        (MigrationRule("string or null", ("url",), lambda v: v is None or is_str(v), optional_str),),
        default=lambda: None,
    ),
    _flag("is_favorite", "isFavorite"),
)


def decode_magic_item(doc: Any) -> MagicItem:
    """Decode one magic item. A name is required; everything else defaults.

    Raises:
        MissingRequiredField: The item has no usable name.
        DecodeError: The document is not a JSON object.
    """
    values = resolve_fields(_require_mapping(doc, "Magic item"), MAGIC_ITEM_FIELDS)
    return build_model(MagicItem, values)


def decode_magic_items(doc: Any) -> list[MagicItem]:
    return _decode_list("magic items", doc, decode_magic_item)


# ---------------------------------------------------------------------------
# Feats and backgrounds
# ---------------------------------------------------------------------------

# (attribute, key the library writes, key of the Russian compendium file)
FEAT_TEXT_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("category", "category", "Категория"),
    ("requirements", "requirements", "Требования"),
    ("ability_increase", "abilityIncrease", "Повышение характеристики"),
    ("description", "description", "Описание"),
)

FEAT_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _text_field("name", "name", "Название", required=True),
    *(_text_field(attr, key, legacy) for attr, key, legacy in FEAT_TEXT_FIELDS),
    _flag("is_favorite", "isFavorite"),
)


def decode_feat(doc: Any) -> Feat:
    """Decode a feat from the library's own shape or the compendium's Russian keys."""
    values = resolve_fields(_require_mapping(doc, "Feat"), FEAT_FIELDS)
    return build_model(Feat, values)


def decode_feats(doc: Any) -> list[Feat]:
    return _decode_list("feats", doc, decode_feat)


BACKGROUND_TEXT_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("ability_scores", "abilityScores", "Характеристики"),
    ("feat", "feat", "Черта"),
    ("skills", "skills", "Навыки"),
    ("tools", "tools", "Инструменты"),
    ("equipment", "equipment", "Снаряжение"),
    ("description", "description", "Описание"),
)

BACKGROUND_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _text_field("name", "name", "Название", required=True),
    *(_text_field(attr, key, legacy) for attr, key, legacy in BACKGROUND_TEXT_FIELDS),
    _flag("is_favorite", "isFavorite"),
)


def decode_background(doc: Any) -> Background:
    values = resolve_fields(_require_mapping(doc, "Background"), BACKGROUND_FIELDS)
    return build_model(Background, values)


def decode_backgrounds(doc: Any) -> list[Background]:
    return _decode_list("backgrounds", doc, decode_background)


# ---------------------------------------------------------------------------
# Class tables
# ---------------------------------------------------------------------------

# camelCase keys the library writes for the core columns
_ROW_CAMEL_KEYS: dict[str, str] = {
    "level": "level",
    "proficiency_bonus": "proficiencyBonus",
    "class_features": "classFeatures",
}

CLASS_TABLE_ROW_FIELDS: tuple[FieldSpec, ...] = tuple(
    _text_field(attr, _ROW_CAMEL_KEYS[attr], column, required=True)
    for column, attr in CLASS_TABLE_CORE_COLUMNS.items()
)

_ROW_KNOWN_KEYS = frozenset(CLASS_TABLE_CORE_COLUMNS) | frozenset(_ROW_CAMEL_KEYS.values()) | {"additionalData"}


def _additional_columns(raw: Mapping[str, Any]) -> dict[str, str]:
    """Every class-specific column as text. Cells that are not text are skipped."""
    if is_mapping(raw.get("additionalData")):
        source = raw["additionalData"]
    else:
        source = {key: value for key, value in raw.items() if key not in _ROW_KNOWN_KEYS}

    columns: dict[str, str] = {}
    for key, value in source.items():
        try:
            columns[key] = _as_text(value)
        except TypeError:
            logger.debug(f"🔍 Skipping class table cell '{key}': {type(value).__name__}")
    return columns


def decode_class_table_row(raw: Any) -> ClassTableRow:
    """Decode one table row; level, proficiency bonus and features are required."""
    row = _require_mapping(raw, "Class table row")
    values = resolve_fields(row, CLASS_TABLE_ROW_FIELDS)
    values["additional_data"] = _additional_columns(row)
    return build_model(ClassTableRow, values)


CLASS_TABLE_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    _text_field("class_name", "className", "class", required=True),
    _text_field("slug", "slug"),
    _text_field("source_url", "sourceUrl", "source_url"),
    _text_list_field("columns", "columns"),
    FieldSpec(
        "rows",
        (collection_rule("rows", ("rows",), decode_class_table_row, CollectionPolicy.DROP_TOLERANT),),
        default=list,
    ),
)


def decode_class_table(doc: Any) -> ClassTable:
    """Decode a class progression table. Rows missing a core column are dropped.

    Raises:
        MissingRequiredField: The table names no class.
        DecodeError: The document is not a JSON object.
    """
    values = resolve_fields(_require_mapping(doc, "Class table"), CLASS_TABLE_FIELDS)
    return build_model(ClassTable, values)


def decode_class_tables(doc: Any) -> list[ClassTable]:
    return _decode_list("class tables", doc, decode_class_table)


__all__ = [
    "decode_magic_item",
    "decode_magic_items",
    "decode_feat",
    "decode_feats",
    "decode_background",
    "decode_backgrounds",
    "decode_class_table",
    "decode_class_table_row",
    "decode_class_tables",
]
