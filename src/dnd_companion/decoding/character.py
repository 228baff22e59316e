"""
Tolerant decoder for character documents.

Every field of the Character record has an explicit fallback chain in
CHARACTER_FIELDS: the current on-disk shape first, then each legacy shape
older builds wrote, then a default. Fields without a safe default (the name
and the six ability scores) make the whole document fail with
MissingRequiredField instead of being invented.

Collection policy:
    fail-fast      classes
    drop-tolerant  equipment, treasures, weapons, features, activeEffects,
                   resources

Derived values (modifiers, proficiency bonus, total level) live on the model
as properties and are never read from the document.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from ..errors import DecodeError, InvalidField
from ..models import (
    ABILITIES,
    ABILITY_SHORT_NAMES,
    ActiveEffect,
    Character,
    CharacterClass,
    ClassResource,
    EffectType,
    EquipmentItem,
    EquipmentType,
    Feature,
    Rarity,
    Treasure,
    TreasureCategory,
    Weapon,
    new_id,
)
from .binary import decode_binary_field
from .richtext import unwrap_text_value
from .rules import (
    CollectionPolicy,
    FieldSpec,
    MigrationRule,
    bounded_int,
    collection_rule,
    coerce_enum,
    date_rules,
    decode_collection,
    decode_element,
    id_field,
    is_bool,
    is_int,
    is_list,
    is_mapping,
    is_nonempty_str,
    is_number,
    is_str,
    is_str_list,
    optional_str,
    parse_bool,
    parse_float,
    parse_int,
    resolve_fields,
    split_lines,
)

logger = logging.getLogger("dnd-companion.decoding")

DROP = CollectionPolicy.DROP_TOLERANT
FAIL = CollectionPolicy.FAIL_FAST


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def _value(node: Any) -> Any:
    """Unwrap the ``{"value": X}`` boxes used by the sheet-builder layout."""
    if isinstance(node, Mapping) and "value" in node:
        return node["value"]
    return node


def _text(node: Any) -> str:
    value = _value(node)
    if isinstance(value, str):
        return value
    if is_number(value):
        return str(value)
    raise TypeError(f"not text: {type(value).__name__}")


def _attr(raw: Mapping[str, Any], key: str, convert: Any, default: Any) -> Any:
    """Optional element attribute: default when absent, null or unreadable."""
    value = raw.get(key)
    if value is None:
        return default
    try:
        return convert(value)
    except (TypeError, ValueError):
        logger.debug(f"🔸 Ignoring unreadable '{key}' value {value!r}")
        return default


def _element_id(raw: Mapping[str, Any]) -> str:
    value = raw.get("id")
    if is_nonempty_str(value):
        return value.strip()
    if is_int(value):
        return str(value)
    return new_id()


def _required_name(raw: Mapping[str, Any], key: str = "name") -> str:
    name = _value(raw.get(key))
    if not is_nonempty_str(name):
        raise ValueError(f"element has no '{key}'")
    return name.strip()


def _nonnegative(value: Any) -> int:
    return bounded_int(0)(value)


# ---------------------------------------------------------------------------
# Element decoders
# ---------------------------------------------------------------------------

def _class_entry_from_mapping(raw: Mapping[str, Any]) -> CharacterClass:
    return CharacterClass(
        id=_element_id(raw),
        name=_required_name(raw),
        level=_attr(raw, "level", bounded_int(1, 20), 1),
        subclass=_attr(raw, "subclass", optional_str, None),
    )


_CLASS_STRING = re.compile(r"^(?P<name>.*?)\s*(?P<level>\d+)?\s*$")


def _class_entry_from_string(raw: str) -> CharacterClass:
    """``"Монах 5"`` → Монах, level 5. A bare name gets level 1."""
    match = _CLASS_STRING.match(raw.strip())
    name = match.group("name").strip() if match else raw.strip()
    if not name:
        raise ValueError("class entry has no name")
    level = int(match.group("level")) if match and match.group("level") else 1
    return CharacterClass(name=name, level=level)


CLASS_ENTRY_RULES = (
    MigrationRule("class object", (), is_mapping, _class_entry_from_mapping),
    MigrationRule("legacy 'Name level' string", (), is_nonempty_str, _class_entry_from_string),
)


def decode_class_entry(raw: Any) -> CharacterClass:
    return decode_element(raw, CLASS_ENTRY_RULES, "class entry")


def _equipment_from_mapping(raw: Mapping[str, Any]) -> EquipmentItem:
    return EquipmentItem(
        id=_element_id(raw),
        name=_required_name(raw),
        type=coerce_enum(EquipmentType, raw.get("type"), EquipmentType.GEAR),
        rarity=coerce_enum(Rarity, raw.get("rarity"), Rarity.COMMON),
        cost=_attr(raw, "cost", _nonnegative, 0),
        weight=_attr(raw, "weight", parse_float, 0.0),
        attack_bonus=_attr(raw, "attackBonus", parse_int, None),
        damage=_attr(raw, "damage", optional_str, None),
        description=_attr(raw, "description", _text, ""),
    )


EQUIPMENT_ITEM_RULES = (
    MigrationRule("item object", (), is_mapping, _equipment_from_mapping),
    MigrationRule("legacy name string", (), is_nonempty_str, lambda s: EquipmentItem(name=s.strip())),
)


def decode_equipment_item(raw: Any) -> EquipmentItem:
    return decode_element(raw, EQUIPMENT_ITEM_RULES, "equipment item")


def _treasure_from_mapping(raw: Mapping[str, Any]) -> Treasure:
    return Treasure(
        id=_element_id(raw),
        name=_required_name(raw),
        category=coerce_enum(TreasureCategory, raw.get("category"), TreasureCategory.OTHER),
        quantity=_attr(raw, "quantity", _nonnegative, 1),
        value=_attr(raw, "value", _nonnegative, 0),
        description=_attr(raw, "description", _text, ""),
    )


TREASURE_RULES = (
    MigrationRule("treasure object", (), is_mapping, _treasure_from_mapping),
    MigrationRule("legacy name string", (), is_nonempty_str, lambda s: Treasure(name=s.strip())),
)


def decode_treasure(raw: Any) -> Treasure:
    return decode_element(raw, TREASURE_RULES, "treasure")


def _weapon_from_mapping(raw: Mapping[str, Any]) -> Weapon:
    # Builder exports box name/mod/dmg as {"value": ...}
    return Weapon(
        id=_element_id(raw),
        name=_required_name(raw),
        mod=_attr(raw, "mod", _text, ""),
        dmg=_attr(raw, "dmg", _text, ""),
        ability=_attr(raw, "ability", _text, ""),
        is_prof=_attr(raw, "isProf", parse_bool, False),
    )


WEAPON_RULES = (
    MigrationRule("weapon object", (), is_mapping, _weapon_from_mapping),
)


def decode_weapon(raw: Any) -> Weapon:
    return decode_element(raw, WEAPON_RULES, "weapon")


def _feature_from_mapping(raw: Mapping[str, Any]) -> Feature:
    return Feature(
        name=_required_name(raw),
        source=_attr(raw, "source", _text, ""),
        description=_attr(raw, "description", _text, ""),
    )


FEATURE_RULES = (
    MigrationRule("feature object", (), is_mapping, _feature_from_mapping),
    MigrationRule("legacy name string", (), is_nonempty_str, lambda s: Feature(name=s.strip())),
)


def decode_feature(raw: Any) -> Feature:
    return decode_element(raw, FEATURE_RULES, "feature")


def _effect_from_mapping(raw: Mapping[str, Any]) -> ActiveEffect:
    duration = _attr(raw, "duration", bounded_int(-1), -1)
    return ActiveEffect(
        id=_element_id(raw),
        name=_required_name(raw),
        description=_attr(raw, "description", _text, ""),
        duration=duration,
        type=coerce_enum(EffectType, raw.get("type"), EffectType.BUFF),
        remaining_rounds=_attr(raw, "remainingRounds", bounded_int(-1), duration),
    )


EFFECT_RULES = (
    MigrationRule("effect object", (), is_mapping, _effect_from_mapping),
)


def decode_effect(raw: Any) -> ActiveEffect:
    return decode_element(raw, EFFECT_RULES, "active effect")


def _resource_from_mapping(raw: Mapping[str, Any]) -> ClassResource:
    maximum = _attr(raw, "max", _nonnegative, 0)
    current = _attr(raw, "current", _nonnegative, maximum)
    return ClassResource(
        id=_element_id(raw),
        name=_required_name(raw),
        icon=_attr(raw, "icon", _text, ""),
        maximum=maximum,
        current=current,
        location=_attr(raw, "location", _text, ""),
        is_long_rest=_attr(raw, "isLongRest", parse_bool, True),
        is_short_rest=_attr(raw, "isShortRest", parse_bool, False),
    )


RESOURCE_RULES = (
    MigrationRule("resource object", (), is_mapping, _resource_from_mapping),
)


def decode_resource(raw: Any) -> ClassResource:
    return decode_element(raw, RESOURCE_RULES, "resource")


def decode_resource_map(resources: Mapping[str, Any]) -> list[ClassResource]:
    """Older saves keyed resources by id instead of listing them."""
    items = [
        {**raw, "id": raw.get("id") or key} if isinstance(raw, Mapping) else raw
        for key, raw in resources.items()
    ]
    return decode_collection("resources", items, decode_resource, DROP)


# ---------------------------------------------------------------------------
# Field-level transforms
# ---------------------------------------------------------------------------

def _normalize_skill(name: str) -> str:
    """``"sleightOfHand"`` / ``"Sleight of Hand"`` → ``"sleight of hand"``."""
    spaced = re.sub(r"(?<=[a-z])(?=[A-Z])", " ", name.strip())
    return spaced.replace("_", " ").replace("-", " ").lower()


def _normalize_ability(name: str) -> str:
    key = name.strip().lower()
    return ABILITY_SHORT_NAMES.get(key, key)


def _is_skill_level_map(value: Any) -> bool:
    return is_mapping(value) and all(is_int(v) and 0 <= v <= 2 for v in value.values())


def _is_bool_map(value: Any) -> bool:
    return is_mapping(value) and all(is_bool(v) for v in value.values())


def _is_object_map(value: Any) -> bool:
    return is_mapping(value) and all(is_mapping(v) for v in value.values())


def _skills_from_levels(value: Mapping[str, int]) -> dict[str, int]:
    return {_normalize_skill(k): v for k, v in value.items()}


def _skills_from_list(value: list[str]) -> dict[str, int]:
    return {_normalize_skill(name): 1 for name in value}


def _skills_from_bools(value: Mapping[str, bool]) -> dict[str, int]:
    return {_normalize_skill(k): 1 if v else 0 for k, v in value.items()}


def _skills_from_objects(value: Mapping[str, Mapping[str, Any]]) -> dict[str, int]:
    """Sheet layout: ``{"stealth": {"baseStat": "dex", "isProf": 1}}``."""
    skills: dict[str, int] = {}
    for key, entry in value.items():
        name = entry.get("name") if is_str(entry.get("name")) else key
        level = entry.get("isProf") or 0
        skills[_normalize_skill(name)] = int(level) if is_bool(level) else min(2, parse_int(level))
    return skills


def _saves_from_list(value: list[str]) -> list[str]:
    return list(dict.fromkeys(_normalize_ability(a) for a in value))


def _saves_from_bools(value: Mapping[str, bool]) -> list[str]:
    return [_normalize_ability(k) for k, v in value.items() if v]


def _saves_from_objects(value: Mapping[str, Mapping[str, Any]]) -> list[str]:
    return [_normalize_ability(k) for k, v in value.items() if v.get("isProf")]


def _equipment_from_text(text: str) -> list[EquipmentItem]:
    return [EquipmentItem(name=name) for name in split_lines(text)]


def _features_from_text(text: str) -> list[Feature]:
    return [Feature(name=line.strip()) for line in text.splitlines() if line.strip()]


def _collection(key: str, decoder: Any, policy: CollectionPolicy) -> MigrationRule:
    return collection_rule(f"{key} list", (key,), decoder, policy)


def _int_rules(key: str, convert: Any, *legacy_paths: tuple[str, ...]) -> tuple[MigrationRule, ...]:
    """Integer field: JSON int, numeric string, then legacy boxed locations."""
    rules = [
        MigrationRule("integer", (key,), is_int, convert),
        MigrationRule("numeric string", (key,), is_str, convert),
    ]
    for path in legacy_paths:
        rules.append(MigrationRule(f"legacy {'.'.join(path)}", path, lambda v: True, lambda v: convert(_value(v))))
    return tuple(rules)


def _str_rules(key: str, *legacy_paths: tuple[str, ...]) -> tuple[MigrationRule, ...]:
    rules = [MigrationRule("string", (key,), is_str)]
    for path in legacy_paths:
        rules.append(MigrationRule(f"legacy {'.'.join(path)}", path, lambda v: True, _text))
    return tuple(rules)


def _text_rules(key: str, legacy_key: str) -> tuple[MigrationRule, ...]:
    return (
        MigrationRule("string", (key,), is_str),
        MigrationRule(f"legacy text.{legacy_key}", ("text", legacy_key), lambda v: True, unwrap_text_value),
    )


def _ability_spec(ability: str) -> FieldSpec:
    short = next(k for k, v in ABILITY_SHORT_NAMES.items() if v == ability)
    score = bounded_int(1, 30)
    return FieldSpec(
        ability,
        (
            MigrationRule("integer", (ability,), is_int, score),
            MigrationRule("numeric string", (ability,), is_str, score),
            MigrationRule(f"legacy stats.{short}.score", ("stats", short, "score"), lambda v: True, score),
            MigrationRule(f"legacy stats.{short}", ("stats", short), is_number, score),
            MigrationRule(f"abilities.{ability}", ("abilities", ability), lambda v: True, lambda v: score(_score_of(v))),
            MigrationRule(f"abilities.{short}", ("abilities", short), lambda v: True, lambda v: score(_score_of(v))),
        ),
    )


def _score_of(node: Any) -> Any:
    if isinstance(node, Mapping):
        return node.get("score", node.get("value"))
    return node


def _now() -> datetime:
    return datetime.now()


def _zero() -> int:
    return 0


def _empty_str() -> str:
    return ""


# ---------------------------------------------------------------------------
# The field table
# ---------------------------------------------------------------------------

CHARACTER_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    FieldSpec(
        "name",
        (
            MigrationRule("string", ("name",), is_str),
            MigrationRule("boxed {value}", ("name",), is_mapping, _text),
        ),
    ),
    FieldSpec("player_name", _str_rules("playerName", ("info", "playerName")), default=_empty_str),
    FieldSpec("race", _str_rules("race", ("info", "race")), default=_empty_str),
    FieldSpec(
        "character_class",
        _str_rules("characterClass", ("charClass",), ("info", "charClass")),
        default=_empty_str,
    ),
    FieldSpec(
        "subclass",
        (
            MigrationRule("string or null", ("subclass",), lambda v: v is None or is_str(v), optional_str),
            MigrationRule("legacy charSubclass", ("charSubclass",), lambda v: True, lambda v: optional_str(_text(v))),
            MigrationRule(
                "legacy info.charSubclass", ("info", "charSubclass"), lambda v: True, lambda v: optional_str(_text(v))
            ),
        ),
        default=lambda: None,
    ),
    FieldSpec("background", _str_rules("background", ("info", "background")), default=_empty_str),
    FieldSpec("alignment", _str_rules("alignment", ("info", "alignment")), default=_empty_str),
    FieldSpec("level", _int_rules("level", bounded_int(1, 20), ("info", "level")), default=lambda: 1),
    FieldSpec(
        "classes",
        (
            _collection("classes", decode_class_entry, FAIL),
            MigrationRule(
                "legacy single character_class", ("character_class",), is_mapping,
                lambda v: [decode_class_entry(v)],
            ),
        ),
        default=list,
    ),
    *(_ability_spec(ability) for ability in ABILITIES),
    FieldSpec("armor_class", _int_rules("armorClass", parse_int, ("vitality", "ac")), default=lambda: 10),
    FieldSpec("initiative", _int_rules("initiative", parse_int), default=_zero),
    FieldSpec("speed", _int_rules("speed", parse_int, ("vitality", "speed")), default=lambda: 30),
    FieldSpec(
        "hit_points",
        _int_rules("hitPoints", parse_int, ("vitality", "hp-current"), ("vitality", "hp-max")),
        default=lambda: 10,
    ),
    FieldSpec("max_hit_points", _int_rules("maxHitPoints", parse_int, ("vitality", "hp-max")), default=lambda: 10),
    FieldSpec("temporary_hit_points", _int_rules("temporaryHitPoints", bounded_int(0)), default=_zero),
    FieldSpec(
        "inspiration",
        (
            MigrationRule("boolean", ("inspiration",), is_bool),
            MigrationRule("legacy 0/1 integer", ("inspiration",), is_int, parse_bool),
        ),
        default=lambda: False,
    ),
    FieldSpec(
        "skills",
        (
            MigrationRule("skill level map", ("skills",), _is_skill_level_map, _skills_from_levels),
            MigrationRule("legacy proficient list", ("skills",), is_str_list, _skills_from_list),
            MigrationRule("legacy bool map", ("skills",), _is_bool_map, _skills_from_bools),
            MigrationRule("legacy sheet objects", ("skills",), _is_object_map, _skills_from_objects),
        ),
        default=dict,
    ),
    FieldSpec(
        "saving_throws",
        (
            MigrationRule("ability list", ("savingThrows",), is_str_list, _saves_from_list),
            MigrationRule("legacy bool map", ("savingThrows",), _is_bool_map, _saves_from_bools),
            MigrationRule("legacy sheet saves", ("saves",), _is_object_map, _saves_from_objects),
        ),
        default=list,
    ),
    FieldSpec(
        "equipment",
        (
            _collection("equipment", decode_equipment_item, DROP),
            MigrationRule("legacy free text", ("equipment",), is_str, _equipment_from_text),
            MigrationRule(
                "legacy text.equipment", ("text", "equipment"), lambda v: True,
                lambda v: _equipment_from_text(unwrap_text_value(v)),
            ),
        ),
        default=list,
    ),
    FieldSpec("treasures", (_collection("treasures", decode_treasure, DROP),), default=list),
    FieldSpec(
        "weapons",
        (
            _collection("weapons", decode_weapon, DROP),
            _collection("weaponsList", decode_weapon, DROP),
        ),
        default=list,
    ),
    FieldSpec(
        "features",
        (
            _collection("features", decode_feature, DROP),
            MigrationRule("legacy free text", ("features",), is_str, _features_from_text),
            _collection("classAbilities", decode_feature, DROP),
            MigrationRule(
                "legacy text.features", ("text", "features"), lambda v: True,
                lambda v: _features_from_text(unwrap_text_value(v)),
            ),
        ),
        default=list,
    ),
    FieldSpec("active_effects", (_collection("activeEffects", decode_effect, DROP),), default=list),
    FieldSpec(
        "resources",
        (
            _collection("resources", decode_resource, DROP),
            MigrationRule("legacy id-keyed map", ("resources",), is_mapping, decode_resource_map),
        ),
        default=list,
    ),
    FieldSpec("copper_pieces", _int_rules("copperPieces", bounded_int(0)), default=_zero),
    FieldSpec("silver_pieces", _int_rules("silverPieces", bounded_int(0)), default=_zero),
    FieldSpec("electrum_pieces", _int_rules("electrumPieces", bounded_int(0)), default=_zero),
    FieldSpec("gold_pieces", _int_rules("goldPieces", bounded_int(0), ("coins", "gp")), default=_zero),
    FieldSpec("platinum_pieces", _int_rules("platinumPieces", bounded_int(0)), default=_zero),
    FieldSpec("personality_traits", _text_rules("personalityTraits", "personality"), default=_empty_str),
    FieldSpec("ideals", _text_rules("ideals", "ideals"), default=_empty_str),
    FieldSpec("bonds", _text_rules("bonds", "bonds"), default=_empty_str),
    FieldSpec("flaws", _text_rules("flaws", "flaws"), default=_empty_str),
    FieldSpec("date_created", date_rules("dateCreated", "createdAt"), default=_now),
    FieldSpec("date_modified", date_rules("dateModified", "updatedAt"), default=_now),
)

AVATAR_KEYS: tuple[str, ...] = ("avatar", "avatarData", "imageData")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_model(model: type, values: dict[str, Any]) -> Any:
    """Construct a model from resolved values, turning validation errors into InvalidField."""
    try:
        return model(**values)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or model.__name__
        raise InvalidField(field, error["msg"]) from e


def decode_character(doc: Any) -> Character:
    """Decode one character document into a fully populated Character.

    Args:
        doc: Parsed JSON object for the character, in any supported shape.

    Returns:
        The decoded Character.

    Raises:
        MissingRequiredField: The name or an ability score is missing.
        MalformedElement: A fail-fast collection holds a bad element.
        InvalidField: A resolved value violates the model's constraints.
        DecodeError: The document is not a JSON object.
    """
    if not isinstance(doc, Mapping):
        raise DecodeError("<document>", f"Character document must be a JSON object, got {type(doc).__name__}")

    values = resolve_fields(doc, CHARACTER_FIELDS)
    values["avatar"] = decode_binary_field(doc, *AVATAR_KEYS)

    character = build_model(Character, values)
    logger.debug(f"✅ Decoded character '{character.name}' ({character.id})")
    return character


def decode_character_json(text: str | bytes) -> Character:
    """Parse JSON text and decode it.

    Raises:
        DecodeError: The text is not valid JSON, or any decode failure.
    """
    try:
        doc = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError("<document>", f"Invalid JSON: {e}") from e
    return decode_character(doc)


def encode_character(character: Character) -> dict[str, Any]:
    """Current-shape JSON object for a character. Legacy shapes are never written."""
    return character.model_dump(mode="json", by_alias=True)


__all__ = [
    "CHARACTER_FIELDS",
    "decode_character",
    "decode_character_json",
    "encode_character",
    "decode_class_entry",
    "decode_equipment_item",
    "decode_treasure",
    "decode_weapon",
    "decode_feature",
    "decode_effect",
    "decode_resource",
    "decode_resource_map",
    "build_model",
]
