"""
Mapper functions for translating sheet-builder payloads into Character.

Each mapper function returns a (result, warnings) tuple so one broken
section degrades to defaults instead of failing the whole import. Only a
missing character name is fatal.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from ...decoding.character import decode_resource_map, decode_weapon
from ...decoding.richtext import flatten_rich_text, unwrap_text_value
from ...decoding.rules import (
    CollectionPolicy,
    bounded_int,
    decode_collection,
    parse_int,
    split_lines,
)
from ...models import ABILITY_SHORT_NAMES, Character, EquipmentItem, Feature
from ..base import ImportError, ImportResult
from .schema import (
    DEFAULT_SPEED,
    INFO_FIELDS,
    TEXT_FIELDS,
    VITALITY_AC,
    VITALITY_HP_MAX,
    VITALITY_SPEED,
)

logger = logging.getLogger("dnd-companion.importers")


def _boxed(node: Any) -> Any:
    """``{"value": X}`` → X; anything else passes through."""
    if isinstance(node, Mapping):
        return node.get("value")
    return node


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key)
    return section if isinstance(section, Mapping) else {}


def _text_paragraphs(field: Any) -> list[str]:
    """Flatten a rich-text field paragraph by paragraph.

    ``{"value": {"data": {"type": "doc", "content": [<paragraph>, ...]}}}``
    """
    if isinstance(field, str):
        return [line.strip() for line in field.splitlines() if line.strip()]
    value = _boxed(field)
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    doc = value.get("data") if isinstance(value, Mapping) else None
    content = doc.get("content") if isinstance(doc, Mapping) else None
    if not isinstance(content, list):
        return []
    paragraphs = [flatten_rich_text(node).strip() for node in content]
    return [p for p in paragraphs if p]


def map_identity(data: dict) -> tuple[dict, list[str]]:
    """Map name, race, class, level and other identity fields.

    Args:
        data: The unwrapped builder payload.

    Returns:
        Tuple of (identity_fields_dict, warnings).

    Raises:
        ImportError: ``name.value`` is missing or empty.
    """
    warnings: list[str] = []
    result: dict = {}

    name = _boxed(data.get("name"))
    if not isinstance(name, str) or not name.strip():
        raise ImportError("Character export has no name (name.value is missing or empty)")
    result["name"] = name.strip()

    info = _section(data, "info")
    for key, attribute in INFO_FIELDS.items():
        value = _boxed(info.get(key))
        if isinstance(value, str):
            result[attribute] = value
        elif value is not None:
            warnings.append(f"Ignoring non-text info.{key}: {value!r}")

    subclass = _boxed(info.get("charSubclass"))
    result["subclass"] = subclass if isinstance(subclass, str) and subclass else None

    level = _boxed(info.get("level"))
    if level is not None:
        try:
            result["level"] = bounded_int(1, 20)(level)
        except ValueError:
            warnings.append(f"Invalid class level {level!r}, defaulting to 1")
            result["level"] = 1

    return result, warnings


def map_abilities(data: dict) -> tuple[dict[str, int], list[str]]:
    """Map ``stats.<str..cha>.score`` to the six ability score fields.

    Scores have no safe default, so any missing or out-of-range score fails
    the whole import.

    Raises:
        ImportError: A score is missing or outside 1..30.
    """
    abilities: dict[str, int] = {}
    stats = _section(data, "stats")

    for short, ability in ABILITY_SHORT_NAMES.items():
        stat = stats.get(short)
        score = stat.get("score") if isinstance(stat, Mapping) else None
        try:
            abilities[ability] = bounded_int(1, 30)(score)
        except ValueError:
            raise ImportError(
                f"Ability score stats.{short}.score is missing or invalid ({score!r}); "
                "the export must carry all six scores"
            ) from None

    return abilities, []


def map_combat(data: dict) -> tuple[dict, list[str]]:
    """Map armor class, hit points and speed from ``vitality``.

    Current hit points are set to the maximum: the builder does not track
    damage taken. Speed text is parsed to an int, defaulting to 30.
    """
    warnings: list[str] = []
    result: dict = {}
    vitality = _section(data, "vitality")

    ac = _boxed(vitality.get(VITALITY_AC))
    if ac is not None:
        result["armor_class"] = parse_int(ac)

    hp_max = _boxed(vitality.get(VITALITY_HP_MAX))
    if hp_max is not None:
        result["max_hit_points"] = parse_int(hp_max)
        result["hit_points"] = result["max_hit_points"]

    speed = _boxed(vitality.get(VITALITY_SPEED))
    try:
        result["speed"] = parse_int(speed)
    except ValueError:
        warnings.append(f"Could not parse speed {speed!r}, defaulting to {DEFAULT_SPEED} ft")
        result["speed"] = DEFAULT_SPEED

    return result, warnings


def map_proficiencies(data: dict) -> tuple[dict, list[str]]:
    """Map ``saves.*.isProf`` and ``skills.*.isProf``.

    Skill proficiency is 0/1/2 (2 = expertise); saves are a list of abilities.
    """
    warnings: list[str] = []

    saving_throws: list[str] = []
    for short, save in _section(data, "saves").items():
        if isinstance(save, Mapping) and save.get("isProf"):
            saving_throws.append(ABILITY_SHORT_NAMES.get(short, short))

    skills: dict[str, int] = {}
    for key, skill in _section(data, "skills").items():
        if not isinstance(skill, Mapping):
            warnings.append(f"Skipping malformed skill entry '{key}'")
            continue
        level = skill.get("isProf") or 0
        try:
            level = int(level) if isinstance(level, bool) else min(2, max(0, parse_int(level)))
        except ValueError:
            warnings.append(f"Skill '{key}' has unreadable proficiency {level!r}")
            continue
        skills[key.lower()] = level

    return {"saving_throws": saving_throws, "skills": skills}, warnings


def map_text(data: dict) -> tuple[dict, list[str]]:
    """Flatten the rich-text sections into plain strings and item lists.

    Story fields concatenate every text leaf, the same as the native
    decoder's ``text.*`` shapes. Features and equipment are split per
    paragraph into list items.
    """
    warnings: list[str] = []
    result: dict = {}
    text = _section(data, "text")

    for key, attribute in TEXT_FIELDS.items():
        if key in text:
            result[attribute] = unwrap_text_value(text[key])

    if "features" in text:
        result["features"] = [Feature(name=p) for p in _text_paragraphs(text["features"])]

    if "equipment" in text:
        result["equipment"] = [
            EquipmentItem(name=name)
            for paragraph in _text_paragraphs(text["equipment"])
            for name in split_lines(paragraph)
        ]

    return result, warnings


def map_weapons(data: dict) -> tuple[dict, list[str]]:
    warnings: list[str] = []
    raw = data.get("weaponsList") or []
    if not isinstance(raw, list):
        return {}, [f"weaponsList is not a list ({type(raw).__name__}), skipping weapons"]

    weapons = decode_collection("weaponsList", raw, decode_weapon, CollectionPolicy.DROP_TOLERANT)
    if len(weapons) < len(raw):
        warnings.append(f"Dropped {len(raw) - len(weapons)} unreadable weapon entries")
    return {"weapons": weapons}, warnings


def map_coins(data: dict) -> tuple[dict, list[str]]:
    coins = _section(data, "coins")
    gold = _boxed(coins.get("gp"))
    if gold is None:
        return {}, []
    return {"gold_pieces": bounded_int(0)(gold)}, []


def map_resources(data: dict) -> tuple[dict, list[str]]:
    warnings: list[str] = []
    raw = data.get("resources") or {}
    if not isinstance(raw, Mapping):
        return {}, [f"resources is not an object ({type(raw).__name__}), skipping resources"]

    resources = decode_resource_map(raw)
    if len(resources) < len(raw):
        warnings.append(f"Dropped {len(raw) - len(resources)} unreadable resource entries")
    return {"resources": resources}, warnings


# (mapper, fields it produces) in the order they are applied
SECTION_MAPPERS = (
    (map_combat, ["armor_class", "max_hit_points", "hit_points", "speed"]),
    (map_proficiencies, ["saving_throws", "skills"]),
    (map_text, ["personality_traits", "ideals", "bonds", "flaws", "features", "equipment"]),
    (map_weapons, ["weapons"]),
    (map_coins, ["gold_pieces"]),
    (map_resources, ["resources"]),
)

IDENTITY_FIELDS = ["name", "race", "character_class", "subclass", "level", "background", "alignment"]


def map_external_to_character(data: dict, player_name: str | None = None) -> ImportResult:
    """Orchestrate full builder payload → Character mapping.

    Calls all mapper functions, collects warnings, and builds the final
    Character with a fresh id and fresh dates. Identity and ability scores
    are fatal; every other section degrades to defaults with a warning.

    Args:
        data: Unwrapped builder payload (see ``parse_external_document``).
        player_name: Optional player name overriding ``info.playerName``.

    Returns:
        ImportResult with the created Character, mapped/unmapped fields, and warnings.

    Raises:
        ImportError: The payload has no name, an ability score is missing or
            invalid, or the mapped values are rejected.
    """
    all_warnings: list[str] = []
    mapped_fields: list[str] = []
    unmapped_fields: list[str] = []

    character_data: dict = {}

    identity, warnings = map_identity(data)
    character_data.update(identity)
    all_warnings.extend(warnings)
    mapped_fields.extend(f for f in IDENTITY_FIELDS if f in identity)

    abilities, _ = map_abilities(data)
    character_data.update(abilities)
    mapped_fields.append("abilities")

    for mapper, fields in SECTION_MAPPERS:
        section = mapper.__name__.removeprefix("map_")
        try:
            result, warnings = mapper(data)
        except Exception as e:
            logger.warning(f"⚠️ Failed to map {section}: {e}")
            all_warnings.append(f"Failed to map {section}: {e}")
            unmapped_fields.extend(fields)
            continue
        character_data.update(result)
        mapped_fields.extend(f for f in fields if f in result)
        all_warnings.extend(warnings)

    if player_name:
        character_data["player_name"] = player_name

    try:
        character = Character(**character_data)
    except ValidationError as e:
        raise ImportError(f"Imported values were rejected: {e.errors()[0]['msg']}") from e

    sheet_proficiency = data.get("proficiency")
    if isinstance(sheet_proficiency, int) and sheet_proficiency != character.proficiency_bonus:
        all_warnings.append(
            f"Sheet proficiency bonus +{sheet_proficiency} differs from the level-derived "
            f"+{character.proficiency_bonus}; the derived value is used"
        )

    logger.info(f"✅ Imported '{character.name}' from builder export ({len(mapped_fields)} fields)")

    return ImportResult(
        character=character,
        mapped_fields=mapped_fields,
        unmapped_fields=unmapped_fields,
        warnings=all_warnings,
        source="external",
    )
