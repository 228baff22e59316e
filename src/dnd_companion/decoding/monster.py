"""
Tolerant decoder for bestiary entries.

Two shapes are accepted: the compendium's nested layout (``ac.ac``,
``hp.hp``, ``abilities.str.score``, ``challenge.cr``, ``blocks.actions``)
and the flat camelCase layout this library writes back.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..errors import DecodeError
from ..models import ABILITY_SHORT_NAMES, Monster, MonsterAction
from .character import build_model
from .rules import (
    CollectionPolicy,
    FieldSpec,
    MigrationRule,
    collection_rule,
    decode_element,
    id_field,
    is_bool,
    is_int,
    is_mapping,
    is_nonempty_str,
    is_number,
    is_str,
    optional_str,
    parse_int,
    resolve_fields,
)

logger = logging.getLogger("dnd-companion.decoding")

_FRACTIONS = {0.125: "1/8", 0.25: "1/4", 0.5: "1/2"}


def _challenge(value: Any) -> str:
    """CR as the compendium writes it: "1/2", "5". Numbers are converted."""
    if is_str(value) and value.strip():
        return value.strip()
    if is_number(value):
        if value in _FRACTIONS:
            return _FRACTIONS[value]
        if float(value).is_integer():
            return str(int(value))
    raise ValueError(f"not a challenge rating: {value!r}")


def _speed(value: Any) -> str:
    if is_str(value):
        return value
    if is_int(value):
        return f"{value} ft."
    raise TypeError(f"not a speed: {type(value).__name__}")


def flatten_skills(skills: Mapping[str, Any]) -> str:
    """``{"Perception": "+4", "Stealth": "+6"}`` → ``"Perception: +4, Stealth: +6"``."""
    return ", ".join(f"{name}: {bonus}" for name, bonus in skills.items())


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _action_from_mapping(raw: Mapping[str, Any]) -> MonsterAction:
    name = raw.get("name")
    if not is_nonempty_str(name):
        raise ValueError("action has no name")
    attack_bonus = _pick(raw, "attackBonus", "attack_bonus")
    damage_bonus = _pick(raw, "damageBonus", "damage_bonus")
    return MonsterAction(
        name=name.strip(),
        desc=_pick(raw, "desc", "text") or "",
        attack_bonus=parse_int(attack_bonus) if attack_bonus is not None else None,
        damage_dice=optional_str(_pick(raw, "damageDice", "damage_dice")),
        damage_bonus=parse_int(damage_bonus) if damage_bonus is not None else None,
    )


ACTION_RULES = (
    MigrationRule("action object", (), is_mapping, _action_from_mapping),
)


def decode_action(raw: Any) -> MonsterAction:
    return decode_element(raw, ACTION_RULES, "monster action")


def _string(name: str, *paths: tuple[str, ...]) -> FieldSpec:
    return FieldSpec(
        name,
        tuple(MigrationRule(".".join(path), path, is_str) for path in paths),
        default=lambda: "",
    )


def _optional(name: str, *paths: tuple[str, ...]) -> FieldSpec:
    return FieldSpec(
        name,
        tuple(
            MigrationRule(".".join(path), path, lambda v: v is None or is_str(v), optional_str)
            for path in paths
        ),
        default=lambda: None,
    )


def _required_int(name: str, flat: str, nested: tuple[str, ...]) -> FieldSpec:
    return FieldSpec(
        name,
        (
            MigrationRule("integer", (flat,), is_int),
            MigrationRule(f"compendium {'.'.join(nested)}", nested, lambda v: True, parse_int),
            MigrationRule(f"compendium bare {nested[0]}", nested[:1], is_number, parse_int),
        ),
    )


def _ability(ability: str) -> FieldSpec:
    short = next(k for k, v in ABILITY_SHORT_NAMES.items() if v == ability)
    return FieldSpec(
        ability,
        (
            MigrationRule("integer", (ability,), is_int),
            MigrationRule(f"abilities.{short}.score", ("abilities", short, "score"), lambda v: True, parse_int),
            MigrationRule(f"abilities.{short}", ("abilities", short), is_number, parse_int),
        ),
    )


MONSTER_FIELDS: tuple[FieldSpec, ...] = (
    id_field(),
    FieldSpec("name", (MigrationRule("string", ("name",), is_nonempty_str, str.strip),)),
    _string("size", ("size",)),
    _string("type", ("type",)),
    _optional("subtype", ("subtype",)),
    _string("alignment", ("alignment",)),
    _required_int("armor_class", "armorClass", ("ac", "ac")),
    _required_int("hit_points", "hitPoints", ("hp", "hp")),
    _optional("hit_dice", ("hitDice",), ("hp", "formula")),
    FieldSpec(
        "speed",
        (
            MigrationRule("string", ("speed",), lambda v: not is_mapping(v), _speed),
            MigrationRule("compendium speed.walk", ("speed", "walk"), lambda v: True, _speed),
        ),
        default=lambda: "",
    ),
    *(_ability(ability) for ability in ABILITY_SHORT_NAMES.values()),
    FieldSpec(
        "skills",
        (
            MigrationRule("string or null", ("skills",), lambda v: v is None or is_str(v), optional_str),
            MigrationRule("compendium skill map", ("skills",), is_mapping, flatten_skills),
        ),
        default=lambda: None,
    ),
    _optional("damage_resistances", ("damageResistances",), ("damage_resistances",)),
    _optional("damage_immunities", ("damageImmunities",), ("damage_immunities",)),
    _optional("condition_immunities", ("conditionImmunities",), ("condition_immunities",)),
    _optional("senses", ("senses",)),
    _optional("languages", ("languages",)),
    FieldSpec(
        "challenge_rating",
        (
            MigrationRule("string", ("challengeRating",), lambda v: True, _challenge),
            MigrationRule("compendium challenge.cr", ("challenge", "cr"), lambda v: True, _challenge),
        ),
    ),
    FieldSpec(
        "xp",
        (
            MigrationRule("integer or null", ("xp",), lambda v: v is None or is_int(v)),
            MigrationRule("compendium challenge.xp", ("challenge", "xp"), lambda v: True, parse_int),
        ),
        default=lambda: None,
    ),
    FieldSpec(
        "actions",
        (
            collection_rule("actions", ("actions",), decode_action, CollectionPolicy.DROP_TOLERANT),
            collection_rule("actions", ("blocks", "actions"), decode_action, CollectionPolicy.DROP_TOLERANT),
        ),
        default=list,
    ),
    FieldSpec("is_favorite", (MigrationRule("boolean", ("isFavorite",), is_bool),), default=lambda: False),
)


def decode_monster(doc: Any) -> Monster:
    """Decode one bestiary entry in either the compendium or the flat shape.

    Raises:
        MissingRequiredField: name, armor class, hit points, an ability
            score or the challenge rating is missing.
        DecodeError: The document is not a JSON object.
    """
    if not isinstance(doc, Mapping):
        raise DecodeError("<document>", f"Monster document must be a JSON object, got {type(doc).__name__}")
    values = resolve_fields(doc, MONSTER_FIELDS)
    return build_model(Monster, values)


__all__ = ["decode_monster", "decode_action", "flatten_skills", "MONSTER_FIELDS"]
