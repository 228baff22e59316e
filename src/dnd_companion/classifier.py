"""
Resource type classifier.

Guesses the semantic category of a class resource (rage charges, ki points,
spell slots, ...) from the free text the user typed for it. Matching is a
plain substring test over an ordered rule table: the first rule whose name,
icon or location patterns hit wins, otherwise the resource is OTHER.

The table order is part of the behaviour. Several rules share vocabulary
(both WILD_SHAPE and WILD_MAGIC react to "wild"/"дик"), and the earlier
rule takes the resource.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ResourceCategory(str, Enum):
    RAGE = "rage"
    KI = "ki"
    CHANNEL_DIVINITY = "channel_divinity"
    WILD_SHAPE = "wild_shape"
    WILD_MAGIC = "wild_magic"
    BARDIC_INSPIRATION = "bardic_inspiration"
    SORCERY_POINTS = "sorcery_points"
    SUPERIORITY_DICE = "superiority_dice"
    LAY_ON_HANDS = "lay_on_hands"
    SECOND_WIND = "second_wind"
    SPELL_SLOTS = "spell_slots"
    HIT_DICE = "hit_dice"
    OTHER = "other"

    @property
    def label(self) -> str:
        """Display name used by the resource list."""
        return _LABELS[self]


_LABELS: dict[ResourceCategory, str] = {
    ResourceCategory.RAGE: "Ярость",
    ResourceCategory.KI: "Очки ки",
    ResourceCategory.CHANNEL_DIVINITY: "Божественный канал",
    ResourceCategory.WILD_SHAPE: "Дикий облик",
    ResourceCategory.WILD_MAGIC: "Дикая магия",
    ResourceCategory.BARDIC_INSPIRATION: "Бардовское вдохновение",
    ResourceCategory.SORCERY_POINTS: "Очки чародейства",
    ResourceCategory.SUPERIORITY_DICE: "Кости превосходства",
    ResourceCategory.LAY_ON_HANDS: "Наложение рук",
    ResourceCategory.SECOND_WIND: "Второе дыхание",
    ResourceCategory.SPELL_SLOTS: "Ячейки заклинаний",
    ResourceCategory.HIT_DICE: "Кости хитов",
    ResourceCategory.OTHER: "Прочее",
}


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the rule table. Patterns must already be lower case."""
    category: ResourceCategory
    names: tuple[str, ...] = ()
    icons: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()

    def matches(self, name: str, icon: str, location: str) -> bool:
        """OR across the three dimensions, OR across patterns inside each."""
        return (
            any(p in name for p in self.names)
            or any(p in icon for p in self.icons)
            or any(p in location for p in self.locations)
        )


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        ResourceCategory.RAGE,
        names=("ярост", "rage"),
        icons=("rage",),
    ),
    ClassificationRule(
        ResourceCategory.KI,
        names=("очки ки", "очки ци", "ki point", "ki-point"),
        icons=("yin", "ki-"),
    ),
    ClassificationRule(
        ResourceCategory.CHANNEL_DIVINITY,
        names=("божественн", "channel divinity"),
        icons=("sun", "holy"),
    ),
    # Overlaps with WILD_MAGIC on "дик"/"wild"; this rule is listed first.
    ClassificationRule(
        ResourceCategory.WILD_SHAPE,
        names=("дикий облик", "wild shape", "дик", "wild"),
        icons=("paw", "leaf"),
    ),
    ClassificationRule(
        ResourceCategory.WILD_MAGIC,
        names=("дикая магия", "wild magic", "хаос", "chaos"),
        icons=("chaos", "dice"),
    ),
    ClassificationRule(
        ResourceCategory.BARDIC_INSPIRATION,
        names=("вдохновени", "bardic", "inspiration"),
        icons=("music", "lyre"),
    ),
    ClassificationRule(
        ResourceCategory.SORCERY_POINTS,
        names=("чародейств", "колдовств", "sorcery"),
        icons=("sparkles",),
    ),
    ClassificationRule(
        ResourceCategory.SUPERIORITY_DICE,
        names=("превосходств", "superiority", "маневр", "maneuver"),
        icons=("target",),
    ),
    ClassificationRule(
        ResourceCategory.LAY_ON_HANDS,
        names=("наложение рук", "lay on hands"),
        icons=("hand",),
    ),
    ClassificationRule(
        ResourceCategory.SECOND_WIND,
        names=("второе дыхание", "second wind", "всплеск действий", "action surge"),
        icons=("wind",),
    ),
    ClassificationRule(
        ResourceCategory.SPELL_SLOTS,
        names=("ячейк", "spell slot", "слот", "магия договора", "pact"),
        icons=("wand", "book"),
        locations=("spells", "заклин"),
    ),
    ClassificationRule(
        ResourceCategory.HIT_DICE,
        names=("кости хитов", "кость хитов", "hit dice", "hit die"),
        icons=("heart",),
    ),
)


def classify(
    name: str,
    icon: str,
    location: str,
    rules: Iterable[ClassificationRule] = CLASSIFICATION_RULES,
) -> ResourceCategory:
    """Assign a resource category from its name, icon id and location tag.

    Args:
        name: Display name of the resource.
        icon: Icon identifier.
        location: Free-text grouping tag such as "traits" or "spells".
        rules: Ordered rule table. Defaults to CLASSIFICATION_RULES.

    Returns:
        Category of the first matching rule, or ResourceCategory.OTHER.
    """
    name, icon, location = (name or "").lower(), (icon or "").lower(), (location or "").lower()
    for rule in rules:
        if rule.matches(name, icon, location):
            return rule.category
    return ResourceCategory.OTHER


def group_by_category(resources: Iterable[Any]) -> dict[ResourceCategory, list[Any]]:
    """Group objects exposing a ``category`` attribute, in rule-table order.

    Empty groups are omitted; OTHER always comes last.
    """
    buckets: dict[ResourceCategory, list[Any]] = {}
    for resource in resources:
        buckets.setdefault(resource.category, []).append(resource)
    order = [rule.category for rule in CLASSIFICATION_RULES] + [ResourceCategory.OTHER]
    return {category: buckets[category] for category in dict.fromkeys(order) if category in buckets}


__all__ = [
    "ResourceCategory",
    "ClassificationRule",
    "CLASSIFICATION_RULES",
    "classify",
    "group_by_category",
]
