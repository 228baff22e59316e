"""
Data models for the D&D companion core.

Python attributes are snake_case; the on-disk JSON uses camelCase. Every model
accepts both spellings on construction and dumps camelCase with ``by_alias``.
Derived statistics are plain properties so they are recomputed on each access
and never written to disk.
"""

from __future__ import annotations

import base64
import re
from datetime import datetime
from enum import Enum
from typing import Any

import shortuuid
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel

from .classifier import ResourceCategory, classify


def new_id() -> str:
    """Mint a fresh opaque identifier. Never derived from record content."""
    return shortuuid.uuid()


ABILITIES: tuple[str, ...] = (
    "strength", "dexterity", "constitution", "intelligence", "wisdom", "charisma",
)

# Short keys used by older saves and the external builder format
ABILITY_SHORT_NAMES: dict[str, str] = {
    "str": "strength",
    "dex": "dexterity",
    "con": "constitution",
    "int": "intelligence",
    "wis": "wisdom",
    "cha": "charisma",
}

SKILL_ABILITIES: dict[str, str] = {
    "acrobatics": "dexterity",
    "animal handling": "wisdom",
    "arcana": "intelligence",
    "athletics": "strength",
    "deception": "charisma",
    "history": "intelligence",
    "insight": "wisdom",
    "intimidation": "charisma",
    "investigation": "intelligence",
    "medicine": "wisdom",
    "nature": "intelligence",
    "perception": "wisdom",
    "performance": "charisma",
    "persuasion": "charisma",
    "religion": "intelligence",
    "sleight of hand": "dexterity",
    "stealth": "dexterity",
    "survival": "wisdom",
}


def ability_modifier(score: int) -> int:
    """Standard 5e modifier: (score - 10) // 2."""
    return (score - 10) // 2


class CompanionModel(BaseModel):
    """Base for all models: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EquipmentType(str, Enum):
    WEAPON = "weapon"
    ARMOR = "armor"
    SHIELD = "shield"
    TOOL = "tool"
    CONSUMABLE = "consumable"
    MAGIC = "magic"
    GEAR = "gear"


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    VERY_RARE = "very_rare"
    LEGENDARY = "legendary"
    ARTIFACT = "artifact"


class TreasureCategory(str, Enum):
    GEM = "gem"
    JEWELRY = "jewelry"
    ART = "art"
    COINS = "coins"
    MAGIC = "magic"
    OTHER = "other"


class EffectType(str, Enum):
    BUFF = "buff"
    DEBUFF = "debuff"
    CONDITION = "condition"


class NoteCategory(str, Enum):
    ALL = "all"
    CAMPAIGN = "campaign"
    CHARACTERS = "characters"
    LOCATIONS = "locations"
    QUESTS = "quests"
    LORE = "lore"
    ITEMS = "items"


# Russian display labels written by older builds instead of the enum value
ENUM_LABELS: dict[type[Enum], dict[str, Enum]] = {
    EquipmentType: {
        "оружие": EquipmentType.WEAPON,
        "доспехи": EquipmentType.ARMOR,
        "доспех": EquipmentType.ARMOR,
        "щит": EquipmentType.SHIELD,
        "инструменты": EquipmentType.TOOL,
        "инструмент": EquipmentType.TOOL,
        "расходники": EquipmentType.CONSUMABLE,
        "зелье": EquipmentType.CONSUMABLE,
        "магический предмет": EquipmentType.MAGIC,
        "снаряжение": EquipmentType.GEAR,
        "прочее": EquipmentType.GEAR,
    },
    Rarity: {
        "обычный": Rarity.COMMON,
        "необычный": Rarity.UNCOMMON,
        "редкий": Rarity.RARE,
        "очень редкий": Rarity.VERY_RARE,
        "легендарный": Rarity.LEGENDARY,
        "артефакт": Rarity.ARTIFACT,
    },
    TreasureCategory: {
        "драгоценные камни": TreasureCategory.GEM,
        "украшения": TreasureCategory.JEWELRY,
        "произведения искусства": TreasureCategory.ART,
        "монеты": TreasureCategory.COINS,
        "магические предметы": TreasureCategory.MAGIC,
        "прочее": TreasureCategory.OTHER,
    },
    NoteCategory: {
        "все": NoteCategory.ALL,
        "кампания": NoteCategory.CAMPAIGN,
        "персонажи": NoteCategory.CHARACTERS,
        "локации": NoteCategory.LOCATIONS,
        "квесты": NoteCategory.QUESTS,
        "лор": NoteCategory.LORE,
        "предметы": NoteCategory.ITEMS,
    },
}


# ---------------------------------------------------------------------------
# Character parts
# ---------------------------------------------------------------------------

class CharacterClass(CompanionModel):
    """One entry of a multiclass build."""
    id: str = Field(default_factory=new_id)
    name: str
    level: int = Field(default=1, ge=1, le=20)
    subclass: str | None = None


class ActiveEffect(CompanionModel):
    """Buff, debuff or condition tracked in rounds. Duration -1 means permanent."""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    duration: int = Field(default=-1, ge=-1)
    type: EffectType = EffectType.BUFF
    remaining_rounds: int = -1

    @model_validator(mode="before")
    @classmethod
    def _default_remaining_rounds(cls, data: Any) -> Any:
        """A fresh effect starts with its full duration remaining."""
        if isinstance(data, dict) and "remaining_rounds" not in data and "remainingRounds" not in data:
            data = {**data, "remaining_rounds": data.get("duration", -1)}
        return data

    @property
    def is_permanent(self) -> bool:
        return self.duration == -1

    @property
    def is_expired(self) -> bool:
        return self.remaining_rounds == 0 and not self.is_permanent

    def advance_round(self) -> None:
        """Tick one combat round off a timed effect."""
        if not self.is_permanent and self.remaining_rounds > 0:
            self.remaining_rounds -= 1


class EquipmentItem(CompanionModel):
    """Carried item. Cost is in copper pieces, weight in kilograms."""
    id: str = Field(default_factory=new_id)
    name: str
    type: EquipmentType = EquipmentType.GEAR
    rarity: Rarity = Rarity.COMMON
    cost: int = Field(default=0, ge=0)
    weight: float = 0.0
    attack_bonus: int | None = None
    damage: str | None = None
    description: str = ""


class Treasure(CompanionModel):
    """Valuables kept apart from equipment. Value is in gold pieces."""
    id: str = Field(default_factory=new_id)
    name: str
    category: TreasureCategory = TreasureCategory.OTHER
    quantity: int = Field(default=1, ge=0)
    value: int = Field(default=0, ge=0)
    description: str = ""


class Weapon(CompanionModel):
    """Attack line from the old sheet layout."""
    id: str = Field(default_factory=new_id)
    name: str
    mod: str = ""
    dmg: str = ""
    ability: str = ""
    is_prof: bool = False


class Feature(CompanionModel):
    """Class, race or background feature."""
    name: str
    source: str = ""
    description: str = ""


class ClassResource(CompanionModel):
    """A class-granted resource pool such as rage charges or spell slots.

    The category is derived from name, icon and location every time it is
    read, so two resources with the same text always group together.
    """
    id: str = Field(default_factory=new_id)
    name: str
    icon: str = ""
    maximum: int = Field(default=0, ge=0, alias="max")
    current: int = Field(default=0, ge=0)
    location: str = ""
    is_long_rest: bool = True
    is_short_rest: bool = False

    @property
    def category(self) -> ResourceCategory:
        return classify(self.name, self.icon, self.location)

    def spend(self, amount: int = 1) -> None:
        self.current = max(0, self.current - amount)

    def restore(self, short_rest: bool = False) -> None:
        """Refill the pool if it recovers on the given kind of rest."""
        if (short_rest and self.is_short_rest) or (not short_rest and self.is_long_rest):
            self.current = self.maximum


# ---------------------------------------------------------------------------
# Character (the Record)
# ---------------------------------------------------------------------------

class Character(CompanionModel):
    """Complete character sheet."""
    # Identity
    id: str = Field(default_factory=new_id)
    name: str
    player_name: str = ""
    race: str = ""
    character_class: str = ""
    subclass: str | None = None
    background: str = ""
    alignment: str = ""
    level: int = Field(default=1, ge=1, le=20)
    classes: list[CharacterClass] = Field(default_factory=list)

    # Ability scores
    strength: int = Field(ge=1, le=30)
    dexterity: int = Field(ge=1, le=30)
    constitution: int = Field(ge=1, le=30)
    intelligence: int = Field(ge=1, le=30)
    wisdom: int = Field(ge=1, le=30)
    charisma: int = Field(ge=1, le=30)

    # Combat
    armor_class: int = 10
    initiative: int = 0
    speed: int = 30
    hit_points: int = 10
    max_hit_points: int = 10
    temporary_hit_points: int = Field(default=0, ge=0)
    inspiration: bool = False

    # Proficiencies: skill name -> 0 none, 1 proficient, 2 expertise
    skills: dict[str, int] = Field(default_factory=dict)
    saving_throws: list[str] = Field(default_factory=list)

    # Gear
    equipment: list[EquipmentItem] = Field(default_factory=list)
    treasures: list[Treasure] = Field(default_factory=list)
    weapons: list[Weapon] = Field(default_factory=list)
    copper_pieces: int = Field(default=0, ge=0)
    silver_pieces: int = Field(default=0, ge=0)
    electrum_pieces: int = Field(default=0, ge=0)
    gold_pieces: int = Field(default=0, ge=0)
    platinum_pieces: int = Field(default=0, ge=0)

    # Features, effects, resources
    features: list[Feature] = Field(default_factory=list)
    active_effects: list[ActiveEffect] = Field(default_factory=list)
    resources: list[ClassResource] = Field(default_factory=list)

    # Personality
    personality_traits: str = ""
    ideals: str = ""
    bonds: str = ""
    flaws: str = ""

    avatar: bytes | None = None
    date_created: datetime = Field(default_factory=datetime.now)
    date_modified: datetime = Field(default_factory=datetime.now)

    @field_serializer("avatar", when_used="json")
    def _serialize_avatar(self, avatar: bytes | None) -> str | None:
        if avatar is None:
            return None
        return base64.b64encode(avatar).decode("ascii")

    # -- derived values -----------------------------------------------------

    def score(self, ability: str) -> int:
        """Ability score by full or short name (``"dex"`` or ``"dexterity"``)."""
        return getattr(self, ABILITY_SHORT_NAMES.get(ability, ability))

    def modifier(self, ability: str) -> int:
        return ability_modifier(self.score(ability))

    @property
    def modifiers(self) -> dict[str, int]:
        return {ability: self.modifier(ability) for ability in ABILITIES}

    @property
    def total_level(self) -> int:
        """Sum of multiclass levels, or ``level`` for single-class sheets."""
        if self.classes:
            return sum(c.level for c in self.classes)
        return self.level

    @property
    def is_multiclass(self) -> bool:
        return len(self.classes) > 1

    @property
    def proficiency_bonus(self) -> int:
        return 2 + (self.total_level - 1) // 4

    @property
    def initiative_bonus(self) -> int:
        return self.modifier("dexterity") + self.initiative

    def saving_throw_bonus(self, ability: str) -> int:
        ability = ABILITY_SHORT_NAMES.get(ability, ability)
        bonus = self.modifier(ability)
        if ability in self.saving_throws:
            bonus += self.proficiency_bonus
        return bonus

    def skill_bonus(self, skill: str) -> int:
        """Ability modifier plus proficiency (doubled for expertise)."""
        bonus = self.modifier(SKILL_ABILITIES[skill])
        return bonus + self.skills.get(skill, 0) * self.proficiency_bonus

    @property
    def total_coin_value(self) -> int:
        """Purse value in whole gold pieces."""
        return (
            self.copper_pieces // 100
            + self.silver_pieces // 10
            + self.electrum_pieces // 2
            + self.gold_pieces
            + self.platinum_pieces * 10
        )

    @property
    def total_equipment_weight(self) -> float:
        return sum(item.weight for item in self.equipment)

    @property
    def total_treasure_value(self) -> int:
        return sum(t.value * t.quantity for t in self.treasures)

    def class_string(self) -> str:
        """Human-readable class string, e.g. 'Монах 5 / Плут 3'."""
        if self.classes:
            return " / ".join(f"{c.name} {c.level}" for c in self.classes)
        return f"{self.character_class} {self.level}".strip()

    # -- edits used by the UI -----------------------------------------------

    def touch(self) -> None:
        self.date_modified = datetime.now()

    def initialize_multiclass(self) -> None:
        """Seed ``classes`` from the single-class fields before adding a second class."""
        if not self.classes and self.character_class:
            self.classes = [
                CharacterClass(name=self.character_class, level=self.level, subclass=self.subclass)
            ]
            self.touch()

    def add_class(self, name: str, level: int = 1, subclass: str | None = None) -> CharacterClass:
        self.initialize_multiclass()
        entry = CharacterClass(name=name, level=level, subclass=subclass)
        self.classes.append(entry)
        self.touch()
        return entry

    def remove_class(self, class_id: str) -> None:
        self.classes = [c for c in self.classes if c.id != class_id]
        self.touch()

    def update_class_level(self, class_id: str, new_level: int) -> None:
        for entry in self.classes:
            if entry.id == class_id:
                entry.level = max(1, min(20, new_level))
                self.touch()
                return
        raise KeyError(class_id)

    def toggle_saving_throw(self, ability: str) -> None:
        ability = ABILITY_SHORT_NAMES.get(ability, ability)
        if ability in self.saving_throws:
            self.saving_throws.remove(ability)
        else:
            self.saving_throws.append(ability)
        self.touch()


# ---------------------------------------------------------------------------
# Related entities
# ---------------------------------------------------------------------------

class Note(CompanionModel):
    """Campaign journal note. Optional fields depend on the category."""
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    importance: int = Field(default=3, ge=1, le=5)
    category: NoteCategory = NoteCategory.ALL
    is_alive: bool = True
    date_created: datetime = Field(default_factory=datetime.now)
    date_modified: datetime = Field(default_factory=datetime.now)

    # characters
    race: str | None = None
    occupation: str | None = None
    organization: str | None = None
    age: str | None = None
    appearance: str | None = None
    # locations
    location_type: str | None = None
    population: str | None = None
    government: str | None = None
    climate: str | None = None
    # items
    item_type: str | None = None
    rarity: str | None = None
    value: str | None = None
    # quests
    quest_type: str | None = None
    status: str | None = None
    reward: str | None = None
    # lore
    lore_type: str | None = None
    era: str | None = None


class Relationship(CompanionModel):
    """NPC the character knows. Level 0-4 enemy, 5 neutral, 6-10 friend."""
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    relationship_level: int = Field(default=5, ge=0, le=10)
    is_alive: bool = True
    organization: str | None = None
    date_created: datetime = Field(default_factory=datetime.now)
    date_modified: datetime = Field(default_factory=datetime.now)

    @property
    def is_friend(self) -> bool:
        return self.relationship_level >= 6

    @property
    def is_enemy(self) -> bool:
        return self.relationship_level <= 4

    @property
    def is_neutral(self) -> bool:
        return self.relationship_level == 5

    def duplicate(self) -> "Relationship":
        """Copy with a new id and fresh timestamps."""
        return Relationship(
            name=f"{self.name} (копия)",
            description=self.description,
            relationship_level=self.relationship_level,
            is_alive=self.is_alive,
            organization=self.organization,
        )


class Quote(CompanionModel):
    id: str = Field(default_factory=new_id)
    text: str
    category: str = ""


class Spell(CompanionModel):
    """Compendium spell. Level is kept as text ("Заговор", "1", ...)."""
    id: str = Field(default_factory=new_id)
    name: str
    casting_time: str = ""
    level: str = ""
    range: str = ""
    components: str = ""
    duration: str = ""
    classes: str = ""
    subclasses: str = ""
    ritual: bool = False
    school: str = ""
    concentration: bool = False
    description: str = ""
    upgrades: str = ""
    is_favorite: bool = False


class MonsterAction(CompanionModel):
    name: str
    desc: str = ""
    attack_bonus: int | None = None
    damage_dice: str | None = None
    damage_bonus: int | None = None


class Monster(CompanionModel):
    """Bestiary entry."""
    id: str = Field(default_factory=new_id)
    name: str
    size: str = ""
    type: str = ""
    subtype: str | None = None
    alignment: str = ""
    armor_class: int
    hit_points: int
    hit_dice: str | None = None
    speed: str = ""
    strength: int
    dexterity: int
    constitution: int
    intelligence: int
    wisdom: int
    charisma: int
    skills: str | None = None
    damage_resistances: str | None = None
    damage_immunities: str | None = None
    condition_immunities: str | None = None
    senses: str | None = None
    languages: str | None = None
    challenge_rating: str
    xp: int | None = None
    actions: list[MonsterAction] = Field(default_factory=list)
    is_favorite: bool = False

    def modifier(self, ability: str) -> int:
        return ability_modifier(getattr(self, ABILITY_SHORT_NAMES.get(ability, ability)))


# ---------------------------------------------------------------------------
# Compendium: magic items, feats, backgrounds, class tables
# ---------------------------------------------------------------------------

# Longer first properties are description text, not "type, rarity"
MAX_PROPERTY_LENGTH = 100

_RARITY_WORDS = re.compile(
    r"\b(очень редк\w*|необычн\w*|обычн\w*|редк\w*|легендарн\w*|артефакт\w*)",
    re.IGNORECASE,
)


def _split_outside_parens(text: str) -> list[str]:
    """Split on commas that are not inside parentheses."""
    parts: list[str] = []
    depth = 0
    start = 0
    for index, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            parts.append(text[start:index].strip())
            start = index + 1
    parts.append(text[start:].strip())
    return parts


class MagicItemName(CompanionModel):
    name_ru: str
    name_en: str = ""


class MagicItemTable(CompanionModel):
    title: str = ""
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class MagicItem(CompanionModel):
    """Compendium magic item.

    ``type`` and ``rarity`` are the compendium's coarse fields. The first
    property usually reads "Чудесный предмет, очень редкий" and carries the
    precise values, see ``extracted_type`` and ``extracted_rarity``.
    """
    id: str = Field(default_factory=new_id)
    names: list[MagicItemName] = Field(default_factory=list)
    rarity: str = ""
    type: str = ""
    descriptions: list[str] = Field(default_factory=list)
    properties: list[str] = Field(default_factory=list)
    tables: list[MagicItemTable] = Field(default_factory=list)
    url: str | None = None
    is_favorite: bool = False

    @property
    def display_name(self) -> str:
        for name in self.names:
            if name.name_ru:
                return name.name_ru
        return self.names[0].name_en if self.names else ""

    def _type_line(self) -> str | None:
        if not self.properties or len(self.properties[0]) > MAX_PROPERTY_LENGTH:
            return None
        return self.properties[0]

    @property
    def extracted_type(self) -> str:
        line = self._type_line()
        if line is None:
            return self.type
        return _split_outside_parens(line)[0].split("(")[0].strip() or self.type

    @property
    def extracted_rarity(self) -> str:
        line = self._type_line()
        if line is None:
            return self.rarity
        parts = _split_outside_parens(line)
        if len(parts) >= 2:
            return parts[1].split("(")[0].strip() or self.rarity
        match = _RARITY_WORDS.search(line)
        return match.group(1) if match else self.rarity

    @property
    def cost(self) -> str | None:
        """Price text after the colon, e.g. "5 001-50 000 зм"."""
        for prop in self.properties:
            lowered = prop.lower()
            if len(prop) <= MAX_PROPERTY_LENGTH and "стоимость" in lowered and "зм" in lowered:
                _, sep, value = prop.partition(":")
                if sep and value.strip():
                    return value.strip()
        return None

    @property
    def weight(self) -> str | None:
        """The number and unit, e.g. "25 фунтов"."""
        for prop in self.properties:
            if len(prop) > MAX_PROPERTY_LENGTH or "фунт" not in prop:
                continue
            words = prop.split()
            for index, word in enumerate(words):
                if "фунт" in word and index > 0:
                    return f"{words[index - 1]} {word.rstrip('.,;')}"
        return None


class Feat(CompanionModel):
    id: str = Field(default_factory=new_id)
    name: str
    category: str = ""
    requirements: str = ""
    ability_increase: str = ""
    description: str = ""
    is_favorite: bool = False


class Background(CompanionModel):
    id: str = Field(default_factory=new_id)
    name: str
    ability_scores: str = ""
    feat: str = ""
    skills: str = ""
    tools: str = ""
    equipment: str = ""
    description: str = ""
    is_favorite: bool = False


# Class table column header → ClassTableRow attribute
CLASS_TABLE_CORE_COLUMNS: dict[str, str] = {
    "Уровень": "level",
    "Бонус владения": "proficiency_bonus",
    "Классовые умения": "class_features",
}


class ClassTableRow(CompanionModel):
    """One level of a class progression table.

    The three columns every class shares are attributes. Class-specific
    columns ("Ярость", "Ячейки 1 уровня", ...) live in ``additional_data``.
    """
    level: str
    proficiency_bonus: str
    class_features: str
    additional_data: dict[str, str] = Field(default_factory=dict)

    def get(self, column: str) -> str | None:
        """Cell value by the table's column header."""
        if column in CLASS_TABLE_CORE_COLUMNS:
            return getattr(self, CLASS_TABLE_CORE_COLUMNS[column])
        return self.additional_data.get(column)


class ClassTable(CompanionModel):
    id: str = Field(default_factory=new_id)
    class_name: str
    slug: str = ""
    source_url: str = ""
    columns: list[str] = Field(default_factory=list)
    rows: list[ClassTableRow] = Field(default_factory=list)

    @property
    def extra_columns(self) -> list[str]:
        return [c for c in self.columns if c not in CLASS_TABLE_CORE_COLUMNS]

    def row_for_level(self, level: int) -> ClassTableRow | None:
        for row in self.rows:
            match = re.match(r"\s*(\d+)", row.level)
            if match and int(match.group(1)) == level:
                return row
        return None


__all__ = [
    "new_id",
    "ability_modifier",
    "ABILITIES",
    "ABILITY_SHORT_NAMES",
    "SKILL_ABILITIES",
    "ENUM_LABELS",
    "CompanionModel",
    "EquipmentType",
    "Rarity",
    "TreasureCategory",
    "EffectType",
    "NoteCategory",
    "CharacterClass",
    "ActiveEffect",
    "EquipmentItem",
    "Treasure",
    "Weapon",
    "Feature",
    "ClassResource",
    "Character",
    "Note",
    "Relationship",
    "Quote",
    "Spell",
    "MonsterAction",
    "Monster",
    "MAX_PROPERTY_LENGTH",
    "MagicItemName",
    "MagicItemTable",
    "MagicItem",
    "Feat",
    "Background",
    "CLASS_TABLE_CORE_COLUMNS",
    "ClassTableRow",
    "ClassTable",
]
