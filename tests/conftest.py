"""
Pytest configuration and fixtures for dnd-companion tests.
"""

import json
import sys
from pathlib import Path

import pytest

# Add src directory to Python path to allow importing dnd_companion
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str):
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def current_character_doc():
    """A character document in the current on-disk shape."""
    return load_fixture("current_character.json")


@pytest.fixture
def legacy_character_doc():
    """A character saved by an older build (nested info/stats/vitality layout)."""
    return load_fixture("legacy_character.json")


@pytest.fixture
def external_payload():
    """The decoded ``data`` member of a sheet-builder export."""
    return load_fixture("external_character_payload.json")


@pytest.fixture
def external_envelope(external_payload):
    """A sheet-builder export as written to disk: ``data`` is a JSON string."""
    return {
        "tags": [],
        "disabledBlocks": {"_id": "blocks"},
        "edition": "2014",
        "spells": {"mode": "cards", "prepared": [], "book": []},
        "data": json.dumps(external_payload, ensure_ascii=False),
        "jsonType": "character",
        "version": "2",
    }


@pytest.fixture
def compendium_monster_doc():
    """A bestiary entry in the compendium's nested layout."""
    return load_fixture("compendium_monster.json")


@pytest.fixture
def minimal_character_doc():
    """The smallest document that decodes: a name and six ability scores."""
    return {
        "name": "Мирра",
        "strength": 10,
        "dexterity": 14,
        "constitution": 12,
        "intelligence": 13,
        "wisdom": 15,
        "charisma": 8,
    }


@pytest.fixture
def compendium_magic_items_doc():
    """The magic item compendium file: two items, one nameless entry and a stray string."""
    return load_fixture("compendium_magic_items.json")


@pytest.fixture
def compendium_class_table_doc():
    """A class progression table with class-specific columns and one incomplete row."""
    return load_fixture("compendium_class_table.json")
