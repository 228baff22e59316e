"""Tests for the extended character export bundle."""

import json

import pytest

from dnd_companion.decoding import decode_character
from dnd_companion.errors import DecodeError, MissingRequiredField
from dnd_companion.export import EXPORT_FORMAT_VERSION, build_export, dump_export, load_export
from dnd_companion.models import Note, NoteCategory, Relationship, Spell


@pytest.fixture
def export(current_character_doc):
    return build_export(
        decode_character(current_character_doc),
        relationships=[Relationship(name="Торговец Бран", relationship_level=7)],
        notes=[Note(title="Старая башня", category=NoteCategory.LOCATIONS, climate="сырой")],
        favorite_spells=[Spell(name="Огненный шар", level="3", is_favorite=True)],
    )


class TestDumpExport:
    def test_top_level_members(self, export):
        doc = json.loads(dump_export(export))

        assert doc["version"] == EXPORT_FORMAT_VERSION
        assert set(doc) == {"version", "exportDate", "character", "relationships", "notes", "favoriteSpells"}
        assert doc["character"]["name"] == "Гром Каменный Кулак"
        assert doc["notes"][0]["locationType"] is None
        assert doc["notes"][0]["climate"] == "сырой"

    def test_keeps_non_ascii_text(self, export):
        assert "Гром" in dump_export(export)

    def test_configured_version_is_stamped(self, current_character_doc):
        export = build_export(decode_character(current_character_doc), version="2.0")
        assert json.loads(dump_export(export))["version"] == "2.0"


class TestLoadExport:
    def test_round_trip(self, export):
        assert load_export(dump_export(export)) == export

    def test_accepts_parsed_object(self, export):
        loaded = load_export(json.loads(dump_export(export)))
        assert loaded.character == export.character

    def test_optional_members_default_to_empty(self, current_character_doc):
        loaded = load_export({"version": "1.0", "character": current_character_doc})

        assert loaded.relationships == []
        assert loaded.notes == []
        assert loaded.favorite_spells == []

    def test_bad_relationship_is_dropped(self, export, caplog):
        doc = json.loads(dump_export(export))
        doc["relationships"].append({"description": "без имени"})

        with caplog.at_level("WARNING", logger="dnd-companion.decoding"):
            loaded = load_export(doc)

        assert [r.name for r in loaded.relationships] == ["Торговец Бран"]
        assert "Malformed element 1 in 'relationships'" in caplog.text

    def test_members_that_are_not_lists_are_ignored(self, current_character_doc):
        loaded = load_export({"version": "1.0", "character": current_character_doc, "notes": {"a": 1}})
        assert loaded.notes == []

    def test_character_errors_are_fatal(self, current_character_doc):
        del current_character_doc["strength"]
        with pytest.raises(MissingRequiredField):
            load_export({"version": "1.0", "character": current_character_doc})

    def test_missing_character(self):
        with pytest.raises(DecodeError) as exc_info:
            load_export({"version": "1.0"})
        assert exc_info.value.field == "character"

    def test_invalid_json(self):
        with pytest.raises(DecodeError, match="Invalid JSON"):
            load_export("not json")

    def test_other_version_is_read_with_warning(self, export, caplog):
        doc = json.loads(dump_export(export))
        doc["version"] = "0.9"

        with caplog.at_level("WARNING", logger="dnd-companion.export"):
            loaded = load_export(doc)

        assert loaded.version == "0.9"
        assert "0.9" in caplog.text

    def test_legacy_character_inside_export(self, legacy_character_doc):
        loaded = load_export({"version": "1.0", "character": legacy_character_doc})
        assert loaded.character.character_class == "Волшебник"
