"""Tests for CompanionStorage."""

import json

import pytest

from dnd_companion.config import CompanionConfig
from dnd_companion.decoding import decode_character
from dnd_companion.errors import DecodeError
from dnd_companion.export import EXPORT_FORMAT_VERSION
from dnd_companion.models import Character, Note, Relationship
from dnd_companion.storage import CompanionStorage, StorageError


@pytest.fixture
def storage(tmp_path):
    return CompanionStorage(data_dir=tmp_path / "data")


@pytest.fixture
def character(current_character_doc):
    return decode_character(current_character_doc)


def _write_json(path, data):
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


# ============================================================================
# Characters
# ============================================================================

class TestCharacters:
    def test_creates_layout(self, storage):
        assert storage.characters_dir.is_dir()

    def test_save_and_load(self, storage, character):
        storage.save_character(character, touch=False)
        assert storage.load_character(character.id) == character

    def test_save_writes_current_shape(self, storage, character):
        storage.save_character(character)
        doc = json.loads((storage.characters_dir / "grom-01.json").read_text(encoding="utf-8"))

        assert doc["characterClass"] == "Варвар"
        assert "character_class" not in doc

    def test_save_touches_modified_date(self, storage, character):
        before = character.date_modified
        storage.save_character(character)

        assert character.date_modified > before
        assert storage.load_character(character.id).date_modified == character.date_modified

    def test_load_missing(self, storage):
        with pytest.raises(StorageError, match="not found"):
            storage.load_character("ghost")

    @pytest.mark.parametrize("bad_id", ["", "../escape", ".hidden", "a/b"])
    def test_rejects_path_like_ids(self, storage, bad_id):
        with pytest.raises(StorageError, match="Invalid character id"):
            storage.load_character(bad_id)

    def test_load_undecodable(self, storage):
        (storage.characters_dir / "broken.json").write_text("{", encoding="utf-8")
        with pytest.raises(DecodeError):
            storage.load_character("broken")

    def test_legacy_file_loads(self, storage, legacy_character_doc):
        _write_json(storage.characters_dir / "old.json", legacy_character_doc)
        assert storage.load_character("old").name == "Элара"

    def test_load_all_skips_corrupt_files(self, storage, character, legacy_character_doc):
        storage.save_character(character)
        _write_json(storage.characters_dir / "old.json", legacy_character_doc)
        _write_json(storage.characters_dir / "nameless.json", {"strength": 10})
        (storage.characters_dir / "garbage.json").write_text("not json", encoding="utf-8")

        characters, failures = storage.load_characters()

        assert [c.name for c in characters] == ["Гром Каменный Кулак", "Элара"]
        assert sorted(f.path.name for f in failures) == ["garbage.json", "nameless.json"]
        assert all(f.error for f in failures)

    def test_load_all_skips_non_utf8_file(self, storage, character):
        storage.save_character(character)
        (storage.characters_dir / "latin1.json").write_bytes(b'{"name": "\xff\xfe\xfa"}')

        characters, failures = storage.load_characters()

        assert [c.id for c in characters] == [character.id]
        assert [f.path.name for f in failures] == ["latin1.json"]
        assert "Invalid JSON" in failures[0].error

    def test_list_ids(self, storage, character, minimal_character_doc):
        storage.save_character(character)
        other = decode_character({**minimal_character_doc, "id": "mirra"})
        storage.save_character(other)

        assert storage.list_character_ids() == ["grom-01", "mirra"]

    def test_delete(self, storage, character):
        storage.save_character(character)
        storage.delete_character(character.id)

        assert storage.list_character_ids() == []
        with pytest.raises(StorageError):
            storage.delete_character(character.id)


class TestSelection:
    def test_nothing_selected(self, storage):
        assert storage.get_selected_character_id() is None
        assert storage.get_selected_character() is None

    def test_select(self, storage, character):
        storage.save_character(character)
        storage.select_character(character.id)

        assert storage.get_selected_character_id() == "grom-01"
        assert storage.get_selected_character() == character

    def test_selected_file_removed_externally(self, storage, character):
        storage.save_character(character)
        storage.select_character(character.id)
        (storage.characters_dir / "grom-01.json").unlink()

        assert storage.get_selected_character() is None

    def test_delete_clears_selection(self, storage, character):
        storage.save_character(character)
        storage.select_character(character.id)
        storage.delete_character(character.id)

        assert storage.get_selected_character_id() is None

    def test_corrupt_settings(self, storage):
        storage.settings_file.write_text("[", encoding="utf-8")
        assert storage.get_selected_character_id() is None


# ============================================================================
# Notes and relationships
# ============================================================================

class TestNotesAndRelationships:
    def test_missing_files_are_empty(self, storage):
        assert storage.load_notes() == []
        assert storage.load_relationships() == []

    def test_notes_round_trip(self, storage):
        notes = [Note(title="Таверна", description="Шумно"), Note(title="Квест", importance=5)]
        storage.save_notes(notes)

        assert storage.load_notes() == notes

    def test_relationships_round_trip(self, storage):
        relationships = [Relationship(name="Бран", relationship_level=8)]
        storage.save_relationships(relationships)

        assert storage.load_relationships() == relationships

    def test_bad_note_is_dropped(self, storage):
        _write_json(storage.notes_file, [{"title": "Хорошая"}, {"description": "без заголовка"}, 5])
        assert [n.title for n in storage.load_notes()] == ["Хорошая"]

    def test_relationship_level_out_of_range_becomes_neutral(self, storage):
        _write_json(storage.relationships_file, [{"name": "Странник", "relationshipLevel": 42}])
        assert storage.load_relationships()[0].relationship_level == 5

    def test_file_not_a_list(self, storage):
        _write_json(storage.notes_file, {"title": "одна"})
        assert storage.load_notes() == []


# ============================================================================
# Import and export
# ============================================================================

class TestImport:
    def test_import_native_file_gets_fresh_identity(self, storage, tmp_path, current_character_doc):
        path = tmp_path / "grom.json"
        _write_json(path, current_character_doc)

        result = storage.import_character_file(path)

        assert result.source == "native"
        imported = result.character
        assert imported.id != "grom-01"
        assert imported.name == "Гром Каменный Кулак"
        assert imported.date_created.year >= 2025
        assert storage.load_character(imported.id) == imported

    def test_import_legacy_native_file(self, storage, tmp_path, legacy_character_doc):
        path = tmp_path / "elara.json"
        _write_json(path, legacy_character_doc)

        result = storage.import_character_file(path)

        assert result.source == "native"
        assert result.character.intelligence == 17

    def test_import_legacy_file_with_boxed_name(self, storage, tmp_path, legacy_character_doc):
        legacy_character_doc["name"] = {"value": "Элара"}
        path = tmp_path / "elara.json"
        _write_json(path, legacy_character_doc)

        result = storage.import_character_file(path)
        imported = result.character

        assert result.source == "native"
        assert imported.name == "Элара"
        assert imported.skills == {"arcana": 1, "history": 1, "sleight of hand": 1}
        assert imported.saving_throws == ["intelligence", "wisdom"]
        assert len(imported.equipment) == 3
        assert imported.avatar == bytes([137, 80, 78, 71])

    def test_import_external_file(self, storage, tmp_path, external_envelope):
        path = tmp_path / "builder.json"
        _write_json(path, external_envelope)

        result = storage.import_character_file(path, player_name="Оля")

        assert result.source == "external"
        assert result.character.player_name == "Оля"
        assert storage.list_character_ids() == [result.character.id]

    def test_import_twice_makes_two_characters(self, storage, tmp_path, current_character_doc):
        path = tmp_path / "grom.json"
        _write_json(path, current_character_doc)

        storage.import_character_file(path)
        storage.import_character_file(path)

        assert len(storage.list_character_ids()) == 2

    def test_import_undecodable_native_file(self, storage, tmp_path):
        path = tmp_path / "nameless.json"
        _write_json(path, {"strength": 10})

        with pytest.raises(DecodeError):
            storage.import_character_file(path)
        assert storage.list_character_ids() == []


class TestExport:
    def test_export_bundles_related_records(self, storage, character):
        storage.save_character(character)
        storage.save_notes([Note(title="Таверна")])
        storage.save_relationships([Relationship(name="Бран")])

        export = storage.export_character(character.id)

        assert isinstance(export.character, Character)
        assert export.character.id == "grom-01"
        assert [n.title for n in export.notes] == ["Таверна"]
        assert [r.name for r in export.relationships] == ["Бран"]

    def test_export_uses_store_version(self, tmp_path, character):
        storage = CompanionStorage(data_dir=tmp_path / "data", export_format_version="2.1")
        storage.save_character(character)

        assert storage.export_character(character.id).version == "2.1"

    def test_default_export_version(self, storage, character):
        storage.save_character(character)
        assert storage.export_character(character.id).version == EXPORT_FORMAT_VERSION


class TestFromConfig:
    def test_uses_configured_directory_and_version(self, tmp_path, character):
        config = CompanionConfig(storage_dir=tmp_path / "configured", export_format_version="1.1")
        storage = CompanionStorage.from_config(config)
        storage.save_character(character)

        assert storage.data_dir == tmp_path / "configured"
        assert (tmp_path / "configured" / "characters" / "grom-01.json").exists()
        assert storage.export_character(character.id).version == "1.1"
