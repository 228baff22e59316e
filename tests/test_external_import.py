"""Tests for sheet-builder import: envelope unwrapping, section mappers and the report."""

import json

import pytest

from dnd_companion.importers import (
    ImportError,
    ImportResult,
    is_external_document,
    map_external_to_character,
    parse_external_document,
    read_character_file,
)
from dnd_companion.importers.external.mapper import (
    map_abilities,
    map_coins,
    map_combat,
    map_identity,
    map_proficiencies,
    map_resources,
    map_text,
    map_weapons,
)
from dnd_companion.decoding import decode_character
from dnd_companion.models import Character


# ============================================================================
# Envelope
# ============================================================================

class TestEnvelope:
    def test_detects_envelope(self, external_envelope):
        assert is_external_document(external_envelope)

    def test_detects_unwrapped_payload(self, external_payload):
        assert is_external_document(external_payload)

    def test_native_documents_are_not_external(self, current_character_doc, legacy_character_doc):
        assert not is_external_document(current_character_doc)
        assert not is_external_document(legacy_character_doc)

    def test_legacy_save_with_boxed_name_is_not_external(self, legacy_character_doc):
        legacy_character_doc["name"] = {"value": "Элара"}
        assert not is_external_document(legacy_character_doc)

    def test_non_object_is_not_external(self):
        assert not is_external_document(["data"])

    def test_unwraps_stringified_data(self, external_envelope, external_payload):
        assert parse_external_document(external_envelope) == external_payload

    def test_unwraps_object_data(self, external_envelope, external_payload):
        envelope = {**external_envelope, "data": external_payload}
        assert parse_external_document(envelope) == external_payload

    def test_accepts_json_text(self, external_envelope, external_payload):
        text = json.dumps(external_envelope, ensure_ascii=False)
        assert parse_external_document(text) == external_payload

    def test_invalid_json_text(self):
        with pytest.raises(ImportError, match="Invalid JSON"):
            parse_external_document("{broken")

    def test_invalid_json_in_data(self, external_envelope):
        with pytest.raises(ImportError, match="'data'"):
            parse_external_document({**external_envelope, "data": "{broken"})

    def test_data_must_be_object(self, external_envelope):
        with pytest.raises(ImportError, match="JSON object"):
            parse_external_document({**external_envelope, "data": "[1, 2]"})

    def test_missing_stats(self, external_payload):
        del external_payload["stats"]
        with pytest.raises(ImportError, match="missing required fields"):
            parse_external_document(external_payload)


class TestReadCharacterFile:
    def test_reads_json(self, tmp_path, external_envelope):
        path = tmp_path / "export.json"
        path.write_text(json.dumps(external_envelope, ensure_ascii=False), encoding="utf-8")

        assert read_character_file(path) == external_envelope

    def test_missing_file(self, tmp_path):
        with pytest.raises(ImportError, match="not found"):
            read_character_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{nope", encoding="utf-8")

        with pytest.raises(ImportError, match="Invalid JSON"):
            read_character_file(path)


# ============================================================================
# Section mappers
# ============================================================================

class TestMapIdentity:
    def test_identity_fields(self, external_payload):
        result, warnings = map_identity(external_payload)

        assert result["name"] == "Тэрин Быстрая Стрела"
        assert result["character_class"] == "Следопыт"
        assert result["subclass"] == "Охотник"
        assert result["race"] == "Лесной эльф"
        assert result["player_name"] == "Саша"
        assert result["level"] == 5
        assert warnings == []

    def test_empty_subclass_is_none(self, external_payload):
        external_payload["info"]["charSubclass"] = {"value": ""}
        result, _ = map_identity(external_payload)
        assert result["subclass"] is None

    def test_bad_level_defaults_to_one(self, external_payload):
        external_payload["info"]["level"] = {"value": 99}
        result, warnings = map_identity(external_payload)

        assert result["level"] == 1
        assert any("level" in w for w in warnings)

    def test_missing_name_is_fatal(self, external_payload):
        external_payload["name"] = {"value": "  "}
        with pytest.raises(ImportError, match="no name"):
            map_identity(external_payload)


class TestMapAbilities:
    def test_scores(self, external_payload):
        result, warnings = map_abilities(external_payload)

        assert result == {
            "strength": 12,
            "dexterity": 18,
            "constitution": 14,
            "intelligence": 10,
            "wisdom": 15,
            "charisma": 8,
        }
        assert warnings == []

    def test_invalid_score_is_fatal(self, external_payload):
        external_payload["stats"]["wis"]["score"] = 0
        with pytest.raises(ImportError, match="stats.wis.score"):
            map_abilities(external_payload)

    def test_missing_score_is_fatal(self, external_payload):
        del external_payload["stats"]["cha"]
        with pytest.raises(ImportError, match="stats.cha.score"):
            map_abilities(external_payload)


class TestMapCombat:
    def test_vitality(self, external_payload):
        result, warnings = map_combat(external_payload)

        assert result == {"armor_class": 16, "max_hit_points": 44, "hit_points": 44, "speed": 35}
        assert warnings == []

    def test_unparseable_speed(self, external_payload):
        external_payload["vitality"]["speed"] = {"value": "быстро"}
        result, warnings = map_combat(external_payload)

        assert result["speed"] == 30
        assert "speed" in warnings[0]


class TestMapProficiencies:
    def test_saves_and_skills(self, external_payload):
        result, warnings = map_proficiencies(external_payload)

        assert result["saving_throws"] == ["strength", "dexterity"]
        assert result["skills"] == {"stealth": 2, "survival": 1, "sleight of hand": 0, "arcana": 0}
        assert warnings == []

    def test_malformed_skill_is_skipped(self, external_payload):
        external_payload["skills"]["history"] = "yes"
        result, warnings = map_proficiencies(external_payload)

        assert "history" not in result["skills"]
        assert "history" in warnings[0]


class TestMapText:
    def test_story_fields(self, external_payload):
        result, _ = map_text(external_payload)

        assert result["personality_traits"] == "Молчалив, но наблюдателен"
        assert result["ideals"] == "Природа"
        assert result["flaws"] == "Не доверяет городам"

    def test_features_one_per_paragraph(self, external_payload):
        result, _ = map_text(external_payload)
        assert [f.name for f in result["features"]] == ["Избранный враг", "Исследователь природы"]

    def test_equipment_split_into_items(self, external_payload):
        result, _ = map_text(external_payload)
        assert [item.name for item in result["equipment"]] == ["Колчан", "20 стрел", "Плащ"]

    def test_missing_text_section(self, external_payload):
        del external_payload["text"]
        assert map_text(external_payload) == ({}, [])

    def test_story_text_matches_native_decoder(self, external_payload, minimal_character_doc):
        block = {
            "value": {
                "data": {
                    "type": "doc",
                    "content": [
                        {"type": "paragraph", "content": [{"type": "text", "text": "Один"}]},
                        {"type": "paragraph", "content": [{"type": "text", "text": "Два"}]},
                    ],
                }
            }
        }
        external_payload["text"]["ideals"] = block
        native = decode_character({**minimal_character_doc, "text": {"ideals": block}})

        result, _ = map_text(external_payload)

        assert result["ideals"] == native.ideals == "ОдинДва"


class TestMapCollections:
    def test_weapons_drop_unreadable(self, external_payload):
        result, warnings = map_weapons(external_payload)

        assert [w.name for w in result["weapons"]] == ["Длинный лук"]
        assert result["weapons"][0].id == "w-bow"
        assert warnings == ["Dropped 1 unreadable weapon entries"]

    def test_weapons_not_a_list(self, external_payload):
        external_payload["weaponsList"] = {"bow": {}}
        result, warnings = map_weapons(external_payload)

        assert result == {}
        assert "not a list" in warnings[0]

    def test_coins(self, external_payload):
        assert map_coins(external_payload) == ({"gold_pieces": 42}, [])

    def test_resources(self, external_payload):
        result, warnings = map_resources(external_payload)

        resource = result["resources"][0]
        assert (resource.id, resource.name, resource.current, resource.maximum) == ("r-1", "Hunter's Mark", 1, 2)
        assert warnings == []


# ============================================================================
# Orchestration and report
# ============================================================================

class TestMapExternalToCharacter:
    def test_full_import(self, external_payload):
        result = map_external_to_character(external_payload)

        assert isinstance(result, ImportResult)
        assert result.source == "external"
        character = result.character
        assert isinstance(character, Character)
        assert character.name == "Тэрин Быстрая Стрела"
        assert character.dexterity == 18
        assert character.proficiency_bonus == 3
        assert character.gold_pieces == 42
        assert len(character.equipment) == 3
        assert result.unmapped_fields == []
        assert result.warnings == ["Dropped 1 unreadable weapon entries"]

    def test_mapped_fields(self, external_payload):
        result = map_external_to_character(external_payload)

        for name in ("name", "level", "abilities", "speed", "skills", "equipment", "weapons", "resources"):
            assert name in result.mapped_fields

    def test_fresh_id_each_time(self, external_payload):
        first = map_external_to_character(external_payload).character
        second = map_external_to_character(external_payload).character
        assert first.id != second.id

    def test_player_name_override(self, external_payload):
        result = map_external_to_character(external_payload, player_name="Оля")
        assert result.character.player_name == "Оля"

    def test_failed_section_degrades(self, external_payload):
        external_payload["coins"] = {"gp": {"value": -5}}
        result = map_external_to_character(external_payload)

        assert result.character.gold_pieces == 0
        assert result.unmapped_fields == ["gold_pieces"]
        assert any(w.startswith("Failed to map coins") for w in result.warnings)

    def test_proficiency_mismatch_warns(self, external_payload):
        external_payload["proficiency"] = 4
        result = map_external_to_character(external_payload)

        assert result.character.proficiency_bonus == 3
        assert any("proficiency" in w for w in result.warnings)

    def test_missing_name_is_fatal(self, external_payload):
        del external_payload["name"]
        with pytest.raises(ImportError):
            map_external_to_character(external_payload)

    def test_missing_stats_is_fatal(self, external_payload):
        external_payload["stats"] = {}
        with pytest.raises(ImportError, match="Ability score"):
            map_external_to_character(external_payload)


class TestImportReport:
    def test_status_with_warnings(self, external_payload):
        report = map_external_to_character(external_payload).build_report()

        assert report.status == "success_with_warnings"
        assert report.character_name == "Тэрин Быстрая Стрела"
        assert report.warnings[0].field == "weapons"

    def test_clean_import_is_success(self, external_payload):
        external_payload["weaponsList"] = external_payload["weaponsList"][:1]
        report = map_external_to_character(external_payload).build_report()
        assert report.status == "success"

    def test_unsupported_sections_listed(self, external_payload):
        report = map_external_to_character(external_payload).build_report()
        assert {"spells", "subInfo", "attunementsList", "conditions"} <= {n.field for n in report.not_imported}

    def test_native_source_lists_no_unsupported_sections(self, current_character_doc):
        from dnd_companion.decoding import decode_character

        result = ImportResult(
            character=decode_character(current_character_doc),
            mapped_fields=["name"],
            source="native",
        )
        assert result.build_report().not_imported == []

    def test_format(self, external_payload):
        text = map_external_to_character(external_payload).build_report().format()

        assert text.startswith("Character Import Report (external) - Тэрин Быстрая Стрела")
        assert "Status: SUCCESS WITH WARNINGS" in text
        assert "Abilities: STR 12, DEX 18, CON 14, INT 10, WIS 15, CHA 8" in text
        assert "35 ft" in text
        assert "Not Imported (4):" in text
