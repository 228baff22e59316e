"""
Storage layer for the companion.
Handles persistence of characters, notes and relationships to JSON files.

Layout under ``data_dir``::

    characters/<id>.json   one document per character
    notes.json             list of notes
    relationships.json     list of relationships
    settings.json          {"selectedCharacterId": ...}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from .config import CompanionConfig
from .decoding.character import decode_character, decode_character_json, encode_character
from .decoding.entities import decode_note, decode_relationship
from .decoding.rules import CollectionPolicy, decode_collection
from .errors import DecodeError
from .export import EXPORT_FORMAT_VERSION, CharacterExport, build_export
from .importers.base import ImportResult
from .importers.external import is_external_document, map_external_to_character, parse_external_document
from .importers.external.reader import read_character_file
from .models import Character, Note, Relationship, Spell, new_id

logger = logging.getLogger("dnd-companion.storage")


class StorageError(Exception):
    """Raised when a stored record cannot be found or written."""


@dataclass(frozen=True)
class LoadFailure:
    """A character file that could not be decoded."""
    path: Path
    error: str


class CompanionStorage:
    """Handles storage and retrieval of companion data."""

    def __init__(self, data_dir: str | Path = "dnd_data", export_format_version: str = EXPORT_FORMAT_VERSION):
        self.data_dir = Path(data_dir)
        self.export_format_version = export_format_version
        logger.debug(f"📂 Initializing CompanionStorage with data_dir: {self.data_dir.resolve()}")
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.characters_dir.mkdir(exist_ok=True)

    @classmethod
    def from_config(cls, config: CompanionConfig) -> CompanionStorage:
        """Open the store at the configured directory with the configured export version."""
        return cls(data_dir=config.storage_dir, export_format_version=config.export_format_version)

    @property
    def characters_dir(self) -> Path:
        return self.data_dir / "characters"

    @property
    def notes_file(self) -> Path:
        return self.data_dir / "notes.json"

    @property
    def relationships_file(self) -> Path:
        return self.data_dir / "relationships.json"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    def _character_file(self, character_id: str) -> Path:
        if not character_id or "/" in character_id or "\\" in character_id or character_id.startswith("."):
            raise StorageError(f"Invalid character id: {character_id!r}")
        return self.characters_dir / f"{character_id}.json"

    def _atomic_write(self, file_path: Path, data: dict | list) -> None:
        """Write data to file atomically (write to temp, then rename).

        Args:
            file_path: Path to the file to write
            data: Data to write (will be JSON serialized)
        """
        temp_file = file_path.with_suffix('.tmp')
        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            temp_file.replace(file_path)
            logger.debug(f"✅ Atomic write to {file_path.name} successful")
        except Exception as e:
            if temp_file.exists():
                temp_file.unlink()
            logger.error(f"❌ Error during atomic write to {file_path.name}: {e}")
            raise

    def _read_json(self, file_path: Path) -> Any:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)

    # Characters
    def save_character(self, character: Character, touch: bool = True) -> None:
        """Write a character in the current shape, bumping ``dateModified`` unless told not to."""
        if touch:
            character.touch()
        self._atomic_write(self._character_file(character.id), encode_character(character))
        logger.info(f"💾 Saved character '{character.name}' ({character.id})")

    def load_character(self, character_id: str) -> Character:
        """Load one character.

        Raises:
            StorageError: No file exists for the id.
            DecodeError: The file exists but cannot be decoded.
        """
        file_path = self._character_file(character_id)
        if not file_path.exists():
            raise StorageError(f"Character '{character_id}' not found")
        return decode_character_json(file_path.read_bytes())

    def load_characters(self) -> tuple[list[Character], list[LoadFailure]]:
        """Load every stored character, skipping files that fail to decode.

        Returns:
            (characters sorted by name, failures). One corrupt file never
            prevents the others from loading.
        """
        characters: list[Character] = []
        failures: list[LoadFailure] = []
        for file_path in sorted(self.characters_dir.glob("*.json")):
            try:
                characters.append(decode_character_json(file_path.read_bytes()))
            except (DecodeError, OSError) as e:
                logger.error(f"❌ Skipping unreadable character file {file_path.name}: {e}")
                failures.append(LoadFailure(path=file_path, error=str(e)))
        characters.sort(key=lambda c: c.name.lower())
        logger.info(f"✅ Loaded {len(characters)} characters ({len(failures)} failed)")
        return characters, failures

    def list_character_ids(self) -> list[str]:
        return sorted(p.stem for p in self.characters_dir.glob("*.json"))

    def delete_character(self, character_id: str) -> None:
        file_path = self._character_file(character_id)
        if not file_path.exists():
            raise StorageError(f"Character '{character_id}' not found")
        file_path.unlink()
        if self.get_selected_character_id() == character_id:
            self.select_character(None)
        logger.info(f"🗑️ Deleted character {character_id}")

    # Selection
    def _load_settings(self) -> dict:
        if not self.settings_file.exists():
            return {}
        try:
            settings = self._read_json(self.settings_file)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.error(f"❌ Error loading settings: {e}")
            return {}
        return settings if isinstance(settings, dict) else {}

    def get_selected_character_id(self) -> str | None:
        selected = self._load_settings().get("selectedCharacterId")
        return selected if isinstance(selected, str) else None

    def select_character(self, character_id: str | None) -> None:
        settings = self._load_settings()
        settings["selectedCharacterId"] = character_id
        self._atomic_write(self.settings_file, settings)

    def get_selected_character(self) -> Character | None:
        """The selected character, or None when nothing (or a missing file) is selected."""
        character_id = self.get_selected_character_id()
        if character_id is None:
            return None
        try:
            return self.load_character(character_id)
        except StorageError:
            logger.warning(f"⚠️ Selected character {character_id} no longer exists")
            return None

    # Notes and relationships
    def _load_list(self, file_path: Path, name: str, decode: Any) -> list:
        if not file_path.exists():
            return []
        try:
            raw = self._read_json(file_path)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.error(f"❌ Error loading {name}: {e}")
            return []
        if not isinstance(raw, list):
            logger.error(f"❌ {file_path.name} does not hold a list")
            return []
        return decode_collection(name, raw, decode, CollectionPolicy.DROP_TOLERANT)

    def _save_list(self, file_path: Path, records: Iterable[BaseModel]) -> None:
        self._atomic_write(file_path, [r.model_dump(mode="json", by_alias=True) for r in records])

    def load_notes(self) -> list[Note]:
        return self._load_list(self.notes_file, "notes", decode_note)

    def save_notes(self, notes: Iterable[Note]) -> None:
        self._save_list(self.notes_file, notes)

    def load_relationships(self) -> list[Relationship]:
        return self._load_list(self.relationships_file, "relationships", decode_relationship)

    def save_relationships(self, relationships: Iterable[Relationship]) -> None:
        self._save_list(self.relationships_file, relationships)

    # Import / export
    def import_character_file(self, file_path: str | Path, player_name: str | None = None) -> ImportResult:
        """Import a character file written by this library or by the sheet builder.

        The imported character always gets a fresh id and fresh dates so it
        never collides with the record it was exported from. It is saved
        before returning.

        Raises:
            ImportError: The file cannot be read or is a malformed builder export.
            DecodeError: A native file fails to decode.
        """
        doc = read_character_file(file_path)

        if is_external_document(doc):
            result = map_external_to_character(parse_external_document(doc), player_name=player_name)
        else:
            decoded = decode_character(doc)
            now = datetime.now()
            update: dict[str, Any] = {"id": new_id(), "date_created": now, "date_modified": now}
            if player_name:
                update["player_name"] = player_name
            result = ImportResult(
                character=decoded.model_copy(update=update),
                mapped_fields=list(Character.model_fields),
                source="native",
            )

        self.save_character(result.character, touch=False)
        logger.info(f"📥 Imported '{result.character.name}' from {Path(file_path).name} ({result.source})")
        return result

    def export_character(self, character_id: str, favorite_spells: Iterable[Spell] = ()) -> CharacterExport:
        """Bundle a stored character with all stored notes and relationships."""
        return build_export(
            self.load_character(character_id),
            relationships=self.load_relationships(),
            notes=self.load_notes(),
            favorite_spells=favorite_spells,
            version=self.export_format_version,
        )
