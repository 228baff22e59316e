"""Tolerant decoders: every supported on-disk shape in, current records out."""

from .binary import decode_binary, decode_binary_field
from .character import decode_character, decode_character_json, encode_character
from .compendium import (
    decode_background,
    decode_backgrounds,
    decode_class_table,
    decode_class_tables,
    decode_feat,
    decode_feats,
    decode_magic_item,
    decode_magic_items,
)
from .entities import decode_note, decode_quote, decode_quotes_data, decode_relationship, decode_spell
from .monster import decode_monster
from .richtext import flatten_rich_text, unwrap_text_value
from .rules import CollectionPolicy, FieldSpec, MigrationRule

__all__ = [
    "decode_binary",
    "decode_binary_field",
    "decode_character",
    "decode_character_json",
    "encode_character",
    "decode_note",
    "decode_quote",
    "decode_quotes_data",
    "decode_relationship",
    "decode_spell",
    "decode_monster",
    "decode_magic_item",
    "decode_magic_items",
    "decode_feat",
    "decode_feats",
    "decode_background",
    "decode_backgrounds",
    "decode_class_table",
    "decode_class_tables",
    "flatten_rich_text",
    "unwrap_text_value",
    "CollectionPolicy",
    "FieldSpec",
    "MigrationRule",
]
