"""
Sheet-builder import: envelope unwrapping and payload mapping.
"""

from .mapper import map_external_to_character
from .reader import is_external_document, parse_external_document, read_character_file

__all__ = [
    "is_external_document",
    "map_external_to_character",
    "parse_external_document",
    "read_character_file",
]
