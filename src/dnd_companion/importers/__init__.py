"""
Character import from files written by other tools.

Currently supports:
- Sheet-builder exports (JSON envelope with a stringified ``data`` payload)
"""

from .base import ImportError, ImportReport, ImportResult
from .external import (
    is_external_document,
    map_external_to_character,
    parse_external_document,
    read_character_file,
)

__all__ = [
    "is_external_document",
    "map_external_to_character",
    "parse_external_document",
    "read_character_file",
    "ImportReport",
    "ImportResult",
    "ImportError",
]
