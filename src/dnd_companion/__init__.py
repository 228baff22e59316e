"""
D&D Companion core - data model, tolerant decoding, import and storage for a
tabletop character companion.
"""

from .classifier import ResourceCategory, classify
from .decoding import decode_character, encode_character
from .errors import DecodeError, InvalidField, MalformedElement, MissingRequiredField, UnrecoverableBinary
from .models import *
from .storage import CompanionStorage, StorageError

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("dnd-companion-core")
except Exception:
    __version__ = "0.4.0"  # Fallback if metadata unavailable
__all__ = [
    "CompanionStorage",
    "StorageError",
    "ResourceCategory",
    "classify",
    "decode_character",
    "encode_character",
    "DecodeError",
    "InvalidField",
    "MalformedElement",
    "MissingRequiredField",
    "UnrecoverableBinary",
]
