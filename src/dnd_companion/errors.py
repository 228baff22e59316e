"""
Structured decode errors for the companion data core.

The decoder never renders messages for users. It raises (or logs) these
values and leaves presentation to the storage and import layers.
"""

from __future__ import annotations


class DecodeError(Exception):
    """Base class for every decode failure.

    Attributes:
        field: Name of the field (or collection) the failure is about.
    """

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Cannot decode field '{field}'")


class MissingRequiredField(DecodeError):
    """A required field is absent and has no safe default. Fatal for the record."""

    def __init__(self, field: str) -> None:
        super().__init__(field, f"Missing required field '{field}'")


class MalformedElement(DecodeError):
    """One element of a collection could not be decoded.

    Absorbed for drop-tolerant collections, fatal for fail-fast ones.
    """

    def __init__(self, collection: str, index: int, reason: str = "") -> None:
        self.collection = collection
        self.index = index
        self.reason = reason
        message = f"Malformed element {index} in '{collection}'"
        if reason:
            message += f": {reason}"
        super().__init__(collection, message)


class UnrecoverableBinary(DecodeError):
    """A binary attachment could not be decoded. Never raised to callers."""

    def __init__(self, field: str) -> None:
        super().__init__(field, f"Binary field '{field}' is neither base64 text nor raw bytes")


class InvalidField(DecodeError):
    """Field values were resolved but the model rejected one of them."""

    def __init__(self, field: str, reason: str) -> None:
        self.reason = reason
        super().__init__(field, f"Invalid value for '{field}': {reason}")


__all__ = [
    "DecodeError",
    "MissingRequiredField",
    "MalformedElement",
    "UnrecoverableBinary",
    "InvalidField",
]
