"""
Migration rule machinery shared by every tolerant decoder.

A field's fallback chain is data: an ordered tuple of MigrationRule objects.
Each rule looks up a path in the raw document, checks the value's shape with
a guard and converts it with a transform. The first rule that both matches
and transforms cleanly supplies the value. A transform that raises
TypeError or ValueError is treated as a shape mismatch and the chain moves on.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, TypeVar

from ..errors import DecodeError, MalformedElement, MissingRequiredField
from ..models import ENUM_LABELS, new_id

logger = logging.getLogger("dnd-companion.decoding")

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


class _Missing:
    """Sentinel for "key not present", distinct from an explicit null."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def lookup(node: Any, path: Sequence[str]) -> Any:
    """Walk ``path`` through nested mappings; MISSING if any step is absent."""
    for key in path:
        if not isinstance(node, Mapping) or key not in node:
            return MISSING
        node = node[key]
    return node


def _identity(value: Any) -> Any:
    return value


def _always(value: Any) -> bool:
    return True


@dataclass(frozen=True)
class MigrationRule:
    """One accepted on-disk shape for a field.

    Attributes:
        name: Label used in logs, e.g. ``"legacy string list"``.
        path: Keys to follow from the enclosing document. ``()`` means the
            node itself (used by element decoders).
        guard: Shape predicate on the looked-up value.
        transform: Converts the value to the current representation.
    """
    name: str
    path: tuple[str, ...] = ()
    guard: Callable[[Any], bool] = _always
    transform: Callable[[Any], Any] = _identity

    def value_at(self, node: Any) -> Any:
        return lookup(node, self.path)

    def matches(self, node: Any) -> bool:
        value = self.value_at(node)
        return value is not MISSING and self.guard(value)

    def apply(self, node: Any) -> Any:
        return self.transform(self.value_at(node))


@dataclass(frozen=True)
class FieldSpec:
    """Fallback chain for one record field.

    ``rules[0]`` is the current shape; later rules are legacy shapes in the
    order they should be tried. ``default`` is a zero-argument factory; None
    marks the field as required.
    """
    name: str
    rules: tuple[MigrationRule, ...]
    default: Callable[[], Any] | None = None

    @property
    def required(self) -> bool:
        return self.default is None


def apply_rules(node: Any, rules: Iterable[MigrationRule], label: str) -> Any:
    """Return the value produced by the first applicable rule, or MISSING."""
    present = False
    for position, rule in enumerate(rules):
        value = rule.value_at(node)
        if value is MISSING:
            continue
        present = True
        if not rule.guard(value):
            continue
        try:
            result = rule.transform(value)
        except (TypeError, ValueError) as e:
            logger.debug(f"🔸 '{label}': rule '{rule.name}' rejected value ({e})")
            continue
        if position:
            logger.debug(f"🔁 '{label}': migrated using '{rule.name}'")
        return result
    if present:
        logger.warning(f"⚠️ '{label}' is present but matches no known shape, treating as absent")
    return MISSING


def id_field() -> FieldSpec:
    """The ``id`` field every record shares: string, legacy integer, else a fresh id."""
    return FieldSpec(
        "id",
        (
            MigrationRule("string id", ("id",), lambda v: isinstance(v, str) and bool(v.strip()), str.strip),
            MigrationRule("integer id", ("id",), lambda v: isinstance(v, int) and not isinstance(v, bool), str),
        ),
        default=new_id,
    )


def resolve_field(doc: Mapping[str, Any], spec: FieldSpec) -> Any:
    """Resolve one field: current shape, legacy shapes, default, or fail.

    Raises:
        MissingRequiredField: No rule applied and the field has no default.
    """
    value = apply_rules(doc, spec.rules, spec.name)
    if value is not MISSING:
        return value
    if spec.default is not None:
        return spec.default()
    raise MissingRequiredField(spec.name)


def resolve_fields(doc: Mapping[str, Any], specs: Iterable[FieldSpec]) -> dict[str, Any]:
    """Resolve a whole field table. Stops at the first fatal error."""
    return {spec.name: resolve_field(doc, spec) for spec in specs}


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------

class CollectionPolicy(str, Enum):
    DROP_TOLERANT = "drop_tolerant"
    FAIL_FAST = "fail_fast"


def decode_collection(
    name: str,
    items: Iterable[Any],
    decode_element: Callable[[Any], T],
    policy: CollectionPolicy,
) -> list[T]:
    """Decode each element independently.

    Drop-tolerant collections log and skip a bad element; fail-fast
    collections raise MalformedElement for it.
    """
    result: list[T] = []
    for index, raw in enumerate(items):
        try:
            result.append(decode_element(raw))
        except (DecodeError, TypeError, ValueError) as e:
            error = MalformedElement(name, index, reason=str(e))
            if policy is CollectionPolicy.FAIL_FAST:
                raise error from e
            logger.warning(f"⚠️ Dropping element: {error}")
    return result


def collection_rule(
    name: str,
    path: tuple[str, ...],
    decode_element: Callable[[Any], Any],
    policy: CollectionPolicy,
) -> MigrationRule:
    """Rule for a list-valued field in its current shape."""
    return MigrationRule(
        name=name,
        path=path,
        guard=is_list,
        transform=lambda items: decode_collection(path[-1], items, decode_element, policy),
    )


def decode_element(raw: Any, rules: Iterable[MigrationRule], label: str) -> Any:
    """Run element-level rules against one collection element.

    Raises:
        TypeError: No rule accepts the element's shape.
    """
    value = apply_rules(raw, rules, label)
    if value is MISSING:
        raise TypeError(f"unrecognised {label} shape: {type(raw).__name__}")
    return value


# ---------------------------------------------------------------------------
# Shape guards and coercions
# ---------------------------------------------------------------------------

def is_str(value: Any) -> bool:
    return isinstance(value, str)


def is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def is_list(value: Any) -> bool:
    return isinstance(value, list)


def is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any) -> int:
    """Accept ints, integral floats and strings starting with a number ("30 ft").

    Raises:
        ValueError: The value carries no integer.
    """
    if is_int(value):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    raise ValueError(f"not an integer: {value!r}")


def bounded_int(low: int, high: int | None = None) -> Callable[[Any], int]:
    """parse_int plus a range check."""
    def convert(value: Any) -> int:
        number = parse_int(value)
        if number < low or (high is not None and number > high):
            raise ValueError(f"{number} outside {low}..{high}")
        return number
    return convert


def parse_bool(value: Any) -> bool:
    """Booleans, 0/1 integers and "true"/"false" strings."""
    if isinstance(value, bool):
        return value
    if is_int(value) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise ValueError(f"not a boolean: {value!r}")


def parse_float(value: Any) -> float:
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        return float(value.replace(",", ".").strip())
    raise ValueError(f"not a number: {value!r}")


def optional_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    raise TypeError(f"not a string: {type(value).__name__}")


def coerce_enum(enum_cls: type[E], value: Any, default: E) -> E:
    """Map an enum value, member name or legacy display label; unknown → default."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip()
        for member in enum_cls:
            if key == member.value or key.upper() == member.name:
                return member
        labelled = ENUM_LABELS.get(enum_cls, {}).get(key.lower())
        if labelled is not None:
            return labelled
    logger.debug(f"🔸 Unknown {enum_cls.__name__} value {value!r}, using {default.value}")
    return default


# Swift's default date strategy counts seconds from 2001-01-01 UTC
APPLE_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)


def parse_iso_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"not a date string: {type(value).__name__}")
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))


def parse_reference_date(value: Any) -> datetime:
    """Seconds since the Apple reference date, as written by older builds."""
    if not is_number(value):
        raise TypeError(f"not a timestamp: {type(value).__name__}")
    return APPLE_REFERENCE_DATE + timedelta(seconds=value)


def parse_unix_date(value: Any) -> datetime:
    """Unix epoch seconds, or milliseconds when the number is too large for seconds."""
    if isinstance(value, str):
        value = float(value)
    if not is_number(value):
        raise TypeError(f"not a timestamp: {type(value).__name__}")
    if value > 10**11:
        value = value / 1000
    return datetime.fromtimestamp(value, tz=timezone.utc)


def date_rules(key: str, *legacy_keys: str) -> tuple[MigrationRule, ...]:
    """ISO string first, then Apple reference seconds, then unix time under legacy keys."""
    rules = [
        MigrationRule("iso-8601 string", (key,), is_str, parse_iso_datetime),
        MigrationRule("apple reference seconds", (key,), is_number, parse_reference_date),
    ]
    for legacy in legacy_keys:
        rules.append(MigrationRule(f"iso-8601 under '{legacy}'", (legacy,), is_str, parse_iso_datetime))
        rules.append(MigrationRule(f"unix time under '{legacy}'", (legacy,), is_number, parse_unix_date))
    return tuple(rules)


def split_lines(text: str) -> list[str]:
    """Split a free-text list on newlines, semicolons and commas."""
    parts = re.split(r"[\n;,]", text)
    return [p.strip(" \t-•*") for p in parts if p.strip(" \t-•*")]


__all__ = [
    "MISSING",
    "lookup",
    "MigrationRule",
    "FieldSpec",
    "id_field",
    "apply_rules",
    "resolve_field",
    "resolve_fields",
    "CollectionPolicy",
    "decode_collection",
    "collection_rule",
    "decode_element",
    "is_str",
    "is_nonempty_str",
    "is_int",
    "is_number",
    "is_bool",
    "is_list",
    "is_mapping",
    "is_str_list",
    "parse_int",
    "bounded_int",
    "parse_bool",
    "parse_float",
    "optional_str",
    "coerce_enum",
    "parse_iso_datetime",
    "parse_reference_date",
    "parse_unix_date",
    "date_rules",
    "split_lines",
    "APPLE_REFERENCE_DATE",
]
