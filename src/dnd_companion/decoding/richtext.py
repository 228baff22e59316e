"""
Flatten the builder tool's rich-text trees into plain strings.

A node is ``{"type": ..., "content": [...], "text": ..., "marks": [...],
"attrs": {...}}``. Only ``text`` leaves matter; marks and attrs are dropped.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def _collect(node: Any, parts: list[str]) -> None:
    if isinstance(node, list):
        for child in node:
            _collect(child, parts)
        return
    if not isinstance(node, Mapping):
        return
    text = node.get("text")
    if isinstance(text, str):
        parts.append(text)
    content = node.get("content")
    if isinstance(content, list):
        _collect(content, parts)


def flatten_rich_text(node: Any) -> str:
    """Concatenate every ``text`` leaf of ``node`` in document order.

    Accepts a single node, a content list, or anything else (which yields "").
    """
    parts: list[str] = []
    _collect(node, parts)
    return "".join(parts)


def unwrap_text_value(field: Any) -> str:
    """Flatten a sheet text field: ``{"value": {"data": <doc node>}, "size": N}``.

    Plain strings pass through unchanged; unknown shapes give "".
    """
    if isinstance(field, str):
        return field
    if not isinstance(field, Mapping):
        return ""
    value = field.get("value", field)
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping) and "data" in value:
        value = value["data"]
    return flatten_rich_text(value)


__all__ = ["flatten_rich_text", "unwrap_text_value"]
