"""Interpretation of semi-structured catalog row fields.

``authors`` and ``tags`` are stored as JSON text: usually an array of
``{"name": ...}`` objects or of plain strings, but sometimes a bare string
that is not JSON at all. Each field is resolved exactly once, when a
search document is built, into one of three shapes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class ParsedList:
    """A JSON array, flattened to its non-empty display strings."""

    items: tuple[str, ...]

    def text(self, sep: str = " ") -> str:
        return sep.join(self.items)


@dataclass(frozen=True)
class RawText:
    """A value that was not a JSON array; used verbatim."""

    value: str

    def text(self, sep: str = " ") -> str:
        return self.value


@dataclass(frozen=True)
class EmptyField:
    """Missing, blank, or JSON that carries nothing searchable."""

    def text(self, sep: str = " ") -> str:
        return ""


FieldValue = Union[ParsedList, RawText, EmptyField]

EMPTY = EmptyField()


def _item_text(item: Any) -> str:
    if isinstance(item, dict):
        name = item.get("name")
        return str(name) if name else ""
    if item is None or item is False:
        return ""
    return str(item)


def parse_json_field(raw: Any) -> FieldValue:
    """Resolve a stored field into ParsedList, RawText or EmptyField.

    >>> parse_json_field('[{"name": "Ladida"}, {"name": "Kaizo Mike"}]')
    ParsedList(items=('Ladida', 'Kaizo Mike'))
    >>> parse_json_field("Ladida")
    RawText(value='Ladida')
    """
    if raw is None:
        return EMPTY
    if isinstance(raw, list):
        data: Any = raw
    elif isinstance(raw, str):
        if not raw.strip():
            return EMPTY
        try:
            data = json.loads(raw)
        except ValueError:
            return RawText(raw)
    else:
        return RawText(str(raw))

    if isinstance(data, list):
        items = tuple(text for text in (_item_text(item) for item in data) if text)
        return ParsedList(items) if items else EMPTY
    if isinstance(data, str) and data.strip():
        return RawText(data)
    return EMPTY


def parse_text_field(raw: Any) -> str:
    """Plain-text field (description). JSON string literals are unwrapped."""
    if raw is None:
        return ""
    text = str(raw)
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, str):
        return data
    if isinstance(data, list):
        return parse_json_field(data).text() or text
    return text
