"""Data models and enums for the hackdex discovery pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class SortKey(str, Enum):
    """Column the catalog is ordered by."""

    NAME = "name"
    DATE = "date"
    RATING = "rating"
    DOWNLOADS = "downloads"


class SortDirection(str, Enum):
    """Ordering direction for a SortKey."""

    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> SortDirection:
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class ViewMode(str, Enum):
    """How a result list is laid out."""

    CARDS = "cards"
    LIST = "list"


@dataclass(frozen=True)
class SortSpec:
    """Active sort key and direction for one view."""

    key: SortKey = SortKey.NAME
    direction: SortDirection = SortDirection.ASC


@dataclass(slots=True)
class CatalogRow:
    """A hack record as returned by the catalog query command.

    ``authors``, ``tags`` and ``description`` hold the raw stored text. The
    first two are JSON arrays in well-formed rows (``[{"name": ...}]`` or
    ``["..."]``) but may be arbitrary strings; they are only interpreted when
    the search index is built.
    """

    id: int
    name: str
    authors: str | None = None
    tags: str | None = None
    description: str | None = None
    api_id: str | None = None
    release_date: int | None = None
    rating: float | None = None
    downloads: int | None = None
    difficulty: str | None = None
    hack_type: str | None = None
    download_url: str | None = None
    file_path: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CatalogRow:
        """Build a row from a backend mapping (``type`` maps to ``hack_type``)."""
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            authors=data.get("authors"),
            tags=data.get("tags"),
            description=data.get("description"),
            api_id=data.get("api_id"),
            release_date=data.get("release_date"),
            rating=data.get("rating"),
            downloads=data.get("downloads"),
            difficulty=data.get("difficulty"),
            hack_type=data.get("hack_type", data.get("type")),
            download_url=data.get("download_url"),
            file_path=data.get("file_path"),
        )


@dataclass
class FilterOptions:
    """Facet values available in the catalog."""

    difficulties: list[str] = field(default_factory=list)
    hack_types: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> FilterOptions:
        return cls(
            difficulties=list(data.get("difficulties") or []),
            hack_types=list(data.get("hack_types") or data.get("hackTypes") or []),
        )


@dataclass(frozen=True)
class PageState:
    """Navigation affordances derived from the latest page result size."""

    current_page: int
    has_more_pages: bool
    is_last_page: bool
    estimated_last_page: int
