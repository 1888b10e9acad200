"""Shared pytest fixtures for hackdex tests.

Provides an on-disk catalog database seeded with ten sample hacks, the
matching CatalogRow list, an in-memory key-value store, a mock catalog
backend, and a DiscoveryConfig with delays short enough for tests.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from hackdex.config import DiscoveryConfig
from hackdex.database import CatalogDatabase
from hackdex.models import CatalogRow
from hackdex.storage import MemoryStore

SAMPLE_HACKS: list[dict] = [
    {
        "api_id": "1001",
        "name": "Super Mario World Hack",
        "authors": [{"name": "Ladida"}],
        "tags": ["standard", "vanilla"],
        "description": "A classic vanilla-style adventure.",
        "difficulty": "Standard: Easy",
        "type": "Standard",
        "rating": 4.5,
        "downloads": 1200,
        "release_date": 1600000000,
    },
    {
        "api_id": "1002",
        "name": "Kaizo Nightmare",
        "authors": [{"name": "Kaizo Mike"}],
        "tags": ["kaizo", "hard"],
        "description": "Precision jumps everywhere.",
        "difficulty": "Kaizo: Light",
        "type": "Kaizo",
        "rating": 3.8,
        "downloads": 800,
        "release_date": 1610000000,
    },
    {
        "api_id": "1003",
        "name": "Luigi's Quest",
        "authors": [{"name": "Ladida"}, {"name": "PangaeaPanga"}],
        "tags": ["puzzle"],
        "description": "Puzzles and keys.",
        "difficulty": "Standard: Normal",
        "type": "Standard, Puzzle",
        "rating": 4.1,
        "downloads": 500,
        "release_date": 1620000000,
    },
    {
        "api_id": "1004",
        "name": "Yoshi Island Remix",
        "authors": "Sayuri",
        "tags": None,
        "description": None,
        "difficulty": "Standard: Hard",
        "type": "Standard",
        "rating": None,
        "downloads": 50,
        "release_date": 1630000000,
    },
    {
        "api_id": "1005",
        "name": "Pit of Doom",
        "authors": [{"name": "Dram"}],
        "tags": ["pit", "tool-assisted"],
        "description": "Not meant to be beaten by humans.",
        "difficulty": "Pit",
        "type": "Tool-Assisted, Pit",
        "rating": 2.0,
        "downloads": None,
        "release_date": 1640000000,
    },
    {
        "api_id": "1006",
        "name": "Bowser's Fury Redux",
        "authors": [{"name": "Ryrurock"}],
        "tags": ["boss"],
        "description": "Boss rush.",
        "difficulty": "Standard: Very Hard",
        "type": "Standard",
        "rating": 4.9,
        "downloads": 3000,
        "release_date": 1650000000,
    },
    {
        "api_id": "1007",
        "name": "Star Road Rescue",
        "authors": [{"name": "Ladida"}],
        "tags": ["exploration"],
        "description": "Explore the star road.",
        "difficulty": "Standard: Normal",
        "type": "Standard",
        "rating": 3.5,
        "downloads": 700,
        "release_date": 1660000000,
    },
    {
        "api_id": "1008",
        "name": "Cave Story World",
        "authors": [{"name": "Nowieso"}],
        "tags": ["cave"],
        "description": "Underground levels.",
        "difficulty": "Kaizo: Intermediate",
        "type": "Kaizo",
        "rating": 3.0,
        "downloads": 100,
        "release_date": 1670000000,
    },
    {
        "api_id": "1009",
        "name": "Troll Palace",
        "authors": [{"name": "TrollMaster"}],
        "tags": ["troll"],
        "description": "Expect the unexpected.",
        "difficulty": "Misc: Troll",
        "type": "Misc",
        "rating": 1.5,
        "downloads": 20,
        "release_date": 1680000000,
    },
    {
        "api_id": "1010",
        "name": "Donut Plains Deluxe",
        "authors": ["Mr. Plains"],
        "tags": ["donut"],
        "description": "Donut plains, extended.",
        "difficulty": "Standard: Easy",
        "type": "Standard",
        "rating": 4.0,
        "downloads": 900,
        "release_date": 1690000000,
    },
]


def _as_text(value):
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def make_row(index: int, hack: dict) -> CatalogRow:
    """CatalogRow as the catalog service would return it for *hack*."""
    return CatalogRow(
        id=index,
        name=hack["name"],
        authors=_as_text(hack.get("authors")),
        tags=_as_text(hack.get("tags")),
        description=hack.get("description"),
        api_id=hack.get("api_id"),
        release_date=hack.get("release_date"),
        rating=hack.get("rating"),
        downloads=hack.get("downloads"),
        difficulty=hack.get("difficulty"),
        hack_type=hack.get("type"),
    )


def make_rows(count: int, prefix: str = "Hack") -> list[dict]:
    """Plain backend mappings for *count* synthetic hacks."""
    return [
        {"id": i, "name": f"{prefix} {i}", "authors": "[]", "tags": "[]", "description": ""}
        for i in range(1, count + 1)
    ]


@pytest.fixture
def sample_hacks() -> list[dict]:
    return [dict(h) for h in SAMPLE_HACKS]


@pytest.fixture
def sample_rows() -> list[CatalogRow]:
    return [make_row(i, h) for i, h in enumerate(SAMPLE_HACKS, start=1)]


@pytest.fixture
def catalog_db(tmp_path: Path) -> CatalogDatabase:
    """Empty file-based catalog database (file-based for WAL support)."""
    db = CatalogDatabase(tmp_path / "catalog.db")
    yield db
    db.close()


@pytest.fixture
def seeded_db(catalog_db: CatalogDatabase, sample_hacks: list[dict]) -> CatalogDatabase:
    """Catalog database holding the ten sample hacks."""
    catalog_db.upsert_hacks(sample_hacks)
    return catalog_db


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fast_config() -> DiscoveryConfig:
    """Default config with every delay shrunk to a few milliseconds."""
    return DiscoveryConfig(
        search_debounce_seconds=0.01,
        complete_settle_seconds=0.01,
        progress_clear_seconds=0.02,
        relative_time_refresh_seconds=0.01,
    )


@pytest.fixture
def mock_backend() -> AsyncMock:
    """Catalog backend returning nothing until configured per test."""
    backend = AsyncMock()
    backend.query_catalog.return_value = []
    backend.get_filter_options.return_value = {"difficulties": [], "hack_types": []}
    return backend
