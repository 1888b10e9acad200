"""Catalog query service backed by the local SQLite cache.

Implements the catalog query command and filter-option lookup consumed by
``CatalogQueryGateway``. All reads go through aiosqlite so queries never
block the event loop.
"""

from __future__ import annotations

import logging
from typing import Any

import aiosqlite

from hackdex.database import HACK_COLUMNS
from hackdex.exceptions import CatalogQueryError
from hackdex.gateway import Facets, QueryParams
from hackdex.models import SortDirection, SortKey

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = {
    SortKey.NAME: "name",
    SortKey.DATE: "release_date",
    SortKey.RATING: "rating",
    SortKey.DOWNLOADS: "downloads",
}
_NULLS_LAST = {SortKey.RATING, SortKey.DOWNLOADS}

# "type" holds a comma-separated list such as "Standard, Kaizo"
_TYPE_MATCH_SQL = "(type = ? OR type LIKE ? OR type LIKE ? OR type LIKE ?)"


def _type_params(hack_type: str) -> list[str]:
    return [hack_type, f"{hack_type}, %", f"%, {hack_type}, %", f"%, {hack_type}"]


def build_where(facets: Facets) -> tuple[str, list[Any]]:
    """Build the WHERE clause and bind params for a facet set.

    Difficulties are OR-ed (a hack matches any selected difficulty); hack
    types are AND-ed (every selected type must be present).
    """
    conditions: list[str] = []
    params: list[Any] = []

    if facets.status == "patched":
        conditions.append("file_path IS NOT NULL")
    elif facets.status == "unpatched":
        conditions.append("file_path IS NULL")

    if facets.difficulties:
        placeholders = " OR ".join("difficulty = ?" for _ in facets.difficulties)
        conditions.append(f"({placeholders})")
        params.extend(facets.difficulties)
    elif facets.difficulty:
        conditions.append("difficulty = ?")
        params.append(facets.difficulty)

    hack_types = facets.hack_types or ([facets.hack_type] if facets.hack_type else [])
    if hack_types:
        conditions.append("(" + " AND ".join(_TYPE_MATCH_SQL for _ in hack_types) + ")")
        for hack_type in hack_types:
            params.extend(_type_params(hack_type))

    if facets.author:
        # Compact and json.dumps-style separators both occur in stored rows
        conditions.append("(authors LIKE ? OR authors LIKE ?)")
        params.extend([f'%"name":"{facets.author}"%', f'%"name": "{facets.author}"%'])

    if facets.min_rating is not None:
        conditions.append("rating >= ?")
        params.append(facets.min_rating)

    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


def build_order_by(key: SortKey, direction: SortDirection) -> str:
    column = _ORDER_COLUMNS[key]
    suffix = " NULLS LAST" if key in _NULLS_LAST else ""
    return f"ORDER BY {column} {direction.value.upper()}{suffix}, id ASC"


class CatalogService:
    """Async catalog reader over the ``hacks`` table.

    Usage::

        async with CatalogService("data/hackdex.db") as svc:
            rows = await svc.query_catalog(params)
            options = await svc.get_filter_options()
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> CatalogService:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Not connected -- use 'async with' or call connect()")
        return self._db

    async def query_catalog(self, params: QueryParams) -> list[dict[str, Any]]:
        """Return one window of hacks matching *params*."""
        db = self._ensure_connected()
        where, bind = build_where(params.facets)
        order_by = build_order_by(params.sort.key, params.sort.direction)
        sql = f"SELECT {HACK_COLUMNS} FROM hacks {where} {order_by} LIMIT ? OFFSET ?"
        try:
            cursor = await db.execute(sql, (*bind, params.limit, params.offset))
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise CatalogQueryError(f"catalog query failed: {exc}") from exc
        logger.debug("query_catalog returned %d rows (offset=%d)", len(rows), params.offset)
        return [dict(row) for row in rows]

    async def get_filter_options(self) -> dict[str, list[str]]:
        """Return distinct difficulties and the individual hack types.

        Hack types are split out of the comma-separated ``type`` column,
        trimmed, de-duplicated and sorted.
        """
        try:
            return await self._filter_options()
        except aiosqlite.Error as exc:
            raise CatalogQueryError(f"filter options failed: {exc}") from exc

    async def _filter_options(self) -> dict[str, list[str]]:
        db = self._ensure_connected()
        cursor = await db.execute(
            "SELECT DISTINCT difficulty FROM hacks "
            "WHERE difficulty IS NOT NULL AND difficulty != '' ORDER BY difficulty"
        )
        difficulties = [row[0] for row in await cursor.fetchall()]

        cursor = await db.execute("SELECT type FROM hacks WHERE type IS NOT NULL AND type != ''")
        hack_types: set[str] = set()
        for row in await cursor.fetchall():
            for part in row[0].split(","):
                part = part.strip()
                if part:
                    hack_types.add(part)

        return {"difficulties": difficulties, "hack_types": sorted(hack_types)}
