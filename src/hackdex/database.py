"""SQLite database layer for the local hack catalog.

Manages schema initialization, WAL mode pragmas, hack UPSERTs used by the
import job, and the ``settings`` table that backs durable key-value slots.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS hacks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    file_path TEXT,
    api_id TEXT UNIQUE,
    authors TEXT,
    release_date INTEGER,
    description TEXT,
    images TEXT,
    tags TEXT,
    rating REAL,
    downloads INTEGER,
    difficulty TEXT,
    type TEXT,
    download_url TEXT
);

CREATE INDEX IF NOT EXISTS idx_hacks_name ON hacks(name);
CREATE INDEX IF NOT EXISTS idx_hacks_difficulty ON hacks(difficulty);

-- Durable key-value slots (filters, sort, view mode, last sync)
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""

HACK_COLUMNS = (
    "id, name, file_path, api_id, authors, release_date, description, "
    "images, tags, rating, downloads, difficulty, type, download_url"
)


def _json_text(value: Any) -> str | None:
    """Store lists/dicts as JSON text; strings pass through untouched."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class CatalogDatabase:
    """SQLite database wrapper for the hack catalog.

    Usage:
        with CatalogDatabase("data/hackdex.db") as db:
            inserted = db.upsert_hacks(records)
            count = db.get_hack_count()
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._setup_pragmas()
        self._setup_schema()

    def _setup_pragmas(self) -> None:
        """Configure SQLite pragmas for performance and reliability."""
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA temp_store=MEMORY")

    def _setup_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("PRAGMA user_version = 1")

    # ------------------------------------------------------------------
    # Hacks
    # ------------------------------------------------------------------

    def upsert_hack(self, record: Mapping[str, Any]) -> bool:
        """Insert a hack keyed by ``api_id``, updating it when it already exists.

        Returns:
            True if a new row was inserted, False if an existing row was updated.
        """
        api_id = record.get("api_id")
        existed = False
        if api_id is not None:
            existed = (
                self.conn.execute(
                    "SELECT 1 FROM hacks WHERE api_id = ?", (str(api_id),)
                ).fetchone()
                is not None
            )

        self.conn.execute(
            """INSERT INTO hacks
                   (name, api_id, authors, release_date, description, images,
                    tags, rating, downloads, difficulty, type, download_url)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(api_id) DO UPDATE SET
                   name = excluded.name,
                   authors = excluded.authors,
                   release_date = excluded.release_date,
                   description = excluded.description,
                   images = excluded.images,
                   tags = excluded.tags,
                   rating = excluded.rating,
                   downloads = excluded.downloads,
                   difficulty = excluded.difficulty,
                   type = excluded.type,
                   download_url = excluded.download_url""",
            (
                record["name"],
                None if api_id is None else str(api_id),
                _json_text(record.get("authors")),
                record.get("release_date"),
                record.get("description"),
                _json_text(record.get("images")),
                _json_text(record.get("tags")),
                record.get("rating"),
                record.get("downloads"),
                record.get("difficulty"),
                record.get("type", record.get("hack_type")),
                record.get("download_url"),
            ),
        )
        self.conn.commit()
        return not existed

    def upsert_hacks(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Upsert many hacks, returning the number of newly inserted rows."""
        return sum(1 for record in records if self.upsert_hack(record))

    def get_hack_count(self) -> int:
        """Return the total number of hacks in the catalog."""
        return self.conn.execute("SELECT COUNT(*) FROM hacks").fetchone()[0]

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        row = self.conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return None if row is None else row["value"]

    def set_setting(self, key: str, value: str) -> None:
        self.conn.execute(
            """INSERT INTO settings(key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
            (key, value),
        )
        self.conn.commit()

    def delete_setting(self, key: str) -> None:
        self.conn.execute("DELETE FROM settings WHERE key = ?", (key,))
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> CatalogDatabase:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()
