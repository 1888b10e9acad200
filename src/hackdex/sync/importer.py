"""Reference sync job: import hack records from a JSON feed file.

The feed is either a JSON array of hack records or an object with a
``pages`` array of such arrays. Records follow the catalog's field names
(``id`` is the upstream identifier and becomes ``api_id``). Progress is
reported the same way a remote fetch would: one ``fetching`` payload per
page, ``processing`` payloads while records are written, and a final
``complete`` payload.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable

from hackdex.database import CatalogDatabase
from hackdex.exceptions import SyncTriggerError
from hackdex.sync.events import SyncProgress, SyncStage

logger = logging.getLogger(__name__)

PROCESS_REPORT_EVERY = 10


def _paginate(records: list[Any], page_size: int) -> list[list[Any]]:
    return [records[i : i + page_size] for i in range(0, len(records), page_size)] or [[]]


def load_feed(feed_path: Path, page_size: int = 50) -> list[list[dict[str, Any]]]:
    """Read *feed_path* into a list of pages.

    Raises:
        SyncTriggerError: If the file is missing, not JSON, or has the wrong shape.
    """
    try:
        with open(feed_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        raise SyncTriggerError(f"Cannot read feed {feed_path}: {exc}") from exc

    if isinstance(data, dict) and isinstance(data.get("pages"), list):
        pages = data["pages"]
    elif isinstance(data, list):
        pages = _paginate(data, page_size)
    else:
        raise SyncTriggerError(f"Feed {feed_path} is neither a list nor an object with 'pages'")

    for page in pages:
        if not isinstance(page, list) or not all(isinstance(r, dict) for r in page):
            raise SyncTriggerError(f"Feed {feed_path} contains a malformed page")
    return pages or [[]]


def to_catalog_record(raw: dict[str, Any]) -> dict[str, Any]:
    """Map a feed record onto the catalog's UPSERT fields."""
    record = dict(raw)
    if "api_id" not in record and "id" in record:
        record["api_id"] = record.pop("id")
    if not record.get("name"):
        record["name"] = f"Hack {record.get('api_id', '?')}"
    return record


class CatalogImportJob:
    """Sync job that upserts a feed file into the local catalog.

    Usage::

        job = CatalogImportJob(db, Path("feed.json"))
        await SyncOrchestrator(job, store).trigger()
    """

    def __init__(self, db: CatalogDatabase, feed_path: Path, page_size: int = 50) -> None:
        self.db = db
        self.feed_path = Path(feed_path)
        self.page_size = page_size
        self.inserted = 0

    async def run(self, emit: Callable[[Any], None]) -> None:
        def report(stage: SyncStage, message: str, progress: int, total: int) -> None:
            emit(SyncProgress(stage=stage, message=message, progress=progress, total=total))

        report(SyncStage.FETCHING, "Fetching page 1...", 0, 0)
        pages = load_feed(self.feed_path, self.page_size)
        page_count = len(pages)
        report(SyncStage.FETCHING, f"Found {page_count} pages. Fetching...", 1, page_count)

        records: list[dict[str, Any]] = list(pages[0])
        for number, page in enumerate(pages[1:], start=2):
            await asyncio.sleep(0)
            report(SyncStage.FETCHING, f"Fetching page {number}/{page_count}...", number, page_count)
            records.extend(page)

        total = len(records)
        report(SyncStage.PROCESSING, f"Processing {total} hacks...", 0, total)
        self.inserted = 0
        for processed, raw in enumerate(records, start=1):
            try:
                inserted = self.db.upsert_hack(to_catalog_record(raw))
            except sqlite3.Error as exc:
                raise SyncTriggerError(
                    f"Failed to store hack {raw.get('name') or raw.get('id')!r}: {exc}"
                ) from exc
            self.inserted += int(inserted)
            if processed % PROCESS_REPORT_EVERY == 0 or processed == total:
                report(SyncStage.PROCESSING, f"Processing hack {processed}/{total}...", processed, total)
                await asyncio.sleep(0)

        logger.info("Imported %d records (%d new) from %s", total, self.inserted, self.feed_path)
        report(SyncStage.COMPLETE, f"Synced {self.inserted} new hacks!", total, total)
