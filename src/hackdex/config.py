"""Configuration loading for the discovery pipeline."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/hackdex.json")


@dataclass
class DiscoveryConfig:
    """Tunables for querying, searching, paging and syncing.

    Controls the page size used for browsing, the size of the bulk window
    materialized for search indexing, fuzzy matching strictness, and the
    delays the sync orchestrator applies around completion.
    """

    page_size: int = 50
    bulk_limit: int = 10000
    search_debounce_seconds: float = 0.3
    max_suggestions: int = 5
    min_fuzzy_length: int = 2
    fuzzy_threshold: float = 0.4
    max_terms: int = 1000
    page_window_radius: int = 2
    complete_settle_seconds: float = 0.5
    progress_clear_seconds: float = 2.0
    relative_time_refresh_seconds: float = 60.0
    progress_queue_size: int = 256
    db_path: str = "data/hackdex.db"


def load_config(config_path: Path | None = None) -> DiscoveryConfig:
    """Load configuration from JSON, falling back to defaults.

    Reads ``config/hackdex.json`` when *config_path* is ``None``. Only
    recognised fields are applied; anything else in the file is ignored.

    Args:
        config_path: Optional explicit path to a JSON config file.

    Returns:
        DiscoveryConfig with values from the file merged over defaults.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        logger.info("Loaded config from %s", config_path)

    field_names = {f.name for f in fields(DiscoveryConfig)}
    kwargs = {k: v for k, v in data.items() if k in field_names}
    ignored = sorted(set(data) - field_names)
    if ignored:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(ignored))

    return DiscoveryConfig(**kwargs)
