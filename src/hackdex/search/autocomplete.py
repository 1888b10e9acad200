"""Autocomplete engine and keyboard-driven suggestion controller.

The engine caches documents, the fuzzy index and the term pool for one row
set and only rebuilds them when that row set changes. Typing never triggers
a rebuild; it only queries the cached structures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from hackdex.config import DiscoveryConfig
from hackdex.models import CatalogRow
from hackdex.search.index import SearchDocument, SearchIndex, TermPool, build_documents
from hackdex.telemetry import Telemetry

logger = logging.getLogger(__name__)

HACK_SUGGESTION = "hack"
TERM_SUGGESTION = "term"


@dataclass(frozen=True)
class Suggestion:
    """One entry of the suggestion list.

    ``text`` is what replaces the search input when the entry is selected:
    the hack's name for fuzzy hits, the term itself for term-pool hits.
    """

    text: str
    kind: str
    score: float | None = None
    detail: str = ""
    row: CatalogRow | None = None


def row_fingerprint(rows: Sequence[CatalogRow]) -> tuple:
    """Identity of a row set as far as the search structures are concerned."""
    return tuple((r.id, r.name, r.authors, r.tags, r.description) for r in rows)


class AutocompleteEngine:
    """Ranked fuzzy suggestions with a literal term fallback.

    Usage::

        engine = AutocompleteEngine(config)
        engine.set_rows(bulk_rows)         # rebuilds only if rows changed
        engine.suggest("mario")            # fuzzy, ranked
        engine.suggest("m")                # term pool
    """

    def __init__(self, config: DiscoveryConfig | None = None, telemetry: Telemetry | None = None) -> None:
        self.config = config if config is not None else DiscoveryConfig()
        self._telemetry = telemetry if telemetry is not None else Telemetry.noop()
        self._fingerprint: tuple | None = None
        self.documents: list[SearchDocument] = []
        self.index = SearchIndex([], self.config.fuzzy_threshold, self.config.min_fuzzy_length)
        self.term_pool = TermPool([], self.config.max_terms)
        self.rebuild_count = 0

    def set_rows(self, rows: Sequence[CatalogRow]) -> bool:
        """Point the engine at *rows*.

        Returns:
            True if the search structures were rebuilt, False if the row
            set was unchanged and the cached structures were kept.
        """
        fingerprint = row_fingerprint(rows)
        if fingerprint == self._fingerprint:
            return False

        with self._telemetry.span("search.rebuild") as span:
            self.documents = build_documents(rows)
            self.index = SearchIndex(
                self.documents,
                threshold=self.config.fuzzy_threshold,
                min_query_length=self.config.min_fuzzy_length,
            )
            self.term_pool = TermPool(self.documents, max_terms=self.config.max_terms)
            self._fingerprint = fingerprint
            self.rebuild_count += 1
            span.set_attribute("search.documents", len(self.documents))
            span.set_attribute("search.terms", len(self.term_pool))
        logger.debug(
            "Search index rebuilt documents=%d terms=%d", len(self.documents), len(self.term_pool)
        )
        return True

    def _term_suggestions(self, query: str) -> list[Suggestion]:
        return [
            Suggestion(text=term, kind=TERM_SUGGESTION)
            for term in self.term_pool.match(query, self.config.max_suggestions)
        ]

    def suggest(self, query: str) -> list[Suggestion]:
        """Suggestions for the current search text.

        Empty input yields nothing. Input shorter than the fuzzy minimum is
        answered from the term pool only. Longer input is answered with
        ranked fuzzy hits, falling back to the term pool when there are none.
        """
        q = query.strip()
        if not q:
            return []
        if len(q) < self.config.min_fuzzy_length:
            return self._term_suggestions(q)

        hits = self.index.search(q, limit=self.config.max_suggestions)
        if not hits:
            return self._term_suggestions(q)
        return [
            Suggestion(
                text=hit.document.name,
                kind=HACK_SUGGESTION,
                score=hit.score,
                detail=hit.document.author_display(),
                row=hit.document.row,
            )
            for hit in hits
        ]

    def filter_rows(self, query: str) -> list[CatalogRow]:
        """All rows ranked by fuzzy match, used as the search result list."""
        return [hit.document.row for hit in self.index.search(query)]


class AutocompleteController:
    """Suggestion list state for a search box.

    Highlight moves within ``[-1, len(suggestions) - 1]``; ``-1`` means
    nothing is highlighted. Selecting a suggestion replaces the search text
    and closes the list.
    """

    def __init__(
        self,
        engine: AutocompleteEngine,
        on_text_change: Callable[[str], None] | None = None,
    ) -> None:
        self.engine = engine
        self._on_text_change = on_text_change
        self.text = ""
        self.is_open = False
        self.highlighted = -1
        self.suggestions: list[Suggestion] = []

    @property
    def visible(self) -> bool:
        return self.is_open and bool(self.suggestions)

    def refresh(self) -> None:
        """Recompute suggestions, e.g. after the engine's rows changed."""
        self.suggestions = self.engine.suggest(self.text)
        if self.highlighted >= len(self.suggestions):
            self.highlighted = len(self.suggestions) - 1

    def _set_text(self, text: str) -> None:
        self.text = text
        self.refresh()
        if self._on_text_change is not None:
            self._on_text_change(text)

    def on_input(self, text: str) -> None:
        self.is_open = True
        self.highlighted = -1
        self._set_text(text)

    def on_focus(self) -> None:
        self.is_open = True

    def on_key(self, key: str) -> bool:
        """Handle a navigation key; returns True if the key was consumed."""
        if key == "down":
            self.is_open = True
            if self.highlighted < len(self.suggestions) - 1:
                self.highlighted += 1
            return True
        if key == "up":
            self.highlighted = self.highlighted - 1 if self.highlighted > 0 else -1
            return True
        if key == "enter":
            if 0 <= self.highlighted < len(self.suggestions):
                self.select(self.highlighted)
                return True
            return False
        if key == "escape":
            self.close()
            return True
        return False

    def select(self, index: int) -> Suggestion:
        suggestion = self.suggestions[index]
        self.is_open = False
        self.highlighted = -1
        self._set_text(suggestion.text)
        return suggestion

    def close(self) -> None:
        self.is_open = False
        self.highlighted = -1

    def on_click_outside(self) -> None:
        self.close()

    def clear(self) -> None:
        """Empty the search box (the clear button)."""
        self.highlighted = -1
        self._set_text("")
