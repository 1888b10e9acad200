"""Fuzzy search index and literal term pool over catalog rows.

Documents flatten each row's author and tag fields into plain text once,
at build time. The index scores a query against four weighted fields with
rapidfuzz; the term pool backs single-character lookups where fuzzy
matching is meaningless.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from rapidfuzz import fuzz

from hackdex.models import CatalogRow
from hackdex.search.fields import FieldValue, ParsedList, RawText, parse_json_field, parse_text_field


DEFAULT_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("name", 0.5),
    ("authors_text", 0.3),
    ("tags_text", 0.15),
    ("description", 0.05),
)

# Stand-in for an exact match so the weighted product stays informative
EPSILON = 1e-9


@dataclass(frozen=True)
class SearchDocument:
    """A catalog row plus its flattened searchable text."""

    row: CatalogRow
    authors: FieldValue
    tags: FieldValue
    authors_text: str
    tags_text: str
    description: str

    @property
    def name(self) -> str:
        return self.row.name

    def field_text(self, key: str) -> str:
        return self.name if key == "name" else getattr(self, key)

    def author_display(self) -> str:
        """Authors joined for display, e.g. ``"Ladida, Kaizo Mike"``."""
        return self.authors.text(", ")


def build_document(row: CatalogRow) -> SearchDocument:
    authors = parse_json_field(row.authors)
    tags = parse_json_field(row.tags)
    return SearchDocument(
        row=row,
        authors=authors,
        tags=tags,
        authors_text=authors.text(),
        tags_text=tags.text(),
        description=parse_text_field(row.description),
    )


def build_documents(rows: Iterable[CatalogRow]) -> list[SearchDocument]:
    """Derive one SearchDocument per row, preserving row order."""
    return [build_document(row) for row in rows]


@dataclass(frozen=True)
class SearchHit:
    document: SearchDocument
    score: float  # lower is better
    matched_fields: tuple[str, ...]


def field_distance(query: str, text: str) -> float:
    """Edit-distance-like distance in [0, 1] between a casefolded query and text.

    Queries shorter than the text are aligned against its best substring so
    partial terms ("mario") match long names; longer queries are compared
    whole so a long query cannot match a short field by containment.
    """
    if len(query) <= len(text):
        ratio = fuzz.partial_ratio(query, text)
    else:
        ratio = fuzz.ratio(query, text)
    return 1.0 - ratio / 100.0


class SearchIndex:
    """Weighted fuzzy index.

    A field matches when its distance is within ``threshold``. A document's
    score is the product of ``max(distance, EPSILON) ** weight`` over its
    matching fields, so strong matches on heavily weighted fields rank first.
    Documents with no matching field are excluded.
    """

    def __init__(
        self,
        documents: Sequence[SearchDocument],
        threshold: float = 0.4,
        min_query_length: int = 2,
        weights: Sequence[tuple[str, float]] = DEFAULT_WEIGHTS,
    ) -> None:
        total = sum(w for _, w in weights) or 1.0
        self._weights = tuple((key, w / total) for key, w in weights)
        self.threshold = threshold
        self.min_query_length = min_query_length
        self.documents = list(documents)
        self._texts = [
            tuple(doc.field_text(key).casefold() for key, _ in self._weights)
            for doc in self.documents
        ]

    def __len__(self) -> int:
        return len(self.documents)

    def _score(self, query: str, texts: tuple[str, ...]) -> tuple[float, tuple[str, ...]] | None:
        total = 1.0
        matched: list[str] = []
        for (key, weight), text in zip(self._weights, texts):
            if not text:
                continue
            distance = field_distance(query, text)
            if distance <= self.threshold:
                matched.append(key)
                total *= max(distance, EPSILON) ** weight
        if not matched:
            return None
        return total, tuple(matched)

    def search(self, query: str, limit: int | None = None) -> list[SearchHit]:
        """Return hits ordered by ascending score, ties by catalog order.

        Queries shorter than ``min_query_length`` return no hits.
        """
        q = query.strip().casefold()
        if len(q) < self.min_query_length:
            return []

        scored: list[tuple[float, int, SearchHit]] = []
        for position, (doc, texts) in enumerate(zip(self.documents, self._texts)):
            result = self._score(q, texts)
            if result is None:
                continue
            score, matched = result
            scored.append((score, position, SearchHit(doc, score, matched)))

        scored.sort(key=lambda item: (item[0], item[1]))
        hits = [hit for _, _, hit in scored]
        return hits if limit is None else hits[:limit]


class TermPool:
    """Distinct names, authors and tags for literal substring lookup.

    Terms are de-duplicated case-insensitively (first spelling wins) and the
    pool stops growing at ``max_terms``.
    """

    def __init__(self, documents: Iterable[SearchDocument], max_terms: int = 1000) -> None:
        self.max_terms = max_terms
        self.terms: list[str] = []
        self._seen: set[str] = set()
        for doc in documents:
            if self._full():
                break
            self._add(doc.name)
            for value in (doc.authors, doc.tags):
                if isinstance(value, ParsedList):
                    for item in value.items:
                        self._add(item)
                elif isinstance(value, RawText):
                    self._add(value.value)

    def _full(self) -> bool:
        return len(self.terms) >= self.max_terms

    def _add(self, term: str) -> None:
        if self._full() or not term:
            return
        folded = term.casefold()
        if folded not in self._seen:
            self._seen.add(folded)
            self.terms.append(term)

    def __len__(self) -> int:
        return len(self.terms)

    def match(self, query: str, limit: int | None = None) -> list[str]:
        """Terms containing *query* case-insensitively, in pool order."""
        q = query.strip().casefold()
        if not q:
            return []
        matches = [term for term in self.terms if q in term.casefold()]
        return matches if limit is None else matches[:limit]
