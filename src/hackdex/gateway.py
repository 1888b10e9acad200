"""Catalog query gateway.

Translates ``{filters, sort, pagination}`` into exactly one call to the
external catalog query command and returns typed rows. Each call carries a
request token per channel; a response that arrives after a newer request on
the same channel is marked stale and never replaces the latest result.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Protocol, Union

from hackdex.models import CatalogRow, FilterOptions, SortSpec
from hackdex.state import FilterSet
from hackdex.telemetry import Telemetry

logger = logging.getLogger(__name__)

PAGE_CHANNEL = "page"
BULK_CHANNEL = "bulk"


@dataclass(frozen=True)
class PageRequest:
    """A UI-sized page, 1-based."""

    page: int = 1
    page_size: int = 50

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.page_size


@dataclass(frozen=True)
class BulkWindow:
    """A large window starting at offset 0, used to build the search index."""

    limit: int = 10000

    @property
    def offset(self) -> int:
        return 0


Pagination = Union[PageRequest, BulkWindow]


@dataclass(frozen=True)
class Facets:
    """Normalized facet restrictions; ``None`` means unrestricted."""

    difficulty: str | None = None
    difficulties: list[str] | None = None
    hack_type: str | None = None
    hack_types: list[str] | None = None
    author: str | None = None
    min_rating: float | None = None
    status: str | None = None


@dataclass(frozen=True)
class QueryParams:
    """Arguments of a single catalog query command."""

    limit: int
    offset: int
    sort: SortSpec
    facets: Facets

    def to_dict(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "offset": self.offset,
            "sort_by": self.sort.key.value,
            "sort_direction": self.sort.direction.value,
            **asdict(self.facets),
        }


@dataclass
class QueryResult:
    """Outcome of one gateway call."""

    rows: list[CatalogRow] = field(default_factory=list)
    channel: str = PAGE_CHANNEL
    token: int = 0
    stale: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CatalogBackend(Protocol):
    """External catalog query capability."""

    async def query_catalog(self, params: QueryParams) -> list[Mapping[str, Any]]: ...

    async def get_filter_options(self) -> Mapping[str, Any]: ...


def _optional(value: str) -> str | None:
    value = value.strip() if value else ""
    return value or None


def parse_min_rating(raw: str) -> float | None:
    """Parse the persisted rating string; empty or unparsable means absent."""
    if not raw or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring unparsable min rating %r", raw)
        return None


def normalize_facets(filters: FilterSet) -> Facets:
    """Collapse a FilterSet into backend facet restrictions.

    Multi-select maps become the list of selected keys; an empty selection
    is no restriction, never "exclude everything".
    """
    difficulties = filters.selected_difficulties()
    hack_types = filters.selected_hack_types()
    return Facets(
        difficulty=_optional(filters.difficulty),
        difficulties=difficulties or None,
        hack_type=_optional(filters.hack_type),
        hack_types=hack_types or None,
        author=_optional(filters.author),
        min_rating=parse_min_rating(filters.min_rating),
        status=_optional(filters.status),
    )


def build_params(pagination: Pagination, sort: SortSpec, filters: FilterSet) -> QueryParams:
    return QueryParams(
        limit=pagination.limit,
        offset=pagination.offset,
        sort=sort,
        facets=normalize_facets(filters),
    )


class CatalogQueryGateway:
    """Single entry point from view state to the catalog query command.

    No retries: a failed call is logged and yields an empty result. The
    ``page`` and ``bulk`` channels are independent, so a paginated query and
    a bulk search window may be in flight at the same time.

    Usage::

        gateway = CatalogQueryGateway(service)
        result = await gateway.query(PageRequest(page=2), sort, filters)
        if not result.stale:
            render(result.rows)
    """

    def __init__(self, backend: CatalogBackend, telemetry: Telemetry | None = None) -> None:
        self._backend = backend
        self._telemetry = telemetry if telemetry is not None else Telemetry.noop()
        self._counter = itertools.count(1)
        self._current: dict[str, int] = {}
        self._latest: dict[str, QueryResult] = {}
        self._in_flight: dict[str, int] = {}

    def loading(self, channel: str | None = None) -> bool:
        """True while a call on *channel* (or any channel) is unresolved."""
        if channel is None:
            return any(self._in_flight.values())
        return self._in_flight.get(channel, 0) > 0

    def latest(self, channel: str = PAGE_CHANNEL) -> QueryResult | None:
        """Most recent non-stale result for *channel*."""
        return self._latest.get(channel)

    def is_current(self, channel: str, token: int) -> bool:
        return self._current.get(channel) == token

    async def query(
        self,
        pagination: Pagination,
        sort: SortSpec,
        filters: FilterSet,
        channel: str | None = None,
    ) -> QueryResult:
        """Run one catalog query.

        Args:
            pagination: ``PageRequest`` for a UI page, ``BulkWindow`` for the
                search window.
            sort: Active sort specification.
            filters: Active facet selections (normalized here).
            channel: Staleness channel; defaults to ``bulk`` for a
                ``BulkWindow`` and ``page`` otherwise.

        Returns:
            QueryResult with ``stale=True`` if a newer call on the same
            channel was issued before this one resolved.
        """
        if channel is None:
            channel = BULK_CHANNEL if isinstance(pagination, BulkWindow) else PAGE_CHANNEL
        token = next(self._counter)
        self._current[channel] = token
        params = build_params(pagination, sort, filters)

        self._in_flight[channel] = self._in_flight.get(channel, 0) + 1
        try:
            attributes = {
                "query.channel": channel,
                "query.limit": params.limit,
                "query.offset": params.offset,
            }
            with self._telemetry.span("catalog.query", attributes) as span:
                try:
                    raw_rows = await self._backend.query_catalog(params)
                    result = QueryResult(
                        rows=[CatalogRow.from_mapping(r) for r in raw_rows],
                        channel=channel,
                        token=token,
                    )
                except Exception as exc:
                    span.record_exception(exc)
                    logger.error("Catalog query failed channel=%s: %r", channel, exc)
                    result = QueryResult(channel=channel, token=token, error=str(exc))
                span.set_attribute("query.row_count", len(result.rows))
        finally:
            self._in_flight[channel] -= 1

        if not self.is_current(channel, token):
            result.stale = True
            logger.debug("Discarding stale response channel=%s token=%d", channel, token)
            return result

        self._latest[channel] = result
        self._telemetry.log.info(
            f"catalog query channel={channel} rows={len(result.rows)} ok={result.ok}"
        )
        return result

    async def get_filter_options(self) -> FilterOptions:
        """Fetch available facet values; failures yield empty options."""
        with self._telemetry.span("catalog.filter_options") as span:
            try:
                data = await self._backend.get_filter_options()
            except Exception as exc:
                span.record_exception(exc)
                logger.error("Failed to load filter options: %r", exc)
                return FilterOptions()
            options = FilterOptions.from_mapping(data)
            span.set_attribute("options.difficulties", len(options.difficulties))
            span.set_attribute("options.hack_types", len(options.hack_types))
            return options
