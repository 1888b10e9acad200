"""Reactive wiring of the discovery view.

Data flows one way::

    search text ──debounce──> query ──(first non-blank)──> bulk window enabled
    filters + sort ──> criteria ──┬──> page query ──> page rows, page state
                                  └──> bulk query ──> search index ──> results

Each stage recomputes only when its upstream input changes. Superseded page
and bulk queries are cancelled through ``switch_map`` and, if they still
resolve, discarded by the gateway's request tokens.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable

import reactivex as rx
from reactivex import operators as ops
from reactivex.scheduler.eventloop import AsyncIOScheduler
from reactivex.subject import BehaviorSubject, Subject

from hackdex.config import DiscoveryConfig
from hackdex.gateway import BULK_CHANNEL, PAGE_CHANNEL, BulkWindow, CatalogQueryGateway, PageRequest, QueryResult
from hackdex.models import CatalogRow, PageState, SortSpec
from hackdex.pagination import PageLink, Paginator
from hackdex.rx_pipeline import defer_task
from hackdex.search.autocomplete import AutocompleteEngine, Suggestion
from hackdex.state import FilterSet, FilterState, SortState
from hackdex.telemetry import Telemetry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryCriteria:
    """Everything except pagination that shapes a catalog query."""

    filters: FilterSet
    sort: SortSpec


class DiscoveryPipeline:
    """Paged browsing plus fuzzy search over a lazily loaded bulk window.

    ``start()`` must be called from inside a running event loop; it issues
    the first page query immediately. The bulk window is only requested once
    the user has typed something non-blank.

    Usage::

        pipeline = DiscoveryPipeline(gateway, filter_state, sort_state)
        pipeline.start()
        pipeline.set_search_text("mario")
        ...
        pipeline.dispose()
    """

    def __init__(
        self,
        gateway: CatalogQueryGateway,
        filter_state: FilterState,
        sort_state: SortState,
        engine: AutocompleteEngine | None = None,
        config: DiscoveryConfig | None = None,
        telemetry: Telemetry | None = None,
        default_status: str = "",
        on_update: Callable[[], None] | None = None,
    ) -> None:
        self.config = config if config is not None else DiscoveryConfig()
        self.gateway = gateway
        self.filter_state = filter_state
        self.sort_state = sort_state
        self.telemetry = telemetry if telemetry is not None else Telemetry.noop()
        self.engine = engine if engine is not None else AutocompleteEngine(self.config, self.telemetry)
        self.paginator = Paginator(self.config.page_size, self.config.page_window_radius)
        self.default_status = default_status
        self._on_update = on_update

        self.search_text = ""
        self.query = ""
        self.page_rows: list[CatalogRow] = []
        self.search_results: list[CatalogRow] = []
        self.suggestions: list[Suggestion] = []
        self.bulk_loaded = False

        self._criteria = BehaviorSubject(self._current_criteria())
        self._search_subject: Subject = Subject()
        self._page_subject: Subject = Subject()
        self._refresh_subject: Subject = Subject()
        self._bulk_enabled = BehaviorSubject(False)

        self._subscriptions: list = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        if self.started:
            return
        self._loop = asyncio.get_running_loop()
        scheduler = AsyncIOScheduler(self._loop)

        self._unsubscribers = [
            self.filter_state.subscribe(lambda _: self._on_criteria_changed()),
            self.sort_state.subscribe(lambda _: self._on_criteria_changed()),
        ]

        debounced = self._search_subject.pipe(
            ops.debounce(self.config.search_debounce_seconds, scheduler=scheduler),
            ops.distinct_until_changed(),
        )

        # Criteria changes always restart at page 1; explicit navigation and
        # refreshes keep the requested page.
        page_requests = rx.merge(
            self._criteria.pipe(ops.map(lambda criteria: (criteria, self.paginator.reset()))),
            self._page_subject.pipe(ops.map(lambda page: (self._criteria.value, page))),
            self._refresh_subject.pipe(
                ops.map(lambda _: (self._criteria.value, self.paginator.current_page))
            ),
        )

        bulk_requests = rx.merge(
            self._criteria,
            self._bulk_enabled.pipe(
                ops.distinct_until_changed(),
                ops.map(lambda _: self._criteria.value),
            ),
            self._refresh_subject.pipe(ops.map(lambda _: self._criteria.value)),
        ).pipe(ops.filter(lambda _: self._bulk_enabled.value))

        self._subscriptions = [
            debounced.subscribe(on_next=self._on_query),
            page_requests.pipe(
                ops.switch_map(lambda request: self._query_observable(PAGE_CHANNEL, *request))
            ).subscribe(on_next=self._on_page_result),
            bulk_requests.pipe(
                ops.switch_map(lambda criteria: self._query_observable(BULK_CHANNEL, criteria))
            ).subscribe(on_next=self._on_bulk_result),
        ]
        logger.debug("Discovery pipeline started")

    def dispose(self) -> None:
        """Tear down every subscription; safe to call more than once."""
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def set_search_text(self, text: str) -> None:
        self.search_text = text
        self._search_subject.on_next(text)

    def set_page(self, page: int) -> None:
        self._page_subject.on_next(self.paginator.go_to(page))

    def next_page(self) -> None:
        self.set_page(self.paginator.current_page + 1)

    def previous_page(self) -> None:
        self.set_page(self.paginator.current_page - 1)

    def refresh(self) -> None:
        """Re-run the page query and, if loaded, the bulk query."""
        logger.info("Refreshing discovery results")
        self._refresh_subject.on_next(None)

    async def load_filter_options(self) -> None:
        """Fetch facet values and hand them to the filter state."""
        options = await self.gateway.get_filter_options()
        self.filter_state.apply_options(options)

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    @property
    def searching(self) -> bool:
        return len(self.query) >= self.config.min_fuzzy_length

    @property
    def displayed_rows(self) -> list[CatalogRow]:
        return self.search_results if self.searching else self.page_rows

    @property
    def page_state(self) -> PageState:
        return self.paginator.state

    def page_window(self) -> list[PageLink]:
        return self.paginator.window()

    @property
    def loading(self) -> bool:
        return self.gateway.loading(PAGE_CHANNEL)

    @property
    def search_loading(self) -> bool:
        return self.gateway.loading(BULK_CHANNEL)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _effective_filters(self, filters: FilterSet) -> FilterSet:
        if self.default_status and not filters.status:
            return replace(filters, status=self.default_status)
        return filters

    def _current_criteria(self) -> QueryCriteria:
        return QueryCriteria(
            filters=self._effective_filters(self.filter_state.filters),
            sort=self.sort_state.spec,
        )

    def _on_criteria_changed(self) -> None:
        criteria = self._current_criteria()
        if criteria != self._criteria.value:
            self._criteria.on_next(criteria)

    def _query_observable(self, channel: str, criteria: QueryCriteria, page: int = 1):
        if channel == BULK_CHANNEL:
            pagination = BulkWindow(limit=self.config.bulk_limit)
        else:
            pagination = PageRequest(page=page, page_size=self.config.page_size)
        return defer_task(
            lambda: self.gateway.query(pagination, criteria.sort, criteria.filters, channel=channel),
            loop=self._loop,
        ).pipe(ops.catch(lambda err, source: self._handle_query_error(err, channel)))

    def _handle_query_error(self, error: Exception, channel: str):
        logger.error("Discovery %s query errored: %r", channel, error)
        return rx.empty()

    def _on_page_result(self, result: QueryResult) -> None:
        if result.stale:
            return
        self.page_rows = result.rows
        self.paginator.update(len(result.rows))
        self._emit_update()

    def _on_bulk_result(self, result: QueryResult) -> None:
        if result.stale:
            return
        self.bulk_loaded = True
        self.engine.set_rows(result.rows)
        self._recompute_search()

    def _on_query(self, text: str) -> None:
        self.query = text.strip()
        if self.query and not self._bulk_enabled.value:
            logger.info("Enabling bulk search window")
            self._bulk_enabled.on_next(True)
        self._recompute_search()

    def _recompute_search(self) -> None:
        self.suggestions = self.engine.suggest(self.query)
        self.search_results = self.engine.filter_rows(self.query) if self.searching else []
        self._emit_update()

    def _emit_update(self) -> None:
        if self._on_update is not None:
            self._on_update()
