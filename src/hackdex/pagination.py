"""Page bounds inferred from page result sizes.

The catalog backend never reports a total row count. A full page implies
that more rows may exist; anything shorter is the last page. The page-number
window shows an estimated last page only while more pages are known to exist.
"""

from __future__ import annotations

from typing import Union

from hackdex.models import PageState

ELLIPSIS = "..."

PageLink = Union[int, str]

MIN_ESTIMATED_LAST_PAGE = 10
ESTIMATE_LOOKAHEAD = 5


def compute_page_state(current_page: int, result_count: int, page_size: int = 50) -> PageState:
    """Derive navigation affordances from the size of the current page.

    >>> compute_page_state(3, 50)
    PageState(current_page=3, has_more_pages=True, is_last_page=False, estimated_last_page=10)
    >>> compute_page_state(3, 12)
    PageState(current_page=3, has_more_pages=False, is_last_page=True, estimated_last_page=3)
    """
    has_more = result_count == page_size
    estimate = (
        max(current_page + ESTIMATE_LOOKAHEAD, MIN_ESTIMATED_LAST_PAGE) if has_more else current_page
    )
    return PageState(
        current_page=current_page,
        has_more_pages=has_more,
        is_last_page=not has_more and result_count > 0,
        estimated_last_page=estimate,
    )


def page_window(state: PageState, radius: int = 2) -> list[PageLink]:
    """Page numbers to render, with ``"..."`` marking skipped ranges.

    >>> page_window(compute_page_state(7, 50))
    [1, '...', 5, 6, 7, 8, 9, '...', 12]
    >>> page_window(compute_page_state(2, 20))
    [1, 2, 3, 4]
    """
    current = state.current_page
    start = max(1, current - radius)
    end = current + radius
    if state.has_more_pages:
        end = min(end, state.estimated_last_page)

    links: list[PageLink] = []
    if start > 1:
        links.append(1)
        if start > 2:
            links.append(ELLIPSIS)
    links.extend(range(start, end + 1))

    if state.has_more_pages and end < state.estimated_last_page:
        if end < state.estimated_last_page - 1:
            links.append(ELLIPSIS)
        links.append(state.estimated_last_page)
    return links


class Paginator:
    """Current page plus the estimate derived from the last result size.

    Page numbers are 1-based. Navigating past the estimate is allowed; the
    estimate is recomputed from the next result rather than clamped.
    """

    def __init__(self, page_size: int = 50, radius: int = 2) -> None:
        self.page_size = page_size
        self.radius = radius
        self.current_page = 1
        self.state = compute_page_state(1, 0, page_size)

    def update(self, result_count: int) -> PageState:
        self.state = compute_page_state(self.current_page, result_count, self.page_size)
        return self.state

    def go_to(self, page: int) -> int:
        self.current_page = max(1, int(page))
        return self.current_page

    def reset(self) -> int:
        return self.go_to(1)

    def first(self) -> int:
        return self.go_to(1)

    def next(self) -> int:
        return self.go_to(self.current_page + 1)

    def previous(self) -> int:
        return self.go_to(self.current_page - 1)

    def last(self) -> int:
        """Jump to the estimated last page (the current page if none is known)."""
        return self.go_to(self.state.estimated_last_page)

    @property
    def can_go_previous(self) -> bool:
        return self.current_page > 1

    @property
    def can_go_next(self) -> bool:
        return self.state.has_more_pages

    def window(self) -> list[PageLink]:
        return page_window(self.state, self.radius)
