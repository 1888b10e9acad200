"""ROM hack catalog discovery: filtering, fuzzy search, paging and sync."""

__version__ = "0.1.0"

from hackdex.models import CatalogRow, FilterOptions, PageState, SortDirection, SortKey, SortSpec, ViewMode

__all__ = [
    "CatalogRow",
    "FilterOptions",
    "PageState",
    "SortDirection",
    "SortKey",
    "SortSpec",
    "ViewMode",
    "__version__",
]
