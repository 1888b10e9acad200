"""Search index and autocomplete for the hack catalog."""

from hackdex.search.autocomplete import AutocompleteController, AutocompleteEngine, Suggestion
from hackdex.search.fields import EmptyField, ParsedList, RawText, parse_json_field
from hackdex.search.index import SearchDocument, SearchIndex, TermPool, build_documents

__all__ = [
    "AutocompleteController",
    "AutocompleteEngine",
    "EmptyField",
    "ParsedList",
    "RawText",
    "SearchDocument",
    "SearchIndex",
    "Suggestion",
    "TermPool",
    "build_documents",
    "parse_json_field",
]
