"""Tests for row field parsing, the weighted fuzzy index and the term pool."""

from __future__ import annotations

import pytest

from hackdex.models import CatalogRow
from hackdex.search.fields import EMPTY, ParsedList, RawText, parse_json_field, parse_text_field
from hackdex.search.index import SearchIndex, TermPool, build_document, build_documents


class TestParseJsonField:
    def test_object_array(self):
        assert parse_json_field('[{"name": "Ladida"}, {"name": "Kaizo Mike"}]') == ParsedList(
            ("Ladida", "Kaizo Mike")
        )

    def test_string_array(self):
        assert parse_json_field('["kaizo", "hard"]') == ParsedList(("kaizo", "hard"))

    def test_unparsable_is_raw_text(self):
        assert parse_json_field("Ladida, Sayuri") == RawText("Ladida, Sayuri")

    def test_truncated_json_is_raw_text(self):
        assert parse_json_field('[{"name": "Lad') == RawText('[{"name": "Lad')

    @pytest.mark.parametrize("raw", [None, "", "   ", "[]", "null", "{}", "42"])
    def test_empty_shapes(self, raw):
        assert parse_json_field(raw) is EMPTY

    def test_items_without_names_are_skipped(self):
        assert parse_json_field('[{"id": 1}, {"name": "Dram"}, null]') == ParsedList(("Dram",))

    def test_json_string_literal_is_raw_text(self):
        assert parse_json_field('"Sayuri"') == RawText("Sayuri")

    def test_text_joins_with_separator(self):
        assert ParsedList(("A", "B")).text(", ") == "A, B"
        assert EMPTY.text() == ""


class TestParseTextField:
    def test_plain_text(self):
        assert parse_text_field("A classic adventure.") == "A classic adventure."

    def test_json_string_unwrapped(self):
        assert parse_text_field('"quoted"') == "quoted"

    def test_none(self):
        assert parse_text_field(None) == ""

    def test_number_like_text_kept(self):
        assert parse_text_field("2024") == "2024"


class TestBuildDocument:
    def test_fields_resolved_once(self, sample_rows: list[CatalogRow]):
        doc = build_document(sample_rows[2])
        assert doc.authors == ParsedList(("Ladida", "PangaeaPanga"))
        assert doc.authors_text == "Ladida PangaeaPanga"
        assert doc.author_display() == "Ladida, PangaeaPanga"
        assert doc.tags_text == "puzzle"

    def test_malformed_fields_fall_back(self, sample_rows: list[CatalogRow]):
        doc = build_document(sample_rows[3])
        assert doc.authors == RawText("Sayuri")
        assert doc.authors_text == "Sayuri"
        assert doc.tags is EMPTY
        assert doc.description == ""

    def test_idempotent(self, sample_rows: list[CatalogRow]):
        assert build_documents(sample_rows) == build_documents(sample_rows)


class TestSearchIndex:
    @pytest.fixture
    def index(self, sample_rows: list[CatalogRow]) -> SearchIndex:
        return SearchIndex(build_documents(sample_rows))

    def test_mario_finds_named_row(self, index: SearchIndex):
        hits = index.search("mario")
        assert hits
        assert hits[0].document.name == "Super Mario World Hack"
        assert "name" in hits[0].matched_fields

    @pytest.mark.parametrize("query", ["", " ", "m"])
    def test_short_queries_never_search(self, index: SearchIndex, query):
        assert index.search(query) == []

    def test_case_insensitive(self, index: SearchIndex):
        assert index.search("KAIZO NIGHTMARE")[0].document.name == "Kaizo Nightmare"

    def test_typo_tolerated(self, index: SearchIndex):
        names = [h.document.name for h in index.search("nightmate")]
        assert "Kaizo Nightmare" in names

    def test_author_match(self, index: SearchIndex):
        names = {h.document.name for h in index.search("PangaeaPanga")}
        assert "Luigi's Quest" in names

    def test_raw_text_author_searchable(self, index: SearchIndex):
        names = [h.document.name for h in index.search("sayuri")]
        assert names[0] == "Yoshi Island Remix"

    def test_unrelated_query_finds_nothing(self, index: SearchIndex):
        assert index.search("zzzzqqqq") == []

    def test_scores_ascending(self, index: SearchIndex):
        scores = [h.score for h in index.search("star")]
        assert scores == sorted(scores)

    def test_name_outranks_description(self, index: SearchIndex):
        hits = index.search("donut plains")
        assert hits[0].document.name == "Donut Plains Deluxe"

    def test_limit(self, index: SearchIndex):
        assert len(index.search("a", limit=3)) == 0
        assert len(index.search("st", limit=2)) <= 2

    def test_rebuild_is_identical(self, sample_rows: list[CatalogRow]):
        first = SearchIndex(build_documents(sample_rows)).search("quest")
        second = SearchIndex(build_documents(sample_rows)).search("quest")
        assert [(h.document, h.score) for h in first] == [(h.document, h.score) for h in second]


class TestTermPool:
    def test_contains_names_authors_tags(self, sample_rows: list[CatalogRow]):
        pool = TermPool(build_documents(sample_rows))
        assert "Super Mario World Hack" in pool.terms
        assert "Ladida" in pool.terms
        assert "kaizo" in pool.terms
        assert "Sayuri" in pool.terms

    def test_case_insensitive_dedupe(self):
        rows = [
            CatalogRow(id=1, name="Alpha", authors='["alpha", "Beta"]'),
            CatalogRow(id=2, name="beta", tags='["BETA"]'),
        ]
        pool = TermPool(build_documents(rows))
        assert pool.terms == ["Alpha", "Beta"]

    def test_never_exceeds_cap(self):
        rows = [
            CatalogRow(id=i, name=f"Hack {i}", authors=f'["Author {i}"]', tags=f'["tag{i}"]')
            for i in range(500)
        ]
        pool = TermPool(build_documents(rows), max_terms=1000)
        assert len(pool) == 1000

    def test_small_cap(self, sample_rows: list[CatalogRow]):
        assert len(TermPool(build_documents(sample_rows), max_terms=3)) == 3

    def test_single_character_match(self, sample_rows: list[CatalogRow]):
        pool = TermPool(build_documents(sample_rows))
        matches = pool.match("y")
        assert "Yoshi Island Remix" in matches
        assert "Sayuri" in matches
        assert all("y" in m.lower() for m in matches)

    def test_blank_query(self, sample_rows: list[CatalogRow]):
        assert TermPool(build_documents(sample_rows)).match("") == []

    def test_limit(self, sample_rows: list[CatalogRow]):
        assert len(TermPool(build_documents(sample_rows)).match("a", limit=5)) == 5
