"""Tests for persisted view state: FilterSet, FilterState, SortState, ViewModeState."""

from __future__ import annotations

import json

import pytest

from hackdex.models import FilterOptions, SortDirection, SortKey, SortSpec, ViewMode
from hackdex.state import FilterSet, FilterState, SortState, ViewModeState
from hackdex.storage import MemoryStore

KEY = "discover-filters"

OPTIONS = FilterOptions(
    difficulties=["Standard: Easy", "Kaizo: Light"],
    hack_types=["Standard", "Kaizo"],
)


class _BrokenStore:
    def get(self, key):
        raise OSError("unreadable")

    def set(self, key, value):
        raise OSError("read-only")

    def remove(self, key):
        raise OSError("read-only")


# ---------------------------------------------------------------------------
# FilterSet
# ---------------------------------------------------------------------------


class TestFilterSet:
    def test_default_is_empty(self):
        assert FilterSet().is_empty()

    def test_all_false_maps_are_empty(self):
        fs = FilterSet(difficulty_filters={"Hard": False}, hack_type_filters={"Kaizo": False})
        assert fs.is_empty()

    def test_selected_difficulty_is_not_empty(self):
        assert not FilterSet(difficulty_filters={"Hard": True}).is_empty()

    def test_author_is_not_empty(self):
        assert not FilterSet(author="Ladida").is_empty()

    def test_rating_value_is_not_empty(self):
        assert not FilterSet(rating_value=3.5).is_empty()

    def test_selected_keys_keep_order(self):
        fs = FilterSet(hack_type_filters={"Standard": True, "Kaizo": False, "Pit": True})
        assert fs.selected_hack_types() == ["Standard", "Pit"]

    def test_from_dict_partial_merges_defaults(self):
        fs = FilterSet.from_dict({"author": "Ladida"})
        assert fs == FilterSet(author="Ladida")

    def test_from_dict_ignores_unknown_and_wrong_types(self):
        fs = FilterSet.from_dict(
            {"author": 5, "difficulty_filters": "nope", "rating_value": "high", "bogus": 1}
        )
        assert fs == FilterSet()

    def test_from_dict_rejects_bool_rating(self):
        assert FilterSet.from_dict({"rating_value": True}).rating_value == 0

    def test_to_dict_round_trip(self):
        fs = FilterSet(
            difficulty="Hard",
            author="Ladida",
            min_rating="3.5",
            difficulty_filters={"Hard": True},
            rating_value=3.5,
        )
        assert FilterSet.from_dict(json.loads(json.dumps(fs.to_dict()))) == fs


# ---------------------------------------------------------------------------
# FilterState
# ---------------------------------------------------------------------------


class TestFilterStatePersistence:
    def test_defaults_without_store(self):
        state = FilterState()
        assert state.filters == FilterSet()
        assert state.loaded

    def test_mutation_is_saved_immediately(self, memory_store: MemoryStore):
        state = FilterState(memory_store, KEY)
        state.set_author("Ladida")
        assert json.loads(memory_store.get(KEY))["author"] == "Ladida"

    def test_reload_equals_saved(self, memory_store: MemoryStore):
        state = FilterState(memory_store, KEY)
        state.set_difficulty("Standard: Easy")
        state.set_hack_type_filters({"Standard": True, "Kaizo": False})
        state.set_rating_value(4.0)
        state.set_status("unpatched")
        reloaded = FilterState(memory_store, KEY)
        assert reloaded.filters == state.filters

    def test_load_does_not_overwrite_slot(self):
        saved = json.dumps({"author": "Kaizo Mike"})
        store = MemoryStore({KEY: saved})
        FilterState(store, KEY)
        assert store.get(KEY) == saved

    def test_partial_slot_merges_over_defaults(self):
        store = MemoryStore({KEY: json.dumps({"min_rating": "3"})})
        state = FilterState(store, KEY)
        assert state.min_rating == "3"
        assert state.author == ""
        assert state.difficulty_filters == {}

    def test_corrupt_slot_falls_back_to_defaults(self, caplog):
        store = MemoryStore({KEY: "{not json"})
        state = FilterState(store, KEY)
        assert state.filters == FilterSet()
        assert "Ignoring corrupt filter slot" in caplog.text

    def test_non_object_slot_falls_back_to_defaults(self):
        state = FilterState(MemoryStore({KEY: "[1, 2]"}), KEY)
        assert state.filters == FilterSet()

    def test_storage_failure_is_not_fatal(self):
        state = FilterState(_BrokenStore(), KEY)
        state.set_author("Ladida")
        assert state.author == "Ladida"

    def test_views_are_independent(self, memory_store: MemoryStore):
        FilterState(memory_store, "discover-filters").set_author("A")
        FilterState(memory_store, "library-filters").set_author("B")
        assert FilterState(memory_store, "discover-filters").author == "A"
        assert FilterState(memory_store, "library-filters").author == "B"


class TestFilterStateMutations:
    def test_toggle_difficulty(self):
        state = FilterState()
        state.toggle_difficulty("Hard")
        assert state.difficulty_filters == {"Hard": True}
        state.toggle_difficulty("Hard")
        assert state.difficulty_filters == {"Hard": False}

    def test_toggle_hack_type(self):
        state = FilterState()
        state.toggle_hack_type("Kaizo")
        assert state.hack_type_filters == {"Kaizo": True}

    def test_listeners_get_new_value(self):
        state = FilterState()
        seen: list[FilterSet] = []
        state.subscribe(seen.append)
        state.set_author("Ladida")
        assert seen == [FilterSet(author="Ladida")]

    def test_unsubscribe_stops_notifications(self):
        state = FilterState()
        seen: list[FilterSet] = []
        unsubscribe = state.subscribe(seen.append)
        unsubscribe()
        state.set_author("Ladida")
        assert seen == []

    def test_returned_maps_are_copies(self):
        state = FilterState()
        state.set_difficulty_filters({"Hard": True})
        state.difficulty_filters["Hard"] = False
        assert state.difficulty_filters == {"Hard": True}


class TestApplyOptions:
    def test_fresh_state_selects_every_difficulty(self):
        state = FilterState()
        state.apply_options(OPTIONS)
        assert state.difficulty_filters == {"Standard: Easy": True, "Kaizo: Light": True}

    def test_fresh_state_selects_no_hack_type(self):
        state = FilterState()
        state.apply_options(OPTIONS)
        assert state.hack_type_filters == {}
        assert state.filters.selected_hack_types() == []

    def test_restored_maps_are_kept(self):
        store = MemoryStore({KEY: json.dumps({"difficulty_filters": {"Kaizo: Light": True}})})
        state = FilterState(store, KEY)
        state.apply_options(OPTIONS)
        assert state.difficulty_filters == {"Kaizo: Light": True}
        assert state.hack_type_filters == {}

    def test_records_available_options(self):
        state = FilterState()
        state.apply_options(OPTIONS)
        assert state.available == OPTIONS


class TestSyncSingleSelect:
    def test_derives_from_multi_select(self):
        state = FilterState()
        state.set_difficulty_filters({"Easy": False, "Hard": True})
        state.set_hack_type_filters({"Kaizo": True})
        state.set_rating_value(3.5)
        state.sync_single_select()
        assert state.difficulty == "Hard"
        assert state.hack_type == "Kaizo"
        assert state.min_rating == "3.5"

    def test_zero_rating_is_blank(self):
        state = FilterState()
        state.set_min_rating("4")
        state.sync_single_select()
        assert state.min_rating == ""

    def test_whole_rating_has_no_decimal(self):
        state = FilterState()
        state.set_rating_value(4.0)
        state.sync_single_select()
        assert state.min_rating == "4"


class TestClearFilters:
    @pytest.mark.parametrize(
        "mutate",
        [
            lambda s: s.set_author("Ladida"),
            lambda s: s.set_difficulty_filters({"Standard: Easy": True}),
            lambda s: s.set_rating_value(4.5),
            lambda s: (s.set_status("patched"), s.set_hack_type("Kaizo"), s.set_min_rating("2")),
        ],
    )
    def test_always_unrestricted(self, memory_store: MemoryStore, mutate):
        state = FilterState(memory_store, KEY)
        state.apply_options(OPTIONS)
        mutate(state)
        state.clear()
        assert state.filters.is_empty()
        assert state.rating_value == 0
        assert state.difficulty_filters == {"Standard: Easy": False, "Kaizo: Light": False}
        assert state.hack_type_filters == {"Standard": False, "Kaizo": False}

    def test_deletes_slot(self, memory_store: MemoryStore):
        state = FilterState(memory_store, KEY)
        state.set_author("Ladida")
        state.clear()
        assert memory_store.get(KEY) is None

    def test_reload_after_clear_is_default(self, memory_store: MemoryStore):
        state = FilterState(memory_store, KEY)
        state.set_author("Ladida")
        state.clear()
        assert FilterState(memory_store, KEY).filters == FilterSet()

    def test_notifies(self):
        state = FilterState()
        seen: list[FilterSet] = []
        state.subscribe(seen.append)
        state.clear()
        assert len(seen) == 1


# ---------------------------------------------------------------------------
# SortState / ViewModeState
# ---------------------------------------------------------------------------


class TestSortState:
    def test_defaults(self):
        assert SortState().spec == SortSpec(SortKey.NAME, SortDirection.ASC)

    def test_view_specific_defaults(self):
        state = SortState(default_key=SortKey.DOWNLOADS, default_direction=SortDirection.DESC)
        assert state.key is SortKey.DOWNLOADS
        assert state.direction is SortDirection.DESC

    def test_persists_two_slots(self, memory_store: MemoryStore):
        state = SortState(memory_store, "discover-sorting")
        state.set_key(SortKey.RATING)
        state.set_direction("desc")
        assert memory_store.data == {
            "discover-sorting-by": "rating",
            "discover-sorting-direction": "desc",
        }

    def test_round_trip(self, memory_store: MemoryStore):
        SortState(memory_store, "discover-sorting").set_key("date")
        assert SortState(memory_store, "discover-sorting").key is SortKey.DATE

    def test_invalid_stored_values_fall_back(self, caplog):
        store = MemoryStore({"v-by": "popularity", "v-direction": "sideways"})
        state = SortState(store, "v", default_key=SortKey.DATE)
        assert state.spec == SortSpec(SortKey.DATE, SortDirection.ASC)
        assert "Unrecognised SortKey value 'popularity'" in caplog.text

    def test_toggle_direction(self):
        state = SortState()
        state.toggle_direction()
        assert state.direction is SortDirection.DESC
        state.toggle_direction()
        assert state.direction is SortDirection.ASC

    def test_invalid_key_raises(self):
        with pytest.raises(ValueError):
            SortState().set_key("popularity")

    def test_listeners_get_sort_spec(self):
        state = SortState()
        seen: list[SortSpec] = []
        state.subscribe(seen.append)
        state.set_key(SortKey.DOWNLOADS)
        assert seen == [SortSpec(SortKey.DOWNLOADS, SortDirection.ASC)]


class TestViewModeState:
    def test_default_cards(self):
        assert ViewModeState().mode is ViewMode.CARDS

    def test_round_trip(self, memory_store: MemoryStore):
        ViewModeState(memory_store, "discover-view-mode").set_mode("list")
        assert memory_store.get("discover-view-mode") == "list"
        assert ViewModeState(memory_store, "discover-view-mode").mode is ViewMode.LIST

    def test_invalid_stored_value_falls_back(self):
        store = MemoryStore({"discover-view-mode": "grid"})
        assert ViewModeState(store, "discover-view-mode").mode is ViewMode.CARDS
