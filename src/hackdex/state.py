"""Persisted view state: facet filters, sort order and view mode.

Each state object loads its durable slot once on construction and writes
the whole value back on every mutation. Listeners registered with
``subscribe()`` are called with the new value after each change.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Callable, Generic, TypeVar

from hackdex.models import FilterOptions, SortDirection, SortKey, SortSpec, ViewMode
from hackdex.storage import KeyValueStore, SafeStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FilterSet:
    """Active facet selections.

    Single-select fields (library view) and multi-select maps (discovery
    view) describe the same facets. An empty string, an empty map, a map
    with nothing selected, or a zero rating all mean "no restriction".
    ``min_rating`` keeps its persisted string form; the gateway parses it.
    """

    difficulty: str = ""
    hack_type: str = ""
    author: str = ""
    min_rating: str = ""
    status: str = ""
    difficulty_filters: dict[str, bool] = field(default_factory=dict)
    hack_type_filters: dict[str, bool] = field(default_factory=dict)
    rating_value: float = 0

    def selected_difficulties(self) -> list[str]:
        return [key for key, checked in self.difficulty_filters.items() if checked]

    def selected_hack_types(self) -> list[str]:
        return [key for key, checked in self.hack_type_filters.items() if checked]

    def is_empty(self) -> bool:
        """Return True if no facet restricts the result set."""
        return (
            not self.difficulty
            and not self.hack_type
            and not self.author
            and not self.min_rating
            and not self.status
            and not self.selected_difficulties()
            and not self.selected_hack_types()
            and not self.rating_value
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterSet:
        """Merge a possibly partial saved object over the defaults.

        Missing keys, unknown keys and values of the wrong type all fall
        back to the default for that field.
        """
        defaults = cls()
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            default = getattr(defaults, f.name)
            if isinstance(default, dict):
                if isinstance(value, dict):
                    kwargs[f.name] = {str(k): bool(v) for k, v in value.items()}
            elif isinstance(default, str):
                if isinstance(value, str):
                    kwargs[f.name] = value
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                kwargs[f.name] = value
        return cls(**kwargs)


def _format_rating(value: float) -> str:
    return "" if not value else f"{value:g}"


class Listenable(Generic[T]):
    """Minimal listener registry shared by the state objects."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, value: T) -> None:
        for callback in list(self._listeners):
            callback(value)


class FilterState(Listenable[FilterSet]):
    """Holds and persists the active FilterSet for one view.

    Usage::

        state = FilterState(store, "discover-filters")
        state.set_difficulty("Hard")      # saved immediately
        state.clear()                     # slot removed
    """

    def __init__(self, store: KeyValueStore | None = None, storage_key: str | None = None) -> None:
        super().__init__()
        self._store = SafeStore(store) if store is not None else None
        self._key = storage_key
        self._filters = FilterSet()
        self._restored: set[str] = set()
        self._loaded = False
        self.available = FilterOptions()
        self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        if self._store is not None and self._key:
            raw = self._store.get(self._key)
            if raw:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as exc:
                    logger.error("Ignoring corrupt filter slot %s: %s", self._key, exc)
                else:
                    if isinstance(data, dict):
                        self._filters = FilterSet.from_dict(data)
                        self._restored = set(data)
        self._loaded = True

    def _save(self) -> None:
        # Saving before the load finished would overwrite stored state with defaults.
        if not self._loaded or self._store is None or not self._key:
            return
        self._store.set(self._key, json.dumps(self._filters.to_dict()))

    def _update(self, **changes: Any) -> None:
        self._filters = replace(self._filters, **changes)
        self._save()
        self._notify(self._filters)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def filters(self) -> FilterSet:
        return self._filters

    # ------------------------------------------------------------------
    # Single-select facets
    # ------------------------------------------------------------------

    @property
    def difficulty(self) -> str:
        return self._filters.difficulty

    def set_difficulty(self, value: str) -> None:
        self._update(difficulty=value)

    @property
    def hack_type(self) -> str:
        return self._filters.hack_type

    def set_hack_type(self, value: str) -> None:
        self._update(hack_type=value)

    @property
    def author(self) -> str:
        return self._filters.author

    def set_author(self, value: str) -> None:
        self._update(author=value)

    @property
    def min_rating(self) -> str:
        return self._filters.min_rating

    def set_min_rating(self, value: str) -> None:
        self._update(min_rating=value)

    @property
    def status(self) -> str:
        return self._filters.status

    def set_status(self, value: str) -> None:
        self._update(status=value)

    # ------------------------------------------------------------------
    # Multi-select facets
    # ------------------------------------------------------------------

    @property
    def difficulty_filters(self) -> dict[str, bool]:
        return dict(self._filters.difficulty_filters)

    def set_difficulty_filters(self, value: dict[str, bool]) -> None:
        self._update(difficulty_filters=dict(value))

    def toggle_difficulty(self, value: str) -> None:
        current = dict(self._filters.difficulty_filters)
        current[value] = not current.get(value, False)
        self._update(difficulty_filters=current)

    @property
    def hack_type_filters(self) -> dict[str, bool]:
        return dict(self._filters.hack_type_filters)

    def set_hack_type_filters(self, value: dict[str, bool]) -> None:
        self._update(hack_type_filters=dict(value))

    def toggle_hack_type(self, value: str) -> None:
        current = dict(self._filters.hack_type_filters)
        current[value] = not current.get(value, False)
        self._update(hack_type_filters=current)

    @property
    def rating_value(self) -> float:
        return self._filters.rating_value

    def set_rating_value(self, value: float) -> None:
        self._update(rating_value=value)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def apply_options(self, options: FilterOptions) -> None:
        """Record available facet values.

        A difficulty map that was not restored from storage starts with every
        option selected. Hack types match with AND, so the hack-type map
        starts with nothing selected.
        """
        self.available = options
        if "difficulty_filters" not in self._restored and not self._filters.difficulty_filters:
            self._update(difficulty_filters={d: True for d in options.difficulties})

    def sync_single_select(self) -> None:
        """Derive the single-select facets from the multi-select ones."""
        difficulties = self._filters.selected_difficulties()
        types = self._filters.selected_hack_types()
        difficulty = difficulties[0] if difficulties else ""
        hack_type = types[0] if types else ""
        min_rating = _format_rating(self._filters.rating_value)
        if (
            difficulty != self._filters.difficulty
            or hack_type != self._filters.hack_type
            or min_rating != self._filters.min_rating
        ):
            self._update(difficulty=difficulty, hack_type=hack_type, min_rating=min_rating)

    def clear(self) -> None:
        """Reset every facet to unrestricted and delete the durable slot."""
        self._filters = FilterSet(
            difficulty_filters={d: False for d in self.available.difficulties},
            hack_type_filters={t: False for t in self.available.hack_types},
        )
        self._restored = set()
        if self._store is not None and self._key:
            self._store.remove(self._key)
        logger.info("Filters cleared for %s", self._key or "<unsaved>")
        self._notify(self._filters)


class SortState(Listenable[SortSpec]):
    """Holds the sort key and direction for one view.

    Persisted as two plain-string slots, ``<key>-by`` and
    ``<key>-direction``. Unrecognised stored values fall back to the
    view's defaults.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        storage_key: str | None = None,
        default_key: SortKey = SortKey.NAME,
        default_direction: SortDirection = SortDirection.ASC,
    ) -> None:
        super().__init__()
        self._store = SafeStore(store) if store is not None else None
        self._key = storage_key
        key, direction = default_key, default_direction
        if self._store is not None and storage_key:
            key = _parse_enum(SortKey, self._store.get(f"{storage_key}-by"), default_key)
            direction = _parse_enum(
                SortDirection, self._store.get(f"{storage_key}-direction"), default_direction
            )
        self._spec = SortSpec(key=key, direction=direction)

    @property
    def spec(self) -> SortSpec:
        return self._spec

    @property
    def key(self) -> SortKey:
        return self._spec.key

    @property
    def direction(self) -> SortDirection:
        return self._spec.direction

    def set_key(self, key: SortKey | str) -> None:
        key = SortKey(key)
        self._spec = replace(self._spec, key=key)
        if self._store is not None and self._key:
            self._store.set(f"{self._key}-by", key.value)
        self._notify(self._spec)

    def set_direction(self, direction: SortDirection | str) -> None:
        direction = SortDirection(direction)
        self._spec = replace(self._spec, direction=direction)
        if self._store is not None and self._key:
            self._store.set(f"{self._key}-direction", direction.value)
        self._notify(self._spec)

    def toggle_direction(self) -> None:
        self.set_direction(self._spec.direction.flipped())


class ViewModeState:
    """Persisted ``cards``/``list`` layout choice."""

    def __init__(self, store: KeyValueStore | None = None, storage_key: str | None = None) -> None:
        self._store = SafeStore(store) if store is not None else None
        self._key = storage_key
        self._mode = ViewMode.CARDS
        if self._store is not None and storage_key:
            self._mode = _parse_enum(ViewMode, self._store.get(storage_key), ViewMode.CARDS)

    @property
    def mode(self) -> ViewMode:
        return self._mode

    def set_mode(self, mode: ViewMode | str) -> None:
        self._mode = ViewMode(mode)
        if self._store is not None and self._key:
            self._store.set(self._key, self._mode.value)


E = TypeVar("E", SortKey, SortDirection, ViewMode)


def _parse_enum(enum_cls: type[E], raw: str | None, default: E) -> E:
    if raw is None:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning("Unrecognised %s value %r, using %s", enum_cls.__name__, raw, default.value)
        return default
