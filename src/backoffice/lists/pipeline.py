"""Derived-state pipeline for list pages: filter, then sort, then paginate.

Every function here is pure.  The controller recomputes the whole pipeline on
any change because collections are page-scale, not dataset-scale.

Conventions:

- An empty search term keeps every entity.
- A facet set to ``"all"`` (any case), ``""`` or ``None`` does not constrain.
- An empty result still has one page (``total_pages == 1``).
- Sorting is stable in both directions; entities missing the sort field go
  last regardless of direction.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Entity = dict[str, Any]
SortDirection = Literal["asc", "desc"]
SortKey = Callable[[Entity], Any]
Predicate = Callable[[Entity, "QueryState"], bool]

ALL = "all"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class QueryState(BaseModel):
    """Search term plus discrete facet selections."""

    model_config = ConfigDict(frozen=True)

    search: str = ""
    facets: dict[str, str] = Field(default_factory=dict)

    def active_facets(self) -> dict[str, str]:
        """Facets that actually constrain the result."""
        return {name: value for name, value in self.facets.items() if not is_unconstrained(value)}


class SortSpec(BaseModel):
    """Active sort column and direction."""

    model_config = ConfigDict(frozen=True)

    key: str | None = None
    direction: SortDirection = "asc"

    def toggled(self, key: str) -> SortSpec:
        """Same key flips direction; a new key starts ascending."""
        if key == self.key:
            return SortSpec(key=key, direction="desc" if self.direction == "asc" else "asc")
        return SortSpec(key=key, direction="asc")


class PageWindow(BaseModel):
    """One-based page number and page size."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, gt=0)


class PaginationSummary(BaseModel):
    """Pagination metadata for the visible page.

    ``first_index``/``last_index`` are one-based and drive the
    "Showing X to Y of Z entries" line; both are 0 when nothing matches.
    """

    page: int
    page_size: int
    total_items: int
    total_pages: int
    first_index: int = 0
    last_index: int = 0

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def describe(self) -> str:
        return f"Showing {self.first_index} to {self.last_index} of {self.total_items} entries"


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------


def get_field(entity: Mapping[str, Any], path: str) -> Any:
    """Read a dotted *path* (``customer.firstName``) from *entity*; None when absent."""
    current: Any = entity
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def is_unconstrained(value: str | None) -> bool:
    return value is None or value == "" or value.strip().lower() == ALL


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


def text_search(*fields: str) -> Predicate:
    """Case-insensitive substring match of the search term over *fields*."""

    def predicate(entity: Entity, query: QueryState) -> bool:
        term = query.search.strip().casefold()
        if not term:
            return True
        for path in fields:
            value = get_field(entity, path)
            if value is not None and term in str(value).casefold():
                return True
        return False

    return predicate


def facet_match(facet_fields: Mapping[str, str] | None = None) -> Predicate:
    """Match each active facet against its entity field.

    *facet_fields* maps facet name to dotted entity path; facets without an
    entry are matched against the field of the same name.  Facets that are
    resolved server-side should simply be left out of the query state passed
    here.
    """
    mapping = dict(facet_fields or {})

    def predicate(entity: Entity, query: QueryState) -> bool:
        for name, wanted in query.active_facets().items():
            value = get_field(entity, mapping.get(name, name))
            if value is None:
                return False
            if isinstance(value, bool):
                if str(value).lower() != wanted.strip().lower():
                    return False
            elif str(value) != wanted:
                return False
        return True

    return predicate


def combine(*predicates: Predicate) -> Predicate:
    """Logical AND of *predicates*."""

    def predicate(entity: Entity, query: QueryState) -> bool:
        return all(p(entity, query) for p in predicates)

    return predicate


def apply_filter(
    collection: Iterable[Entity], query: QueryState, predicate: Predicate
) -> list[Entity]:
    return [entity for entity in collection if predicate(entity, query)]


# ---------------------------------------------------------------------------
# Sort
# ---------------------------------------------------------------------------


def numeric(field: str) -> SortKey:
    def key(entity: Entity) -> Any:
        value = get_field(entity, field)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int | float):
            return value
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    return key


def text(field: str) -> SortKey:
    def key(entity: Entity) -> Any:
        value = get_field(entity, field)
        return str(value).casefold() if value is not None else None

    return key


def date_value(field: str) -> SortKey:
    """Sort key for ISO-8601 strings, ``date`` or ``datetime`` values."""

    def key(entity: Entity) -> Any:
        value = get_field(entity, field)
        if isinstance(value, datetime):
            return _naive(value)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if isinstance(value, str) and value.strip():
            try:
                return _naive(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
            except ValueError:
                return None
        return None

    return key


def _naive(value: datetime) -> datetime:
    # Aware values are compared in UTC; naive values are taken as-is.
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def apply_sort(
    collection: Sequence[Entity],
    sort: SortSpec,
    comparators: Mapping[str, SortKey],
) -> list[Entity]:
    """Stable sort by the comparator registered for ``sort.key``.

    Unknown keys (or no key) pass the collection through unchanged.
    """
    key_fn = comparators.get(sort.key) if sort.key is not None else None
    if key_fn is None:
        return list(collection)

    keyed = [(key_fn(entity), entity) for entity in collection]
    present = [pair for pair in keyed if pair[0] is not None]
    missing = [entity for value, entity in keyed if value is None]
    # reverse=True on sorted() keeps equal elements in original order.
    ordered = sorted(present, key=lambda pair: pair[0], reverse=sort.direction == "desc")
    return [entity for _, entity in ordered] + missing


# ---------------------------------------------------------------------------
# Paginate
# ---------------------------------------------------------------------------


def total_pages(total_items: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(total_items / page_size))


def clamp_page(page: int, total_items: int, page_size: int) -> int:
    return min(max(1, page), total_pages(total_items, page_size))


def paginate(collection: Sequence[Entity], window: PageWindow) -> list[Entity]:
    start = (window.page - 1) * window.page_size
    return list(collection[start : start + window.page_size])


def summarize(total_items: int, window: PageWindow) -> PaginationSummary:
    pages = total_pages(total_items, window.page_size)
    first = 0
    last = 0
    if total_items:
        first = min((window.page - 1) * window.page_size + 1, total_items)
        last = min(window.page * window.page_size, total_items)
    return PaginationSummary(
        page=window.page,
        page_size=window.page_size,
        total_items=total_items,
        total_pages=pages,
        first_index=first,
        last_index=last,
    )


def derive(
    collection: Sequence[Entity],
    query: QueryState,
    sort: SortSpec,
    window: PageWindow,
    predicate: Predicate,
    comparators: Mapping[str, SortKey],
) -> tuple[list[Entity], PaginationSummary]:
    """Run filter, sort and paginate; the window page is clamped to the result."""
    filtered = apply_filter(collection, query, predicate)
    ordered = apply_sort(filtered, sort, comparators)
    page = clamp_page(window.page, len(ordered), window.page_size)
    clamped = PageWindow(page=page, page_size=window.page_size)
    return paginate(ordered, clamped), summarize(len(ordered), clamped)


# ---------------------------------------------------------------------------
# Facet options and stat cards
# ---------------------------------------------------------------------------


def facet_options(collection: Iterable[Entity], field: str) -> list[str]:
    """``["all", *distinct values]`` in first-seen order, for filter dropdowns."""
    seen: dict[str, None] = {}
    for entity in collection:
        value = get_field(entity, field)
        if value is not None and value != "":
            seen.setdefault(str(value), None)
    return [ALL, *seen]


def count_by(collection: Iterable[Entity], field: str) -> dict[str, int]:
    counts: dict[str, int] = {}
    for entity in collection:
        value = get_field(entity, field)
        if value is None:
            continue
        counts[str(value)] = counts.get(str(value), 0) + 1
    return counts


def average(collection: Sequence[Entity], field: str) -> float:
    """Mean of *field* over the collection; missing values count as 0."""
    if not collection:
        return 0.0
    total = 0.0
    for entity in collection:
        value = get_field(entity, field)
        if isinstance(value, int | float) and not isinstance(value, bool):
            total += value
    return total / len(collection)
