# movie_catalog/services/query_builder.py

"""
Turns raw listing parameters into a QuerySpec.

The builder validates and normalizes; it never talks to storage. Two
policies differ on purpose:

* sorting falls back silently: an unknown sort field becomes `created_at`
  and any order other than a case-insensitive `asc` becomes descending;
* pagination fails closed: non-numeric, non-positive or oversized page/limit
  values are reported as errors instead of being clamped.
"""

import logging
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from movie_catalog.core.errors import FieldError, QueryValidationError
from movie_catalog.utils.pagination import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_WINDOW_SIZE,
    MAX_PAGE_SIZE,
    PaginationMeta,
    compute_pagination,
    validate_pagination_params,
)

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("title", "release_year", "rating", "created_at", "view_count")
DEFAULT_SORT_FIELD = "created_at"
# Free-text search matches any of these fields
SEARCH_FIELDS = ("title", "director", "overview")

MATCH_MODE_EXACT = "exact"
MATCH_MODE_PARTIAL = "partial"


class FilterOperator(str, Enum):
    EQUALS = "eq"
    CONTAINS = "contains"  # case-insensitive substring
    SEARCH = "search"  # case-insensitive substring over SEARCH_FIELDS, OR-combined


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FilterPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: FilterOperator
    value: Any


class SortDirective(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = DEFAULT_SORT_FIELD
    direction: SortDirection = SortDirection.DESC


class QuerySpec(BaseModel):
    """Normalized filter + sort + pagination request, ready for storage execution."""
    model_config = ConfigDict(frozen=True)

    filters: Tuple[FilterPredicate, ...] = ()
    sort: SortDirective = Field(default_factory=SortDirective)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1)
    offset: int = Field(0, ge=0)

    def filter_for(self, field: str) -> Optional[FilterPredicate]:
        return next((f for f in self.filters if f.field == field), None)


class QueryBuildResult(BaseModel):
    """Outcome of `build_query_spec`: either a spec or the collected field errors."""
    model_config = ConfigDict(frozen=True)

    spec: Optional[QuerySpec] = None
    errors: List[FieldError] = Field(default_factory=list)
    pagination: Optional[PaginationMeta] = None  # optimistic, computed before the count is known

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> QuerySpec:
        """Returns the spec, or raises one QueryValidationError carrying every field error."""
        if self.errors:
            raise QueryValidationError(self.errors)
        return self.spec


def _first_present(raw_params: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = raw_params.get(name)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return None


def resolve_sort(sort_by: Any, sort_order: Any) -> SortDirective:
    field = sort_by if sort_by in SORTABLE_FIELDS else DEFAULT_SORT_FIELD
    if sort_by is not None and field != sort_by:
        logger.debug(f"Unknown sort field {sort_by!r}, falling back to '{DEFAULT_SORT_FIELD}'")
    # Only an explicit 'asc' sorts ascending; typos and anything else mean descending
    if isinstance(sort_order, str) and sort_order.strip().lower() == "asc":
        direction = SortDirection.ASC
    else:
        direction = SortDirection.DESC
    return SortDirective(field=field, direction=direction)


def _text_predicate(field: str, value: str, match_mode: str) -> FilterPredicate:
    operator = FilterOperator.CONTAINS if match_mode == MATCH_MODE_PARTIAL else FilterOperator.EQUALS
    return FilterPredicate(field=field, operator=operator, value=value)


def build_filters(raw_params: Mapping[str, Any], match_mode: str = MATCH_MODE_EXACT) -> Tuple[FilterPredicate, ...]:
    """Builds the filter predicates in a fixed order: genre, director, year, search."""
    filters: List[FilterPredicate] = []

    genre = _first_present(raw_params, "genre")
    if genre is not None:
        filters.append(_text_predicate("genres", str(genre), match_mode))

    director = _first_present(raw_params, "director")
    if director is not None:
        filters.append(_text_predicate("director", str(director), match_mode))

    year = _first_present(raw_params, "year")
    if year is not None:
        try:
            filters.append(FilterPredicate(field="release_year", operator=FilterOperator.EQUALS, value=int(year)))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-integer year filter: {year!r}")

    search = _first_present(raw_params, "search", "q")
    if search is not None:
        filters.append(FilterPredicate(field="search", operator=FilterOperator.SEARCH, value=str(search)))

    return tuple(filters)


def build_query_spec(
    raw_params: Mapping[str, Any],
    *,
    default_limit: int = DEFAULT_PAGE_SIZE,
    max_limit: int = MAX_PAGE_SIZE,
    match_mode: str = MATCH_MODE_EXACT,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> QueryBuildResult:
    """
    Validates and normalizes raw listing parameters into a QuerySpec.

    Recognized keys: sortBy/sort_by, sortOrder/sort_order, genre, director,
    year, search (alias q), page, limit, offset. Blank values count as absent.

    Args:
        raw_params: Query-string key/value pairs.
        default_limit: Page size used when `limit` is absent.
        max_limit: Largest accepted `limit`.
        match_mode: 'exact' or 'partial' matching for genre/director.
        window_size: Page-window size for the optimistic pagination metadata.

    Returns:
        A QueryBuildResult. Validation failures are returned in `errors`,
        never raised, so callers can report all of them at once.
    """
    sort = resolve_sort(
        _first_present(raw_params, "sortBy", "sort_by"),
        _first_present(raw_params, "sortOrder", "sort_order"),
    )
    filters = build_filters(raw_params, match_mode)

    params, errors = validate_pagination_params(
        page=_first_present(raw_params, "page"),
        limit=_first_present(raw_params, "limit"),
        offset=_first_present(raw_params, "offset"),
        default_limit=default_limit,
        max_limit=max_limit,
    )
    if errors:
        return QueryBuildResult(errors=errors)

    page_given = _first_present(raw_params, "page") is not None
    # A direct offset is used as given; page wins when both are present
    offset = params.offset if params.offset is not None and not page_given else None

    optimistic = compute_pagination(
        params.page, params.limit, 0, max_limit=max_limit, window_size=window_size, offset=offset,
    )
    spec = QuerySpec(
        filters=filters,
        sort=sort,
        limit=optimistic.items_per_page,
        offset=optimistic.offset,
    )
    logger.debug(f"Built query spec: {spec}")
    return QueryBuildResult(spec=spec, pagination=optimistic)
