# movie_catalog/utils/pagination.py

import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field

from movie_catalog.core.errors import FieldError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
DEFAULT_WINDOW_SIZE = 10
# Storage encodes skip values as signed 64-bit integers
MAX_OFFSET = 2**63 - 1

_INTEGER_LITERAL = re.compile(r"[+-]?[0-9]+")


# --- Models ---

class PageWindow(BaseModel):
    """The run of page numbers a UI should render around the current page."""
    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    pages: List[int] = Field(default_factory=list)
    show_ellipsis_start: bool = False
    show_ellipsis_end: bool = False


class PaginationMeta(BaseModel):
    """Metadata for paginated responses, derived from (page, limit, total)."""
    model_config = ConfigDict(frozen=True)

    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int

    has_next_page: bool
    has_prev_page: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None
    first_page: int = 1
    last_page: int = 0

    start_item: int
    end_item: int
    items_on_current_page: int
    offset: int

    page_window: PageWindow

    is_empty: bool
    is_first_page: bool
    is_last_page: bool
    progress_percentage: int


class PaginationParams(BaseModel):
    """Sanitized pagination input. `offset` is set only when given directly."""
    model_config = ConfigDict(frozen=True)

    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    offset: Optional[int] = None


# --- Calculations ---

def calculate_skip(page: int, limit: int) -> int:
    """
    Calculates the number of documents to skip for pagination.

    Raises:
        ValueError: If page or limit are not positive integers.
    """
    if not isinstance(page, int) or page < 1:
        raise ValueError("Page number must be a positive integer.")
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("Page limit must be a positive integer.")
    return (page - 1) * limit


def calculate_total_pages(total_items: int, limit: int) -> int:
    """
    Calculates the total number of pages required. Zero items means zero pages.

    Raises:
        ValueError: If limit is not a positive integer or total_items is negative.
    """
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("Page limit must be a positive integer.")
    if total_items < 0:
        raise ValueError("Total items cannot be negative.")
    return math.ceil(total_items / limit)


def calculate_page_window(current_page: int, total_pages: int, window_size: int = DEFAULT_WINDOW_SIZE) -> PageWindow:
    """
    Computes the page numbers to display, centred on the current page.

    When every page fits in the window all of them are shown. Otherwise the
    window is clamped at either end and ellipsis flags tell the UI whether
    pages are hidden before or after it.
    """
    window_size = max(1, window_size)
    if total_pages <= window_size:
        return PageWindow(
            start=1 if total_pages else 0,
            end=total_pages,
            pages=list(range(1, total_pages + 1)),
        )

    half = window_size // 2
    start = max(1, current_page - half)
    end = min(total_pages, start + window_size - 1)
    # Near the end: slide the window back so it stays full
    if end == total_pages:
        start = max(1, end - window_size + 1)

    return PageWindow(
        start=start,
        end=end,
        pages=list(range(start, end + 1)),
        show_ellipsis_start=start > 1,
        show_ellipsis_end=end < total_pages,
    )


def compute_pagination(
    page: int,
    limit: int,
    total_items: int,
    max_limit: int = MAX_PAGE_SIZE,
    window_size: int = DEFAULT_WINDOW_SIZE,
    offset: Optional[int] = None,
) -> PaginationMeta:
    """
    Computes pagination metadata for one page of a result set.

    Inputs are normalized first: page to at least 1, limit into
    [1, max_limit], total_items to at least 0. The item range is 1-based and
    inclusive; it is (0, 0) when the result set is empty or the page lies
    past the last one.

    Listing requests call this twice: once before the count is known to get
    the storage offset/limit, and again with the real total. Only the second
    result is returned to the caller.

    Args:
        page: Requested page number (1-based).
        limit: Items per page.
        total_items: Number of items matching the query.
        max_limit: Upper bound for limit.
        window_size: Maximum number of pages in the display window.
        offset: A direct item offset. When given it takes precedence over
            `page`: the item range and navigation flags describe exactly the
            items from `offset`, and `current_page` is the page containing
            the first of them.

    Returns:
        A PaginationMeta instance.
    """
    items_per_page = min(max(1, int(limit)), max(1, max_limit))
    total_count = max(0, int(total_items))

    if offset is None:
        current_page = max(1, int(page))
        offset = calculate_skip(current_page, items_per_page)
    else:
        offset = max(0, int(offset))
        current_page = offset // items_per_page + 1

    total_pages = calculate_total_pages(total_count, items_per_page)

    has_next_page = offset + items_per_page < total_count
    has_prev_page = offset > 0

    if total_count > 0 and offset < total_count:
        start_item = offset + 1
        end_item = min(offset + items_per_page, total_count)
    else:
        start_item = end_item = 0
    items_on_current_page = end_item - start_item + 1 if start_item else 0

    return PaginationMeta(
        current_page=current_page,
        total_pages=total_pages,
        total_items=total_count,
        items_per_page=items_per_page,
        has_next_page=has_next_page,
        has_prev_page=has_prev_page,
        next_page=current_page + 1 if has_next_page else None,
        # Page holding the item just before this range
        prev_page=-(-offset // items_per_page) if has_prev_page else None,
        first_page=1,
        last_page=total_pages,
        start_item=start_item,
        end_item=end_item,
        items_on_current_page=items_on_current_page,
        offset=offset,
        page_window=calculate_page_window(current_page, total_pages, window_size),
        is_empty=total_count == 0,
        is_first_page=not has_prev_page,
        is_last_page=current_page == total_pages,
        progress_percentage=round(current_page / total_pages * 100) if total_pages > 0 else 0,
    )


# --- Validation ---

def _parse_int(raw: Any) -> Optional[int]:
    """Parses an integer literal; returns None for anything else (floats, words, bools)."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and _INTEGER_LITERAL.fullmatch(raw.strip()):
        text = raw.strip()
        if len(text.lstrip("+-")) > 20:
            # Beyond any usable offset; skip converting arbitrarily long digit strings
            return -(MAX_OFFSET + 1) if text.startswith("-") else MAX_OFFSET + 1
        return int(text)
    return None


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def validate_pagination_params(
    page: Any = None,
    limit: Any = None,
    offset: Any = None,
    default_limit: int = DEFAULT_PAGE_SIZE,
    max_limit: int = MAX_PAGE_SIZE,
) -> Tuple[PaginationParams, List[FieldError]]:
    """
    Validates raw pagination parameters.

    Absent values take defaults. Present values that are not integers, are
    below their minimum, or (for limit) exceed max_limit are reported as
    errors rather than clamped: accepting them could force unbounded result
    sets. A page or offset whose item offset does not fit in a signed 64-bit
    integer is reported as out of range.

    Returns:
        The sanitized parameters and the list of errors (empty when valid).
        When errors are present the returned parameters hold defaults for
        the failing fields.
    """
    errors: List[FieldError] = []
    sanitized_page = 1
    sanitized_limit = default_limit
    sanitized_offset: Optional[int] = None

    page_num = None if _is_blank(page) else _parse_int(page)
    if not _is_blank(page) and (page_num is None or page_num < 1):
        errors.append(FieldError(field="page", message="Page must be a positive integer"))
        page_num = None

    if not _is_blank(limit):
        limit_num = _parse_int(limit)
        if limit_num is None or limit_num < 1:
            errors.append(FieldError(field="limit", message="Limit must be a positive integer"))
        elif limit_num > max_limit:
            errors.append(FieldError(field="limit", message=f"Limit cannot exceed {max_limit}"))
        else:
            sanitized_limit = limit_num

    if page_num is not None:
        if (page_num - 1) * sanitized_limit > MAX_OFFSET:
            errors.append(FieldError(field="page", message="Page is out of range"))
        else:
            sanitized_page = page_num

    if not _is_blank(offset):
        offset_num = _parse_int(offset)
        if offset_num is None or offset_num < 0:
            errors.append(FieldError(field="offset", message="Offset must be a non-negative integer"))
        elif offset_num > MAX_OFFSET:
            errors.append(FieldError(field="offset", message="Offset is out of range"))
        else:
            sanitized_offset = offset_num

    if errors:
        logger.debug(f"Rejected pagination params page={page!r} limit={limit!r} offset={offset!r}: {errors}")

    return PaginationParams(page=sanitized_page, limit=sanitized_limit, offset=sanitized_offset), errors


# --- Presentation ---

def build_pagination_links(
    meta: PaginationMeta,
    base_url: str,
    query_params: Optional[Mapping[str, Any]] = None,
) -> Dict[str, str]:
    """
    Builds navigation links for a paginated response.

    Other query parameters (filters, sorting) are preserved; `page`, `limit`
    and `offset` are always rewritten. When the current range does not start
    on a page boundary, the self link carries the offset instead of a page.
    """
    preserved = {
        key: value
        for key, value in (query_params or {}).items()
        if key not in ("page", "limit", "offset") and value is not None
    }

    def build_url(page_number: int) -> str:
        params = {**preserved, "page": str(page_number), "limit": str(meta.items_per_page)}
        return f"{base_url}?{urlencode(params)}"

    if meta.offset == calculate_skip(meta.current_page, meta.items_per_page):
        self_link = build_url(meta.current_page)
    else:
        params = {**preserved, "offset": str(meta.offset), "limit": str(meta.items_per_page)}
        self_link = f"{base_url}?{urlencode(params)}"

    links = {
        "self": self_link,
        "first": build_url(1),
        "last": build_url(max(meta.total_pages, 1)),
    }
    if meta.prev_page is not None:
        links["prev"] = build_url(meta.prev_page)
    if meta.next_page is not None:
        links["next"] = build_url(meta.next_page)
    return links


def pagination_summary(meta: PaginationMeta) -> str:
    """Human-readable description of the current page."""
    if meta.total_items == 0:
        return "No items found"
    if meta.total_items == 1:
        return "Showing 1 item"
    if meta.total_pages == 1:
        return f"Showing all {meta.total_items} items"
    return (
        f"Showing {meta.start_item}-{meta.end_item} of {meta.total_items} items "
        f"(Page {meta.current_page} of {meta.total_pages})"
    )
