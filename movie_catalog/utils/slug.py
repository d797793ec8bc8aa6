# movie_catalog/utils/slug.py

"""
Slug generation and uniqueness resolution for movie titles.

Slugs are lowercase, hyphen-delimited, URL-safe identifiers that are assigned
once at creation time and serve as a second lookup key next to the numeric
movie ID.
"""

import itertools
import logging
import re
import time
from typing import Awaitable, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 50
# Upper bound accepted by the identifier classifier (generated slugs are shorter)
MAX_LOOKUP_SLUG_LENGTH = 100

_DISALLOWED_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RUNS = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")
_SLUG_PATTERN = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


def _truncate(slug: str, max_length: int) -> str:
    """Cuts a slug to max_length, backing off to the last whole segment if the cut splits a word."""
    if len(slug) <= max_length:
        return slug
    cut = slug[:max_length]
    if slug[max_length] != "-" and "-" in cut:
        cut = cut.rsplit("-", 1)[0]
    return cut.strip("-")


def generate_slug(title: str, movie_id: Optional[int] = None, max_length: int = MAX_SLUG_LENGTH) -> str:
    """
    Generates a URL-friendly slug from a movie title.

    Args:
        title: The movie title.
        movie_id: The movie's ID, when already known. Only used for the
            fallback slug of titles without any usable characters.
        max_length: Maximum slug length.

    Returns:
        The slug, e.g. 'the-dark-knight' for 'The Dark Knight'. Titles with no
        alphanumeric characters yield 'movie-<movie_id>', or
        'movie-<epoch millis>' when no ID is available yet (not repeatable).

    Raises:
        ValueError: If title is not a string.
    """
    if not isinstance(title, str):
        raise ValueError("Title is required for slug generation")

    slug = title.lower().strip()
    slug = _DISALLOWED_CHARS.sub("", slug)  # keep letters, digits, whitespace, hyphens
    slug = _WHITESPACE_RUNS.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    slug = slug.strip("-")
    slug = _truncate(slug, max_length)

    if not slug:
        if movie_id:
            slug = f"movie-{movie_id}"
        else:
            slug = f"movie-{int(time.time() * 1000)}"
        logger.debug(f"Title '{title}' produced no slug characters, using fallback '{slug}'")
    return slug


def is_valid_slug(value: str) -> bool:
    """
    Validates slug format: lowercase alphanumeric segments separated by single
    hyphens, no leading/trailing hyphen, at most 100 characters.
    """
    if not value or not isinstance(value, str):
        return False
    return len(value) <= MAX_LOOKUP_SLUG_LENGTH and bool(_SLUG_PATTERN.fullmatch(value))


def iter_slug_candidates(base_slug: str) -> Iterator[str]:
    """Yields base_slug, then base_slug-1, base_slug-2, ... indefinitely."""
    yield base_slug
    for counter in itertools.count(1):
        yield f"{base_slug}-{counter}"


def resolve_unique_slug(base_slug: str, exists: Callable[[str], bool]) -> str:
    """
    Returns the first candidate slug for which `exists` is False.

    The check is optimistic: a concurrent insert can still claim the slug
    before ours commits. The storage layer's unique index is the backstop.
    """
    candidates = iter_slug_candidates(base_slug)
    candidate = next(candidates)
    while exists(candidate):
        candidate = next(candidates)
    if candidate != base_slug:
        logger.debug(f"Slug '{base_slug}' taken, resolved to '{candidate}'")
    return candidate


async def resolve_unique_slug_async(base_slug: str, exists: Callable[[str], Awaitable[bool]]) -> str:
    """Awaitable variant of `resolve_unique_slug` for async existence oracles."""
    candidates = iter_slug_candidates(base_slug)
    candidate = next(candidates)
    while await exists(candidate):
        candidate = next(candidates)
    if candidate != base_slug:
        logger.debug(f"Slug '{base_slug}' taken, resolved to '{candidate}'")
    return candidate
