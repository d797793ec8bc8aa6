# movie_catalog/services/movie_service.py

import logging
from typing import Any, Dict, Mapping, Optional

from pymongo.errors import DuplicateKeyError

from movie_catalog.core.config import Settings
from movie_catalog.core.errors import (
    DuplicateMovieError,
    FieldError,
    MovieNotFoundError,
    QueryValidationError,
)
from movie_catalog.data_access.mongo_client import MovieRepository, record_from_document
from movie_catalog.data_access.redis_client import CacheRepository, movie_id_key, movie_slug_key
from movie_catalog.models.movie import (
    ListingFilters,
    ListingSorting,
    MovieCreate,
    MovieRecord,
    MovieUpdate,
    PaginatedMovieResponse,
)
from movie_catalog.services.query_builder import build_query_spec
from movie_catalog.utils.identifiers import Invalid, NumericId, classify_identifier
from movie_catalog.utils.pagination import build_pagination_links, compute_pagination, pagination_summary
from movie_catalog.utils.slug import generate_slug, is_valid_slug, resolve_unique_slug_async

logger = logging.getLogger(__name__)

# One extra attempt after a slug race lost at the unique index
SLUG_RACE_RETRIES = 1


def _is_slug_conflict(error: DuplicateKeyError) -> bool:
    key_value = (error.details or {}).get("keyValue") or {}
    return "slug" in key_value or "slug" in str(error)


class MovieService:
    def __init__(self, repository: MovieRepository, settings: Settings, cache: Optional[CacheRepository] = None):
        """
        Initializes the Movie Service.

        Args:
            repository: Storage collaborator (MovieRepository or an equivalent).
            settings: Application settings (page sizes, match mode, slug length).
            cache: Optional cache for single-record lookups.
        """
        self.repository = repository
        self.settings = settings
        self.cache = cache

    # --- Listing ---

    async def list_movies(
        self,
        raw_params: Mapping[str, Any],
        base_url: Optional[str] = None,
    ) -> PaginatedMovieResponse:
        """
        Retrieves a filtered, sorted, paginated list of movies.

        Args:
            raw_params: Raw query-string parameters.
            base_url: When given, navigation links are built against it.

        Returns:
            A PaginatedMovieResponse whose pagination reflects the total
            counted for this request.

        Raises:
            QueryValidationError: If page/limit/offset are invalid.
            PyMongoError: If a database error occurs.
        """
        result = build_query_spec(
            raw_params,
            default_limit=self.settings.DEFAULT_PAGE_SIZE,
            max_limit=self.settings.MAX_PAGE_SIZE,
            match_mode=self.settings.FILTER_MATCH_MODE,
            window_size=self.settings.PAGE_WINDOW_SIZE,
        )
        spec = result.raise_for_errors()

        total_items = await self.repository.count_matching(spec)
        movies = await self.repository.fetch_page(spec)

        # Authoritative pass: the optimistic one ran before the count was known
        pagination = compute_pagination(
            result.pagination.current_page,
            spec.limit,
            total_items,
            max_limit=self.settings.MAX_PAGE_SIZE,
            window_size=self.settings.PAGE_WINDOW_SIZE,
            offset=spec.offset,
        )

        filters = ListingFilters()
        for predicate in spec.filters:
            if predicate.field == "genres":
                filters.genre = predicate.value
            elif predicate.field == "release_year":
                filters.year = predicate.value
            else:
                setattr(filters, predicate.field, predicate.value)

        links = build_pagination_links(pagination, base_url, raw_params) if base_url else {}
        logger.info(
            f"Fetched {len(movies)} movies (page {pagination.current_page}/{pagination.total_pages}, "
            f"total {total_items}) sorted by {spec.sort.field} {spec.sort.direction.value}"
        )
        return PaginatedMovieResponse(
            items=movies,
            pagination=pagination,
            links=links,
            summary=pagination_summary(pagination),
            filters=filters,
            sorting=ListingSorting(sort_by=spec.sort.field, sort_order=spec.sort.direction.value),
        )

    # --- Single record ---

    async def _lookup(self, identifier: str) -> MovieRecord:
        token = classify_identifier(identifier)
        if isinstance(token, Invalid):
            logger.warning(f"Rejected malformed movie identifier: {identifier!r}")
            raise QueryValidationError(
                [FieldError(field="identifier", message="Movie identifier must be a positive integer or a slug")],
                message="Invalid movie identifier",
            )

        if isinstance(token, NumericId):
            movie = await self.repository.fetch_by_numeric_id(token.value)
            # Digit-only titles produce digit-only slugs; try the slug column next
            if movie is None and is_valid_slug(identifier):
                movie = await self.repository.fetch_by_slug(identifier)
        else:
            movie = await self.repository.fetch_by_slug(token.value)

        if movie is None:
            logger.warning(f"Movie with identifier '{identifier}' not found in database.")
            raise MovieNotFoundError(f"Movie '{identifier}' not found", details={"identifier": identifier})
        return movie

    async def _cache_get(self, identifier: str) -> Optional[MovieRecord]:
        if self.cache is None:
            return None
        token = classify_identifier(identifier)
        if isinstance(token, NumericId):
            key = movie_id_key(token.value)
        elif isinstance(token, Invalid):
            return None
        else:
            key = movie_slug_key(token.value)
        cached = await self.cache.get_json(key)
        return record_from_document(cached) if cached else None

    async def _cache_put(self, movie: MovieRecord) -> None:
        if self.cache is None:
            return
        payload = movie.model_dump(mode="json")
        ttl = self.settings.CACHE_TTL_MOVIES
        await self.cache.set_json(movie_id_key(movie.movie_id), payload, ttl)
        await self.cache.set_json(movie_slug_key(movie.slug), payload, ttl)

    async def _cache_evict(self, movie: MovieRecord) -> None:
        if self.cache is not None:
            await self.cache.delete(movie_id_key(movie.movie_id), movie_slug_key(movie.slug))

    async def get_movie(self, identifier: str) -> MovieRecord:
        """
        Resolves a numeric ID or slug to exactly one movie.

        Raises:
            QueryValidationError: If the identifier is neither an ID nor a slug.
            MovieNotFoundError: If no movie matches.
            PyMongoError: If a database error occurs.
        """
        cached = await self._cache_get(identifier)
        if cached is not None:
            return cached
        movie = await self._lookup(identifier)
        await self._cache_put(movie)
        return movie

    # --- Writes ---

    async def create_movie(self, movie_data: MovieCreate) -> MovieRecord:
        """
        Creates a movie, assigning it a unique slug derived from the title.

        The slug is resolved against existing slugs before the insert. If a
        concurrent insert claims the same slug first, the unique index
        rejects ours; the slug is re-resolved and the insert retried once.

        Raises:
            DuplicateMovieError: If the slug is still taken after the retry.
            PyMongoError: If a database error occurs.
        """
        payload = movie_data.model_dump(mode="json")
        base_slug = generate_slug(movie_data.title, max_length=self.settings.SLUG_MAX_LENGTH)

        attempts = 0
        while True:
            slug = await resolve_unique_slug_async(base_slug, self.repository.exists_by_slug)
            try:
                movie_id = await self.repository.insert(payload, slug)
                break
            except DuplicateKeyError as e:
                if not _is_slug_conflict(e) or attempts >= SLUG_RACE_RETRIES:
                    logger.warning(f"Duplicate movie rejected for slug '{slug}': {e}")
                    raise DuplicateMovieError(details={"field": "slug", "value": slug})
                attempts += 1
                logger.info(f"Slug '{slug}' was claimed concurrently, re-resolving (attempt {attempts})")

        movie = await self.repository.fetch_by_numeric_id(movie_id)
        if movie is None:
            # Deleted between insert and read-back
            raise MovieNotFoundError(f"Movie {movie_id} not found", details={"identifier": str(movie_id)})
        logger.info(f"Movie created: '{movie.title}' (ID {movie.movie_id}, slug '{movie.slug}')")
        return movie

    async def update_movie(self, identifier: str, update: MovieUpdate) -> MovieRecord:
        """
        Merges the fields present in `update` into an existing movie.

        The slug is left untouched even when the title changes, so existing
        links keep working.
        """
        fields: Dict[str, Any] = update.changed_fields()
        if not fields:
            raise QueryValidationError(
                [FieldError(field="body", message="No valid fields provided for update.")],
                message="No data provided for update.",
            )

        movie = await self._lookup(identifier)
        updated = await self.repository.update_by_id(movie.movie_id, fields)
        if updated is None:
            raise MovieNotFoundError(f"Movie '{identifier}' not found", details={"identifier": identifier})
        await self._cache_evict(movie)
        logger.info(f"Movie {movie.movie_id} updated fields: {sorted(fields)}")
        return updated

    async def delete_movie(self, identifier: str) -> MovieRecord:
        """Deletes a movie by ID or slug and returns the removed record."""
        movie = await self._lookup(identifier)
        deleted = await self.repository.delete_by_id(movie.movie_id)
        if not deleted:
            raise MovieNotFoundError(f"Movie '{identifier}' not found", details={"identifier": identifier})
        await self._cache_evict(movie)
        logger.info(f"Movie {movie.movie_id} ('{movie.slug}') deleted")
        return movie
