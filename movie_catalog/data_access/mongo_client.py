# MongoDB connection and repository logic
# movie_catalog/data_access/mongo_client.py

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from movie_catalog.core.errors import CorruptRecordError, DependencyError
from movie_catalog.models.movie import MovieRecord
from movie_catalog.services.query_builder import (
    SEARCH_FIELDS,
    FilterOperator,
    FilterPredicate,
    QuerySpec,
    SortDirection,
)

logger = logging.getLogger(__name__)

MOVIES_COLLECTION = "movies"
COUNTERS_COLLECTION = "counters"
# Never expose Mongo's internal _id
PROJECTION = {"_id": 0}


# --- QuerySpec translation ---

def _contains(value: str) -> Dict[str, Any]:
    return {"$regex": re.escape(value), "$options": "i"}


def _predicate_to_mongo(predicate: FilterPredicate) -> Dict[str, Any]:
    if predicate.operator == FilterOperator.SEARCH:
        return {"$or": [{field: _contains(predicate.value)} for field in SEARCH_FIELDS]}
    if predicate.operator == FilterOperator.CONTAINS:
        return {predicate.field: _contains(predicate.value)}
    # Equality; for the genres array Mongo matches any element
    return {predicate.field: predicate.value}


def build_mongo_filter(spec: QuerySpec) -> Dict[str, Any]:
    """Translates the spec's predicates into a MongoDB filter document (AND of all predicates)."""
    clauses = [_predicate_to_mongo(p) for p in spec.filters]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_mongo_sort(spec: QuerySpec) -> List[Tuple[str, int]]:
    """Sort directive plus a movie_id tiebreaker so equal keys page deterministically."""
    direction = ASCENDING if spec.sort.direction == SortDirection.ASC else DESCENDING
    sort = [(spec.sort.field, direction)]
    if spec.sort.field != "movie_id":
        sort.append(("movie_id", ASCENDING))
    return sort


def record_from_document(doc: Dict[str, Any]) -> MovieRecord:
    """Parses a stored document, reporting a schema mismatch as a server-side error."""
    try:
        return MovieRecord.model_validate(doc)
    except ValidationError as e:
        logger.error(f"Stored movie {doc.get('movie_id')!r} does not match the record model: {e}")
        raise CorruptRecordError(details={"movie_id": doc.get("movie_id")})


# --- Base Repository ---
class BaseRepository:
    """Common repository logic."""
    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str):
        self.db = db
        self.collection: AsyncIOMotorCollection = db[collection_name]
        logger.debug(f"Initialized repository for collection: {collection_name}")

    def _check_db(self):
        """Helper to check if DB instance is available."""
        if self.db is None or self.collection is None:
            logger.critical("Database not available for movie repository")
            raise DependencyError("Database service not available.")


# --- Movie Repository ---
class MovieRepository(BaseRepository):
    """
    Storage collaborator for the catalog.

    Movies carry an integer `movie_id` allocated from a counters document
    (never reused, even after deletes) and a `slug`; both have unique
    indexes, so a slug race between two inserts ends in a DuplicateKeyError.
    """
    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db, collection_name=MOVIES_COLLECTION)
        self.counters: AsyncIOMotorCollection = db[COUNTERS_COLLECTION]

    async def ensure_indexes(self) -> None:
        """Creates the unique and sort indexes. Safe to call on every startup."""
        self._check_db()
        try:
            await self.collection.create_index("movie_id", unique=True)
            await self.collection.create_index("slug", unique=True)
            for field in ("created_at", "title", "release_year", "rating", "view_count"):
                await self.collection.create_index([(field, ASCENDING), ("movie_id", ASCENDING)])
            logger.info("Movie collection indexes ensured.")
        except PyMongoError as e:
            logger.error(f"DB error creating movie indexes: {e}", exc_info=True)
            raise

    async def count_matching(self, spec: QuerySpec) -> int:
        """Counts documents matching the spec's filters."""
        self._check_db()
        query = build_mongo_filter(spec)
        try:
            return await self.collection.count_documents(query)
        except PyMongoError as e:
            logger.error(f"DB error counting movies with filters {query}: {e}", exc_info=True)
            raise

    async def fetch_page(self, spec: QuerySpec) -> List[MovieRecord]:
        """Fetches one ordered page of movies for the spec."""
        self._check_db()
        query = build_mongo_filter(spec)
        try:
            cursor = (
                self.collection.find(query, PROJECTION)
                .sort(build_mongo_sort(spec))
                .skip(spec.offset)
                .limit(spec.limit)
            )
            docs = await cursor.to_list(length=spec.limit)
            return [record_from_document(doc) for doc in docs]
        except PyMongoError as e:
            logger.error(f"DB error finding movies with filters {query}: {e}", exc_info=True)
            raise

    async def exists_by_slug(self, slug: str) -> bool:
        self._check_db()
        try:
            return await self.collection.count_documents({"slug": slug}, limit=1) > 0
        except PyMongoError as e:
            logger.error(f"DB error checking slug '{slug}': {e}", exc_info=True)
            raise

    async def fetch_by_numeric_id(self, movie_id: int) -> Optional[MovieRecord]:
        """Finds a single movie by its numeric ID."""
        self._check_db()
        try:
            doc = await self.collection.find_one({"movie_id": movie_id}, PROJECTION)
            return record_from_document(doc) if doc else None
        except PyMongoError as e:
            logger.error(f"DB error finding movie by ID {movie_id}: {e}", exc_info=True)
            raise

    async def fetch_by_slug(self, slug: str) -> Optional[MovieRecord]:
        """Finds a single movie by its slug."""
        self._check_db()
        try:
            doc = await self.collection.find_one({"slug": slug}, PROJECTION)
            return record_from_document(doc) if doc else None
        except PyMongoError as e:
            logger.error(f"DB error finding movie by slug '{slug}': {e}", exc_info=True)
            raise

    async def _next_movie_id(self) -> int:
        counter = await self.counters.find_one_and_update(
            {"_id": MOVIES_COLLECTION},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    async def insert(self, movie_data: Dict[str, Any], slug: str) -> int:
        """
        Inserts a movie with an already-resolved slug.

        Args:
            movie_data: Movie attributes without movie_id or slug (JSON-ready).
            slug: The slug to store.

        Returns:
            The newly allocated movie_id.

        Raises:
            DuplicateKeyError: If the slug was claimed concurrently.
            PyMongoError: For any other database failure.
        """
        self._check_db()
        now = datetime.now(timezone.utc)
        try:
            movie_id = await self._next_movie_id()
            doc = {**movie_data, "movie_id": movie_id, "slug": slug, "created_at": now, "updated_at": now}
            await self.collection.insert_one(doc)
            logger.info(f"Inserted movie {movie_id} with slug '{slug}'")
            return movie_id
        except PyMongoError as e:
            logger.error(f"DB error inserting movie with slug '{slug}': {e}", exc_info=True)
            raise

    async def update_by_id(self, movie_id: int, fields: Dict[str, Any]) -> Optional[MovieRecord]:
        """Merges `fields` into the movie and returns the updated record, or None if missing."""
        self._check_db()
        update = {**fields, "updated_at": datetime.now(timezone.utc)}
        try:
            doc = await self.collection.find_one_and_update(
                {"movie_id": movie_id},
                {"$set": update},
                projection=PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
            return record_from_document(doc) if doc else None
        except PyMongoError as e:
            logger.error(f"DB error updating movie {movie_id}: {e}", exc_info=True)
            raise

    async def delete_by_id(self, movie_id: int) -> bool:
        """Deletes a movie by ID. Returns True when a document was removed."""
        self._check_db()
        try:
            result = await self.collection.delete_one({"movie_id": movie_id})
            return result.deleted_count > 0
        except PyMongoError as e:
            logger.error(f"DB error deleting movie {movie_id}: {e}", exc_info=True)
            raise
