"""
Shared fixtures for the catalog test suite.
An in-memory repository stands in for MongoDB; no network access is needed.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from pymongo.errors import DuplicateKeyError

from movie_catalog.api.deps import get_movie_service
from movie_catalog.core.config import get_settings
from movie_catalog.data_access.mongo_client import record_from_document
from movie_catalog.models.movie import MovieRecord
from movie_catalog.server import app
from movie_catalog.services.movie_service import MovieService
from movie_catalog.services.query_builder import SEARCH_FIELDS, FilterOperator, QuerySpec, SortDirection

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _duplicate_slug(slug: str) -> DuplicateKeyError:
    return DuplicateKeyError(
        f"E11000 duplicate key error collection: movie_catalog.movies index: slug_1 dup key: {{ slug: \"{slug}\" }}",
        11000,
        {"keyValue": {"slug": slug}},
    )


def _text(value: Any) -> str:
    return str(value or "").lower()


class FakeMovieRepository:
    """In-memory repository with the same async surface as MovieRepository."""

    def __init__(self):
        self.docs: List[Dict[str, Any]] = []
        self._seq = 0
        # Slugs a simulated concurrent writer claims just before our insert lands
        self.claim_on_insert: Set[str] = set()
        self.count_calls = 0
        self.total_override: Optional[int] = None

    # --- helpers ---

    def seed(self, title: str, slug: Optional[str] = None, **fields) -> MovieRecord:
        from movie_catalog.utils.slug import generate_slug

        self._seq += 1
        doc = {
            "title": title,
            "genres": [],
            **fields,
            "movie_id": self._seq,
            "slug": slug or generate_slug(title),
            "created_at": fields.get("created_at", BASE_TIME + timedelta(minutes=self._seq)),
            "updated_at": BASE_TIME + timedelta(minutes=self._seq),
        }
        self.docs.append(doc)
        return MovieRecord.model_validate(doc)

    def _matches(self, doc: Dict[str, Any], spec: QuerySpec) -> bool:
        for predicate in spec.filters:
            value = predicate.value
            if predicate.operator == FilterOperator.SEARCH:
                if not any(_text(value) in _text(doc.get(f)) for f in SEARCH_FIELDS):
                    return False
            elif predicate.field == "genres":
                genres = doc.get("genres") or []
                if predicate.operator == FilterOperator.CONTAINS:
                    if not any(_text(value) in _text(g) for g in genres):
                        return False
                elif value not in genres:
                    return False
            elif predicate.operator == FilterOperator.CONTAINS:
                if _text(value) not in _text(doc.get(predicate.field)):
                    return False
            elif doc.get(predicate.field) != value:
                return False
        return True

    # --- repository surface ---

    async def count_matching(self, spec: QuerySpec) -> int:
        self.count_calls += 1
        if self.total_override is not None:
            return self.total_override
        return sum(1 for d in self.docs if self._matches(d, spec))

    async def fetch_page(self, spec: QuerySpec) -> List[MovieRecord]:
        docs = [d for d in self.docs if self._matches(d, spec)]
        docs.sort(key=lambda d: d["movie_id"])
        docs.sort(key=lambda d: d.get(spec.sort.field), reverse=spec.sort.direction == SortDirection.DESC)
        page = docs[spec.offset:spec.offset + spec.limit]
        return [record_from_document(d) for d in page]

    async def exists_by_slug(self, slug: str) -> bool:
        return any(d["slug"] == slug for d in self.docs)

    async def fetch_by_numeric_id(self, movie_id: int) -> Optional[MovieRecord]:
        doc = next((d for d in self.docs if d["movie_id"] == movie_id), None)
        return record_from_document(doc) if doc else None

    async def fetch_by_slug(self, slug: str) -> Optional[MovieRecord]:
        doc = next((d for d in self.docs if d["slug"] == slug), None)
        return record_from_document(doc) if doc else None

    async def insert(self, movie_data: Dict[str, Any], slug: str) -> int:
        if slug in self.claim_on_insert:
            self.claim_on_insert.discard(slug)
            self.seed("Concurrent Writer", slug=slug)
            raise _duplicate_slug(slug)
        if await self.exists_by_slug(slug):
            raise _duplicate_slug(slug)
        record = self.seed(movie_data["title"], slug=slug, **{k: v for k, v in movie_data.items() if k != "title"})
        return record.movie_id

    async def update_by_id(self, movie_id: int, fields: Dict[str, Any]) -> Optional[MovieRecord]:
        doc = next((d for d in self.docs if d["movie_id"] == movie_id), None)
        if doc is None:
            return None
        doc.update(fields)
        doc["updated_at"] = datetime.now(timezone.utc)
        return record_from_document(doc)

    async def delete_by_id(self, movie_id: int) -> bool:
        before = len(self.docs)
        self.docs = [d for d in self.docs if d["movie_id"] != movie_id]
        return len(self.docs) < before


class FakeCache:
    """Dict-backed stand-in for CacheRepository."""

    def __init__(self):
        self.store: Dict[str, Any] = {}

    async def get_json(self, key: str) -> Optional[Any]:
        return self.store.get(key)

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        self.store[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


# ---------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------
@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def repo():
    return FakeMovieRepository()


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def service(repo, settings):
    return MovieService(repository=repo, settings=settings)


@pytest.fixture
def cached_service(repo, cache, settings):
    return MovieService(repository=repo, settings=settings, cache=cache)


@pytest.fixture
def client(repo, settings):
    app.dependency_overrides[get_movie_service] = lambda: MovieService(repository=repo, settings=settings)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings):
    payload = {"sub": "editor-1", "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    token = jwt.encode(payload, settings.JWT_SECRET.get_secret_value(), algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
