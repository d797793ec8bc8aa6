"""
Test Suite for the Movies API
Covers listing, ID/slug retrieval, auth on write routes and the error envelope.
"""

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from movie_catalog.server import app


# ---------------------------------------------------------------------
# READ
# ---------------------------------------------------------------------
def test_list_movies(client, repo):
    repo.seed("Inception", genres=["Sci-Fi"], release_year=2010)
    repo.seed("Heat", genres=["Crime"], release_year=1995)

    response = client.get("/api/movies", params={"genre": "Crime"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [m["slug"] for m in body["items"]] == ["heat"]
    assert body["pagination"]["total_items"] == 1
    assert body["links"]["self"].startswith("http://testserver/api/movies?")
    assert "X-Response-Time" in response.headers


def test_list_movies_invalid_limit(client):
    response = client.get("/api/movies", params={"limit": "-5"})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["kind"] == "validation"
    assert error["details"]["errors"][0]["field"] == "limit"


def test_list_movies_limit_over_max(client):
    response = client.get("/api/movies", params={"limit": "1000"})
    assert response.status_code == 400


def test_list_movies_page_beyond_storage_range(client):
    response = client.get("/api/movies", params={"page": "99999999999999999999"})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["kind"] == "validation"
    assert error["details"]["errors"][0]["field"] == "page"


def test_get_movie_by_id_and_slug(client, repo):
    seeded = repo.seed("The Dark Knight", release_year=2008)

    by_id = client.get(f"/api/movies/{seeded.movie_id}")
    by_slug = client.get("/api/movies/the-dark-knight")
    assert by_id.status_code == 200 and by_slug.status_code == 200
    assert by_id.json()["data"] == by_slug.json()["data"]


def test_get_movie_not_found(client):
    response = client.get("/api/movies/999")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["kind"] == "not_found"


def test_get_movie_malformed_identifier(client):
    response = client.get("/api/movies/-bad-")
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation"


# ---------------------------------------------------------------------
# WRITE
# ---------------------------------------------------------------------
def test_create_requires_token(client):
    response = client.post("/api/movies", json={"title": "Inception"})
    assert response.status_code == 401
    assert response.json()["error"]["kind"] == "unauthorized"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_create_rejects_bad_token(client):
    response = client.post(
        "/api/movies", json={"title": "Inception"}, headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


def test_create_movie_twice(client, auth_headers):
    first = client.post("/api/movies", json={"title": "Inception", "release_year": 2010}, headers=auth_headers)
    second = client.post("/api/movies", json={"title": "Inception", "release_year": 2010}, headers=auth_headers)
    assert first.status_code == 201 and second.status_code == 201
    assert first.json()["data"]["slug"] == "inception"
    assert second.json()["data"]["slug"] == "inception-1"


def test_create_ignores_client_slug(client, auth_headers):
    response = client.post("/api/movies", json={"title": "Heat", "slug": "custom"}, headers=auth_headers)
    assert response.json()["data"]["slug"] == "heat"


def test_create_validation_error(client, auth_headers):
    response = client.post("/api/movies", json={"title": "Heat", "rating": 42}, headers=auth_headers)
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["kind"] == "validation"
    assert error["details"]["errors"][0]["field"] == "rating"


def test_update_and_delete(client, repo, auth_headers):
    repo.seed("Heat", rating=8.0)

    patched = client.patch("/api/movies/heat", json={"rating": 8.4}, headers=auth_headers)
    assert patched.status_code == 200
    assert patched.json()["data"]["rating"] == 8.4

    deleted = client.delete("/api/movies/heat", headers=auth_headers)
    assert deleted.status_code == 200
    assert deleted.json()["slug"] == "heat"
    assert client.get("/api/movies/heat").status_code == 404


def test_update_rejects_null_title(client, repo, auth_headers):
    repo.seed("Heat", rating=8.0)

    response = client.patch("/api/movies/heat", json={"title": None}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["details"]["errors"][0]["field"] == "title"
    assert repo.docs[0]["title"] == "Heat"

    fetched = client.get("/api/movies/heat")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["title"] == "Heat"


def test_delete_requires_token(client, repo):
    repo.seed("Heat")
    assert client.delete("/api/movies/heat").status_code == 401
    assert len(repo.docs) == 1


# ---------------------------------------------------------------------
# ERRORS / HEALTH
# ---------------------------------------------------------------------
def test_storage_outage_is_dependency_error(client, repo, monkeypatch):
    from pymongo.errors import ServerSelectionTimeoutError

    async def unavailable(spec):
        raise ServerSelectionTimeoutError("No servers found yet")

    monkeypatch.setattr(repo, "count_matching", unavailable)
    response = client.get("/api/movies")
    assert response.status_code == 504
    assert response.json()["error"]["kind"] == "dependency"


def test_unexpected_error_is_internal(repo, settings, monkeypatch):
    from movie_catalog.api.deps import get_movie_service
    from movie_catalog.services.movie_service import MovieService

    async def broken(movie_id):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(repo, "fetch_by_numeric_id", broken)
    app.dependency_overrides[get_movie_service] = lambda: MovieService(repository=repo, settings=settings)
    try:
        response = TestClient(app, raise_server_exceptions=False).get("/api/movies/5")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 500
    error = response.json()["error"]
    assert error["kind"] == "internal"
    assert "unexpected" not in error["message"]


def test_corrupt_stored_record_is_internal(client, repo):
    repo.seed("Heat")
    repo.docs.append({"movie_id": 99, "slug": "broken", "title": None, "genres": [], "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)})

    response = client.get("/api/movies/broken")
    assert response.status_code == 500
    assert response.json()["error"]["kind"] == "internal"

    listing = client.get("/api/movies")
    assert listing.status_code == 500
    assert listing.json()["error"]["kind"] == "internal"


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert set(response.json()) == {"status", "version", "database", "cache"}
