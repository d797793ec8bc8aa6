import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from redis.exceptions import ConnectionError as RedisConnectionError

from movie_catalog.core.errors import UnauthorizedError
from movie_catalog.core.security import decode_token
from movie_catalog.data_access.redis_client import CacheRepository, movie_id_key, movie_slug_key


class DictRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)


class DownRedis:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("connection refused")

    async def delete(self, *keys):
        raise RedisConnectionError("connection refused")


# ---------------------------------------------------------------------
# CACHE
# ---------------------------------------------------------------------
def test_cache_keys():
    assert movie_id_key(7) == "movie:id:7"
    assert movie_slug_key("heat") == "movie:slug:heat"


def test_cache_round_trip_uses_default_ttl():
    client = DictRedis()
    cache = CacheRepository(client, default_ttl=300)
    assert asyncio.run(cache.set_json("movie:id:1", {"title": "Heat"}))
    assert asyncio.run(cache.get_json("movie:id:1")) == {"title": "Heat"}
    assert client.expiry["movie:id:1"] == 300
    assert asyncio.run(cache.delete("movie:id:1", "movie:slug:heat")) == 1


def test_corrupt_entry_is_a_miss():
    client = DictRedis()
    client.data["movie:id:1"] = "{not json"
    assert asyncio.run(CacheRepository(client).get_json("movie:id:1")) is None


def test_cache_outage_degrades_to_miss():
    cache = CacheRepository(DownRedis())
    assert asyncio.run(cache.get_json("movie:id:1")) is None
    assert asyncio.run(cache.set_json("movie:id:1", {})) is False
    assert asyncio.run(cache.delete("movie:id:1")) == 0


# ---------------------------------------------------------------------
# TOKENS
# ---------------------------------------------------------------------
def _token(settings, **claims):
    return jwt.encode(claims, settings.JWT_SECRET.get_secret_value(), algorithm=settings.JWT_ALGORITHM)


def test_valid_token_payload(settings):
    token = _token(settings, sub="editor-1", exp=datetime.now(timezone.utc) + timedelta(minutes=5))
    assert decode_token(token, settings)["sub"] == "editor-1"


def test_expired_token_rejected(settings):
    token = _token(settings, sub="editor-1", exp=datetime.now(timezone.utc) - timedelta(minutes=5))
    with pytest.raises(UnauthorizedError, match="expired"):
        decode_token(token, settings)


def test_wrong_secret_rejected(settings):
    token = jwt.encode({"sub": "editor-1"}, "some-other-secret", algorithm="HS256")
    with pytest.raises(UnauthorizedError):
        decode_token(token, settings)
