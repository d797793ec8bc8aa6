# Redis connection and caching logic
# movie_catalog/data_access/redis_client.py

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

MOVIE_ID_KEY = "movie:id:{movie_id}"
MOVIE_SLUG_KEY = "movie:slug:{slug}"


def movie_id_key(movie_id: int) -> str:
    return MOVIE_ID_KEY.format(movie_id=movie_id)


def movie_slug_key(slug: str) -> str:
    return MOVIE_SLUG_KEY.format(slug=slug)


class CacheRepository:
    """
    Provides structured access to Redis for caching operations.
    Cache failures never fail a request: they are logged and treated as misses.
    """
    def __init__(self, client: redis.Redis, default_ttl: Optional[int] = None):
        self.client = client
        self.default_ttl = default_ttl
        logger.debug("Initialized CacheRepository.")

    async def get_json(self, key: str) -> Optional[Any]:
        """Gets a JSON value from cache. Returns None on a miss or an unreadable entry."""
        try:
            value = await self.client.get(key)
        except RedisError as e:
            logger.error(f"Redis GET error for key {key}: {e}", exc_info=True)
            return None
        if value is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        logger.debug(f"Cache hit for key: {key}")
        try:
            return json.loads(value)
        except (TypeError, json.JSONDecodeError):
            logger.warning(f"Failed to decode JSON from cache key {key}. Ignoring entry.")
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Serializes value to JSON and stores it with a TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            await self.client.set(key, json.dumps(value), ex=ttl)
            logger.debug(f"Setting cache for key: {key} with TTL: {ttl}s")
            return True
        except (TypeError, ValueError) as e:
            logger.warning(f"Value for cache key {key} is not JSON serializable: {e}")
            return False
        except RedisError as e:
            logger.error(f"Redis SET error for key {key}: {e}", exc_info=True)
            return False

    async def delete(self, *keys: str) -> int:
        """Deletes keys from the cache and returns how many existed."""
        if not keys:
            return 0
        try:
            deleted_count = await self.client.delete(*keys)
            logger.debug(f"Deleted {deleted_count} cache keys: {keys}")
            return deleted_count
        except RedisError as e:
            logger.error(f"Redis DELETE error for keys {keys}: {e}", exc_info=True)
            return 0
