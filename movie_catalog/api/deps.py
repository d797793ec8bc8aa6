# FastAPI dependencies (connections, repositories, services)
# movie_catalog/api/deps.py

import logging
from typing import AsyncGenerator, Optional

import redis.asyncio as redis
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError
from redis.exceptions import RedisError

from movie_catalog.core.config import Settings, get_settings
from movie_catalog.core.errors import DependencyError
from movie_catalog.data_access.mongo_client import MovieRepository
from movie_catalog.data_access.redis_client import CacheRepository
from movie_catalog.services.movie_service import MovieService

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "movie_catalog"

# --- Global Clients (managed by the lifespan in server.py) ---
mongo_client: Optional[AsyncIOMotorClient] = None
db_instance: Optional[AsyncIOMotorDatabase] = None
redis_client: Optional[redis.Redis] = None


def _resolve_db_name(client: AsyncIOMotorClient, settings: Settings) -> str:
    if settings.MONGODB_DB_NAME:
        return settings.MONGODB_DB_NAME
    try:
        return client.get_default_database().name
    except PyMongoError:
        # URI without a database path
        return DEFAULT_DB_NAME


async def initialize_connections(settings: Settings) -> None:
    """
    Initializes MongoDB and (optionally) Redis connections.
    A failed connection leaves the client unset; requests then get a 503.
    """
    global mongo_client, db_instance, redis_client
    logger.info("Initializing external connections...")

    # --- MongoDB Initialization ---
    try:
        uri = settings.MONGODB_URI.get_secret_value()
        logger.info(f"Attempting to connect to MongoDB: {uri[:15]}...")  # Log partial URI safely
        mongo_client = AsyncIOMotorClient(uri, serverSelectionTimeoutMS=5000)
        await mongo_client.admin.command("ping")

        db_name = _resolve_db_name(mongo_client, settings)
        db_instance = mongo_client[db_name]
        await MovieRepository(db_instance).ensure_indexes()
        logger.info(f"MongoDB client initialized successfully. Using database: '{db_name}'")
    except ConnectionFailure as e:
        logger.error(f"MongoDB connection failed during initialization: {e}", exc_info=True)
        mongo_client = None
        db_instance = None
    except PyMongoError as e:
        logger.error(f"Unexpected error initializing MongoDB client: {e}", exc_info=True)
        mongo_client = None
        db_instance = None

    # --- Redis Initialization ---
    if settings.REDIS_URL is None:
        logger.info("REDIS_URL not set; movie lookups will not be cached.")
        return
    try:
        url = settings.REDIS_URL.get_secret_value()
        logger.info(f"Attempting to connect to Redis: {url[:15]}...")
        redis_client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        await redis_client.ping()
        logger.info("Redis client initialized successfully.")
    except RedisError as e:
        logger.error(f"Redis connection failed during initialization: {e}", exc_info=True)
        redis_client = None


async def close_connections() -> None:
    """Closes MongoDB and Redis connections."""
    global mongo_client, db_instance, redis_client
    logger.info("Closing external connections...")
    if mongo_client:
        mongo_client.close()
        logger.info("MongoDB client closed.")
    if redis_client:
        await redis_client.close()
        logger.info("Redis client closed.")
    mongo_client = None
    db_instance = None
    redis_client = None


# --- Database Dependency ---

async def get_db() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """
    FastAPI dependency that yields the application's MongoDB database instance.

    Raises:
        DependencyError: If the database instance is not available (503).
    """
    if db_instance is None:
        logger.critical("MongoDB database instance is not available. Check initialization.")
        raise DependencyError("Database service not available.")
    yield db_instance


# --- Cache Dependency ---

async def get_cache(settings: Settings = Depends(get_settings)) -> Optional[CacheRepository]:
    """Returns a CacheRepository, or None when Redis is not configured or unreachable."""
    if redis_client is None:
        return None
    return CacheRepository(redis_client, default_ttl=settings.CACHE_TTL_MOVIES)


# --- Repository / Service Dependencies ---

async def get_movie_repository(db: AsyncIOMotorDatabase = Depends(get_db)) -> MovieRepository:
    return MovieRepository(db)


async def get_movie_service(
    repository: MovieRepository = Depends(get_movie_repository),
    cache: Optional[CacheRepository] = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> MovieService:
    """FastAPI dependency that provides a MovieService instance."""
    return MovieService(repository=repository, settings=settings, cache=cache)
