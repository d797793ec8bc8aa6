# Settings management (reads env vars/secrets)
# movie_catalog/core/config.py

import logging
from functools import lru_cache
from typing import List, Literal, Optional, Union

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application configuration settings loaded from environment variables or .env file.
    """
    # --- Project Info ---
    PROJECT_NAME: str = Field("Movie Catalog API", validation_alias="PROJECT_NAME")
    API_V1_STR: str = Field("/api", validation_alias="API_V1_STR") # Base path for API endpoints
    VERSION: str = Field("1.0.0", validation_alias="APP_VERSION")

    # --- Logging / Debug ---
    LOG_LEVEL: str = Field("INFO", validation_alias="LOG_LEVEL")
    # When enabled, error envelopes carry the exception type and text in `details`
    DEBUG: bool = Field(False, validation_alias="DEBUG")

    # --- Database (MongoDB) ---
    # SecretStr keeps credentials out of logs and reprs
    MONGODB_URI: SecretStr = Field(
        SecretStr("mongodb://localhost:27017/movie_catalog"), validation_alias="MONGODB_URI"
    )
    MONGODB_DB_NAME: Optional[str] = Field(
        None,
        validation_alias="MONGODB_DB_NAME",
        description="Database name. Falls back to the URI's default database, then 'movie_catalog'.",
    )

    # --- Cache (Redis) ---
    REDIS_URL: Optional[SecretStr] = Field(
        None,
        validation_alias="REDIS_URL",
        description="Redis URL for the single-record cache. Caching is disabled when unset.",
    )
    CACHE_TTL_MOVIES: int = Field(
        default=300,
        validation_alias="CACHE_TTL_MOVIES",
        description="Time-to-live for cached movie lookups in seconds",
    )

    # --- Authentication (bearer tokens for write routes) ---
    JWT_SECRET: SecretStr = Field(..., validation_alias="JWT_SECRET")
    JWT_ALGORITHM: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    JWT_AUDIENCE: Optional[str] = Field(None, validation_alias="JWT_AUDIENCE")

    # --- Listing / Pagination ---
    DEFAULT_PAGE_SIZE: int = Field(10, ge=1, validation_alias="DEFAULT_PAGE_SIZE")
    MAX_PAGE_SIZE: int = Field(
        100,
        ge=1,
        validation_alias="MAX_PAGE_SIZE",
        description="Upper bound for ?limit=. Larger values are rejected, not clamped.",
    )
    PAGE_WINDOW_SIZE: int = Field(
        10,
        ge=1,
        validation_alias="PAGE_WINDOW_SIZE",
        description="How many page numbers the pagination window shows at most",
    )
    SLUG_MAX_LENGTH: int = Field(50, ge=1, validation_alias="SLUG_MAX_LENGTH")
    # 'exact' -> genre/director equality, 'partial' -> case-insensitive substring
    FILTER_MATCH_MODE: Literal["exact", "partial"] = Field("exact", validation_alias="FILTER_MATCH_MODE")

    # --- CORS ---
    # Expects a comma-separated string in env var like "http://localhost:3000,https://*.example.com"
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["*"],
        validation_alias="BACKEND_CORS_ORIGINS"
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            # Comma-separated env value
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, list):
            return v
        raise ValueError(f"Invalid BACKEND_CORS_ORIGINS format: {v}")

    @field_validator("FILTER_MATCH_MODE", mode='before')
    @classmethod
    def normalize_match_mode(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )


# Cached: settings are read once per process
@lru_cache()
def get_settings() -> Settings:
    """Returns the application settings instance."""
    logger.info("Attempting to load application settings...")
    try:
        settings_instance = Settings()
        logger.info(f"Settings loaded successfully for Project: {settings_instance.PROJECT_NAME}")
        logger.info(f"Log Level: {settings_instance.LOG_LEVEL}")
        logger.info(f"CORS Origins: {settings_instance.BACKEND_CORS_ORIGINS}")
        logger.info(
            f"Page size: default={settings_instance.DEFAULT_PAGE_SIZE}, max={settings_instance.MAX_PAGE_SIZE}, "
            f"filter match mode={settings_instance.FILTER_MATCH_MODE}"
        )
        logger.info(f"Redis cache: {'enabled' if settings_instance.REDIS_URL else 'disabled'}")
        return settings_instance
    except Exception as e:
        logger.critical(f"CRITICAL ERROR: Failed to load application settings: {e}", exc_info=True)
        raise RuntimeError(f"Could not load settings: {e}")
