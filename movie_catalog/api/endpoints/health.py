# /health endpoint
# movie_catalog/api/endpoints/health.py

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from movie_catalog.api import deps
from movie_catalog.core.config import Settings, get_settings

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    database: str
    cache: str


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Perform a Health Check",
    response_description="Returns the health status of the API and its backing stores.",
)
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Liveness check. Reports whether the database and cache clients were
    initialized without pinging them, so it stays fast.
    """
    database = "ok" if deps.db_instance is not None else "unavailable"
    if settings.REDIS_URL is None:
        cache = "disabled"
    else:
        cache = "ok" if deps.redis_client is not None else "unavailable"
    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        version=settings.VERSION,
        database=database,
        cache=cache,
    )
