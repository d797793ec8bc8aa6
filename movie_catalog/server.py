"""
Primary FastAPI application entry point
"""
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from movie_catalog.api.api import api_router
from movie_catalog.api.deps import close_connections, initialize_connections
from movie_catalog.core.config import Settings, get_settings
from movie_catalog.core.errors import CatalogError, classify_error

logger = logging.getLogger(__name__)


def _request_context(request: Request) -> str:
    """Picks the user-facing message context for errors raised by this request."""
    path = request.url.path.rstrip("/")
    if path.endswith("/movies") and request.method == "GET":
        params = request.query_params
        return "search" if params.get("search") or params.get("q") else "pagination"
    if "/movies" in path:
        return "movie"
    return "general"


def _error_response(request: Request, exc: Exception, settings: Settings) -> JSONResponse:
    envelope = classify_error(exc, context=_request_context(request), debug=settings.DEBUG)
    headers = {"WWW-Authenticate": "Bearer"} if envelope.http_status == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=envelope.http_status,
        content={"success": False, "error": envelope.model_dump(mode="json")},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        return _error_response(request, exc, settings)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Request validation failed for {request.method} {request.url.path}: {exc.errors()}")
        return _error_response(request, exc, settings)

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.error(f"Database error during {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(request, exc, settings)

    @app.exception_handler(RedisError)
    async def cache_error_handler(request: Request, exc: RedisError):
        logger.error(f"Cache error during {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(request, exc, settings)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error during {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error_response(request, exc, settings)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Application startup: Initializing connections...")
        await initialize_connections(settings)
        yield
        # Shutdown
        logger.info("Application shutdown: Closing connections...")
        await close_connections()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_response_time_header(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        return response

    register_exception_handlers(app, settings)
    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/", status_code=status.HTTP_200_OK)
    async def root():
        """Root endpoint to confirm the API is running."""
        return {"message": f"Welcome to {settings.PROJECT_NAME}"}

    return app


logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger.info("Starting Movie Catalog API server...")

app = create_app()

# For local development
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("movie_catalog.server:app", host="0.0.0.0", port=8080, reload=True)
