# movie_catalog/api/endpoints/movies.py

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status

from movie_catalog.api.deps import get_movie_service
from movie_catalog.core.security import require_token
from movie_catalog.models.movie import (
    DeleteResponse,
    MovieCreate,
    MovieResponse,
    MovieUpdate,
    PaginatedMovieResponse,
)
from movie_catalog.services.movie_service import MovieService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "",  # GET /api/movies
    response_model=PaginatedMovieResponse,
    summary="List Movies",
    description=(
        "Retrieve a paginated list of movies. Supports genre, director, year and "
        "search filters, sortBy/sortOrder, and page/limit or offset pagination."
    ),
    responses={400: {"description": "Invalid pagination parameters"}},
)
async def list_movies(
    request: Request,
    movie_service: MovieService = Depends(get_movie_service),
):
    # Raw params go straight to the query builder, which owns validation
    raw_params = dict(request.query_params)
    base_url = str(request.url.replace(query=""))
    return await movie_service.list_movies(raw_params, base_url=base_url)


@router.get(
    "/{identifier}",  # GET /api/movies/{identifier}
    response_model=MovieResponse,
    summary="Get Movie Details",
    description="Retrieve a single movie by its numeric ID or its slug.",
    responses={
        400: {"description": "Malformed identifier"},
        404: {"description": "Movie not found"},
    },
)
async def get_movie(
    identifier: str,
    movie_service: MovieService = Depends(get_movie_service),
):
    movie = await movie_service.get_movie(identifier)
    return MovieResponse(message="Movie retrieved successfully", data=movie)


@router.post(
    "",
    response_model=MovieResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Movie",
    description="Create a movie. A unique slug is derived from the title.",
    responses={401: {"description": "Missing or invalid token"}, 409: {"description": "Slug conflict"}},
)
async def create_movie(
    movie_in: MovieCreate,
    movie_service: MovieService = Depends(get_movie_service),
    token: Dict[str, Any] = Depends(require_token),
):
    movie = await movie_service.create_movie(movie_in)
    logger.info(f"Movie {movie.movie_id} created by '{token.get('sub', 'unknown')}'")
    return MovieResponse(message="Movie created successfully", data=movie)


@router.patch(
    "/{identifier}",
    response_model=MovieResponse,
    summary="Update Movie",
    description="Partially update a movie by ID or slug. The slug never changes.",
    responses={401: {"description": "Missing or invalid token"}, 404: {"description": "Movie not found"}},
)
async def update_movie(
    identifier: str,
    movie_update: MovieUpdate,
    movie_service: MovieService = Depends(get_movie_service),
    token: Dict[str, Any] = Depends(require_token),
):
    movie = await movie_service.update_movie(identifier, movie_update)
    return MovieResponse(message="Movie updated successfully", data=movie)


@router.delete(
    "/{identifier}",
    response_model=DeleteResponse,
    summary="Delete Movie",
    responses={401: {"description": "Missing or invalid token"}, 404: {"description": "Movie not found"}},
)
async def delete_movie(
    identifier: str,
    movie_service: MovieService = Depends(get_movie_service),
    token: Dict[str, Any] = Depends(require_token),
):
    movie = await movie_service.delete_movie(identifier)
    logger.info(f"Movie {movie.movie_id} deleted by '{token.get('sub', 'unknown')}'")
    return DeleteResponse(message="Movie deleted successfully", movie_id=movie.movie_id, slug=movie.slug)
