# movie_catalog/models/movie.py

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationInfo, field_validator

from movie_catalog.utils.pagination import PaginationMeta

MIN_RELEASE_YEAR = 1900
# Fields a PATCH may touch. slug, movie_id and timestamps are managed by the service.
UPDATABLE_FIELDS = (
    "title", "overview", "release_year", "duration_minutes", "rating", "director",
    "cast_list", "genres", "trailer_url", "video_url", "poster_landscape",
    "poster_portrait", "is_trending", "is_top_rated", "view_count",
)
# Required on the stored record: a PATCH may change them but never clear them
NON_NULLABLE_FIELDS = ("title", "rating", "genres", "is_trending", "is_top_rated", "view_count")


def _max_release_year() -> int:
    return datetime.now(timezone.utc).year + 10


def _check_release_year(v: Optional[int]) -> Optional[int]:
    if v is not None and not (MIN_RELEASE_YEAR <= v <= _max_release_year()):
        raise ValueError(f"release_year must be a year between {MIN_RELEASE_YEAR} and {_max_release_year()}")
    return v


def _clean_genres(v: Optional[List[str]]) -> Optional[List[str]]:
    if v is None:
        return v
    # Accept "Crime, Drama" as well as ["Crime", "Drama"]
    if isinstance(v, str):
        v = v.split(",")
    return [g.strip() for g in v if g and g.strip()]


# --- Base Model ---
class MovieBase(BaseModel):
    """Common attributes for a movie."""
    title: str = Field(..., min_length=1, max_length=255, description="Movie title.")
    overview: Optional[str] = Field(None, description="Movie synopsis/overview.")
    release_year: Optional[int] = Field(None, description="Year of release.")
    duration_minutes: Optional[int] = Field(None, gt=0, description="Runtime in minutes.")
    rating: float = Field(0.0, ge=0, le=10, description="Average rating on a 0-10 scale.")
    director: Optional[str] = Field(None, description="Director name.")
    cast_list: Optional[str] = Field(None, description="Comma-separated main cast.")
    genres: List[str] = Field(default_factory=list, description="Genre names.")

    # Media URLs
    poster_landscape: Optional[HttpUrl] = None
    poster_portrait: Optional[HttpUrl] = None
    trailer_url: Optional[HttpUrl] = None
    video_url: Optional[HttpUrl] = None

    is_trending: bool = False
    is_top_rated: bool = False
    view_count: int = Field(0, ge=0)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title is required and must be a non-empty string")
        return v.strip()

    @field_validator("release_year")
    @classmethod
    def release_year_in_range(cls, v: Optional[int]) -> Optional[int]:
        return _check_release_year(v)

    @field_validator("genres", mode="before")
    @classmethod
    def split_genres(cls, v: Any) -> Any:
        return _clean_genres(v)


# --- Models for API Requests ---
class MovieCreate(MovieBase):
    """Request body for creating a movie. The slug is never client-supplied."""
    model_config = ConfigDict(extra="ignore")


class MovieUpdate(BaseModel):
    """Partial update: only the fields present in the request are merged."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    overview: Optional[str] = None
    release_year: Optional[int] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    rating: Optional[float] = Field(None, ge=0, le=10)
    director: Optional[str] = None
    cast_list: Optional[str] = None
    genres: Optional[List[str]] = None
    poster_landscape: Optional[HttpUrl] = None
    poster_portrait: Optional[HttpUrl] = None
    trailer_url: Optional[HttpUrl] = None
    video_url: Optional[HttpUrl] = None
    is_trending: Optional[bool] = None
    is_top_rated: Optional[bool] = None
    view_count: Optional[int] = Field(None, ge=0)

    @field_validator(*NON_NULLABLE_FIELDS, mode="before")
    @classmethod
    def reject_null(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("title is required and must be a non-empty string")
        return v.strip() if v is not None else v

    @field_validator("release_year")
    @classmethod
    def release_year_in_range(cls, v: Optional[int]) -> Optional[int]:
        return _check_release_year(v)

    @field_validator("genres", mode="before")
    @classmethod
    def split_genres(cls, v: Any) -> Any:
        return _clean_genres(v)

    def changed_fields(self) -> Dict[str, Any]:
        """Fields explicitly set in the request, serialized for storage."""
        return self.model_dump(mode="json", exclude_unset=True, include=set(UPDATABLE_FIELDS))


# --- Models for API Responses / Storage ---
class MovieRecord(MovieBase):
    """A stored movie. `movie_id` and `slug` are both stable lookup keys."""
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    movie_id: int = Field(..., gt=0, description="Storage-assigned numeric ID, never reused.")
    slug: str = Field(..., description="Unique URL-safe identifier derived from the title at creation.")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("release_year")
    @classmethod
    def release_year_in_range(cls, v: Optional[int]) -> Optional[int]:
        # Stored rows are returned as-is even if they predate the current validation rules
        return v


# --- Model for Paginated API Responses ---
class ListingFilters(BaseModel):
    genre: Optional[str] = None
    director: Optional[str] = None
    year: Optional[int] = None
    search: Optional[str] = None


class ListingSorting(BaseModel):
    sort_by: str
    sort_order: str


class PaginatedMovieResponse(BaseModel):
    """Response structure for paginated movie lists."""
    success: bool = True
    items: List[MovieRecord]
    pagination: PaginationMeta
    links: Dict[str, str] = Field(default_factory=dict)
    summary: str
    filters: ListingFilters
    sorting: ListingSorting


class MovieResponse(BaseModel):
    success: bool = True
    message: str
    data: MovieRecord


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    movie_id: int
    slug: str
