# Error taxonomy and classification
# movie_catalog/core/errors.py

"""
Maps storage, validation and authentication failures onto a small closed
taxonomy. Every failure that reaches the HTTP layer is turned into exactly one
ErrorEnvelope by `classify_error`; the envelope's `http_status` is what the
exception handlers in `server.py` apply to the response.
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from fastapi.exceptions import RequestValidationError
from jose.exceptions import JWTError
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
    WTimeoutError,
)
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed set of failure kinds exposed to API callers."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    UNAUTHORIZED = "unauthorized"
    DEPENDENCY = "dependency"
    INTERNAL = "internal"


DEFAULT_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.DEPENDENCY: 503,
    ErrorKind.INTERNAL: 500,
}

# Driver error codes treated as unique-constraint violations
DUPLICATE_CODES = {11000, 11001, "11000", "ER_DUP_ENTRY"}
UNAVAILABLE_CODES = {"ECONNREFUSED", "ER_ACCESS_DENIED_ERROR", "ENOTFOUND"}
TIMEOUT_CODES = {"ETIMEDOUT", "ESOCKETTIMEDOUT"}


class ErrorEnvelope(BaseModel):
    """Immutable description of one failure, safe to serialize to API callers."""
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind = Field(..., description="Machine-readable failure kind.")
    message: str = Field(..., description="Human-readable message safe to show to callers.")
    details: Dict[str, Any] = Field(default_factory=dict, description="Field-level context.")
    http_status: int = Field(..., description="Advisory HTTP status for the transport layer.")


class FieldError(BaseModel):
    """A single validation failure tied to an input field."""
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


# --- Exception hierarchy raised by the service layer ---

class CatalogError(Exception):
    """Base class for failures the service layer has already classified."""
    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Something went wrong. Please try again later."

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                 http_status: Optional[int] = None):
        self.message = message or self.default_message
        self.details = dict(details or {})
        self.http_status = http_status or DEFAULT_STATUS[self.kind]
        super().__init__(self.message)


class QueryValidationError(CatalogError):
    """One or more request fields failed validation."""
    kind = ErrorKind.VALIDATION
    default_message = "Validation failed"

    def __init__(self, errors: Sequence[FieldError], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(
            message=message,
            details={"errors": [e.model_dump() for e in self.errors]},
        )


class MovieNotFoundError(CatalogError):
    """Custom exception when a movie is not found."""
    kind = ErrorKind.NOT_FOUND
    default_message = "Movie not found"


class DuplicateMovieError(CatalogError):
    kind = ErrorKind.DUPLICATE
    default_message = "This movie already exists in the database."


class UnauthorizedError(CatalogError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "You are not authorized to perform this action."


class DependencyError(CatalogError):
    kind = ErrorKind.DEPENDENCY
    default_message = "Unable to connect to the database. Please try again later."


class CorruptRecordError(CatalogError):
    """A stored document no longer matches the record model."""
    kind = ErrorKind.INTERNAL


# --- User-facing messages ---

CONTEXT_MESSAGES = {
    "movie": "There was a problem with the movie operation. Please check your input and try again.",
    "search": "There was a problem with your search. Please try different search terms.",
    "pagination": "There was a problem loading the requested page. Please try again.",
    "auth": "Authentication failed. Please check your credentials and try again.",
    "general": "Something went wrong. Please try again later.",
}

DUPLICATE_MESSAGES = {
    "movie": "A movie with this title already exists. Please choose a different title.",
    "general": "This item already exists. Please check your input and try again.",
}

FIELD_LABELS = {
    "title": "Movie Title",
    "director": "Director Name",
    "release_year": "Release Year",
    "genre": "Genre",
    "genres": "Genres",
    "duration_minutes": "Duration",
    "rating": "Rating",
    "overview": "Movie Description",
    "cast_list": "Cast List",
    "trailer_url": "Trailer URL",
    "video_url": "Video URL",
    "poster_landscape": "Landscape Poster URL",
    "poster_portrait": "Portrait Poster URL",
    "page": "Page",
    "limit": "Limit",
    "offset": "Offset",
}

# Single pass, longest names first, so a label is never rewritten again
_FIELD_NAMES = re.compile(
    r"\b(?:" + "|".join(re.escape(f) for f in sorted(FIELD_LABELS, key=len, reverse=True)) + r")\b",
    re.I,
)

_PHRASE_REWRITES = [
    (re.compile(r"is required and must be a non-empty string", re.I), "is required"),
    (re.compile(r"must be a positive integer", re.I), "must be a positive number"),
    (re.compile(r"must be a valid URL", re.I), "must be a valid web address"),
]


def context_message(context: str) -> str:
    return CONTEXT_MESSAGES.get(context, CONTEXT_MESSAGES["general"])


def format_validation_errors(errors: Iterable[Any]) -> List[str]:
    """
    Converts validation messages into user-friendly strings.

    Technical field names (e.g. ``release_year``) are replaced with labels
    ("Release Year") and a few verbose phrases are shortened.

    Args:
        errors: FieldError objects, plain strings, or exceptions.

    Returns:
        A list of display strings, one per input error.
    """
    formatted: List[str] = []
    for error in errors:
        if isinstance(error, FieldError):
            text = error.message
        else:
            text = str(error)
        text = _FIELD_NAMES.sub(lambda m: FIELD_LABELS[m.group(0).lower()], text)
        for pattern, replacement in _PHRASE_REWRITES:
            text = pattern.sub(replacement, text)
        formatted.append(text)
    return formatted


# --- Classification ---

def _field_errors_from_pydantic(raw_errors: Iterable[Dict[str, Any]]) -> List[FieldError]:
    field_errors = []
    for err in raw_errors:
        # Drop transport prefixes such as ("body", "title") -> "title"
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "request"
        field_errors.append(FieldError(field=field, message=f"{field}: {err.get('msg', 'invalid value')}"))
    return field_errors


def _validation_envelope(field_errors: List[FieldError]) -> ErrorEnvelope:
    return ErrorEnvelope(
        kind=ErrorKind.VALIDATION,
        message="Please check your input. Some required fields are missing or invalid.",
        details={
            "errors": [e.model_dump() for e in field_errors],
            "messages": format_validation_errors(field_errors),
        },
        http_status=DEFAULT_STATUS[ErrorKind.VALIDATION],
    )


def _debug_details(raw: BaseException) -> Dict[str, Any]:
    return {"exception": type(raw).__name__, "error": str(raw)}


def classify_error(raw: BaseException, context: str = "general", debug: bool = False) -> ErrorEnvelope:
    """
    Classifies a raw failure into an ErrorEnvelope.

    Inspection order: already-classified CatalogErrors, request/model
    validation errors, authentication errors, unique-constraint violations,
    connectivity failures and timeouts, and finally a generic `code`
    attribute. Anything unmatched becomes an `internal` error.

    Args:
        raw: The exception to classify.
        context: Operation context used to pick a user-facing message
            ('movie', 'search', 'pagination', 'auth', 'general').
        debug: Include exception type and text in `details`.

    Returns:
        A new, frozen ErrorEnvelope.
    """
    # Already classified by the service layer: never re-classify
    if isinstance(raw, QueryValidationError):
        envelope = _validation_envelope(raw.errors)
        if raw.message != QueryValidationError.default_message:
            envelope = envelope.model_copy(update={"message": raw.message})
        return envelope
    if isinstance(raw, CatalogError):
        return ErrorEnvelope(kind=raw.kind, message=raw.message, details=raw.details,
                             http_status=raw.http_status)

    details: Dict[str, Any] = _debug_details(raw) if debug else {}

    if isinstance(raw, (RequestValidationError, ValidationError)):
        return _validation_envelope(_field_errors_from_pydantic(raw.errors()))

    if isinstance(raw, JWTError):
        return ErrorEnvelope(
            kind=ErrorKind.UNAUTHORIZED,
            message="Your session has expired or the token is invalid. Please log in again.",
            details=details,
            http_status=DEFAULT_STATUS[ErrorKind.UNAUTHORIZED],
        )

    code = getattr(raw, "code", None)

    if isinstance(raw, DuplicateKeyError) or code in DUPLICATE_CODES:
        dup_details = dict(details)
        key_value = (getattr(raw, "details", None) or {}).get("keyValue") if isinstance(raw, PyMongoError) else None
        if key_value:
            dup_details["fields"] = sorted(key_value.keys())
        return ErrorEnvelope(
            kind=ErrorKind.DUPLICATE,
            message=DUPLICATE_MESSAGES.get(context, DUPLICATE_MESSAGES["general"]),
            details=dup_details,
            http_status=DEFAULT_STATUS[ErrorKind.DUPLICATE],
        )

    # Timeouts are checked before generic connection failures: several
    # pymongo timeout types subclass ConnectionFailure/AutoReconnect.
    if isinstance(raw, (ServerSelectionTimeoutError, NetworkTimeout, ExecutionTimeout,
                        WTimeoutError, RedisTimeoutError)) or code in TIMEOUT_CODES:
        return ErrorEnvelope(
            kind=ErrorKind.DEPENDENCY,
            message="The request timed out. Please try again.",
            details=details,
            http_status=504,
        )

    if isinstance(raw, (ConnectionFailure, AutoReconnect, RedisConnectionError)) or code in UNAVAILABLE_CODES:
        return ErrorEnvelope(
            kind=ErrorKind.DEPENDENCY,
            message="Unable to connect to the database. Please try again later.",
            details=details,
            http_status=503,
        )

    if isinstance(raw, (PyMongoError, RedisError)):
        logger.error(f"Unclassified storage error ({type(raw).__name__}): {raw}")
    else:
        logger.error(f"Unhandled error ({type(raw).__name__}) in context '{context}': {raw}")

    return ErrorEnvelope(
        kind=ErrorKind.INTERNAL,
        message=context_message(context),
        details=details,
        http_status=DEFAULT_STATUS[ErrorKind.INTERNAL],
    )
