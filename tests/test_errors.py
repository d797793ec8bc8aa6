"""Tests for error classification and user-facing message formatting."""

import pytest
from jose.exceptions import JWTError
from pydantic import BaseModel, ValidationError
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    ServerSelectionTimeoutError,
)
from redis.exceptions import ConnectionError as RedisConnectionError

from movie_catalog.core.errors import (
    CONTEXT_MESSAGES,
    DUPLICATE_MESSAGES,
    ErrorKind,
    FieldError,
    MovieNotFoundError,
    QueryValidationError,
    classify_error,
    format_validation_errors,
)


class CodedError(Exception):
    def __init__(self, code):
        super().__init__(f"driver error {code}")
        self.code = code


# ---------------------------------------------------------------------
# CLASSIFICATION
# ---------------------------------------------------------------------
def test_duplicate_key_is_conflict():
    raw = DuplicateKeyError("E11000 duplicate key error", 11000, {"keyValue": {"slug": "inception"}})
    envelope = classify_error(raw, context="movie")
    assert envelope.kind == ErrorKind.DUPLICATE
    assert envelope.http_status == 409
    assert envelope.message == DUPLICATE_MESSAGES["movie"]
    assert envelope.details["fields"] == ["slug"]


@pytest.mark.parametrize("code", [11000, "ER_DUP_ENTRY"])
def test_duplicate_driver_codes(code):
    assert classify_error(CodedError(code)).kind == ErrorKind.DUPLICATE


@pytest.mark.parametrize(
    "raw, status",
    [
        (ServerSelectionTimeoutError("No servers found"), 504),
        (ExecutionTimeout("operation exceeded time limit"), 504),
        (CodedError("ETIMEDOUT"), 504),
        (ConnectionFailure("connection refused"), 503),
        (AutoReconnect("primary stepped down"), 503),
        (RedisConnectionError("redis down"), 503),
        (CodedError("ECONNREFUSED"), 503),
    ],
)
def test_connectivity_failures_are_dependency_errors(raw, status):
    envelope = classify_error(raw)
    assert envelope.kind == ErrorKind.DEPENDENCY
    assert envelope.http_status == status


def test_jwt_error_is_unauthorized():
    envelope = classify_error(JWTError("Signature verification failed."))
    assert envelope.kind == ErrorKind.UNAUTHORIZED
    assert envelope.http_status == 401


def test_pydantic_validation_error():
    class Payload(BaseModel):
        rating: float

    with pytest.raises(ValidationError) as exc_info:
        Payload(rating="high")
    envelope = classify_error(exc_info.value)
    assert envelope.kind == ErrorKind.VALIDATION
    assert envelope.http_status == 400
    assert envelope.details["errors"][0]["field"] == "rating"
    assert envelope.details["messages"][0].startswith("Rating")


def test_query_validation_error_keeps_field_errors():
    raw = QueryValidationError([FieldError(field="limit", message="Limit must be a positive integer")])
    envelope = classify_error(raw)
    assert envelope.kind == ErrorKind.VALIDATION
    assert envelope.details["errors"] == [{"field": "limit", "message": "Limit must be a positive integer"}]


def test_catalog_errors_pass_through():
    envelope = classify_error(MovieNotFoundError("Movie 'heat' not found", details={"identifier": "heat"}))
    assert envelope.kind == ErrorKind.NOT_FOUND
    assert envelope.http_status == 404
    assert envelope.details == {"identifier": "heat"}


def test_unknown_error_is_internal_with_context_message():
    envelope = classify_error(RuntimeError("boom"), context="search")
    assert envelope.kind == ErrorKind.INTERNAL
    assert envelope.http_status == 500
    assert envelope.message == CONTEXT_MESSAGES["search"]
    assert envelope.details == {}


def test_unknown_context_uses_general_message():
    assert classify_error(RuntimeError("boom"), context="billing").message == CONTEXT_MESSAGES["general"]


def test_debug_mode_exposes_exception():
    envelope = classify_error(RuntimeError("boom"), debug=True)
    assert envelope.details == {"exception": "RuntimeError", "error": "boom"}


def test_envelope_is_immutable():
    envelope = classify_error(RuntimeError("boom"))
    with pytest.raises(ValidationError):
        envelope.message = "changed"


# ---------------------------------------------------------------------
# MESSAGE FORMATTING
# ---------------------------------------------------------------------
def test_field_names_become_labels():
    messages = format_validation_errors(
        [
            "release_year must be a year between 1900 and 2036",
            FieldError(field="title", message="title is required and must be a non-empty string"),
        ]
    )
    assert messages == [
        "Release Year must be a year between 1900 and 2036",
        "Movie Title is required",
    ]


def test_phrase_rewrites():
    assert format_validation_errors(["Page must be a positive integer"]) == ["Page must be a positive number"]
