# movie_catalog/utils/identifiers.py

"""Classification of path identifiers into numeric IDs and slugs."""

import re
from dataclasses import dataclass
from typing import Union

from movie_catalog.utils.slug import is_valid_slug

# Storage keeps movie IDs as 64-bit integers
MAX_MOVIE_ID = 2**63 - 1

_DIGITS = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class NumericId:
    value: int


@dataclass(frozen=True)
class Slug:
    value: str


@dataclass(frozen=True)
class Invalid:
    raw: str


IdentifierToken = Union[NumericId, Slug, Invalid]


def classify_identifier(token: str) -> IdentifierToken:
    """
    Decides which lookup a path parameter maps to.

    Digits-only tokens are numeric IDs when strictly positive (and within the
    storage range); '0' is invalid. Other tokens are slugs when they have slug
    shape. Everything else is Invalid. No storage access happens here.
    """
    if not isinstance(token, str):
        return Invalid(raw=str(token))

    if _DIGITS.fullmatch(token):
        # Longer digit strings cannot fit the ID range; also keeps int() cheap
        value = int(token) if len(token) <= 20 else MAX_MOVIE_ID + 1
        if 0 < value <= MAX_MOVIE_ID:
            return NumericId(value=value)
        return Invalid(raw=token)

    if is_valid_slug(token):
        return Slug(value=token)
    return Invalid(raw=token)
