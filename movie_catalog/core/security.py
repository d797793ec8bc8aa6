# JWT verification logic for write routes
# movie_catalog/core/security.py

import logging
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

from movie_catalog.core.config import Settings, get_settings
from movie_catalog.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

# Scheme for extracting "Bearer <token>" from Authorization header
# auto_error=False so a missing header is reported through the catalog error envelope
token_bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Decodes and verifies a bearer token.

    Args:
        token: The raw JWT string.
        settings: Settings providing secret, algorithm and optional audience.

    Returns:
        The decoded JWT payload.

    Raises:
        UnauthorizedError: If the token is expired, malformed or has invalid claims.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_aud": settings.JWT_AUDIENCE is not None,
                "verify_exp": True,
            },
        )
    except ExpiredSignatureError:
        logger.warning("Authentication attempt failed: Token expired.")
        raise UnauthorizedError("Your session has expired. Please log in again.")
    except JWTClaimsError as e:
        logger.warning(f"Authentication attempt failed: Invalid claims - {e}")
        raise UnauthorizedError("Invalid token claims.")
    except JWTError as e:
        logger.warning(f"Authentication attempt failed: Invalid token format or signature - {e}")
        raise UnauthorizedError("Invalid authentication token.")


# --- FastAPI Dependencies ---

async def require_token(
    auth_credentials: Optional[HTTPAuthorizationCredentials] = Depends(token_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    FastAPI dependency guarding write routes. Returns the verified token payload.

    Raises:
        UnauthorizedError: If no token is provided or it fails verification.
    """
    if auth_credentials is None or not auth_credentials.credentials:
        logger.warning("Authentication attempt failed: No token provided in Authorization header.")
        raise UnauthorizedError("Authentication token missing.")
    return decode_token(auth_credentials.credentials, settings)
