"""JWT utilities.

Tokens are issued by the external account service; this service only
decodes them to recover the owner id carried in the ``sub`` claim.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from knowledgebot.core.config import settings
from knowledgebot.core.exceptions import InvalidTokenError


def create_jwt_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT token with optional expiry."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_jwt_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT token. Raises JWTError on failure."""
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
    )


def owner_id_from_token(token: str) -> uuid.UUID:
    """Return the owner UUID from a bearer token or raise InvalidTokenError."""
    try:
        claims = decode_jwt_token(token)
    except JWTError as e:
        raise InvalidTokenError() from e

    subject = claims.get("sub")
    if not subject:
        raise InvalidTokenError("Token has no subject")
    try:
        return uuid.UUID(str(subject))
    except ValueError as e:
        raise InvalidTokenError("Token subject is not a valid owner id") from e
