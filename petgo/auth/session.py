"""
Access Token Verification
=========================

Bearer tokens presented to admin functions are access tokens issued by the
hosted auth backend (HS256, audience ``authenticated``).

When ``SUPABASE_JWT_SECRET`` is configured the token is verified locally
before any backend call, so forged or expired tokens are rejected without a
round trip. The backend identity check still runs afterwards.
"""

import logging
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings
from ..errors import Unauthorized

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ALGORITHM = "HS256"


# =============================================================================
# Header Parsing
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract Bearer token from Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Extracted token string

    Raises:
        Unauthorized: If the header is missing or not a Bearer credential
    """
    if not authorization:
        raise Unauthorized("Unauthorized", extra={"reason": "Missing Authorization header"})

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized(
            "Unauthorized",
            extra={"reason": "Invalid Authorization header format. Expected: 'Bearer <token>'"},
        )

    return parts[1]


# =============================================================================
# Token Verification
# =============================================================================

def verify_access_token(token: str, settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Verify an access token locally when a JWT secret is configured.

    Args:
        token: Bearer token from the request
        settings: Application settings

    Returns:
        Decoded claims, or None when no secret is configured (verification
        is left to the backend)

    Raises:
        Unauthorized: If the token is expired, forged or malformed
    """
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        return None

    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[ACCESS_TOKEN_ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "require": ["exp", "sub"],
            },
        )
    except ExpiredSignatureError:
        logger.warning("Access token expired")
        raise Unauthorized("Unauthorized", extra={"reason": "Token has expired"})
    except InvalidTokenError as e:
        logger.warning(f"Invalid access token: {e}")
        raise Unauthorized("Unauthorized", extra={"reason": "Invalid token"})

    logger.debug("Access token verified locally", extra={"user_id": decoded.get("sub")})
    return decoded


__all__ = [
    "ACCESS_TOKEN_ALGORITHM",
    "extract_token_from_header",
    "verify_access_token",
]
