"""
Supabase access-token verification.

Sign-in happens in the browser against Supabase Auth; the backend only
checks the bearer token the client forwards and reads the user id from it.
Supabase signs access tokens with the project's JWT secret (HS256) and sets
the ``authenticated`` audience for signed-in users.
"""

from typing import Any, Dict, Optional

import jwt

from fluxion.utils.logging import get_logger

logger = get_logger(__name__)

SUPABASE_JWT_ALGORITHMS = ["HS256"]


class AuthError(Exception):
    """Raised when a request carries no usable credentials."""

    def __init__(self, message: str, status: int = 401):
        super().__init__(message)
        self.message = message
        self.status = status


def extract_bearer_token(authorization_header: Optional[str]) -> str:
    if not authorization_header:
        raise AuthError("Missing Authorization header")
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header must be 'Bearer <token>'")
    return token.strip()


def verify_access_token(token: str, secret: str, *, audience: Optional[str] = "authenticated") -> Dict[str, Any]:
    """
    Decode and verify a Supabase access token.

    Returns the token claims; raises AuthError when the signature, expiry or
    audience check fails, or when the token has no subject.
    """
    if not secret:
        raise AuthError("Token verification is not configured", status=500)
    options = {"require": ["exp", "sub"]}
    if audience is None:
        options["verify_aud"] = False
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=SUPABASE_JWT_ALGORITHMS,
            audience=audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Access token expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected access token: {e}")
        raise AuthError("Invalid access token")

    if not claims.get("sub"):
        raise AuthError("Access token has no subject")
    return claims
