"""Supabase JWT validation."""

import logging

import jwt
from fastapi import HTTPException, status
from jwt import PyJWKClient

from kilo.auth.schemas import TokenPayload
from kilo.config import get_settings

logger = logging.getLogger(__name__)

_jwks_client = None


def get_jwks_client() -> PyJWKClient | None:
    """Get or create JWKS client."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        if settings.supabase_url:
            jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
            _jwks_client = PyJWKClient(jwks_url)
    return _jwks_client


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def validate_supabase_jwt(token: str) -> TokenPayload:
    """
    Validate Supabase JWT and extract claims.

    Args:
        token: The JWT token string (without "Bearer " prefix)

    Returns:
        TokenPayload with user_id (sub), email, and expiration

    Raises:
        HTTPException 401 on invalid/expired token
    """
    settings = get_settings()

    # First try JWKS verification (asymmetric signing keys)
    jwks_client = get_jwks_client()
    if jwks_client:
        try:
            signing_key = jwks_client.get_signing_key_from_jwt(token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["ES256", "RS256"],
                options={"verify_aud": False},
            )
            return TokenPayload(
                sub=payload["sub"],
                email=payload.get("email"),
                exp=payload["exp"],
            )
        except jwt.exceptions.PyJWTError as e:
            # Fall through to the legacy shared secret
            logger.debug("JWKS verification failed: %s", e)

    if not settings.supabase_jwt_secret:
        logger.error("JWT secret not configured; rejecting token")
        raise _unauthorized()

    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except jwt.exceptions.PyJWTError:
        raise _unauthorized()

    if "sub" not in payload or "exp" not in payload:
        raise _unauthorized()

    return TokenPayload(
        sub=payload["sub"],
        email=payload.get("email"),
        exp=payload["exp"],
    )
