"""OAuth code exchange against the Supabase auth server."""

import logging

import httpx

from kilo.auth.schemas import OAuthSession
from kilo.config import get_settings

logger = logging.getLogger(__name__)


class OAuthExchangeError(Exception):
    """The auth server refused or failed the code exchange."""


def exchange_code_for_session(code: str, code_verifier: str | None) -> OAuthSession:
    """
    Trade an OAuth authorization code for a session.

    Args:
        code: The `code` query parameter from the provider redirect
        code_verifier: PKCE verifier stored by the browser when the flow began

    Raises:
        OAuthExchangeError if the auth server is unconfigured or rejects the code
    """
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise OAuthExchangeError("Supabase auth is not configured")

    try:
        response = httpx.post(
            f"{settings.supabase_url}/auth/v1/token",
            params={"grant_type": "pkce"},
            headers={"apikey": settings.supabase_anon_key},
            json={"auth_code": code, "code_verifier": code_verifier or ""},
            timeout=10.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("OAuth code exchange failed: %s", e)
        raise OAuthExchangeError(str(e)) from e

    data = response.json()
    if "access_token" not in data:
        raise OAuthExchangeError("Token response missing access_token")
    return OAuthSession(**data)
