"""OAuth callback endpoint."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from kilo.auth.dependencies import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE
from kilo.auth.oauth import OAuthExchangeError, exchange_code_for_session
from kilo.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

CODE_VERIFIER_COOKIE = "sb-code-verifier"
DEFAULT_REDIRECT = "/dashboard"
FAILURE_REDIRECT = "/login?error=auth_callback_failed"


def safe_redirect_path(callback_url: str | None) -> str:
    """Only same-origin paths are honoured; anything else goes to the dashboard."""
    if callback_url and callback_url.startswith("/") and not callback_url.startswith("//"):
        return callback_url
    return DEFAULT_REDIRECT


def _absolute(path: str) -> str:
    frontend_url = get_settings().frontend_url
    if frontend_url:
        return frontend_url.rstrip("/") + path
    return path


@router.get("/callback")
def auth_callback(
    request: Request,
    code: str | None = None,
    callbackUrl: str | None = None,
) -> RedirectResponse:
    """Finish the OAuth sign-in and send the browser back into the app."""
    redirect = RedirectResponse(_absolute(safe_redirect_path(callbackUrl)), status_code=302)
    if not code:
        return redirect

    try:
        session = exchange_code_for_session(code, request.cookies.get(CODE_VERIFIER_COOKIE))
    except OAuthExchangeError as e:
        logger.warning("Auth callback failed: %s", e)
        return RedirectResponse(_absolute(FAILURE_REDIRECT), status_code=302)

    secure = get_settings().environment == "production"
    redirect.set_cookie(
        ACCESS_TOKEN_COOKIE,
        session.access_token,
        max_age=session.expires_in,
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    if session.refresh_token:
        redirect.set_cookie(
            REFRESH_TOKEN_COOKIE,
            session.refresh_token,
            httponly=True,
            secure=secure,
            samesite="lax",
        )
    redirect.delete_cookie(CODE_VERIFIER_COOKIE)
    return redirect
