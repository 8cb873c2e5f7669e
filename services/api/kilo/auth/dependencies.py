"""FastAPI dependencies for authentication."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kilo.auth.jwt import validate_supabase_jwt
from kilo.auth.schemas import User
from kilo.config import get_settings

# Cookie written by the OAuth callback for browser sessions
ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"

# HTTPBearer with auto_error=False so we can handle missing tokens ourselves
security = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    """
    Get current user from JWT or dev bypass.

    - If DEV_USER_ID is set: return mock user
    - Otherwise: validate the bearer token (or the session cookie) and
      return the user from its claims

    Usage:
        @router.get("/knowledge-bases")
        def list_knowledge_bases(user: User = Depends(get_current_user)):
            ...
    """
    settings = get_settings()

    if settings.is_dev_mode:
        return User(id=settings.dev_user_id, email="dev@local.test")

    token = credentials.credentials if credentials else request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_payload = validate_supabase_jwt(token)
    return User(id=token_payload.sub, email=token_payload.email)
