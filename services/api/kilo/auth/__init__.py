"""Auth module for JWT validation and user dependencies."""

from kilo.auth.dependencies import get_current_user
from kilo.auth.jwt import validate_supabase_jwt
from kilo.auth.schemas import TokenPayload, User

__all__ = [
    "User",
    "TokenPayload",
    "validate_supabase_jwt",
    "get_current_user",
]
