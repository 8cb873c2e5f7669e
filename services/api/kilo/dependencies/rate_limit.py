"""Rate limiting dependencies for FastAPI."""

import logging
from datetime import datetime

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from kilo.auth.dependencies import get_current_user
from kilo.auth.schemas import User
from kilo.database.session import get_db
from kilo.services.utils.rate_limiter import QueryRateLimiter, RateLimitStatus
from kilo.services.utils.usage import as_utc, check_database_query_limit, format_reset_time

logger = logging.getLogger(__name__)


def iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_headers(limit_status: RateLimitStatus) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit_status.limit),
        "X-RateLimit-Remaining": str(limit_status.remaining),
        "X-RateLimit-Reset": iso_timestamp(limit_status.reset_at),
    }


def get_rate_limiter(request: Request) -> QueryRateLimiter:
    """The limiter created in the application lifespan."""
    return request.app.state.rate_limiter


def rate_limit_exceeded(limit_status: RateLimitStatus) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "Rate limit exceeded",
            "message": (
                f"You've reached your daily limit of {limit_status.limit} queries. "
                f"Your limit will reset at {format_reset_time(limit_status.reset_at)} UTC."
            ),
            "limit": limit_status.limit,
            "remaining": 0,
            "resetDate": iso_timestamp(limit_status.reset_at),
        },
        headers=rate_limit_headers(limit_status),
    )


def check_rate_limit(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    limiter: QueryRateLimiter = Depends(get_rate_limiter),
) -> RateLimitStatus:
    """
    Dependency that checks the daily query limit and raises 429 if exhausted.

    A user without a live limiter entry is seeded from the database ledger.
    Nothing is consumed here; the endpoint reserves the query once the
    request body has been accepted.

    Returns:
        The user's current RateLimitStatus

    Raises:
        HTTPException 429 if rate limited
    """
    limit_status = limiter.check(
        user.id,
        seed=lambda: check_database_query_limit(db, user.id).used,
    )

    if not limit_status.allowed:
        logger.warning(f"Rate limit exceeded for user {user.id}")
        raise rate_limit_exceeded(limit_status)

    return limit_status
