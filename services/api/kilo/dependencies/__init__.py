"""FastAPI dependencies."""

from kilo.dependencies.quota import quota_http_exception
from kilo.dependencies.rate_limit import (
    check_rate_limit,
    get_rate_limiter,
    rate_limit_exceeded,
    rate_limit_headers,
)

__all__ = [
    "check_rate_limit",
    "get_rate_limiter",
    "quota_http_exception",
    "rate_limit_exceeded",
    "rate_limit_headers",
]
