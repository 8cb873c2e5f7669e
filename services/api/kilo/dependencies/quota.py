"""Translation of quota denials into HTTP errors."""

from fastapi import HTTPException

from kilo.services.core.errors import QuotaExceeded


def quota_http_exception(exc: QuotaExceeded) -> HTTPException:
    """403 (or the denial's own status) carrying current/limit/remaining."""
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "error": str(exc),
            "quota": exc.result.quota_detail(),
        },
    )
