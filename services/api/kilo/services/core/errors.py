"""Domain errors raised by the core services and translated at the router seam."""

from kilo.schemas.usage import QuotaCheckResult


class QuotaExceeded(Exception):
    """A quota check denied the operation."""

    def __init__(self, result: QuotaCheckResult, status_code: int = 403):
        self.result = result
        self.status_code = status_code
        super().__init__(result.message or "Quota exceeded")


class UploadRejected(ValueError):
    """The uploaded file failed validation."""


class PersistenceError(Exception):
    """A local write failed after the external side effect was applied."""
