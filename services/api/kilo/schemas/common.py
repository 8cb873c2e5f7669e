"""Common schemas shared across modules."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """JSON error envelope returned by every failing request."""

    error: str
    error_type: str
    error_id: str


class SuccessResponse(BaseModel):
    success: bool = True
