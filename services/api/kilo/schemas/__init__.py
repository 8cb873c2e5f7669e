"""Pydantic schemas for API request/response validation."""

from kilo.schemas.chat import (
    ChatMessageIn,
    ChatMessageResponse,
    ChatRequest,
    ChatSessionResponse,
)
from kilo.schemas.common import ErrorResponse, SuccessResponse
from kilo.schemas.file import FileResponse, FileStatsResponse
from kilo.schemas.knowledge_base import (
    KnowledgeBaseCreate,
    KnowledgeBaseResponse,
    KnowledgeBaseUpdate,
)
from kilo.schemas.rating import RatingCreate, RatingResponse
from kilo.schemas.usage import QuotaCheckResult, UsageResponse

__all__ = [
    "ChatMessageIn",
    "ChatMessageResponse",
    "ChatRequest",
    "ChatSessionResponse",
    "ErrorResponse",
    "FileResponse",
    "FileStatsResponse",
    "KnowledgeBaseCreate",
    "KnowledgeBaseResponse",
    "KnowledgeBaseUpdate",
    "QuotaCheckResult",
    "RatingCreate",
    "RatingResponse",
    "SuccessResponse",
    "UsageResponse",
]
