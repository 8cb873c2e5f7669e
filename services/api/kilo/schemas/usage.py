"""Quota and usage schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QuotaCheckResult(BaseModel):
    """Outcome of comparing current consumption against a limit."""

    allowed: bool
    message: str | None = None
    current: int
    limit: int
    remaining: int

    def quota_detail(self) -> dict[str, int]:
        return {"current": self.current, "limit": self.limit, "remaining": self.remaining}


class QueryQuota(BaseModel):
    used: int
    limit: int
    remaining: int
    reset_at: datetime = Field(alias="resetAt")

    model_config = ConfigDict(populate_by_name=True)


class ResourceQuota(BaseModel):
    used: int
    limit: int
    remaining: int


class UsageResponse(BaseModel):
    """Aggregate quota snapshot for the caller."""

    queries: QueryQuota
    knowledge_bases: ResourceQuota = Field(alias="knowledgeBases")
    storage: ResourceQuota
    total_file_uploads: int = Field(alias="totalFileUploads")
    total_queries: int = Field(alias="totalQueries")

    model_config = ConfigDict(populate_by_name=True)
