"""Knowledge base schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

NAME_MIN_LENGTH = 3


def _clean_name(value: str) -> str:
    value = value.strip()
    if len(value) < NAME_MIN_LENGTH:
        raise ValueError(f"Name must be at least {NAME_MIN_LENGTH} characters long")
    return value


class KnowledgeBaseCreate(BaseModel):
    """Schema for creating a knowledge base."""

    name: str = Field(..., max_length=255)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _clean_name(value)


class KnowledgeBaseUpdate(BaseModel):
    """Schema for updating a knowledge base."""

    name: str | None = Field(default=None, max_length=255)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str | None) -> str:
        # Only runs when name is sent; omitting it leaves the name unchanged
        if value is None:
            raise ValueError("Name cannot be null")
        return _clean_name(value)


class KnowledgeBaseResponse(BaseModel):
    """Schema for knowledge base response."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    gemini_store_id: str
    file_count: int = 0
    ready_file_count: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
