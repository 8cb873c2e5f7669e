"""Message rating schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator


class RatingCreate(BaseModel):
    """Schema for rating a message."""

    rating: StrictInt
    knowledge_base_id: str = Field(..., alias="knowledgeBaseId")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, value: int) -> int:
        if value not in (-1, 1):
            raise ValueError("Rating must be -1 or 1")
        return value


class RatingResponse(BaseModel):
    id: str
    message_id: str = Field(alias="messageId")
    knowledge_base_id: str = Field(alias="knowledgeBaseId")
    rating: int
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
