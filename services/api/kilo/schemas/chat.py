"""Chat schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from kilo.models.enums import MessageRole


class MessagePart(BaseModel):
    type: str
    text: str | None = None

    model_config = ConfigDict(extra="allow")


class ChatMessageIn(BaseModel):
    """One turn as sent by the chat client."""

    role: str
    content: str | None = None
    parts: list[MessagePart] | None = None

    model_config = ConfigDict(extra="allow")


class ChatRequest(BaseModel):
    """Schema for a chat request."""

    messages: list[ChatMessageIn] = Field(default_factory=list)
    session_id: str | None = Field(default=None, alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class ChatSessionResponse(BaseModel):
    id: str
    knowledge_base_id: str = Field(alias="knowledgeBaseId")
    title: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ChatMessageResponse(BaseModel):
    id: str
    session_id: str = Field(alias="sessionId")
    role: MessageRole
    content: str
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


def message_text(message: ChatMessageIn) -> str:
    """Plain text of a turn; text parts are joined when content is absent."""
    if message.parts and (message.role == MessageRole.ASSISTANT.value or not message.content):
        return "".join(part.text or "" for part in message.parts if part.type == "text")
    return message.content or ""
