"""File schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from kilo.models.enums import FileStatus


class FileResponse(BaseModel):
    """Schema for file response."""

    id: str
    knowledge_base_id: str
    file_name: str
    file_size: int
    mime_type: str | None = None
    page_count: int | None = None
    gemini_file_id: str
    status: FileStatus
    error_message: str | None = None
    uploaded_at: datetime
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class FileStatsResponse(BaseModel):
    """Per-knowledge-base file statistics."""

    total_files: int
    total_size: int
    ready_files: int
    processing_files: int
    failed_files: int
