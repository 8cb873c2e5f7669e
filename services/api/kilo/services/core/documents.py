"""
File upload, status sync and deletion.

Uploads run every local check before anything is sent to the provider, then
follow the same saga as knowledge base creation: external upload, local
insert, compensating document delete if the insert fails.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.config import get_settings
from kilo.database.base import utc_now
from kilo.models.enums import FileStatus
from kilo.models.file import File, InvalidStatusTransition
from kilo.models.knowledge_base import KnowledgeBase
from kilo.schemas.file import FileStatsResponse
from kilo.services.core.errors import PersistenceError, QuotaExceeded, UploadRejected
from kilo.services.providers import gemini
from kilo.services.utils.file_validation import (
    UNSUPPORTED_TYPE_MESSAGE,
    InvalidPdfError,
    count_pdf_pages,
    is_pdf,
    resolve_mime_type,
)
from kilo.services.utils.quota import (
    check_file_size_quota,
    check_file_upload_quota,
    check_storage_quota,
)
from kilo.services.utils.usage import increment_file_upload_count, update_storage_usage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckedUpload:
    mime_type: str
    page_count: int | None


def get_file_for_user(db: Session, file_id: str, user_id: str) -> File | None:
    """Fetch a file only if its knowledge base belongs to the user."""
    return (
        db.query(File)
        .join(KnowledgeBase, File.knowledge_base_id == KnowledgeBase.id)
        .filter(File.id == file_id, KnowledgeBase.user_id == user_id)
        .first()
    )


def list_files(db: Session, knowledge_base_id: str) -> list[File]:
    """Files of a knowledge base, newest first."""
    return (
        db.query(File)
        .filter(File.knowledge_base_id == knowledge_base_id)
        .order_by(File.uploaded_at.desc())
        .all()
    )


def count_ready_files(db: Session, knowledge_base_id: str) -> int:
    return (
        db.query(func.count(File.id))
        .filter(
            File.knowledge_base_id == knowledge_base_id,
            File.status == FileStatus.READY,
        )
        .scalar()
    )


def get_file_stats(db: Session, knowledge_base_id: str) -> FileStatsResponse:
    """Aggregate counts and bytes for one knowledge base."""

    def status_count(status: FileStatus):
        return func.coalesce(func.sum(case((File.status == status, 1), else_=0)), 0)

    total, size, ready, processing, failed = (
        db.query(
            func.count(File.id),
            func.coalesce(func.sum(File.file_size), 0),
            status_count(FileStatus.READY),
            status_count(FileStatus.PROCESSING),
            status_count(FileStatus.FAILED),
        )
        .filter(File.knowledge_base_id == knowledge_base_id)
        .one()
    )
    return FileStatsResponse(
        total_files=total,
        total_size=int(size),
        ready_files=int(ready),
        processing_files=int(processing),
        failed_files=int(failed),
    )


def validate_upload(
    db: Session,
    kb: KnowledgeBase,
    filename: str,
    mime_type: str | None,
    data: bytes,
) -> CheckedUpload:
    """
    Run every pre-upload check, in order.

    Returns:
        The resolved MIME type and the PDF page count (None for non-PDF files)

    Raises:
        UploadRejected: Unsupported type, oversize file, too many pages or unreadable PDF
        QuotaExceeded: File count or storage quota exhausted
    """
    settings = get_settings()

    resolved_type = resolve_mime_type(filename, mime_type)
    if resolved_type is None:
        raise UploadRejected(UNSUPPORTED_TYPE_MESSAGE)

    file_quota = check_file_upload_quota(db, kb.id)
    if not file_quota.allowed:
        raise QuotaExceeded(file_quota)

    size_quota = check_file_size_quota(len(data))
    if not size_quota.allowed:
        raise UploadRejected(size_quota.message)

    storage_quota = check_storage_quota(db, kb.user_id, len(data))
    if not storage_quota.allowed:
        raise QuotaExceeded(storage_quota)

    if not is_pdf(filename, resolved_type):
        return CheckedUpload(mime_type=resolved_type, page_count=None)

    try:
        page_count = count_pdf_pages(data)
    except InvalidPdfError as e:
        logger.warning("Unreadable PDF %s: %s", filename, e)
        raise UploadRejected(
            "Failed to process PDF file. File may be corrupted or invalid."
        ) from e

    if page_count > settings.max_pdf_pages:
        raise UploadRejected(
            f"PDF must have {settings.max_pdf_pages} pages or less (found {page_count} pages)"
        )
    return CheckedUpload(mime_type=resolved_type, page_count=page_count)


def upload_file(
    db: Session,
    kb: KnowledgeBase,
    filename: str,
    mime_type: str | None,
    data: bytes,
) -> File:
    """
    Validate, index and record an uploaded file.

    Raises:
        UploadRejected, QuotaExceeded: Validation failed; nothing was uploaded
        DocumentStoreError: The provider upload or indexing failed
        PersistenceError: The row could not be saved (the document is rolled back)
    """
    checked = validate_upload(db, kb, filename, mime_type, data)

    uploaded = gemini.upload_document(kb.gemini_store_id, data, filename, checked.mime_type)

    file = File(
        knowledge_base_id=kb.id,
        file_name=filename,
        file_size=len(data),
        mime_type=checked.mime_type,
        page_count=checked.page_count,
        gemini_file_id=uploaded.document_id,
    )
    file.status = uploaded.status
    if uploaded.status == FileStatus.READY:
        file.processed_at = utc_now()

    try:
        db.add(file)
        db.commit()
        db.refresh(file)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error saving file %s to knowledge base %s: %s", filename, kb.id, e)
        try:
            gemini.delete_document(uploaded.document_id)
        except Exception:
            logger.error(
                "Orphaned document %s after failed insert", uploaded.document_id, exc_info=True
            )
        raise PersistenceError("Failed to save file metadata") from e

    increment_file_upload_count(db, kb.user_id)
    update_storage_usage(db, kb.user_id, file.file_size)

    logger.info("Uploaded file %s (%d bytes) to knowledge base %s", file.id, file.file_size, kb.id)
    return file


def delete_file(db: Session, file: File, user_id: str) -> None:
    """Delete a file from the store (best effort) and locally, then release its storage."""
    try:
        gemini.delete_document(file.gemini_file_id)
    except Exception as e:
        logger.warning("Error deleting document %s: %s", file.gemini_file_id, e)

    file_size = file.file_size
    db.delete(file)
    db.commit()

    if file_size > 0:
        update_storage_usage(db, user_id, -file_size)


def sync_file_status(db: Session, file: File) -> File:
    """
    Refresh a file's status from the provider.

    Illegal transitions (e.g. out of a terminal state) are logged and ignored.

    Raises:
        DocumentStoreError: The provider could not be queried
    """
    state = gemini.get_document_state(file.gemini_file_id)
    if state is None or state == file.status:
        return file

    try:
        file.status = state
    except InvalidStatusTransition as e:
        logger.warning("Ignoring provider state for file %s: %s", file.id, e)
        return file

    if state == FileStatus.READY:
        file.processed_at = utc_now()
    elif state == FileStatus.FAILED:
        file.error_message = "Document processing failed"

    db.commit()
    db.refresh(file)
    return file
