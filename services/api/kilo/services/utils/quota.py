"""Quota enforcement checks.

Read-only comparisons of current consumption against the configured limits,
run before a mutating operation. Checks that need the database fail closed:
if the count cannot be read the operation is denied.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.config import get_settings
from kilo.models.enums import ACTIVE_FILE_STATUSES
from kilo.models.file import File
from kilo.models.knowledge_base import KnowledgeBase
from kilo.schemas.usage import QueryQuota, QuotaCheckResult, ResourceQuota, UsageResponse
from kilo.services.utils.usage import format_reset_time, get_user_usage

logger = logging.getLogger(__name__)


def check_file_upload_quota(db: Session, knowledge_base_id: str) -> QuotaCheckResult:
    """Check if another file may be added to a knowledge base."""
    limit = get_settings().max_files_per_knowledge_base

    try:
        file_count = db.execute(
            select(func.count(File.id)).where(
                File.knowledge_base_id == knowledge_base_id,
                File.status.in_(ACTIVE_FILE_STATUSES),
            )
        ).scalar_one()
    except SQLAlchemyError as e:
        logger.error("Error checking file count for knowledge base %s: %s", knowledge_base_id, e)
        return QuotaCheckResult(
            allowed=False,
            message="Error checking file quota",
            current=0,
            limit=limit,
            remaining=0,
        )

    allowed = file_count < limit
    return QuotaCheckResult(
        allowed=allowed,
        message=None
        if allowed
        else (
            f"You've reached the limit of {limit} files per knowledge base. "
            "Please delete some files before uploading new ones."
        ),
        current=file_count,
        limit=limit,
        remaining=max(0, limit - file_count),
    )


def check_knowledge_base_quota(db: Session, user_id: str) -> QuotaCheckResult:
    """Check if the user may create another knowledge base."""
    limit = get_settings().max_knowledge_bases

    try:
        kb_count = db.execute(
            select(func.count(KnowledgeBase.id)).where(KnowledgeBase.user_id == user_id)
        ).scalar_one()
    except SQLAlchemyError as e:
        logger.error("Error checking knowledge base count for user %s: %s", user_id, e)
        return QuotaCheckResult(
            allowed=False,
            message="Error checking knowledge base quota",
            current=0,
            limit=limit,
            remaining=0,
        )

    allowed = kb_count < limit
    return QuotaCheckResult(
        allowed=allowed,
        message=None
        if allowed
        else (
            f"You've reached the limit of {limit} knowledge bases. "
            "Please delete a knowledge base before creating a new one."
        ),
        current=kb_count,
        limit=limit,
        remaining=max(0, limit - kb_count),
    )


def check_file_size_quota(file_size_bytes: int) -> QuotaCheckResult:
    """Check a single file against the maximum upload size. No I/O."""
    settings = get_settings()
    max_size = settings.max_file_size_bytes
    allowed = file_size_bytes <= max_size

    return QuotaCheckResult(
        allowed=allowed,
        message=None
        if allowed
        else (
            f"File size exceeds the maximum limit of {settings.max_file_size_mb}MB. "
            "Please upload a smaller file."
        ),
        current=file_size_bytes,
        limit=max_size,
        remaining=max(0, max_size - file_size_bytes),
    )


def check_storage_quota(db: Session, user_id: str, additional_bytes: int = 0) -> QuotaCheckResult:
    """Check if the user's cumulative storage can absorb `additional_bytes`."""
    settings = get_settings()
    max_storage = settings.max_storage_bytes
    stats = get_user_usage(db, user_id)

    if stats is None:
        return QuotaCheckResult(
            allowed=False,
            message="Error checking storage quota",
            current=0,
            limit=max_storage,
            remaining=0,
        )

    allowed = stats.storage_used + additional_bytes <= max_storage
    return QuotaCheckResult(
        allowed=allowed,
        message=None
        if allowed
        else (
            f"Adding this file would exceed your storage limit of {settings.max_storage_mb}MB. "
            "Please delete some files to free up space."
        ),
        current=stats.storage_used,
        limit=max_storage,
        remaining=max(0, max_storage - stats.storage_used),
    )


def check_query_quota(db: Session, user_id: str) -> QuotaCheckResult:
    """Check the durable daily query counter."""
    limit = get_settings().daily_query_limit
    stats = get_user_usage(db, user_id)

    if stats is None:
        return QuotaCheckResult(
            allowed=False,
            message="Error checking query quota",
            current=0,
            limit=limit,
            remaining=0,
        )

    allowed = stats.queries_remaining > 0
    return QuotaCheckResult(
        allowed=allowed,
        message=None
        if allowed
        else (
            f"You've reached your daily limit of {limit} queries. "
            f"Your limit will reset at {format_reset_time(stats.query_reset_at)} UTC."
        ),
        current=stats.daily_queries,
        limit=limit,
        remaining=stats.queries_remaining,
    )


def get_all_quotas(db: Session, user_id: str) -> UsageResponse | None:
    """Snapshot every quota for the usage dashboard; None if the ledger is unreadable."""
    settings = get_settings()
    stats = get_user_usage(db, user_id)
    if stats is None:
        return None

    kb_quota = check_knowledge_base_quota(db, user_id)
    max_storage = settings.max_storage_bytes

    return UsageResponse(
        queries=QueryQuota(
            used=stats.daily_queries,
            limit=settings.daily_query_limit,
            remaining=stats.queries_remaining,
            reset_at=stats.query_reset_at,
        ),
        knowledge_bases=ResourceQuota(
            used=kb_quota.current,
            limit=settings.max_knowledge_bases,
            remaining=kb_quota.remaining,
        ),
        storage=ResourceQuota(
            used=stats.storage_used,
            limit=max_storage,
            remaining=max(0, max_storage - stats.storage_used),
        ),
        total_file_uploads=stats.file_uploads,
        total_queries=stats.total_queries,
    )
