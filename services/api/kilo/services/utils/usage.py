"""Database-backed usage ledger.

Every write is a single atomic UPDATE so concurrent requests never lose an
increment. Writers return False instead of raising: they run after the
user-visible mutation already succeeded, so a failure here is logged and the
counter is allowed to drift.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.config import get_settings
from kilo.database.base import utc_now
from kilo.models.usage_record import UsageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageStats:
    """Aggregate view of one user's ledger row."""

    daily_queries: int
    total_queries: int
    query_reset_at: datetime
    file_uploads: int
    storage_used: int
    queries_remaining: int


@dataclass(frozen=True)
class DatabaseQueryLimit:
    allowed: bool
    used: int
    remaining: int
    reset_at: datetime


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything in the ledger is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_reset_at(now: datetime | None = None) -> datetime:
    """Midnight UTC following `now`."""
    now = as_utc(now or utc_now())
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)


def format_reset_time(reset_at: datetime) -> str:
    """Human readable UTC timestamp, e.g. 'Oct 20, 2026, 12:00 AM'."""
    reset_at = as_utc(reset_at)
    hour = reset_at.hour % 12 or 12
    return f"{reset_at:%b} {reset_at.day}, {reset_at.year}, {hour}:{reset_at:%M %p}"


def _ensure_record(db: Session, user_id: str, now: datetime) -> None:
    """Insert an empty ledger row for the user if none exists yet."""
    exists = db.execute(
        select(UsageRecord.id).where(UsageRecord.user_id == user_id)
    ).first()
    if exists:
        return

    db.add(UsageRecord(user_id=user_id, query_reset_at=next_reset_at(now)))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request created it first
        db.rollback()


def get_user_usage(db: Session, user_id: str, now: datetime | None = None) -> UsageStats | None:
    """
    Fetch the user's aggregate usage.

    The daily counter is reported as zero once its reset time has passed,
    even if no write has rolled it over yet.

    Returns:
        UsageStats, or None if the ledger could not be read
    """
    settings = get_settings()
    now = as_utc(now or utc_now())

    try:
        record = db.execute(
            select(UsageRecord)
            .where(UsageRecord.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("Error getting usage stats for user %s: %s", user_id, e)
        return None

    if record is None:
        return UsageStats(
            daily_queries=0,
            total_queries=0,
            query_reset_at=next_reset_at(now),
            file_uploads=0,
            storage_used=0,
            queries_remaining=settings.daily_query_limit,
        )

    reset_at = as_utc(record.query_reset_at)
    daily = record.daily_query_count
    if now >= reset_at:
        daily = 0
        reset_at = next_reset_at(now)

    return UsageStats(
        daily_queries=daily,
        total_queries=record.total_query_count,
        query_reset_at=reset_at,
        file_uploads=record.file_upload_count,
        storage_used=record.storage_used_bytes,
        queries_remaining=max(0, settings.daily_query_limit - daily),
    )


def increment_query_count(db: Session, user_id: str, now: datetime | None = None) -> bool:
    """Count one chat query, rolling the daily window over if it has expired."""
    now = as_utc(now or utc_now())
    try:
        _ensure_record(db, user_id, now)
        expired = UsageRecord.query_reset_at <= now
        db.execute(
            update(UsageRecord)
            .where(UsageRecord.user_id == user_id)
            .values(
                daily_query_count=case(
                    (expired, 1),
                    else_=UsageRecord.daily_query_count + 1,
                ),
                total_query_count=UsageRecord.total_query_count + 1,
                query_reset_at=case(
                    (expired, next_reset_at(now)),
                    else_=UsageRecord.query_reset_at,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error incrementing query count for user %s: %s", user_id, e)
        return False
    return True


def increment_file_upload_count(db: Session, user_id: str) -> bool:
    """Count one successful file upload (lifetime counter)."""
    now = utc_now()
    try:
        _ensure_record(db, user_id, now)
        db.execute(
            update(UsageRecord)
            .where(UsageRecord.user_id == user_id)
            .values(
                file_upload_count=UsageRecord.file_upload_count + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error incrementing file upload count for user %s: %s", user_id, e)
        return False
    return True


def update_storage_usage(db: Session, user_id: str, storage_delta: int) -> bool:
    """
    Apply a storage delta (positive on upload, negative on delete).

    The stored total is clamped at zero.
    """
    now = utc_now()
    new_total = UsageRecord.storage_used_bytes + storage_delta
    try:
        _ensure_record(db, user_id, now)
        db.execute(
            update(UsageRecord)
            .where(UsageRecord.user_id == user_id)
            .values(
                storage_used_bytes=case((new_total < 0, 0), else_=new_total),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error updating storage usage for user %s: %s", user_id, e)
        return False
    return True


def check_database_query_limit(db: Session, user_id: str) -> DatabaseQueryLimit:
    """
    Check the authoritative daily query count.

    Fails open: if the ledger cannot be read the request is allowed, so a
    database hiccup never locks users out of chat.
    """
    settings = get_settings()
    stats = get_user_usage(db, user_id)

    if stats is None:
        logger.error("Could not get usage stats for user %s; allowing query", user_id)
        return DatabaseQueryLimit(
            allowed=True,
            used=0,
            remaining=settings.daily_query_limit,
            reset_at=next_reset_at(),
        )

    return DatabaseQueryLimit(
        allowed=stats.queries_remaining > 0,
        used=stats.daily_queries,
        remaining=stats.queries_remaining,
        reset_at=stats.query_reset_at,
    )
