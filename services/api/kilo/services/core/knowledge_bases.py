"""
Knowledge base lifecycle.

Creation is a two-step saga: the File Search store is created first, then the
row is inserted; if the insert fails the store is deleted again. Deletion is
best-effort on the provider side and always removes the local rows.
"""

import logging

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.models.enums import FileStatus
from kilo.models.file import File
from kilo.models.knowledge_base import KnowledgeBase
from kilo.schemas.knowledge_base import KnowledgeBaseResponse, KnowledgeBaseUpdate
from kilo.services.core.errors import PersistenceError, QuotaExceeded
from kilo.services.providers import gemini
from kilo.services.utils.quota import check_knowledge_base_quota
from kilo.services.utils.usage import update_storage_usage

logger = logging.getLogger(__name__)


def get_knowledge_base(db: Session, knowledge_base_id: str, user_id: str) -> KnowledgeBase | None:
    """Fetch a knowledge base only if it belongs to the user."""
    return db.query(KnowledgeBase).filter(
        KnowledgeBase.id == knowledge_base_id,
        KnowledgeBase.user_id == user_id,
    ).first()


def file_counts(db: Session, knowledge_base_ids: list[str]) -> dict[str, tuple[int, int]]:
    """Map knowledge base id -> (total files, ready files)."""
    if not knowledge_base_ids:
        return {}

    rows = (
        db.query(
            File.knowledge_base_id,
            func.count(File.id),
            func.sum(case((File.status == FileStatus.READY, 1), else_=0)),
        )
        .filter(File.knowledge_base_id.in_(knowledge_base_ids))
        .group_by(File.knowledge_base_id)
        .all()
    )
    return {kb_id: (total, int(ready or 0)) for kb_id, total, ready in rows}


def to_response(kb: KnowledgeBase, counts: tuple[int, int] = (0, 0)) -> KnowledgeBaseResponse:
    response = KnowledgeBaseResponse.model_validate(kb)
    response.file_count, response.ready_file_count = counts
    return response


def describe(db: Session, kb: KnowledgeBase) -> KnowledgeBaseResponse:
    return to_response(kb, file_counts(db, [kb.id]).get(kb.id, (0, 0)))


def list_knowledge_bases(db: Session, user_id: str) -> list[KnowledgeBaseResponse]:
    """List the user's knowledge bases, newest first, with file counts."""
    knowledge_bases = (
        db.query(KnowledgeBase)
        .filter(KnowledgeBase.user_id == user_id)
        .order_by(KnowledgeBase.created_at.desc())
        .all()
    )
    counts = file_counts(db, [kb.id for kb in knowledge_bases])
    return [to_response(kb, counts.get(kb.id, (0, 0))) for kb in knowledge_bases]


def create_knowledge_base(
    db: Session,
    user_id: str,
    name: str,
    description: str | None = None,
) -> KnowledgeBase:
    """
    Create a knowledge base and its backing File Search store.

    Raises:
        QuotaExceeded: The user already has the maximum number of knowledge bases
        DocumentStoreError: The store could not be created
        PersistenceError: The row could not be saved (the store is rolled back)
    """
    quota = check_knowledge_base_quota(db, user_id)
    if not quota.allowed:
        raise QuotaExceeded(quota)

    store_id = gemini.create_store(name)

    kb = KnowledgeBase(
        user_id=user_id,
        name=name,
        description=description,
        gemini_store_id=store_id,
    )
    try:
        db.add(kb)
        db.commit()
        db.refresh(kb)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error creating knowledge base for user %s: %s", user_id, e)
        try:
            gemini.delete_store(store_id)
        except Exception:
            logger.error("Orphaned file search store %s after failed insert", store_id, exc_info=True)
        raise PersistenceError("Failed to create knowledge base") from e

    logger.info("Created knowledge base %s for user %s", kb.id, user_id)
    return kb


def update_knowledge_base(db: Session, kb: KnowledgeBase, data: KnowledgeBaseUpdate) -> KnowledgeBase:
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(kb, field, value)

    db.commit()
    db.refresh(kb)
    return kb


def delete_knowledge_base(db: Session, kb: KnowledgeBase) -> None:
    """
    Delete a knowledge base, its files and its store.

    The store delete is attempted first; a failure there is logged and the
    local delete still happens. The owner's storage counter is reduced by the
    size of the removed files.
    """
    total_size = (
        db.query(func.coalesce(func.sum(File.file_size), 0))
        .filter(File.knowledge_base_id == kb.id)
        .scalar()
    )

    try:
        gemini.delete_store(kb.gemini_store_id)
    except Exception as e:
        logger.warning("Error deleting file search store %s: %s", kb.gemini_store_id, e)

    user_id = kb.user_id
    db.delete(kb)
    db.commit()
    logger.info("Deleted knowledge base %s", kb.id)

    if total_size:
        update_storage_usage(db, user_id, -int(total_size))
