"""Knowledge base CRUD endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from kilo.auth.dependencies import get_current_user
from kilo.auth.schemas import User
from kilo.database.session import get_db
from kilo.dependencies.quota import quota_http_exception
from kilo.schemas.common import SuccessResponse
from kilo.schemas.knowledge_base import (
    KnowledgeBaseCreate,
    KnowledgeBaseResponse,
    KnowledgeBaseUpdate,
)
from kilo.services.core import knowledge_bases
from kilo.services.core.errors import PersistenceError, QuotaExceeded
from kilo.services.providers.gemini import DocumentStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/knowledge-bases", tags=["knowledge-bases"])


@router.post("", response_model=KnowledgeBaseResponse, status_code=status.HTTP_201_CREATED)
def create_knowledge_base(
    data: KnowledgeBaseCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> KnowledgeBaseResponse:
    """Create a knowledge base and its document store for the current user."""
    try:
        kb = knowledge_bases.create_knowledge_base(db, user.id, data.name, data.description)
    except QuotaExceeded as e:
        raise quota_http_exception(e)
    except DocumentStoreError as e:
        logger.error("Error creating document store for user %s: %s", user.id, e)
        raise HTTPException(status_code=500, detail="Failed to create knowledge base storage")
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to create knowledge base")

    return knowledge_bases.to_response(kb)


@router.get("", response_model=list[KnowledgeBaseResponse])
def list_knowledge_bases(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[KnowledgeBaseResponse]:
    """List all knowledge bases for the current user."""
    return knowledge_bases.list_knowledge_bases(db, user.id)


@router.get("/{knowledge_base_id}", response_model=KnowledgeBaseResponse)
def get_knowledge_base(
    knowledge_base_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> KnowledgeBaseResponse:
    """Get a specific knowledge base owned by the current user."""
    kb = knowledge_bases.get_knowledge_base(db, knowledge_base_id, user.id)
    if not kb:
        raise HTTPException(status_code=404, detail="Knowledge base not found")
    return knowledge_bases.describe(db, kb)


@router.patch("/{knowledge_base_id}", response_model=KnowledgeBaseResponse)
def update_knowledge_base(
    knowledge_base_id: str,
    data: KnowledgeBaseUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> KnowledgeBaseResponse:
    """Rename or re-describe a knowledge base owned by the current user."""
    kb = knowledge_bases.get_knowledge_base(db, knowledge_base_id, user.id)
    if not kb:
        raise HTTPException(status_code=404, detail="Knowledge base not found")

    kb = knowledge_bases.update_knowledge_base(db, kb, data)
    return knowledge_bases.describe(db, kb)


@router.delete("/{knowledge_base_id}", response_model=SuccessResponse)
def delete_knowledge_base(
    knowledge_base_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Delete a knowledge base owned by the current user (cascades to its files)."""
    kb = knowledge_bases.get_knowledge_base(db, knowledge_base_id, user.id)
    if not kb:
        raise HTTPException(status_code=404, detail="Knowledge base not found")

    knowledge_bases.delete_knowledge_base(db, kb)
    return SuccessResponse()
