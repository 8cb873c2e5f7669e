"""File upload, listing and deletion endpoints."""

import logging

from fastapi import APIRouter, Depends, File as FormFile, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from kilo.auth.dependencies import get_current_user
from kilo.auth.schemas import User
from kilo.config import get_settings
from kilo.database.session import get_db
from kilo.dependencies.quota import quota_http_exception
from kilo.models.file import File
from kilo.schemas.common import SuccessResponse
from kilo.schemas.file import FileResponse, FileStatsResponse
from kilo.services.core import documents
from kilo.services.core.errors import PersistenceError, QuotaExceeded, UploadRejected
from kilo.services.core.knowledge_bases import get_knowledge_base
from kilo.services.providers.gemini import DocumentStoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


def _get_kb_or_404(db: Session, knowledge_base_id: str, user: User):
    kb = get_knowledge_base(db, knowledge_base_id, user.id)
    if not kb:
        raise HTTPException(status_code=404, detail="Knowledge base not found")
    return kb


def _get_file_or_404(db: Session, file_id: str, user: User) -> File:
    file = documents.get_file_for_user(db, file_id, user.id)
    if not file:
        raise HTTPException(status_code=404, detail="File not found")
    return file


@router.post(
    "/knowledge-bases/{knowledge_base_id}/files",
    response_model=FileResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_file(
    knowledge_base_id: str,
    file: UploadFile | None = FormFile(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> File:
    """Upload a document into a knowledge base and wait for it to be indexed."""
    kb = _get_kb_or_404(db, knowledge_base_id, user)

    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    # Anything past the size limit is rejected anyway; never buffer more than one byte over
    data = file.file.read(get_settings().max_file_size_bytes + 1)

    try:
        return documents.upload_file(db, kb, file.filename, file.content_type, data)
    except UploadRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuotaExceeded as e:
        raise quota_http_exception(e)
    except DocumentStoreError as e:
        logger.error("Error uploading %s to knowledge base %s: %s", file.filename, kb.id, e)
        raise HTTPException(status_code=500, detail="Failed to upload file")
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/knowledge-bases/{knowledge_base_id}/files", response_model=list[FileResponse])
def list_files(
    knowledge_base_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[File]:
    """List files in a knowledge base, newest first."""
    kb = _get_kb_or_404(db, knowledge_base_id, user)
    return documents.list_files(db, kb.id)


@router.get("/knowledge-bases/{knowledge_base_id}/files/stats", response_model=FileStatsResponse)
def get_file_stats(
    knowledge_base_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FileStatsResponse:
    kb = _get_kb_or_404(db, knowledge_base_id, user)
    return documents.get_file_stats(db, kb.id)


@router.get("/files/{file_id}", response_model=FileResponse)
def get_file(
    file_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> File:
    return _get_file_or_404(db, file_id, user)


@router.post("/files/{file_id}/sync", response_model=FileResponse)
def sync_file_status(
    file_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> File:
    """Refresh a file's processing status from the document store."""
    file = _get_file_or_404(db, file_id, user)
    try:
        return documents.sync_file_status(db, file)
    except DocumentStoreError as e:
        logger.error("Error syncing status of file %s: %s", file.id, e)
        raise HTTPException(status_code=500, detail="Failed to sync file status")


@router.delete("/files/{file_id}", response_model=SuccessResponse)
def delete_file(
    file_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Delete a file from the document store and the database."""
    file = _get_file_or_404(db, file_id, user)
    documents.delete_file(db, file, user.id)
    return SuccessResponse()
