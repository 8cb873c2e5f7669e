"""Health check and metrics endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo import __version__
from kilo.config import BYTES_PER_MB, get_settings
from kilo.database.base import utc_now
from kilo.database.session import get_db
from kilo.models.file import File
from kilo.models.knowledge_base import KnowledgeBase
from kilo.models.usage_record import UsageRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(db: Session = Depends(get_db)) -> JSONResponse:
    """Check API and database health; 503 when degraded."""
    checks: dict[str, Any] = {
        "timestamp": utc_now().isoformat(),
        "status": "healthy",
        "checks": {
            "database": {"status": "unknown", "message": ""},
            "api": {"status": "healthy", "message": "API is responsive"},
        },
    }

    try:
        db.execute(text("SELECT 1"))
        checks["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful",
        }
    except SQLAlchemyError as e:
        logger.error("Health check database failure: %s", e)
        checks["checks"]["database"] = {
            "status": "unhealthy",
            "message": "Database connection failed",
        }
        checks["status"] = "degraded"

    status_code = 200 if checks["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content=checks)


@router.get("/metrics")
def get_metrics(db: Session = Depends(get_db)) -> dict[str, Any]:
    """Coarse aggregate counts across all users."""
    settings = get_settings()

    owners = select(KnowledgeBase.user_id).union(select(UsageRecord.user_id)).subquery()
    total_users = db.execute(select(func.count()).select_from(owners)).scalar_one()
    total_kbs = db.execute(select(func.count(KnowledgeBase.id))).scalar_one()
    total_files, total_storage = db.execute(
        select(func.count(File.id), func.coalesce(func.sum(File.file_size), 0))
    ).one()
    total_queries = db.execute(
        select(func.coalesce(func.sum(UsageRecord.total_query_count), 0))
    ).scalar_one()

    return {
        "timestamp": utc_now().isoformat(),
        "application": {
            "name": settings.app_name,
            "version": __version__,
            "environment": settings.environment,
        },
        "metrics": {
            "users": {
                "total": total_users,
                "description": "Total users with knowledge bases or usage records",
            },
            "knowledgeBases": {
                "total": total_kbs,
                "description": "Total knowledge bases created",
            },
            "files": {
                "total": total_files,
                "totalStorage": int(total_storage),
                "totalStorageMB": f"{int(total_storage) / BYTES_PER_MB:.2f}",
                "description": "Total files uploaded and storage used",
            },
            "queries": {
                "total": int(total_queries),
                "description": "Total AI queries processed",
            },
        },
        "limits": {
            "knowledgeBasesPerUser": settings.max_knowledge_bases,
            "filesPerKnowledgeBase": settings.max_files_per_knowledge_base,
            "fileSizeMB": settings.max_file_size_mb,
            "dailyQueriesPerUser": settings.daily_query_limit,
            "totalStoragePerUserMB": settings.max_storage_mb,
        },
    }
