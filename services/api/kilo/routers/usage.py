"""Usage dashboard endpoint."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from kilo.auth.dependencies import get_current_user
from kilo.auth.schemas import User
from kilo.database.session import get_db
from kilo.schemas.usage import UsageResponse
from kilo.services.utils.quota import get_all_quotas

router = APIRouter(tags=["usage"])


@router.get("/usage", response_model=UsageResponse)
def get_usage(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UsageResponse:
    """Current consumption against every quota for the caller."""
    quotas = get_all_quotas(db, user.id)
    if quotas is None:
        raise HTTPException(status_code=500, detail="Failed to fetch usage statistics")
    return quotas
