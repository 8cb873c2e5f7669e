"""Message rating endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kilo.auth.dependencies import get_current_user
from kilo.auth.schemas import User
from kilo.database.session import get_db
from kilo.models.message_rating import MessageRating
from kilo.schemas.common import SuccessResponse
from kilo.schemas.rating import RatingCreate, RatingResponse
from kilo.services.core.knowledge_bases import get_knowledge_base

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["ratings"])


class RatingSaved(SuccessResponse):
    rating: RatingResponse


class RatingRemoved(SuccessResponse):
    removed: int = Field(default=0)


@router.post("/{message_id}/rating", response_model=RatingSaved)
def rate_message(
    message_id: str,
    data: RatingCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RatingSaved:
    """Rate a message; rating it again overwrites the previous value."""
    kb = get_knowledge_base(db, data.knowledge_base_id, user.id)
    if not kb:
        raise HTTPException(status_code=404, detail="Knowledge base not found")

    rating = db.query(MessageRating).filter(
        MessageRating.user_id == user.id,
        MessageRating.message_id == message_id,
    ).first()

    try:
        if rating is None:
            rating = MessageRating(
                user_id=user.id,
                message_id=message_id,
                knowledge_base_id=kb.id,
                rating=data.rating,
            )
            db.add(rating)
        else:
            rating.rating = data.rating
            rating.knowledge_base_id = kb.id
        db.commit()
        db.refresh(rating)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error saving rating for message %s: %s", message_id, e)
        raise HTTPException(status_code=500, detail="Failed to save rating")

    return RatingSaved(rating=RatingResponse.model_validate(rating))


@router.delete("/{message_id}/rating", response_model=RatingRemoved)
def delete_rating(
    message_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RatingRemoved:
    """Remove the caller's rating of a message. Removing a missing rating is not an error."""
    try:
        removed = db.query(MessageRating).filter(
            MessageRating.user_id == user.id,
            MessageRating.message_id == message_id,
        ).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error deleting rating for message %s: %s", message_id, e)
        raise HTTPException(status_code=500, detail="Failed to delete rating")

    return RatingRemoved(removed=removed)
