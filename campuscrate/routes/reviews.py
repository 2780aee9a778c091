from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import reviews
from .auth import get_current_user

router = APIRouter()


@router.post(
    "/reviews",
    response_model=schemas.ReviewRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def submit_review(
    payload: schemas.ReviewCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.Review:
    return reviews.submit_review(
        db,
        user,
        lending_request_id=payload.lending_request_id,
        reviewee_id=payload.reviewee_id,
        rating=payload.rating,
        comment=payload.comment,
    )


@router.get("/users/{user_id}/reviews", response_model=List[schemas.ReviewRead])
def list_user_reviews(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[models.Review]:
    return reviews.list_for_user(db, user_id, limit=limit, offset=offset)
