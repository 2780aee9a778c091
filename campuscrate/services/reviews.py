# Reviews of completed rentals and the reviewee rating cache they feed.
from __future__ import annotations

import logging
from typing import List

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..models import COMPLETED
from ..notifications import format_new_review, notify
from ..policy import authorize_staff
from .lending import get_request

logger = logging.getLogger("campuscrate.reviews")


def recompute_rating(db: Session, user_id: int) -> None:
    """
    Rewrite users.rating/review_count from the full set of reviews of user_id.

    One UPDATE with correlated subqueries, so the aggregate is read and written atomically
    and stays correct when reviews are added or deleted concurrently. Does not commit.
    """
    reviews = models.Review
    mean = (
        select(func.coalesce(func.round(func.avg(reviews.rating), 1), 0.0))
        .where(reviews.reviewee_id == user_id)
        .scalar_subquery()
    )
    count = select(func.count(reviews.id)).where(reviews.reviewee_id == user_id).scalar_subquery()
    db.execute(
        update(models.User)
        .where(models.User.id == user_id)
        .values(rating=mean, review_count=count)
        .execution_options(synchronize_session=False)
    )


def submit_review(
    db: Session,
    reviewer: models.User,
    lending_request_id: int,
    reviewee_id: int,
    rating: int,
    comment: str | None = None,
) -> models.Review:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5")

    req = get_request(db, lending_request_id)
    if req.status != COMPLETED:
        raise InvalidStateError("Can only review completed rentals", extra={"status": req.status})
    if reviewer.id not in (req.borrower_id, req.lender_id):
        raise ForbiddenError("Not authorized to review this rental")

    is_borrower = reviewer.id == req.borrower_id
    counterpart_id = req.lender_id if is_borrower else req.borrower_id
    if reviewee_id != counterpart_id:
        raise ValidationError("Reviewee must be the other party of the rental", code="wrong_reviewee")

    existing = (
        db.query(models.Review.id)
        .filter(models.Review.lending_request_id == req.id, models.Review.reviewer_id == reviewer.id)
        .first()
    )
    if existing is not None:
        raise ConflictError("You have already reviewed this rental", code="already_reviewed")

    review = models.Review(
        lending_request_id=req.id,
        item_id=req.item_id,
        reviewer_id=reviewer.id,
        reviewee_id=counterpart_id,
        rating=rating,
        comment=comment,
        type="borrower" if is_borrower else "lender",
    )
    try:
        db.add(review)
        db.flush()
        recompute_rating(db, counterpart_id)
        db.commit()
    except IntegrityError as exc:
        # Lost a race with an identical submission; the unique constraint is the final word
        db.rollback()
        raise ConflictError("You have already reviewed this rental", code="already_reviewed") from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(review)
    logger.info(
        "review.created",
        extra={"review_id": review.id, "request_id": req.id, "reviewee_id": counterpart_id, "rating": rating},
    )
    notify(format_new_review(review, reviewer))
    return review


def delete_review(db: Session, actor: models.User, review_id: int) -> None:
    authorize_staff(actor.role, "delete_review")
    review = db.get(models.Review, review_id)
    if not review:
        raise NotFoundError("Review not found")
    reviewee_id = review.reviewee_id
    try:
        db.delete(review)
        db.flush()
        recompute_rating(db, reviewee_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("review.deleted", extra={"review_id": review_id, "reviewee_id": reviewee_id, "actor_id": actor.id})


def list_for_user(db: Session, user_id: int, limit: int = 20, offset: int = 0) -> List[models.Review]:
    if db.get(models.User, user_id) is None:
        raise NotFoundError("User not found")
    return (
        db.query(models.Review)
        .filter(models.Review.reviewee_id == user_id)
        .order_by(models.Review.created_at.desc(), models.Review.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
