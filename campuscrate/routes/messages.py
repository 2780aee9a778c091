# Conversation endpoints for booking threads and item inquiries.
# Participation rules live in services.messaging; this module resolves message shapes for the API.
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import messaging
from .auth import get_current_user

router = APIRouter()


def to_message_read(msg: models.Message):
    """Pick the API shape for a stored message by its kind."""
    if msg.kind == "booking":
        return schemas.BookingMessageRead.model_validate(msg)
    return schemas.InquiryMessageRead.model_validate(msg)


@router.get("/messages/threads", response_model=List[schemas.ThreadSummary])
def list_threads(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> List[schemas.ThreadSummary]:
    return [
        schemas.ThreadSummary(
            kind=t.kind,
            lending_request_id=t.lending_request_id,
            item_id=t.item_id,
            counterpart_id=t.counterpart_id,
            last_message=to_message_read(t.last_message),
            unread_count=t.unread_count,
        )
        for t in messaging.list_threads(db, user)
    ]


@router.get("/messages/unread-count", response_model=schemas.UnreadCount)
def unread_count(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> schemas.UnreadCount:
    return schemas.UnreadCount(unread_count=messaging.unread_count(db, user))


@router.get("/messages/lending/{request_id}", response_model=List[schemas.BookingMessageRead])
def list_booking_messages(
    request_id: int,
    limit: int = Query(50, ge=1, le=100),
    since_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> List[schemas.BookingMessageRead]:
    """
    Booking thread history, ascending by created_at then id.

    since_id returns only messages with a greater id. Reading marks the other party's
    messages as read.
    """
    items = messaging.list_booking_messages(db, user, request_id, since_id=since_id, limit=limit)
    return [to_message_read(m) for m in items]


@router.post(
    "/messages/lending/{request_id}",
    response_model=schemas.BookingMessageRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def post_booking_message(
    request_id: int,
    payload: schemas.BookingMessageCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> schemas.BookingMessageRead:
    return to_message_read(messaging.post_booking_message(db, user, request_id, payload.content))


@router.get("/messages/items/{item_id}", response_model=List[schemas.InquiryMessageRead])
def list_inquiry_messages(
    item_id: int,
    with_user: Optional[int] = Query(None, ge=1, description="The inquirer, when the caller owns the item"),
    limit: int = Query(50, ge=1, le=100),
    since_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> List[schemas.InquiryMessageRead]:
    items = messaging.list_inquiry_messages(db, user, item_id, with_user, since_id=since_id, limit=limit)
    return [to_message_read(m) for m in items]


@router.post(
    "/messages/items/{item_id}",
    response_model=schemas.InquiryMessageRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def post_inquiry_message(
    item_id: int,
    payload: schemas.InquiryMessageCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> schemas.InquiryMessageRead:
    msg = messaging.post_inquiry_message(db, user, item_id, payload.content, payload.recipient_id)
    return to_message_read(msg)
