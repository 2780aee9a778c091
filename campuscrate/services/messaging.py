# Conversation threads and who may read or write them.
#
# Booking thread: keyed by lending request; participants are its borrower and lender.
# Inquiry thread: keyed by (item, inquirer); participants are the item owner and the inquirer.
# Staff roles get no implicit access to either kind.
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..models import CANCELLED, REJECTED
from ..redis_client import truthy
from .lending import get_request_for_party

logger = logging.getLogger("campuscrate.chat")

MAX_MESSAGE_LENGTH = 1000

# Threads of requests that never went ahead are read-only
CLOSED_THREAD_STATUSES = (REJECTED, CANCELLED)


def require_verified_enabled() -> bool:
    return truthy(os.getenv("MESSAGING_REQUIRE_VERIFIED", "false"))


def _check_verified(user: models.User) -> None:
    if require_verified_enabled() and not user.is_verified:
        raise ForbiddenError("Verify your account to use messaging", code="verification_required")


def _clean_content(content: str) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content is limited to {MAX_MESSAGE_LENGTH} characters")
    return text


def _mark_read(db: Session, reader_id: int, messages: List[models.Message]) -> int:
    """Mark the returned page read; messages outside it keep their unread state."""
    if not messages:
        return 0
    result = db.execute(
        update(models.Message)
        .where(
            models.Message.id.in_([m.id for m in messages]),
            models.Message.sender_id != reader_id,
            models.Message.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


# ----------------
# Booking threads
# ----------------
def list_booking_messages(
    db: Session,
    user: models.User,
    request_id: int,
    since_id: Optional[int] = None,
    limit: int = 50,
) -> List[models.Message]:
    _check_verified(user)
    get_request_for_party(db, user.id, request_id)

    q = db.query(models.BookingMessage).filter(models.BookingMessage.lending_request_id == request_id)
    if since_id is not None:
        q = q.filter(models.BookingMessage.id > since_id)
    items = q.order_by(models.BookingMessage.created_at.asc(), models.BookingMessage.id.asc()).limit(limit).all()

    marked = _mark_read(db, user.id, items)
    db.commit()
    logger.info(
        "messages.history",
        extra={"kind": "booking", "request_id": request_id, "count": len(items), "marked_read": marked, "user_id": user.id},
    )
    return items


def post_booking_message(db: Session, user: models.User, request_id: int, content: str) -> models.Message:
    _check_verified(user)
    req = get_request_for_party(db, user.id, request_id)
    if req.status in CLOSED_THREAD_STATUSES:
        raise InvalidStateError("This conversation is closed", code="thread_closed", extra={"status": req.status})

    msg = models.BookingMessage(lending_request_id=req.id, sender_id=user.id, content=_clean_content(content))
    db.add(msg)
    db.commit()
    db.refresh(msg)
    logger.info("messages.sent", extra={"kind": "booking", "request_id": req.id, "message_id": msg.id, "user_id": user.id})
    return msg


# ----------------
# Inquiry threads
# ----------------
def _resolve_inquiry(db: Session, user: models.User, item_id: int, other_user_id: Optional[int]) -> Tuple[models.Item, int, int]:
    """Return (item, inquirer_id, counterpart_id) for the caller's view of the thread."""
    item = db.get(models.Item, item_id)
    if not item:
        raise NotFoundError("Item not found")

    if user.id == item.owner_id:
        if other_user_id is None:
            raise ValidationError("Item owners must name the inquirer they are talking to")
        if other_user_id == item.owner_id:
            raise ValidationError("You cannot open an inquiry on your own item", code="own_item")
        if db.get(models.User, other_user_id) is None:
            raise NotFoundError("User not found")
        return item, other_user_id, other_user_id

    if other_user_id is not None and other_user_id != item.owner_id:
        raise ForbiddenError("Not a participant of this conversation")
    return item, user.id, item.owner_id


def list_inquiry_messages(
    db: Session,
    user: models.User,
    item_id: int,
    other_user_id: Optional[int] = None,
    since_id: Optional[int] = None,
    limit: int = 50,
) -> List[models.Message]:
    _check_verified(user)
    item, inquirer_id, _ = _resolve_inquiry(db, user, item_id, other_user_id)

    q = db.query(models.InquiryMessage).filter(
        models.InquiryMessage.item_id == item.id,
        models.InquiryMessage.inquirer_id == inquirer_id,
    )
    if since_id is not None:
        q = q.filter(models.InquiryMessage.id > since_id)
    items = q.order_by(models.InquiryMessage.created_at.asc(), models.InquiryMessage.id.asc()).limit(limit).all()

    marked = _mark_read(db, user.id, items)
    db.commit()
    logger.info(
        "messages.history",
        extra={"kind": "inquiry", "item_id": item.id, "count": len(items), "marked_read": marked, "user_id": user.id},
    )
    return items


def post_inquiry_message(
    db: Session,
    user: models.User,
    item_id: int,
    content: str,
    recipient_id: Optional[int] = None,
) -> models.Message:
    _check_verified(user)
    item, inquirer_id, counterpart_id = _resolve_inquiry(db, user, item_id, recipient_id)
    if not item.is_active and user.id != item.owner_id:
        raise NotFoundError("Item not found")
    if user.id == item.owner_id:
        # Owners only reply; the inquirer opens the thread
        opened = (
            db.query(models.InquiryMessage.id)
            .filter(models.InquiryMessage.item_id == item.id, models.InquiryMessage.inquirer_id == inquirer_id)
            .first()
        )
        if opened is None:
            raise NotFoundError("Conversation not found")

    msg = models.InquiryMessage(
        item_id=item.id,
        inquirer_id=inquirer_id,
        sender_id=user.id,
        recipient_id=counterpart_id,
        content=_clean_content(content),
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)
    logger.info("messages.sent", extra={"kind": "inquiry", "item_id": item.id, "message_id": msg.id, "user_id": user.id})
    return msg


# ----------------
# Overviews
# ----------------
@dataclass
class Thread:
    kind: str
    item_id: int
    counterpart_id: int
    last_message: models.Message
    unread_count: int = 0
    lending_request_id: Optional[int] = None


def _party_requests(db: Session, user_id: int) -> Dict[int, models.LendingRequest]:
    rows = (
        db.query(models.LendingRequest)
        .filter(or_(models.LendingRequest.borrower_id == user_id, models.LendingRequest.lender_id == user_id))
        .all()
    )
    return {r.id: r for r in rows}


def list_threads(db: Session, user: models.User) -> List[Thread]:
    """One summary per thread the user takes part in, most recent activity first."""
    _check_verified(user)
    requests_by_id = _party_requests(db, user.id)

    criteria = [and_(models.Message.kind == "inquiry", or_(models.Message.sender_id == user.id, models.Message.recipient_id == user.id))]
    if requests_by_id:
        criteria.append(and_(models.Message.kind == "booking", models.Message.lending_request_id.in_(list(requests_by_id))))
    messages = (
        db.query(models.Message)
        .filter(or_(*criteria))
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .all()
    )

    threads: Dict[tuple, Thread] = {}
    for m in messages:
        if m.kind == "booking":
            req = requests_by_id[m.lending_request_id]
            key = ("booking", req.id)
            counterpart = req.lender_id if user.id == req.borrower_id else req.borrower_id
            thread = threads.get(key) or Thread("booking", req.item_id, counterpart, m, lending_request_id=req.id)
        else:
            key = ("inquiry", m.item_id, m.inquirer_id)
            counterpart = m.recipient_id if m.sender_id == user.id else m.sender_id
            thread = threads.get(key) or Thread("inquiry", m.item_id, counterpart, m)
        thread.last_message = m
        if m.sender_id != user.id and not m.is_read:
            thread.unread_count += 1
        threads[key] = thread

    return sorted(threads.values(), key=lambda t: (t.last_message.created_at, t.last_message.id), reverse=True)


def unread_count(db: Session, user: models.User) -> int:
    _check_verified(user)
    request_ids = list(_party_requests(db, user.id))
    booking_unread = 0
    if request_ids:
        booking_unread = (
            db.query(models.Message)
            .filter(
                models.Message.kind == "booking",
                models.Message.lending_request_id.in_(request_ids),
                models.Message.sender_id != user.id,
                models.Message.is_read.is_(False),
            )
            .count()
        )
    inquiry_unread = (
        db.query(models.Message)
        .filter(
            models.Message.kind == "inquiry",
            models.Message.recipient_id == user.id,
            models.Message.is_read.is_(False),
        )
        .count()
    )
    return booking_unread + inquiry_unread
