# Lending-request state machine: creation, conflict detection and transitions.
#
# Every status change is a conditional UPDATE keyed by (status, version); a write that reserves
# calendar time on an item additionally bumps items.booking_version conditionally on the value
# read before the overlap check. Either update matching zero rows means another request got
# there first: the transaction is rolled back and the caller gets a typed error.
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..locks import item_lock_key, redis_try_lock
from ..models import ACCEPTED, ACTIVE, BLOCKING_STATUSES, CANCELLED, COMPLETED, PENDING, REJECTED
from ..notifications import format_new_lending_request, format_request_accepted, notify

logger = logging.getLogger("campuscrate.lending")

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({ACCEPTED, REJECTED, CANCELLED}),
    ACCEPTED: frozenset({ACTIVE, CANCELLED}),
    ACTIVE: frozenset({COMPLETED, CANCELLED}),
    REJECTED: frozenset(),
    CANCELLED: frozenset(),
    COMPLETED: frozenset(),
}

# Parties may only cancel before hand-over; active rentals are cancelled by moderation only
PARTY_CANCELLABLE = (PENDING, ACCEPTED)

# Statuses an accepted booking must not overlap at acceptance time
RESERVED_STATUSES = (ACCEPTED, ACTIVE)


def today() -> date:
    return datetime.now(timezone.utc).date()


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def rental_days(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days


def find_conflict(
    db: Session,
    item_id: int,
    start_date: date,
    end_date: date,
    statuses: Iterable[str] = BLOCKING_STATUSES,
    exclude_id: Optional[int] = None,
) -> Optional[models.LendingRequest]:
    """
    Return a request on the item whose [start, end) overlaps the given range, or None.

    Half-open overlap: existing.start < end AND start < existing.end.
    """
    q = db.query(models.LendingRequest).filter(
        models.LendingRequest.item_id == item_id,
        models.LendingRequest.status.in_(tuple(statuses)),
        models.LendingRequest.start_date < end_date,
        models.LendingRequest.end_date > start_date,
    )
    if exclude_id is not None:
        q = q.filter(models.LendingRequest.id != exclude_id)
    return q.order_by(models.LendingRequest.start_date.asc()).first()


def _claim_item_calendar(db: Session, item_id: int, seen_version: int) -> None:
    result = db.execute(
        update(models.Item)
        .where(models.Item.id == item_id, models.Item.booking_version == seen_version)
        .values(booking_version=models.Item.booking_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            "The item's calendar changed while this request was processed; please retry",
            code="concurrent_update",
        )


def transition(db: Session, obj: models.LendingRequest, target: str, **values) -> None:
    """Move obj to target with a conditional write on its current status and version.

    Does not commit; the caller owns the transaction.
    """
    if not can_transition(obj.status, target):
        raise InvalidStateError(
            f"Cannot move a {obj.status} request to {target}",
            extra={"status": obj.status},
        )
    result = db.execute(
        update(models.LendingRequest)
        .where(
            models.LendingRequest.id == obj.id,
            models.LendingRequest.status == obj.status,
            models.LendingRequest.version == obj.version,
        )
        .values(status=target, version=models.LendingRequest.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError("Lending request was modified concurrently; reload and retry", code="concurrent_update")


def _busy() -> ConflictError:
    return ConflictError("Another request for this item is being processed; retry shortly", code="busy", extra={"retry_after": 1})


def get_request(db: Session, request_id: int) -> models.LendingRequest:
    obj = db.get(models.LendingRequest, request_id)
    if not obj:
        raise NotFoundError("Lending request not found")
    return obj


def get_request_for_party(db: Session, user_id: int, request_id: int) -> models.LendingRequest:
    obj = get_request(db, request_id)
    if user_id not in (obj.borrower_id, obj.lender_id):
        raise ForbiddenError("Not a party to this lending request")
    return obj


def _get_lender_request(db: Session, lender: models.User, request_id: int) -> models.LendingRequest:
    obj = get_request(db, request_id)
    if obj.lender_id != lender.id:
        raise ForbiddenError("Only the lender can perform this action")
    return obj


def validate_dates(start_date: date, end_date: date) -> None:
    if start_date >= end_date:
        raise ValidationError("start_date must be before end_date")
    if start_date < today():
        raise ValidationError("start_date cannot be in the past")


def create_request(
    db: Session,
    borrower: models.User,
    item_id: int,
    start_date: date,
    end_date: date,
    note: Optional[str] = None,
) -> models.LendingRequest:
    validate_dates(start_date, end_date)

    item = db.get(models.Item, item_id)
    if not item or not item.is_active:
        raise NotFoundError("Item not found")
    if item.owner_id == borrower.id:
        raise ValidationError("You cannot borrow your own item", code="own_item")
    if item.availability != "available":
        raise ConflictError("Item is not available for lending", code="item_unavailable")

    days = rental_days(start_date, end_date)
    if days < (item.min_lending_days or 1):
        raise ValidationError(f"Minimum lending period is {item.min_lending_days} days")
    if item.max_lending_days is not None and days > item.max_lending_days:
        raise ValidationError(f"Maximum lending period is {item.max_lending_days} days")

    seen_version = item.booking_version
    with redis_try_lock(item_lock_key(item.id)) as locked:
        if not locked:
            raise _busy()
        try:
            conflict = find_conflict(db, item.id, start_date, end_date)
            if conflict is not None:
                raise ConflictError(
                    "Dates overlap with an existing request for this item",
                    extra={"conflicting_request_id": conflict.id},
                )
            obj = models.LendingRequest(
                item_id=item.id,
                borrower_id=borrower.id,
                lender_id=item.owner_id,
                start_date=start_date,
                end_date=end_date,
                total_cost_cents=item.daily_rate_cents * days,
                status=PENDING,
                note=note,
                version=1,
            )
            db.add(obj)
            db.flush()
            _claim_item_calendar(db, item.id, seen_version)
            db.commit()
        except Exception:
            db.rollback()
            raise

    db.refresh(obj)
    logger.info(
        "lending.created",
        extra={"request_id": obj.id, "item_id": item.id, "borrower_id": borrower.id, "total_cost_cents": obj.total_cost_cents},
    )
    notify(format_new_lending_request(obj, item, borrower))
    return obj


def accept_request(db: Session, lender: models.User, request_id: int) -> models.LendingRequest:
    obj = _get_lender_request(db, lender, request_id)
    if not can_transition(obj.status, ACCEPTED):
        raise InvalidStateError("Only pending requests can be accepted", extra={"status": obj.status})

    item = db.get(models.Item, obj.item_id)
    if not item or not item.is_active:
        raise InvalidStateError("Item is no longer listed", code="item_inactive")
    seen_version = item.booking_version

    with redis_try_lock(item_lock_key(item.id)) as locked:
        if not locked:
            raise _busy()
        try:
            # Re-check at commit time: a concurrent accept may have reserved overlapping dates
            conflict = find_conflict(db, item.id, obj.start_date, obj.end_date, RESERVED_STATUSES, exclude_id=obj.id)
            if conflict is not None:
                raise ConflictError(
                    "Dates overlap with an accepted booking for this item",
                    extra={"conflicting_request_id": conflict.id},
                )
            transition(db, obj, ACCEPTED, accepted_at=datetime.now(timezone.utc))
            _claim_item_calendar(db, item.id, seen_version)
            db.commit()
        except Exception:
            db.rollback()
            raise

    db.refresh(obj)
    logger.info("lending.accepted", extra={"request_id": obj.id, "item_id": item.id, "lender_id": lender.id})
    notify(format_request_accepted(obj, item))
    return obj


def reject_request(db: Session, lender: models.User, request_id: int) -> models.LendingRequest:
    obj = _get_lender_request(db, lender, request_id)
    if obj.status != PENDING:
        raise InvalidStateError("Only pending requests can be rejected", extra={"status": obj.status})
    try:
        transition(db, obj, REJECTED)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(obj)
    logger.info("lending.rejected", extra={"request_id": obj.id, "lender_id": lender.id})
    return obj


def cancel_request(db: Session, user: models.User, request_id: int, reason: Optional[str] = None) -> models.LendingRequest:
    obj = get_request_for_party(db, user.id, request_id)
    if obj.status not in PARTY_CANCELLABLE:
        raise InvalidStateError("Only pending or accepted requests can be cancelled", extra={"status": obj.status})
    try:
        transition(db, obj, CANCELLED, cancel_reason=reason or "cancelled", cancelled_by_id=user.id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(obj)
    logger.info("lending.cancelled", extra={"request_id": obj.id, "user_id": user.id})
    return obj


def start_request(db: Session, lender: models.User, request_id: int) -> models.LendingRequest:
    obj = _get_lender_request(db, lender, request_id)
    if obj.status != ACCEPTED:
        raise InvalidStateError("Only accepted requests can be started", extra={"status": obj.status})
    if obj.start_date > today():
        raise InvalidStateError("The rental period has not started yet", code="too_early")
    try:
        transition(db, obj, ACTIVE)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(obj)
    logger.info("lending.started", extra={"request_id": obj.id})
    return obj


def complete_request(db: Session, request_id: int, lender: Optional[models.User] = None) -> models.LendingRequest:
    """Mark an active rental completed once its end date has arrived.

    lender=None is the system trigger (sweeper); otherwise only the lender may complete.
    """
    obj = _get_lender_request(db, lender, request_id) if lender is not None else get_request(db, request_id)
    if obj.status != ACTIVE:
        raise InvalidStateError("Only active rentals can be completed", extra={"status": obj.status})
    if obj.end_date > today():
        raise InvalidStateError("The rental period has not ended yet", code="too_early")
    try:
        transition(db, obj, COMPLETED, completed_at=datetime.now(timezone.utc))
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(obj)
    logger.info("lending.completed", extra={"request_id": obj.id, "by": lender.id if lender else "system"})
    return obj


def cancel_open_requests_for_item(db: Session, item_id: int, reason: str, actor_id: Optional[int] = None) -> int:
    """Cancel every blocking request of an item being withdrawn. Does not commit."""
    rows = (
        db.query(models.LendingRequest)
        .filter(models.LendingRequest.item_id == item_id, models.LendingRequest.status.in_(BLOCKING_STATUSES))
        .all()
    )
    for obj in rows:
        transition(db, obj, CANCELLED, cancel_reason=reason, cancelled_by_id=actor_id)
    return len(rows)


def list_for_user(
    db: Session,
    user: models.User,
    side: str = "any",
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[models.LendingRequest]:
    q = db.query(models.LendingRequest)
    if side == "borrower":
        q = q.filter(models.LendingRequest.borrower_id == user.id)
    elif side == "lender":
        q = q.filter(models.LendingRequest.lender_id == user.id)
    else:
        q = q.filter(or_(models.LendingRequest.borrower_id == user.id, models.LendingRequest.lender_id == user.id))
    if status:
        q = q.filter(models.LendingRequest.status == status)
    return (
        q.order_by(models.LendingRequest.start_date.desc(), models.LendingRequest.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_for_item(db: Session, owner: models.User, item_id: int, status: Optional[str] = None) -> List[models.LendingRequest]:
    item = db.get(models.Item, item_id)
    if not item:
        raise NotFoundError("Item not found")
    if item.owner_id != owner.id:
        raise ForbiddenError("Only the owner can list requests for this item")
    q = db.query(models.LendingRequest).filter(models.LendingRequest.item_id == item_id)
    if status:
        q = q.filter(models.LendingRequest.status == status)
    return q.order_by(models.LendingRequest.start_date.asc(), models.LendingRequest.id.asc()).all()


def blocked_ranges(db: Session, item_id: int) -> List[models.LendingRequest]:
    """Requests currently holding calendar time on the item, from today on."""
    return (
        db.query(models.LendingRequest)
        .filter(
            models.LendingRequest.item_id == item_id,
            models.LendingRequest.status.in_(BLOCKING_STATUSES),
            models.LendingRequest.end_date > today(),
        )
        .order_by(models.LendingRequest.start_date.asc())
        .all()
    )
