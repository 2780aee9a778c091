# Item catalog: owner-managed listings with soft deletion.
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, cast, or_, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import ForbiddenError, NotFoundError, ValidationError
from .lending import cancel_open_requests_for_item

logger = logging.getLogger("campuscrate.catalog")

SORTABLE_FIELDS = {
    "created_at": models.Item.created_at,
    "daily_rate_cents": models.Item.daily_rate_cents,
    "view_count": models.Item.view_count,
    "title": models.Item.title,
}

# Fields a client may never write through an update
IMMUTABLE_FIELDS = frozenset({"id", "owner_id", "created_at", "is_active", "view_count", "favorite_count", "booking_version"})

# The only item columns an update may set to null
NULLABLE_FIELDS = frozenset({"campus", "max_lending_days"})


def create_item(db: Session, owner: models.User, data: Dict[str, Any]) -> models.Item:
    obj = models.Item(owner_id=owner.id, **data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("item.created", extra={"item_id": obj.id, "owner_id": owner.id})
    return obj


def get_active_item(db: Session, item_id: int) -> models.Item:
    obj = db.get(models.Item, item_id)
    if not obj or not obj.is_active:
        raise NotFoundError("Item not found")
    return obj


def view_item(db: Session, item_id: int) -> models.Item:
    """Fetch a listed item and count the view atomically."""
    get_active_item(db, item_id)
    db.execute(
        update(models.Item)
        .where(models.Item.id == item_id)
        .values(view_count=models.Item.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return get_active_item(db, item_id)


def _owned_item(db: Session, owner: models.User, item_id: int) -> models.Item:
    obj = get_active_item(db, item_id)
    if obj.owner_id != owner.id:
        raise ForbiddenError("Not authorized to modify this item")
    return obj


def update_item(db: Session, owner: models.User, item_id: int, changes: Dict[str, Any]) -> models.Item:
    obj = _owned_item(db, owner, item_id)
    changes = {k: v for k, v in changes.items() if k not in IMMUTABLE_FIELDS}
    nulled = sorted(k for k, v in changes.items() if v is None and k not in NULLABLE_FIELDS)
    if nulled:
        raise ValidationError(f"Cannot clear required fields: {', '.join(nulled)}", extra={"fields": nulled})
    if not changes:
        raise ValidationError("No updates provided")

    min_days = changes.get("min_lending_days", obj.min_lending_days)
    max_days = changes.get("max_lending_days", obj.max_lending_days)
    if max_days is not None and min_days is not None and max_days < min_days:
        raise ValidationError("max_lending_days must be >= min_lending_days")

    for key, value in changes.items():
        setattr(obj, key, value)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("item.updated", extra={"item_id": obj.id, "fields": sorted(changes)})
    return obj


def withdraw_item(db: Session, item: models.Item, reason: str, actor_id: int) -> int:
    """Soft-delete an item and cancel its open requests in one transaction."""
    try:
        item.is_active = False
        db.add(item)
        cancelled = cancel_open_requests_for_item(db, item.id, reason, actor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("item.withdrawn", extra={"item_id": item.id, "actor_id": actor_id, "cancelled_requests": cancelled})
    return cancelled


def delete_item(db: Session, owner: models.User, item_id: int) -> None:
    obj = _owned_item(db, owner, item_id)
    withdraw_item(db, obj, "item_removed", owner.id)


def search_items(
    db: Session,
    *,
    category: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    availability: Optional[str] = None,
    campus: Optional[str] = None,
    search: Optional[str] = None,
    owner_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[models.Item], int, int]:
    """Filtered public listing. Returns (items, total_items, total_pages)."""
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by '{sort_by}'")

    q = db.query(models.Item).filter(models.Item.is_active.is_(True))
    if category:
        q = q.filter(models.Item.category == category)
    if availability:
        q = q.filter(models.Item.availability == availability)
    if campus:
        q = q.filter(models.Item.campus == campus)
    if owner_id is not None:
        q = q.filter(models.Item.owner_id == owner_id)
    if min_price is not None:
        q = q.filter(models.Item.daily_rate_cents >= min_price)
    if max_price is not None:
        q = q.filter(models.Item.daily_rate_cents <= max_price)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                models.Item.title.ilike(pattern),
                models.Item.description.ilike(pattern),
                cast(models.Item.tags, String).ilike(pattern),
            )
        )

    total = q.count()
    column = SORTABLE_FIELDS[sort_by]
    ordering = column.asc() if sort_order == "asc" else column.desc()
    items = q.order_by(ordering, models.Item.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return items, total, math.ceil(total / limit) if total else 0


def items_of_user(db: Session, owner_id: int) -> List[models.Item]:
    return (
        db.query(models.Item)
        .filter(models.Item.owner_id == owner_id, models.Item.is_active.is_(True))
        .order_by(models.Item.created_at.desc(), models.Item.id.desc())
        .all()
    )
