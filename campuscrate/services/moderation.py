# Staff actions on accounts and items.
#
# Who may do what is decided by campuscrate.policy. On top of that, no action may leave the
# platform without an active manager, and ban/deactivate/delete may not remove the last active
# admin. That count is evaluated inside the same UPDATE/DELETE that performs the change, so two
# concurrent demotions cannot both pass the check.
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from .. import models, policy
from ..errors import ConflictError, InvariantViolation, NotFoundError, ValidationError
from ..models import ROLE_ADMIN, ROLE_MANAGER, ROLES
from ..security import as_utc, ban_in_effect, verify_password
from .accounts import get_user, purge_user_data
from .catalog import withdraw_item

logger = logging.getLogger("campuscrate.moderation")

PRIVILEGED_ROLES = (ROLE_ADMIN, ROLE_MANAGER)


def _not_banned(now: datetime):
    # A temporary ban that has run out no longer counts, matching security.ban_in_effect
    return or_(
        models.User.is_banned.is_(False),
        and_(models.User.banned_until.isnot(None), models.User.banned_until <= now),
    )


def _holders(role: str):
    """Scalar subquery counting active, unbanned holders of role.

    Wrapped in a derived table so MySQL accepts it inside an UPDATE/DELETE on users.
    """
    inner = (
        select(func.count(models.User.id).label("n"))
        .where(models.User.role == role, models.User.is_active.is_(True), _not_banned(datetime.now(timezone.utc)))
        .subquery()
    )
    return select(inner.c.n).scalar_subquery()


def count_holders(db: Session, role: str) -> int:
    return db.execute(select(_holders(role))).scalar_one()


def _counts_as_holder(user: models.User) -> bool:
    return user.role in PRIVILEGED_ROLES and bool(user.is_active) and not ban_in_effect(user)


def _guard_role(target: models.User, action: str, new_role: Optional[str] = None) -> Optional[str]:
    """Return the role whose holder count must stay above one for this action, if any."""
    if not _counts_as_holder(target):
        return None
    if target.role == ROLE_MANAGER:
        if action in policy.REMOVING_ACTIONS or (action == policy.CHANGE_ROLE and new_role != ROLE_MANAGER):
            return ROLE_MANAGER
    if target.role == ROLE_ADMIN and action in policy.REMOVING_ACTIONS:
        return ROLE_ADMIN
    return None


def _preconditions(target: models.User) -> list:
    # The row must still look the way the policy decision saw it
    return [
        models.User.id == target.id,
        models.User.role == target.role,
        models.User.is_active.is_(bool(target.is_active)),
        models.User.is_banned.is_(bool(target.is_banned)),
    ]


def _raise_lost_write(db: Session, target_id: int, guarded: Optional[str]) -> None:
    db.rollback()
    if db.get(models.User, target_id) is None:
        raise NotFoundError("User not found")
    if guarded is not None and count_holders(db, guarded) <= 1:
        raise InvariantViolation(f"Cannot remove the last active {guarded}", extra={"role": guarded})
    raise ConflictError("User was modified concurrently; reload and retry", code="concurrent_update")


def _guarded_update(db: Session, target: models.User, action: str, values: Dict[str, Any], new_role: Optional[str] = None) -> models.User:
    guarded = _guard_role(target, action, new_role)
    criteria = _preconditions(target)
    if guarded is not None:
        criteria.append(_holders(guarded) > 1)
    result = db.execute(
        update(models.User).where(*criteria).values(**values).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_lost_write(db, target.id, guarded)
    db.commit()
    db.refresh(target)
    return target


def _authorized_target(db: Session, actor: models.User, target_id: int, action: str) -> models.User:
    target = get_user(db, target_id)
    policy.authorize(actor.id, actor.role, target.id, target.role, action)
    return target


def _log(action: str, actor: models.User, target_id: int, **fields) -> None:
    logger.info("moderation.%s", action, extra={"actor_id": actor.id, "actor_role": actor.role, "target_id": target_id, **fields})


def ban_user(db: Session, actor: models.User, target_id: int, reason: Optional[str] = None, until: Optional[datetime] = None) -> models.User:
    target = _authorized_target(db, actor, target_id, policy.BAN)
    until = as_utc(until)
    if until is not None and until <= datetime.now(timezone.utc):
        raise ValidationError("Ban expiry must be in the future")
    _guarded_update(db, target, policy.BAN, {"is_banned": True, "banned_until": until, "ban_reason": reason})
    _log("ban", actor, target.id, until=until.isoformat() if until else None)
    return target


def unban_user(db: Session, actor: models.User, target_id: int) -> models.User:
    target = _authorized_target(db, actor, target_id, policy.UNBAN)
    _guarded_update(db, target, policy.UNBAN, {"is_banned": False, "banned_until": None, "ban_reason": None})
    _log("unban", actor, target.id)
    return target


def set_active(db: Session, actor: models.User, target_id: int, active: bool) -> models.User:
    action = policy.ACTIVATE if active else policy.DEACTIVATE
    target = _authorized_target(db, actor, target_id, action)
    _guarded_update(db, target, action, {"is_active": active})
    _log(action, actor, target.id)
    return target


def set_verified(db: Session, actor: models.User, target_id: int, verified: bool) -> models.User:
    action = policy.VERIFY if verified else policy.UNVERIFY
    target = _authorized_target(db, actor, target_id, action)
    _guarded_update(db, target, action, {"is_verified": verified})
    _log(action, actor, target.id)
    return target


def change_role(db: Session, actor: models.User, target_id: int, new_role: str) -> models.User:
    if new_role not in ROLES:
        raise ValidationError(f"Invalid role '{new_role}'")
    target = _authorized_target(db, actor, target_id, policy.CHANGE_ROLE)
    if target.role == new_role:
        return target
    old_role = target.role
    _guarded_update(db, target, policy.CHANGE_ROLE, {"role": new_role}, new_role=new_role)
    _log("change_role", actor, target.id, old_role=old_role, new_role=new_role)
    return target


def _remove_user(db: Session, target: models.User) -> None:
    guarded = _guard_role(target, policy.DELETE)
    criteria = _preconditions(target)
    if guarded is not None:
        criteria.append(_holders(guarded) > 1)
    try:
        purge_user_data(db, target.id)
        result = db.execute(delete(models.User).where(*criteria).execution_options(synchronize_session=False))
        if result.rowcount != 1:
            _raise_lost_write(db, target.id, guarded)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expunge(target)


def delete_user(db: Session, actor: models.User, target_id: int) -> None:
    target = _authorized_target(db, actor, target_id, policy.DELETE)
    _remove_user(db, target)
    _log("delete", actor, target_id)


def delete_own_account(db: Session, user: models.User, password: str) -> None:
    """Account owner's hard delete; the last active manager/admin cannot leave."""
    if not verify_password(password, user.password_hash):
        raise ValidationError("Incorrect password", code="wrong_password")
    user_id = user.id
    _remove_user(db, user)
    logger.info("account.deleted", extra={"user_id": user_id})


def set_item_active(db: Session, actor: models.User, item_id: int, active: bool) -> models.Item:
    policy.authorize_staff(actor.role, "activate_item" if active else "deactivate_item")
    item = db.get(models.Item, item_id)
    if not item:
        raise NotFoundError("Item not found")
    if active:
        item.is_active = True
        db.add(item)
        db.commit()
    elif item.is_active:
        withdraw_item(db, item, "removed_by_moderator", actor.id)
    db.refresh(item)
    logger.info("moderation.item_%s", "activate" if active else "deactivate", extra={"actor_id": actor.id, "item_id": item_id})
    return item


def list_users(
    db: Session,
    actor: models.User,
    *,
    role: Optional[str] = None,
    is_banned: Optional[bool] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[models.User], int]:
    policy.authorize_staff(actor.role, "list")
    q = db.query(models.User)
    if role:
        q = q.filter(models.User.role == role)
    if is_banned is not None:
        q = q.filter(models.User.is_banned.is_(is_banned))
    if is_active is not None:
        q = q.filter(models.User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(models.User.name.ilike(pattern), models.User.email.ilike(pattern)))
    total = q.count()
    users = q.order_by(models.User.created_at.desc(), models.User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return users, math.ceil(total / limit) if total else 0


def list_items(
    db: Session,
    actor: models.User,
    *,
    is_active: Optional[bool] = None,
    owner_id: Optional[int] = None,
    page: int = 1,
    limit: int = 50,
) -> List[models.Item]:
    policy.authorize_staff(actor.role, "list")
    q = db.query(models.Item)
    if is_active is not None:
        q = q.filter(models.Item.is_active.is_(is_active))
    if owner_id is not None:
        q = q.filter(models.Item.owner_id == owner_id)
    return q.order_by(models.Item.created_at.desc(), models.Item.id.desc()).offset((page - 1) * limit).limit(limit).all()
