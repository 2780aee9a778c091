# Account lifecycle: registration, login, profile changes and hard deletion with cascade.
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Set

from sqlalchemy import delete, or_, update
from sqlalchemy.orm import Session

from .. import models
from ..errors import ConflictError, NotFoundError, Unauthenticated, ValidationError
from ..security import check_account_standing, hash_password, verify_password
from .reviews import recompute_rating

logger = logging.getLogger("campuscrate.accounts")


def register(db: Session, data: Dict[str, Any]) -> models.User:
    email = data["email"]
    if db.query(models.User.id).filter(models.User.email == email).first():
        raise ConflictError("Email already registered", code="email_taken")

    user = models.User(
        name=data["name"],
        email=email,
        password_hash=hash_password(data["password"]),
        phone=data.get("phone"),
        campus=data.get("campus"),
        student_id=data.get("student_id"),
        role=models.ROLE_USER,
        last_active=datetime.now(timezone.utc),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("account.registered", extra={"user_id": user.id})
    return user


def authenticate(db: Session, email: str, password: str) -> models.User:
    user = db.query(models.User).filter(models.User.email == email).first()
    if not user or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials", code="INVALID_CREDENTIALS")
    check_account_standing(user)

    user.last_active = datetime.now(timezone.utc)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: models.User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect", code="wrong_password")
    user.password_hash = hash_password(new_password)
    db.add(user)
    db.commit()
    logger.info("account.password_changed", extra={"user_id": user.id})


def update_profile(db: Session, user: models.User, changes: Dict[str, Any]) -> models.User:
    for key in ("name", "phone", "bio", "campus", "profile_image"):
        if changes.get(key) is not None:
            setattr(user, key, changes[key])
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# (group, flag) as seen by clients -> users column
PREFERENCE_COLUMNS = {
    ("notification_preferences", "email"): "notify_email",
    ("notification_preferences", "sms"): "notify_sms",
    ("privacy_preferences", "show_email"): "show_email",
    ("privacy_preferences", "show_phone"): "show_phone",
}


def preferences_of(user: models.User) -> Dict[str, Dict[str, bool]]:
    prefs: Dict[str, Dict[str, bool]] = {"notification_preferences": {}, "privacy_preferences": {}}
    for (group, flag), column in PREFERENCE_COLUMNS.items():
        prefs[group][flag] = bool(getattr(user, column))
    return prefs


def update_preferences(db: Session, user: models.User, changes: Dict[str, Any]) -> models.User:
    """Apply only the flags present in changes; absent or null flags keep their value."""
    changed = []
    for (group, flag), column in PREFERENCE_COLUMNS.items():
        value = (changes.get(group) or {}).get(flag)
        if value is not None:
            setattr(user, column, bool(value))
            changed.append(column)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("account.preferences_updated", extra={"user_id": user.id, "fields": changed})
    return user


def public_contact(user: models.User) -> Dict[str, Any]:
    """Contact details the user agreed to show on their public profile."""
    return {
        "email": user.email if user.show_email else None,
        "phone": user.phone if user.show_phone else None,
    }


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def purge_user_data(db: Session, user_id: int) -> Set[int]:
    """
    Hard-delete everything that references user_id, except the user row itself.

    Removes the user's items, every lending request they are a party to or that targets their
    items, the messages of those threads and the user's inquiries, every review written by or
    about them, and reports filed by or about them (or their items). References that merely
    record who acted (cancelled_by_id, resolved_by_id) are nulled.

    Returns the ids of other users whose rating must be recomputed. Does not commit.
    """
    item_ids = [i for (i,) in db.query(models.Item.id).filter(models.Item.owner_id == user_id).all()]

    request_filter = [models.LendingRequest.borrower_id == user_id, models.LendingRequest.lender_id == user_id]
    if item_ids:
        request_filter.append(models.LendingRequest.item_id.in_(item_ids))
    request_ids = [r for (r,) in db.query(models.LendingRequest.id).filter(or_(*request_filter)).all()]

    review_filter = [models.Review.reviewer_id == user_id, models.Review.reviewee_id == user_id]
    if request_ids:
        review_filter.append(models.Review.lending_request_id.in_(request_ids))
    if item_ids:
        review_filter.append(models.Review.item_id.in_(item_ids))
    affected = {
        reviewee
        for (reviewee,) in db.query(models.Review.reviewee_id).filter(or_(*review_filter)).distinct().all()
        if reviewee != user_id
    }
    db.execute(delete(models.Review).where(or_(*review_filter)).execution_options(synchronize_session=False))

    message_filter = [
        models.Message.sender_id == user_id,
        models.Message.recipient_id == user_id,
        models.Message.inquirer_id == user_id,
    ]
    if request_ids:
        message_filter.append(models.Message.lending_request_id.in_(request_ids))
    if item_ids:
        message_filter.append(models.Message.item_id.in_(item_ids))
    db.execute(delete(models.Message).where(or_(*message_filter)).execution_options(synchronize_session=False))

    report_filter = [models.Report.reporter_id == user_id, models.Report.reported_user_id == user_id]
    if item_ids:
        report_filter.append(models.Report.reported_item_id.in_(item_ids))
    db.execute(delete(models.Report).where(or_(*report_filter)).execution_options(synchronize_session=False))
    db.execute(
        update(models.Report)
        .where(models.Report.resolved_by_id == user_id)
        .values(resolved_by_id=None)
        .execution_options(synchronize_session=False)
    )

    if request_ids:
        db.execute(
            delete(models.LendingRequest)
            .where(models.LendingRequest.id.in_(request_ids))
            .execution_options(synchronize_session=False)
        )
    db.execute(
        update(models.LendingRequest)
        .where(models.LendingRequest.cancelled_by_id == user_id)
        .values(cancelled_by_id=None)
        .execution_options(synchronize_session=False)
    )
    if item_ids:
        db.execute(delete(models.Item).where(models.Item.id.in_(item_ids)).execution_options(synchronize_session=False))

    for other_id in affected:
        recompute_rating(db, other_id)
    return affected
