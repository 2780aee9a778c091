# User reports against items or accounts, and their review by staff.
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import models
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..policy import authorize_staff

logger = logging.getLogger("campuscrate.moderation")

REPORT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"reviewing", "resolved", "dismissed"}),
    "reviewing": frozenset({"resolved", "dismissed"}),
    "resolved": frozenset(),
    "dismissed": frozenset(),
}


def create_report(
    db: Session,
    reporter: models.User,
    reason: str,
    description: str,
    reported_item_id: Optional[int] = None,
    reported_user_id: Optional[int] = None,
) -> models.Report:
    if (reported_item_id is None) == (reported_user_id is None):
        raise ValidationError("Exactly one of reported_item_id or reported_user_id is required")
    if not description or not description.strip():
        raise ValidationError("Description is required")

    if reported_item_id is not None:
        item = db.get(models.Item, reported_item_id)
        if not item:
            raise NotFoundError("Item not found")
        if item.owner_id == reporter.id:
            raise ValidationError("You cannot report your own item")
    else:
        if db.get(models.User, reported_user_id) is None:
            raise NotFoundError("User not found")
        if reported_user_id == reporter.id:
            raise ValidationError("You cannot report yourself")

    report = models.Report(
        reporter_id=reporter.id,
        reported_item_id=reported_item_id,
        reported_user_id=reported_user_id,
        reason=reason,
        description=description.strip(),
        status="pending",
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("report.created", extra={"report_id": report.id, "reporter_id": reporter.id, "reason": reason})
    return report


def list_my_reports(db: Session, reporter: models.User, limit: int = 50) -> List[models.Report]:
    return (
        db.query(models.Report)
        .filter(models.Report.reporter_id == reporter.id)
        .order_by(models.Report.created_at.desc(), models.Report.id.desc())
        .limit(limit)
        .all()
    )


def list_reports(
    db: Session,
    actor: models.User,
    status: Optional[str] = None,
    reason: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[models.Report]:
    authorize_staff(actor.role, "list")
    q = db.query(models.Report)
    if status:
        q = q.filter(models.Report.status == status)
    if reason:
        q = q.filter(models.Report.reason == reason)
    return q.order_by(models.Report.created_at.desc(), models.Report.id.desc()).offset(offset).limit(limit).all()


def transition_report(
    db: Session,
    actor: models.User,
    report_id: int,
    status: str,
    admin_notes: Optional[str] = None,
) -> models.Report:
    authorize_staff(actor.role, "resolve_report")
    report = db.get(models.Report, report_id)
    if not report:
        raise NotFoundError("Report not found")
    if status not in REPORT_TRANSITIONS.get(report.status, frozenset()):
        raise InvalidStateError(f"Cannot move a {report.status} report to {status}", extra={"status": report.status})

    values = {"status": status}
    if admin_notes is not None:
        values["admin_notes"] = admin_notes
    if status in ("resolved", "dismissed"):
        values["resolved_by_id"] = actor.id
        values["resolved_at"] = datetime.now(timezone.utc)

    result = db.execute(
        update(models.Report)
        .where(models.Report.id == report.id, models.Report.status == report.status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidStateError("Report was updated concurrently; reload and retry", code="concurrent_update")
    db.commit()
    db.refresh(report)
    logger.info("report.%s", status, extra={"report_id": report.id, "actor_id": actor.id})
    return report
