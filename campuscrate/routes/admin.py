# Moderation endpoints for admins and managers.
# Router-level guard requires a staff role; per-target rules come from campuscrate.policy.
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..services import moderation, reports, reviews
from .auth import require_manager, require_staff

router = APIRouter(prefix="/admin", dependencies=[Depends(require_staff)])


@router.get("/users", response_model=List[schemas.UserRead])
def list_users(
    role: Optional[schemas.Role] = None,
    is_banned: Optional[bool] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> List[models.User]:
    users, _ = moderation.list_users(
        db, actor, role=role, is_banned=is_banned, is_active=is_active, search=search, page=page, limit=limit
    )
    return users


@router.put("/users/{user_id}/role", response_model=schemas.UserRead)
def change_role(
    user_id: int,
    payload: schemas.RoleChange,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_manager),
) -> models.User:
    return moderation.change_role(db, actor, user_id, payload.role)


@router.post("/users/{user_id}/ban", response_model=schemas.UserRead)
def ban_user(
    user_id: int,
    payload: Optional[schemas.BanRequest] = Body(None),
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> models.User:
    payload = payload or schemas.BanRequest()
    return moderation.ban_user(db, actor, user_id, reason=payload.reason, until=payload.until)


@router.post("/users/{user_id}/unban", response_model=schemas.UserRead)
def unban_user(user_id: int, db: Session = Depends(get_db), actor: models.User = Depends(require_staff)) -> models.User:
    return moderation.unban_user(db, actor, user_id)


@router.put("/users/{user_id}/active", response_model=schemas.UserRead)
def set_active(
    user_id: int,
    payload: schemas.FlagUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> models.User:
    return moderation.set_active(db, actor, user_id, payload.value)


@router.put("/users/{user_id}/verified", response_model=schemas.UserRead)
def set_verified(
    user_id: int,
    payload: schemas.FlagUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> models.User:
    return moderation.set_verified(db, actor, user_id, payload.value)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, db: Session = Depends(get_db), actor: models.User = Depends(require_staff)) -> None:
    moderation.delete_user(db, actor, user_id)


@router.get("/items", response_model=List[schemas.ItemRead])
def list_items(
    is_active: Optional[bool] = None,
    owner_id: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> List[models.Item]:
    return moderation.list_items(db, actor, is_active=is_active, owner_id=owner_id, page=page, limit=limit)


@router.put("/items/{item_id}/active", response_model=schemas.ItemRead)
def set_item_active(
    item_id: int,
    payload: schemas.FlagUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> models.Item:
    return moderation.set_item_active(db, actor, item_id, payload.value)


@router.delete("/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(review_id: int, db: Session = Depends(get_db), actor: models.User = Depends(require_staff)) -> None:
    reviews.delete_review(db, actor, review_id)


@router.get("/reports", response_model=List[schemas.ReportRead])
def list_reports(
    status_filter: Optional[schemas.ReportStatus] = Query(None, alias="status"),
    reason: Optional[schemas.ReportReason] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> List[models.Report]:
    return reports.list_reports(db, actor, status=status_filter, reason=reason, limit=limit, offset=offset)


@router.put("/reports/{report_id}", response_model=schemas.ReportRead)
def transition_report(
    report_id: int,
    payload: schemas.ReportTransition,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_staff),
) -> models.Report:
    return reports.transition_report(db, actor, report_id, payload.status, payload.admin_notes)
