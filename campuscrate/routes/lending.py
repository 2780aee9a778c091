# Lending request endpoints: create, accept/reject, start, cancel, complete and listings.
# Transition rules and concurrency handling live in services.lending.
from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import lending
from .auth import get_current_user

router = APIRouter()


@router.post(
    "/lending-requests",
    response_model=schemas.LendingRequestRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_lending_request(
    payload: schemas.LendingRequestCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    return lending.create_request(db, user, payload.item_id, payload.start_date, payload.end_date, payload.note)


@router.get("/lending-requests/me", response_model=List[schemas.LendingRequestRead])
def list_my_lending_requests(
    side: Literal["any", "borrower", "lender"] = "any",
    status_filter: Optional[schemas.LendingStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> List[models.LendingRequest]:
    return lending.list_for_user(db, user, side=side, status=status_filter, limit=limit, offset=offset)


@router.get("/items/{item_id}/lending-requests", response_model=List[schemas.LendingRequestRead])
def list_item_lending_requests(
    item_id: int,
    status_filter: Optional[schemas.LendingStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> List[models.LendingRequest]:
    return lending.list_for_item(db, user, item_id, status=status_filter)


@router.get("/lending-requests/{request_id}", response_model=schemas.LendingRequestRead)
def get_lending_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    return lending.get_request_for_party(db, user.id, request_id)


@router.post(
    "/lending-requests/{request_id}/accept",
    response_model=schemas.LendingRequestRead,
    dependencies=[Depends(rate_limit("write"))],
)
def accept_lending_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    return lending.accept_request(db, user, request_id)


@router.post(
    "/lending-requests/{request_id}/reject",
    response_model=schemas.LendingRequestRead,
    dependencies=[Depends(rate_limit("write"))],
)
def reject_lending_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    return lending.reject_request(db, user, request_id)


@router.post(
    "/lending-requests/{request_id}/start",
    response_model=schemas.LendingRequestRead,
    dependencies=[Depends(rate_limit("write"))],
)
def start_lending_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    return lending.start_request(db, user, request_id)


@router.post(
    "/lending-requests/{request_id}/cancel",
    response_model=schemas.LendingRequestRead,
    dependencies=[Depends(rate_limit("write"))],
)
def cancel_lending_request(
    request_id: int,
    payload: Optional[schemas.LendingRequestCancel] = Body(None),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    reason = payload.reason if payload else None
    return lending.cancel_request(db, user, request_id, reason)


@router.post(
    "/lending-requests/{request_id}/complete",
    response_model=schemas.LendingRequestRead,
    dependencies=[Depends(rate_limit("write"))],
)
def complete_lending_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.LendingRequest:
    return lending.complete_request(db, request_id, lender=user)
