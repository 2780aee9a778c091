from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..errors import CampusCrateError, ForbiddenError, Unauthenticated
from ..policy import is_staff
from ..rate_limit import rate_limit
from ..security import check_account_standing, create_access_token, decode_token
from ..services import accounts

router = APIRouter()


def _token_response(user: models.User) -> schemas.TokenResponse:
    token = create_access_token(user_id=user.id, email=user.email, role=user.role)
    return schemas.TokenResponse(access_token=token, user=schemas.UserRead.model_validate(user))


# ----------------
# Dependencies
# ----------------
def bearer_token_from_auth_header(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthenticated("Authorization header missing", code="NO_TOKEN")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated("Invalid Authorization header", code="INVALID_TOKEN")
    return parts[1]


def _user_from_token(db: Session, token: str) -> models.User:
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Invalid token payload", code="INVALID_TOKEN")
    user = db.get(models.User, int(user_id))
    if not user:
        raise Unauthenticated("User not found", code="NO_USER")
    return user


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> models.User:
    """
    Resolve the bearer token to a user in good standing.

    Role and verification are read from the database rather than the token, so moderation
    takes effect immediately. Deactivated and banned accounts are refused with distinct codes.
    """
    user = _user_from_token(db, bearer_token_from_auth_header(authorization))
    check_account_standing(user)
    return user


def get_current_user_optional(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Optional[models.User]:
    """
    Returns the current user if a valid Bearer token is present, otherwise None.
    Useful for endpoints that are public but behave differently when authenticated.
    """
    if not authorization:
        return None
    try:
        user = _user_from_token(db, bearer_token_from_auth_header(authorization))
        check_account_standing(user)
        return user
    except CampusCrateError:
        # Treat invalid tokens and suspended accounts as anonymous for optional auth
        return None


def require_staff(user: models.User = Depends(get_current_user)) -> models.User:
    if not is_staff(user.role):
        raise ForbiddenError("Admin or manager role required", code="staff_only")
    return user


def require_manager(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != models.ROLE_MANAGER:
        raise ForbiddenError("Manager role required", code="manager_only")
    return user


# ----------------
# Routes
# ----------------
@router.post(
    "/auth/register",
    response_model=schemas.TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("signup"))],
)
def register(payload: schemas.UserCreate, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    user = accounts.register(db, payload.model_dump())
    return _token_response(user)


@router.post("/auth/login", response_model=schemas.TokenResponse, dependencies=[Depends(rate_limit("login"))])
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    user = accounts.authenticate(db, payload.email, payload.password)
    return _token_response(user)


@router.get("/auth/me", response_model=schemas.UserRead)
def me(user: models.User = Depends(get_current_user)) -> models.User:
    return user


@router.post("/auth/change-password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: schemas.ChangePasswordRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> None:
    accounts.change_password(db, user, payload.current_password, payload.new_password)
