# Public profiles and account self-service.
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import accounts, catalog, moderation
from .auth import get_current_user

router = APIRouter()


@router.put("/users/profile", response_model=schemas.UserRead, dependencies=[Depends(rate_limit("write"))])
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.User:
    return accounts.update_profile(db, user, payload.model_dump(exclude_unset=True))


@router.get("/users/preferences", response_model=schemas.Preferences)
def get_preferences(user: models.User = Depends(get_current_user)) -> dict:
    return accounts.preferences_of(user)


@router.put("/users/preferences", response_model=schemas.Preferences, dependencies=[Depends(rate_limit("write"))])
def update_preferences(
    payload: schemas.PreferencesUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> dict:
    user = accounts.update_preferences(db, user, payload.model_dump(exclude_unset=True))
    return accounts.preferences_of(user)


@router.post("/users/me/delete", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    payload: schemas.AccountDeleteRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> None:
    """Hard delete of the caller's account and everything that references it."""
    moderation.delete_own_account(db, user, payload.password)


@router.get("/users/{user_id}", response_model=schemas.UserPublic)
def get_user(user_id: int, db: Session = Depends(get_db)) -> schemas.UserPublic:
    user = accounts.get_user(db, user_id)
    # Contact details only appear when the owner opted in through their privacy preferences
    return schemas.UserPublic.model_validate(user).model_copy(update=accounts.public_contact(user))


@router.get("/users/{user_id}/items", response_model=List[schemas.ItemRead])
def user_items(user_id: int, db: Session = Depends(get_db)) -> List[models.Item]:
    accounts.get_user(db, user_id)
    return catalog.items_of_user(db, user_id)
