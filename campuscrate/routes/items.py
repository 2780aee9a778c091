# Item catalog endpoints.
# Anyone can browse active listings; owners manage their own items.
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..errors import Unauthenticated
from ..rate_limit import rate_limit
from ..services import catalog, lending
from .auth import get_current_user, get_current_user_optional

router = APIRouter()


@router.get("/items", response_model=schemas.ItemPage)
def list_items(
    category: Optional[str] = None,
    min_price: Optional[int] = Query(None, ge=0),
    max_price: Optional[int] = Query(None, ge=0),
    availability: Optional[schemas.Availability] = None,
    campus: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    owner: Optional[Literal["me"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_current_user_optional),
) -> schemas.ItemPage:
    """
    Browse active listings with optional filters.

    owner=me restricts results to the caller's own items and requires authentication.
    """
    owner_id = None
    if owner == "me":
        if user is None:
            raise Unauthenticated("Authentication required", code="NO_TOKEN")
        owner_id = user.id

    items, total, pages = catalog.search_items(
        db,
        category=category,
        min_price=min_price,
        max_price=max_price,
        availability=availability,
        campus=campus,
        search=search,
        owner_id=owner_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return schemas.ItemPage(
        items=[schemas.ItemRead.model_validate(i) for i in items],
        total_items=total,
        total_pages=pages,
        current_page=page,
    )


@router.get("/items/mine", response_model=List[schemas.ItemRead])
def my_items(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)) -> List[models.Item]:
    return catalog.items_of_user(db, user.id)


@router.get("/items/{item_id}", response_model=schemas.ItemRead)
def get_item(item_id: int, db: Session = Depends(get_db)) -> models.Item:
    return catalog.view_item(db, item_id)


@router.get("/items/{item_id}/calendar", response_model=List[schemas.BlockedRange])
def item_calendar(item_id: int, db: Session = Depends(get_db)) -> List[schemas.BlockedRange]:
    """Date ranges held by pending, accepted or active requests, from today on."""
    catalog.get_active_item(db, item_id)
    return [
        schemas.BlockedRange(lending_request_id=r.id, start_date=r.start_date, end_date=r.end_date, status=r.status)
        for r in lending.blocked_ranges(db, item_id)
    ]


@router.post(
    "/items",
    response_model=schemas.ItemRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_item(
    payload: schemas.ItemCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.Item:
    return catalog.create_item(db, user, payload.model_dump())


@router.put("/items/{item_id}", response_model=schemas.ItemRead, dependencies=[Depends(rate_limit("write"))])
def update_item(
    item_id: int,
    payload: schemas.ItemUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.Item:
    return catalog.update_item(db, user, item_id, payload.model_dump(exclude_unset=True))


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(rate_limit("write"))])
def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> None:
    catalog.delete_item(db, user, item_id)
