from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from ..services import reports
from .auth import get_current_user

router = APIRouter()


@router.post(
    "/reports",
    response_model=schemas.ReportRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_report(
    payload: schemas.ReportCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> models.Report:
    return reports.create_report(
        db,
        user,
        reason=payload.reason,
        description=payload.description,
        reported_item_id=payload.reported_item_id,
        reported_user_id=payload.reported_user_id,
    )


@router.get("/reports/mine", response_model=List[schemas.ReportRead])
def my_reports(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)) -> List[models.Report]:
    return reports.list_my_reports(db, user)
