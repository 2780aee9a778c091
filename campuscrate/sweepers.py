# Background maintenance of lending requests whose dates have come due.
# Invoked from the startup thread in main.py; safe to run from several processes at once because each
# row moves through the same conditional update as the interactive endpoints.
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, Optional

from sqlalchemy.orm import Session

from .db import SessionLocal
from . import models
from .errors import InvalidStateError
from .models import ACCEPTED, ACTIVE, CANCELLED, COMPLETED, PENDING
from .services.lending import today, transition

logger = logging.getLogger("campuscrate.sweepers")


def _advance(db: Session, rows, target: str, **values) -> int:
    moved = 0
    for obj in rows:
        try:
            transition(db, obj, target, **values)
            db.commit()
            moved += 1
        except InvalidStateError:
            # Someone else moved it first
            db.rollback()
    return moved


def sweep_lending_requests(db: Optional[Session] = None, as_of: Optional[date] = None) -> Dict[str, int]:
    """
    Advance requests whose dates have passed.

    - pending, start_date < today   -> cancelled (reason 'expired'); nobody answered in time
    - accepted, start_date <= today -> active
    - active, end_date <= today     -> completed

    Accepts an optional Session; otherwise creates and closes its own. Returns counts per move.
    """
    created_session = False
    if db is None:
        db = SessionLocal()
        created_session = True

    day = as_of or today()
    try:
        LR = models.LendingRequest
        expired = db.query(LR).filter(LR.status == PENDING, LR.start_date < day).all()
        counts = {"expired": _advance(db, expired, CANCELLED, cancel_reason="expired")}

        due = db.query(LR).filter(LR.status == ACCEPTED, LR.start_date <= day).all()
        counts["activated"] = _advance(db, due, ACTIVE)

        finished = db.query(LR).filter(LR.status == ACTIVE, LR.end_date <= day).all()
        counts["completed"] = _advance(db, finished, COMPLETED, completed_at=datetime.now(timezone.utc))

        if any(counts.values()):
            logger.info("sweep.lending_requests", extra=counts)
        return counts
    except Exception:
        db.rollback()
        raise
    finally:
        if created_session:
            db.close()
