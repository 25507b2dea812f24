"""Scheduler entry points over HTTP, for an external cron or task queue."""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from gathering.database import as_utc, get_db, utcnow
from gathering.integrations import get_notifier
from gathering.integrations.notifier import Notifier
from gathering.schemas.ai import SweepOut
from gathering.services import sweeps

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{name}", response_model=SweepOut)
def run_sweep(
    name: str,
    now: Optional[datetime] = Query(None, description="Evaluate as of this instant (defaults to the current time)"),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    if name not in sweeps.SWEEPS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "sweep_not_found", "message": f"Unknown sweep '{name}'", "sweeps": sorted(sweeps.SWEEPS)},
        )
    at = as_utc(now) if now else utcnow()
    summary = sweeps.run_sweep(name, db, at, notifier)
    return SweepOut(sweep=name, now=at, summary=summary)


@router.post("/", response_model=dict[str, dict[str, int]])
def run_all_sweeps(
    now: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Run every sweep once, in a fixed order, as of the same instant."""
    return sweeps.run_all(db, as_utc(now) if now else utcnow(), notifier)
