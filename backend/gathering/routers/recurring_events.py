"""Recurring-event template routes."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from gathering.database import get_db
from gathering.models.recurring_event import RecurringStatus
from gathering.schemas.recurring import RecurringActionRequest, RecurringEventCreate, RecurringEventOut
from gathering.services import recurring_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=RecurringEventOut, status_code=status.HTTP_201_CREATED)
def create_recurring_event(payload: RecurringEventCreate, db: Session = Depends(get_db)):
    return recurring_service.create_recurring_event(db, **payload.model_dump())


@router.get("/", response_model=list[RecurringEventOut])
def list_recurring_events(
    organizer_id: Optional[str] = Query(None),
    template_status: Optional[RecurringStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    return recurring_service.list_recurring_events(db, organizer_id, template_status)


@router.get("/{recurring_event_id}", response_model=RecurringEventOut)
def get_recurring_event(recurring_event_id: str, db: Session = Depends(get_db)):
    return recurring_service.get_recurring_event(db, recurring_event_id)


@router.post("/{recurring_event_id}/pause", response_model=RecurringEventOut)
def pause_recurring_event(recurring_event_id: str, payload: RecurringActionRequest, db: Session = Depends(get_db)):
    return recurring_service.pause_recurring_event(db, recurring_event_id, payload.actor_id)


@router.post("/{recurring_event_id}/resume", response_model=RecurringEventOut)
def resume_recurring_event(recurring_event_id: str, payload: RecurringActionRequest, db: Session = Depends(get_db)):
    return recurring_service.resume_recurring_event(db, recurring_event_id, payload.actor_id)
