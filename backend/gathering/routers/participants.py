"""Invitation, RSVP, waitlist and check-in routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gathering.database import get_db
from gathering.integrations import get_notifier
from gathering.integrations.notifier import Notifier
from gathering.schemas.event import ParticipantOut
from gathering.schemas.participant import (
    CheckInCreate, CheckInOut, InviteRequest, PromotionOut, PromotionResponse, RsvpOut, RsvpRequest, WaitlistOut,
)
from gathering.services import capacity_service, check_in_service, event_service

logger = logging.getLogger(__name__)
router = APIRouter()


def _waitlist_out(entry):
    return WaitlistOut.model_validate(entry) if entry is not None else None


@router.post("/{event_id}/participants", response_model=list[ParticipantOut], status_code=status.HTTP_201_CREATED)
def invite_participants(event_id: str, payload: InviteRequest, db: Session = Depends(get_db)):
    """Invite users as Pending participants; returns only the newly invited."""
    return event_service.invite_participants(db, event_id, payload.actor_id, payload.user_ids, strict=payload.strict)


@router.get("/{event_id}/participants", response_model=list[ParticipantOut])
def list_participants(event_id: str, db: Session = Depends(get_db)):
    return event_service.get_event(db, event_id).participants


@router.post("/{event_id}/rsvp", response_model=RsvpOut)
def respond_to_invitation(
    event_id: str,
    payload: RsvpRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Accept or decline. Accepting a full event joins the waitlist instead."""
    outcome = capacity_service.respond_to_invitation(
        db, event_id, payload.user_id, payload.status,
        waitlist_priority=payload.waitlist_priority, notifier=notifier,
    )
    return RsvpOut(
        participant=ParticipantOut.model_validate(outcome.participant),
        waitlisted=outcome.waitlisted,
        waitlist_entry=_waitlist_out(outcome.waitlist_entry),
        promoted=_waitlist_out(outcome.promoted),
    )


@router.get("/{event_id}/waitlist", response_model=list[WaitlistOut])
def get_waitlist(event_id: str, db: Session = Depends(get_db)):
    return capacity_service.list_waitlist(db, event_id)


@router.post("/{event_id}/waitlist/respond", response_model=PromotionOut)
def respond_to_promotion(
    event_id: str,
    payload: PromotionResponse,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = capacity_service.respond_to_promotion(db, event_id, payload.user_id, payload.accept, notifier=notifier)
    return PromotionOut(
        entry=WaitlistOut.model_validate(outcome.entry),
        accepted=outcome.accepted,
        expired=outcome.expired,
        promoted=_waitlist_out(outcome.promoted),
    )


@router.post("/{event_id}/check-ins", response_model=CheckInOut, status_code=status.HTTP_201_CREATED)
def record_check_in(event_id: str, payload: CheckInCreate, db: Session = Depends(get_db)):
    return check_in_service.record_check_in(
        db, event_id, payload.user_id, payload.method, payload.latitude, payload.longitude,
    )


@router.get("/{event_id}/check-ins", response_model=list[CheckInOut])
def list_check_ins(event_id: str, db: Session = Depends(get_db)):
    return event_service.get_event(db, event_id).check_ins
