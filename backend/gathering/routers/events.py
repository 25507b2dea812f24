"""Event routes: creation, candidate options and organizer lifecycle commands."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from gathering.database import get_db
from gathering.integrations import get_notifier, get_place_lookup
from gathering.integrations.notifier import Notifier
from gathering.integrations.places import PlaceLookup
from gathering.models.event import EventStatus
from gathering.models.place_option import ExternalVenue, InternalVenue
from gathering.schemas.event import (
    AuditLogOut, CancelRequest, CompleteRequest, EventCreate, EventOut, ForceDecisionRequest,
    OpenVotingRequest, RescheduleRequest,
)
from gathering.schemas.option import DecisionOut, OptionCreate, OptionOut
from gathering.routers.votes import outcome_out
from gathering.services import audit_log, event_service, voting_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create an event in Planning; the organizer joins as an accepted participant."""
    return event_service.create_event(
        db=db,
        organizer_id=payload.organizer_id,
        title=payload.title,
        scheduled_date=payload.scheduled_date,
        scheduled_time=payload.scheduled_time,
        timezone=payload.timezone,
        description=payload.description,
        event_type=payload.event_type,
        estimated_duration=payload.estimated_duration,
        expected_attendees=payload.expected_attendees,
        max_attendees=payload.max_attendees,
        budget_per_person=payload.budget_per_person,
        acceptance_threshold=payload.acceptance_threshold,
        rsvp_deadline=payload.rsvp_deadline,
        invitee_ids=payload.invitee_ids,
    )


@router.get("/", response_model=list[EventOut])
def list_events(
    organizer_id: Optional[str] = Query(None),
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    recurring_event_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return event_service.list_events(db, organizer_id, event_status, recurring_event_id)


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return event_service.get_event(db, event_id)


@router.post("/{event_id}/options", response_model=OptionOut, status_code=status.HTTP_201_CREATED)
def add_option(
    event_id: str,
    payload: OptionCreate,
    db: Session = Depends(get_db),
    place_lookup: PlaceLookup = Depends(get_place_lookup),
):
    """Add a candidate venue, from the internal catalog or an external provider."""
    if payload.place_id is not None:
        venue = InternalVenue(place_id=payload.place_id)
    else:
        venue = ExternalVenue(**payload.external.model_dump())
    return event_service.add_option(
        db, event_id, payload.actor_id, venue,
        estimated_cost_per_person=payload.estimated_cost_per_person,
        suggested_by=payload.suggested_by,
        place_lookup=place_lookup,
    )


@router.get("/{event_id}/options", response_model=list[OptionOut])
def list_options(event_id: str, db: Session = Depends(get_db)):
    return event_service.get_event(db, event_id).options


@router.post("/{event_id}/open-voting", response_model=EventOut)
def open_voting(
    event_id: str,
    payload: OpenVotingRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return event_service.open_voting(
        db, event_id, payload.actor_id, payload.voting_deadline,
        expected_version=payload.version, notifier=notifier,
    )


@router.post("/{event_id}/force-decision", response_model=DecisionOut)
def force_decision(
    event_id: str,
    payload: ForceDecisionRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Organizer override (with option_id) or an early final evaluation (without)."""
    result = voting_service.force_decision(
        db, event_id, payload.actor_id, payload.option_id, payload.reason, notifier=notifier,
    )
    return DecisionOut(
        event_id=result.event.event_id,
        event_status=result.event.status,
        final_option_id=result.event.final_option_id,
        final_place_id=result.event.final_place_id,
        overridden=result.overridden,
        outcome=outcome_out(result.outcome),
    )


@router.post("/{event_id}/reschedule", response_model=EventOut)
def reschedule_event(
    event_id: str,
    payload: RescheduleRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return event_service.reschedule_event(
        db, event_id, payload.actor_id, payload.new_date, payload.new_time, payload.reason,
        expected_version=payload.version, notifier=notifier,
    )


@router.post("/{event_id}/cancel", response_model=EventOut)
def cancel_event(
    event_id: str,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Cancel with a reason. The event is kept, not deleted."""
    return event_service.cancel_event(
        db, event_id, payload.actor_id, payload.reason,
        expected_version=payload.version, notifier=notifier,
    )


@router.post("/{event_id}/complete", response_model=EventOut)
def complete_event(
    event_id: str,
    payload: CompleteRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return event_service.complete_event(
        db, event_id, payload.actor_id, expected_version=payload.version, notifier=notifier,
    )


@router.get("/{event_id}/audit-log", response_model=list[AuditLogOut])
def get_audit_log(event_id: str, db: Session = Depends(get_db)):
    """Status changes for the event, oldest first."""
    event_service.get_event(db, event_id)
    return audit_log.list_entries(db, event_id)
