"""Event commands: creation, candidate options, invitations and the
organizer-driven transitions.

Every write runs inside ``run_serialized`` for the event, so concurrent
commands against one event are linearized and each commits through the
event's version counter.
"""
import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import pytz
from sqlalchemy.orm import Session

from gathering.config import settings
from gathering.database import as_utc, utcnow
from gathering.exceptions import DomainError, DuplicateParticipant, InvalidRequest, NotOrganizer
from gathering.integrations.notifier import Notifier
from gathering.integrations.places import PlaceLookup
from gathering.models.event import Event, EventStatus
from gathering.models.participant import EventParticipant, InvitationStatus
from gathering.models.place_option import EventPlaceOption, ExternalVenue, SuggestedBy, Venue
from gathering.services import state_machine
from gathering.services.concurrency import Outbox, check_version, event_key, load_event, run_serialized

logger = logging.getLogger(__name__)

OPTION_STATUSES = (EventStatus.planning, EventStatus.voting)


def _check_authorization(event: Event, actor_id: str) -> None:
    """Only the organizer may drive the event's lifecycle."""
    if event.organizer_id != actor_id:
        raise NotOrganizer("Only the organizer may modify this event", event_id=event.event_id)


def validate_timezone(name: str) -> str:
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise InvalidRequest(f"Unknown timezone: {name}", timezone=name)
    return name


def validate_attendance(
    expected_attendees: int,
    max_attendees: Optional[int],
    acceptance_threshold: Optional[float],
) -> None:
    if expected_attendees < 2:
        raise InvalidRequest("An event needs at least 2 expected attendees", expected_attendees=expected_attendees)
    if max_attendees is not None and max_attendees < 1:
        raise InvalidRequest("max_attendees must be at least 1", max_attendees=max_attendees)
    if acceptance_threshold is not None and not 0.0 <= acceptance_threshold <= 1.0:
        raise InvalidRequest(
            "acceptance_threshold must be between 0 and 1", acceptance_threshold=acceptance_threshold,
        )


def add_participant(
    event: Event,
    user_id: str,
    status: InvitationStatus,
    invited_by: Optional[str],
    now: datetime,
) -> EventParticipant:
    participant = EventParticipant(
        event_id=event.event_id,
        user_id=user_id,
        invitation_status=status,
        invited_by=invited_by,
        invited_at=now,
        rsvp_date=now if status == InvitationStatus.accepted else None,
    )
    event.participants.append(participant)
    return participant


def create_event(
    db: Session,
    organizer_id: str,
    title: str,
    scheduled_date: date,
    scheduled_time: time,
    timezone: str = "UTC",
    description: Optional[str] = None,
    event_type: str = "dining",
    estimated_duration: Optional[int] = None,
    expected_attendees: int = 2,
    max_attendees: Optional[int] = None,
    budget_per_person: Optional[Decimal] = None,
    acceptance_threshold: Optional[float] = None,
    rsvp_deadline: Optional[datetime] = None,
    invitee_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> Event:
    """Create an event in Planning with the organizer as its first accepted participant."""
    now = as_utc(now) if now else utcnow()
    validate_timezone(timezone)
    validate_attendance(expected_attendees, max_attendees, acceptance_threshold)
    if not title or not title.strip():
        raise InvalidRequest("Title is required")

    event = Event(
        organizer_id=organizer_id,
        title=title.strip(),
        description=description,
        event_type=event_type,
        status=EventStatus.planning,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        timezone=timezone,
        estimated_duration=estimated_duration,
        expected_attendees=expected_attendees,
        max_attendees=max_attendees,
        budget_per_person=budget_per_person,
        acceptance_threshold=(
            acceptance_threshold if acceptance_threshold is not None else settings.DEFAULT_ACCEPTANCE_THRESHOLD
        ),
        rsvp_deadline=as_utc(rsvp_deadline),
        created_at=now,
        updated_at=now,
    )
    if event.scheduled_at <= now:
        raise InvalidRequest("An event must be scheduled in the future")

    add_participant(event, organizer_id, InvitationStatus.accepted, organizer_id, now)
    seen = {organizer_id}
    for user_id in invitee_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        add_participant(event, user_id, InvitationStatus.pending, organizer_id, now)

    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(
        "Created event %s '%s' for %s at %s %s (%s)",
        event.event_id, event.title, organizer_id, scheduled_date, scheduled_time, timezone,
    )
    return event


def get_event(db: Session, event_id: str) -> Event:
    return load_event(db, event_id, for_update=False)


def list_events(
    db: Session,
    organizer_id: Optional[str] = None,
    status: Optional[EventStatus] = None,
    recurring_event_id: Optional[str] = None,
) -> list[Event]:
    query = db.query(Event)
    if organizer_id:
        query = query.filter(Event.organizer_id == organizer_id)
    if status:
        query = query.filter(Event.status == status)
    if recurring_event_id:
        query = query.filter(Event.recurring_event_id == recurring_event_id)
    return query.order_by(Event.scheduled_date, Event.scheduled_time).all()


def _enrich_venue(venue: Venue, place_lookup: Optional[PlaceLookup]) -> Venue:
    """Fill in an external venue's details through LookupExternalPlace when they are missing."""
    if not isinstance(venue, ExternalVenue) or venue.name or place_lookup is None:
        return venue
    try:
        found = place_lookup.lookup(venue.provider, venue.external_place_id)
    except Exception:
        logger.exception("Place lookup failed for %s:%s", venue.provider, venue.external_place_id)
        return venue
    if found is None:
        return venue
    filled = {
        field: getattr(found, field)
        for field in ("name", "address", "latitude", "longitude", "rating", "total_reviews",
                      "phone_number", "website", "photo_url", "category")
        if getattr(venue, field) is None
    }
    return replace(venue, **filled)


def add_option(
    db: Session,
    event_id: str,
    actor_id: str,
    venue: Venue,
    estimated_cost_per_person: Optional[Decimal] = None,
    suggested_by: Optional[SuggestedBy] = None,
    place_lookup: Optional[PlaceLookup] = None,
    now: Optional[datetime] = None,
) -> EventPlaceOption:
    now = as_utc(now) if now else utcnow()
    # Provider I/O happens before the transaction starts.
    venue = _enrich_venue(venue, place_lookup)

    def work(outbox: Outbox) -> EventPlaceOption:
        event = load_event(db, event_id)
        if event.status not in OPTION_STATUSES:
            raise InvalidRequest(f"Options cannot be added while the event is {event.status.value}")
        participant_ids = {p.user_id for p in event.participants}
        if actor_id != event.organizer_id and actor_id not in participant_ids:
            raise InvalidRequest("Only the organizer or invited participants may suggest options")
        if any(o.venue_reference == venue.reference for o in event.options):
            raise InvalidRequest("This venue is already a candidate", venue=venue.reference)

        option = EventPlaceOption(
            event_id=event_id,
            suggested_by=suggested_by or (
                SuggestedBy.organizer if actor_id == event.organizer_id else SuggestedBy.participant
            ),
            suggested_by_user_id=actor_id,
            estimated_cost_per_person=estimated_cost_per_person,
            added_at=now,
        )
        option.venue = venue
        event.options.append(option)
        event.touch()
        logger.info("Added option %s to event %s by %s", venue.reference, event_id, actor_id)
        return option

    return run_serialized(db, event_key(event_id), work)


def invite_participants(
    db: Session,
    event_id: str,
    actor_id: str,
    user_ids: list[str],
    strict: bool = False,
    now: Optional[datetime] = None,
) -> list[EventParticipant]:
    """Invite users as Pending participants.

    Users who are already participants are skipped, unless ``strict`` is set,
    in which case the first duplicate fails the whole call.
    """
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> list[EventParticipant]:
        event = load_event(db, event_id)
        _check_authorization(event, actor_id)
        if event.is_terminal:
            raise InvalidRequest(f"Cannot invite to an event that is {event.status.value}")

        existing = {p.user_id for p in event.participants}
        invited = []
        for user_id in user_ids:
            if user_id in existing:
                if strict:
                    raise DuplicateParticipant(f"User {user_id} is already a participant", user_id=user_id)
                continue
            existing.add(user_id)
            invited.append(add_participant(event, user_id, InvitationStatus.pending, actor_id, now))
        if invited:
            event.touch()
        logger.info("Invited %d user(s) to event %s", len(invited), event_id)
        return invited

    return run_serialized(db, event_key(event_id), work)


def open_voting(
    db: Session,
    event_id: str,
    actor_id: str,
    voting_deadline: Optional[datetime] = None,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Event:
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> Event:
        event = load_event(db, event_id)
        _check_authorization(event, actor_id)
        check_version(event, expected_version)
        state_machine.open_voting(db, event, actor_id, now, outbox, voting_deadline)
        return event

    return run_serialized(db, event_key(event_id), work, notifier)


def reschedule_event(
    db: Session,
    event_id: str,
    actor_id: str,
    new_date: date,
    new_time: time,
    reason: str,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Event:
    """RescheduleEvent."""
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> Event:
        event = load_event(db, event_id)
        _check_authorization(event, actor_id)
        check_version(event, expected_version)
        state_machine.reschedule(db, event, new_date, new_time, reason, actor_id, now, outbox)
        return event

    return run_serialized(db, event_key(event_id), work, notifier)


def cancel_event(
    db: Session,
    event_id: str,
    actor_id: str,
    reason: str,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Event:
    """CancelEvent. The event row is kept; cancellation is terminal."""
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> Event:
        event = load_event(db, event_id)
        _check_authorization(event, actor_id)
        check_version(event, expected_version)
        state_machine.cancel(db, event, actor_id, reason, now, outbox)
        return event

    return run_serialized(db, event_key(event_id), work, notifier)


def complete_event(
    db: Session,
    event_id: str,
    actor_id: str,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Event:
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> Event:
        event = load_event(db, event_id)
        _check_authorization(event, actor_id)
        check_version(event, expected_version)
        state_machine.complete(db, event, actor_id, now, outbox, "Completed by organizer")
        return event

    return run_serialized(db, event_key(event_id), work, notifier)


def sweep_completions(db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict:
    """Complete every Confirmed event whose scheduled time plus duration has elapsed."""
    now = as_utc(now) if now else utcnow()
    candidates = (
        db.query(Event.event_id)
        .filter(Event.status == EventStatus.confirmed, Event.scheduled_date <= now.date() + timedelta(days=1))
        .all()
    )
    completed = 0
    for (event_id,) in candidates:
        def work(outbox: Outbox, event_id=event_id) -> bool:
            event = load_event(db, event_id)
            if event.status != EventStatus.confirmed:
                return False
            if event.ends_at(settings.DEFAULT_EVENT_DURATION_MINUTES) > now:
                return False
            state_machine.complete(db, event, None, now, outbox, "Scheduled time has elapsed")
            return True

        try:
            if run_serialized(db, event_key(event_id), work, notifier):
                completed += 1
        except DomainError as e:
            logger.warning("Completion sweep skipped event %s: %s", event_id, e.message)

    logger.info("Completion sweep at %s: %d completed", now.isoformat(), completed)
    return {"completed": completed}
