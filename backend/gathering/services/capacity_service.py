"""Capacity & Waitlist Manager.

A seat is held by every Accepted participant and by every waitlist entry that
has been offered a place (Notified) and not yet answered. Promotions for one
event run under that event's serialization, so two declines processed at the
same moment can never offer the same freed seat twice.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from gathering.config import settings
from gathering.database import as_utc, utcnow
from gathering.exceptions import DomainError, InvalidRequest, ParticipantNotFound, WaitlistEntryNotFound
from gathering.integrations.notifier import NotificationKind, Notifier
from gathering.models.event import Event
from gathering.models.participant import EventParticipant, InvitationStatus
from gathering.models.waitlist import EventWaitlist, WaitlistStatus
from gathering.services.concurrency import Outbox, event_key, load_event, run_serialized

logger = logging.getLogger(__name__)


@dataclass
class RsvpOutcome:
    participant: EventParticipant
    waitlisted: bool = False
    waitlist_entry: Optional[EventWaitlist] = None
    promoted: Optional[EventWaitlist] = None


@dataclass
class PromotionOutcome:
    entry: EventWaitlist
    accepted: bool
    expired: bool = False
    promoted: Optional[EventWaitlist] = None


def seats_taken(event: Event) -> int:
    accepted = sum(1 for p in event.participants if p.invitation_status == InvitationStatus.accepted)
    offered = sum(1 for w in event.waitlist if w.status == WaitlistStatus.notified)
    return accepted + offered


def has_free_seat(event: Event) -> bool:
    return event.max_attendees is None or seats_taken(event) < event.max_attendees


def _participant(event: Event, user_id: str) -> Optional[EventParticipant]:
    return next((p for p in event.participants if p.user_id == user_id), None)


def _waitlist_entry(event: Event, user_id: str) -> Optional[EventWaitlist]:
    return next((w for w in event.waitlist if w.user_id == user_id), None)


def waiting_queue(event: Event) -> list[EventWaitlist]:
    """Waiting entries in promotion order: lowest priority first, then earliest joined."""
    waiting = [w for w in event.waitlist if w.status == WaitlistStatus.waiting]
    return sorted(waiting, key=lambda w: (w.priority, w.joined_at))


def _join_waitlist(
    db: Session,
    event: Event,
    user_id: str,
    now: datetime,
    priority: Optional[int],
) -> EventWaitlist:
    stale = _waitlist_entry(event, user_id)
    if stale is not None:
        # A closed entry (Responded/Expired) never moves back; the user queues again.
        event.waitlist.remove(stale)
        db.flush()
    if priority is None:
        priority = max((w.priority for w in event.waitlist), default=0) + 1
    entry = EventWaitlist(event_id=event.event_id, user_id=user_id, priority=priority, joined_at=now)
    event.waitlist.append(entry)
    return entry


def promote_next(db: Session, event: Event, now: datetime, outbox: Outbox) -> Optional[EventWaitlist]:
    """Offer a freed seat to the first Waiting entry, if there is a free seat."""
    if not has_free_seat(event):
        return None
    queue = waiting_queue(event)
    if not queue:
        return None

    entry = queue[0]
    entry.move_to(WaitlistStatus.notified)
    entry.notified_at = now
    entry.response_deadline = now + timedelta(hours=settings.WAITLIST_RESPONSE_HOURS)
    event.touch()
    outbox.add(
        entry.user_id, event.event_id, NotificationKind.waitlist_promotion,
        response_deadline=entry.response_deadline.isoformat(),
    )
    logger.info(
        "Promoted waitlist entry %s (user %s) on event %s, respond by %s",
        entry.waitlist_id, entry.user_id, event.event_id, entry.response_deadline.isoformat(),
    )
    return entry


def _expire(db: Session, event: Event, entry: EventWaitlist, now: datetime, outbox: Outbox) -> Optional[EventWaitlist]:
    entry.move_to(WaitlistStatus.expired)
    entry.responded_at = now
    participant = _participant(event, entry.user_id)
    if participant is not None:
        participant.invitation_status = InvitationStatus.declined
        participant.rsvp_date = now
    event.touch()
    logger.info("Waitlist entry %s on event %s expired", entry.waitlist_id, event.event_id)
    return promote_next(db, event, now, outbox)


def _accept_promotion(event: Event, entry: EventWaitlist, now: datetime) -> EventParticipant:
    entry.move_to(WaitlistStatus.responded)
    entry.responded_at = now
    participant = _participant(event, entry.user_id)
    if participant is None:
        participant = EventParticipant(event_id=event.event_id, user_id=entry.user_id, invited_at=now)
        event.participants.append(participant)
    participant.invitation_status = InvitationStatus.accepted
    participant.rsvp_date = now
    event.touch()
    logger.info("User %s accepted a waitlist promotion on event %s", entry.user_id, event.event_id)
    return participant


def respond_to_invitation(
    db: Session,
    event_id: str,
    user_id: str,
    status: InvitationStatus,
    waitlist_priority: Optional[int] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> RsvpOutcome:
    """RespondToInvitation.

    Accepting when every seat is taken puts the user on the waitlist.
    Declining a held seat frees it for the next Waiting entry.
    """
    now = as_utc(now) if now else utcnow()
    if status not in (InvitationStatus.accepted, InvitationStatus.declined):
        raise InvalidRequest("An RSVP must be Accepted or Declined", status=status.value)

    def work(outbox: Outbox) -> RsvpOutcome:
        event = load_event(db, event_id)
        if event.is_terminal:
            raise InvalidRequest(f"Cannot RSVP to an event that is {event.status.value}")
        if event.rsvp_deadline and now > event.rsvp_deadline:
            raise InvalidRequest("The RSVP deadline has passed")
        participant = _participant(event, user_id)
        if participant is None:
            raise ParticipantNotFound(f"User {user_id} is not invited to event {event_id}", user_id=user_id)
        entry = _waitlist_entry(event, user_id)

        if status == InvitationStatus.accepted:
            if participant.invitation_status == InvitationStatus.accepted:
                return RsvpOutcome(participant=participant)
            if entry is not None and entry.status == WaitlistStatus.notified:
                _accept_promotion(event, entry, now)
                return RsvpOutcome(participant=participant, waitlist_entry=entry)
            if entry is not None and entry.status == WaitlistStatus.waiting:
                return RsvpOutcome(participant=participant, waitlisted=True, waitlist_entry=entry)
            participant.rsvp_date = now
            event.touch()
            if has_free_seat(event):
                participant.invitation_status = InvitationStatus.accepted
                logger.info("User %s accepted event %s", user_id, event_id)
                return RsvpOutcome(participant=participant)
            participant.invitation_status = InvitationStatus.waitlisted
            entry = _join_waitlist(db, event, user_id, now, waitlist_priority)
            logger.info("Event %s is full, user %s waitlisted at priority %d", event_id, user_id, entry.priority)
            return RsvpOutcome(participant=participant, waitlisted=True, waitlist_entry=entry)

        if participant.invitation_status == InvitationStatus.declined:
            return RsvpOutcome(participant=participant)
        held_seat = participant.invitation_status == InvitationStatus.accepted
        participant.invitation_status = InvitationStatus.declined
        participant.rsvp_date = now
        event.touch()
        promoted = None
        if entry is not None and entry.status == WaitlistStatus.waiting:
            event.waitlist.remove(entry)
        elif entry is not None and entry.status == WaitlistStatus.notified:
            promoted = _expire(db, event, entry, now, outbox)
        if held_seat:
            promoted = promote_next(db, event, now, outbox)
        logger.info("User %s declined event %s", user_id, event_id)
        return RsvpOutcome(participant=participant, promoted=promoted)

    return run_serialized(db, event_key(event_id), work, notifier)


def respond_to_promotion(
    db: Session,
    event_id: str,
    user_id: str,
    accept: bool,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> PromotionOutcome:
    """Answer a waitlist promotion. An answer after the deadline expires the offer."""
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> PromotionOutcome:
        event = load_event(db, event_id)
        entry = _waitlist_entry(event, user_id)
        if entry is None:
            raise WaitlistEntryNotFound(f"User {user_id} is not on the waitlist for event {event_id}", user_id=user_id)
        if entry.status != WaitlistStatus.notified:
            raise InvalidRequest(
                f"No open promotion for this user (waitlist status {entry.status.value})",
                waitlist_status=entry.status.value,
            )
        if event.is_terminal:
            raise InvalidRequest(f"Cannot join an event that is {event.status.value}")

        if entry.response_deadline and now > entry.response_deadline:
            promoted = _expire(db, event, entry, now, outbox)
            return PromotionOutcome(entry=entry, accepted=False, expired=True, promoted=promoted)
        if accept:
            _accept_promotion(event, entry, now)
            return PromotionOutcome(entry=entry, accepted=True)
        promoted = _expire(db, event, entry, now, outbox)
        return PromotionOutcome(entry=entry, accepted=False, promoted=promoted)

    return run_serialized(db, event_key(event_id), work, notifier)


def list_waitlist(db: Session, event_id: str) -> list[EventWaitlist]:
    event = load_event(db, event_id, for_update=False)
    return sorted(event.waitlist, key=lambda w: (w.priority, w.joined_at))


def sweep_waitlist_expiry(db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict:
    """SweepWaitlistExpiry: expire unanswered promotions and offer the seat onward."""
    now = as_utc(now) if now else utcnow()
    event_ids = [
        row.event_id for row in
        db.query(EventWaitlist.event_id)
        .filter(EventWaitlist.status == WaitlistStatus.notified, EventWaitlist.response_deadline <= now)
        .distinct()
        .all()
    ]
    summary = {"expired": 0, "promoted": 0}

    for event_id in event_ids:
        def work(outbox: Outbox, event_id=event_id) -> tuple[int, int]:
            event = load_event(db, event_id)
            overdue = [
                w for w in event.waitlist
                if w.status == WaitlistStatus.notified and w.response_deadline and w.response_deadline <= now
            ]
            promoted = 0
            for entry in overdue:
                if _expire(db, event, entry, now, outbox) is not None:
                    promoted += 1
            return len(overdue), promoted

        try:
            expired, promoted = run_serialized(db, event_key(event_id), work, notifier)
        except DomainError as e:
            logger.warning("Waitlist expiry sweep skipped event %s: %s", event_id, e.message)
            continue
        summary["expired"] += expired
        summary["promoted"] += promoted

    logger.info("Waitlist expiry sweep at %s: %s", now.isoformat(), summary)
    return summary
