"""Event State Machine.

Owns ``Event.status``. Each function here validates one transition, applies
its side effects to the session and queues its notifications; the caller's
``run_serialized`` block commits all of it or none of it.

    Planning -> Voting -> Confirmed -> Completed
        \\          \\          \\
         +----------+----------+--> Cancelled

Reschedule is not a status change; it is audited with old == new status.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from gathering.config import settings
from gathering.database import as_utc
from gathering.exceptions import InvalidRequest, InvalidTransition
from gathering.integrations.notifier import NotificationKind
from gathering.models.audit_log import EventAuditLog
from gathering.models.event import Event, EventStatus
from gathering.models.participant import InvitationStatus
from gathering.models.place_option import EventPlaceOption
from gathering.services import audit_log, check_in_service
from gathering.services.concurrency import Outbox

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    EventStatus.planning: {EventStatus.voting, EventStatus.cancelled},
    EventStatus.voting: {EventStatus.confirmed, EventStatus.cancelled},
    EventStatus.confirmed: {EventStatus.completed, EventStatus.cancelled},
    EventStatus.cancelled: set(),
    EventStatus.completed: set(),
}

RESCHEDULABLE = (EventStatus.planning, EventStatus.voting, EventStatus.confirmed)


def can_transition(old_status: EventStatus, new_status: EventStatus) -> bool:
    return new_status in VALID_TRANSITIONS[old_status]


def accepted_user_ids(event: Event) -> list[str]:
    return [p.user_id for p in event.participants if p.invitation_status == InvitationStatus.accepted]


def _notify_accepted(event: Event, outbox: Outbox, kind: NotificationKind, **payload) -> None:
    for user_id in accepted_user_ids(event):
        outbox.add(user_id, event.event_id, kind, **payload)


def _transition(
    db: Session,
    event: Event,
    new_status: EventStatus,
    actor_id: Optional[str],
    now: datetime,
    outbox: Outbox,
    reason: Optional[str] = None,
    additional_data: Optional[dict[str, Any]] = None,
) -> EventAuditLog:
    old_status = event.status
    if not can_transition(old_status, new_status):
        raise InvalidTransition(old_status, new_status)

    event.status = new_status
    event.touch()
    entry = audit_log.record_transition(
        db, event, old_status, new_status, actor_id, reason, additional_data, changed_at=now,
    )
    _notify_accepted(
        event, outbox, NotificationKind.status_change,
        old_status=old_status.value, new_status=new_status.value,
    )
    logger.info("Event %s transitioned %s -> %s", event.event_id, old_status.value, new_status.value)
    return entry


def open_voting(
    db: Session,
    event: Event,
    actor_id: str,
    now: datetime,
    outbox: Outbox,
    voting_deadline: Optional[datetime] = None,
) -> EventAuditLog:
    if not can_transition(event.status, EventStatus.voting):
        raise InvalidTransition(event.status, EventStatus.voting)
    if not event.options:
        raise InvalidTransition(
            event.status, EventStatus.voting,
            "Voting can only open once at least one candidate option exists",
        )

    deadline = as_utc(voting_deadline) or now + timedelta(days=settings.VOTING_WINDOW_DAYS)
    if deadline <= now:
        raise InvalidRequest("Voting deadline must be in the future", voting_deadline=deadline.isoformat())

    event.voting_deadline = deadline
    event.acceptance_unresolved_at = None
    return _transition(
        db, event, EventStatus.voting, actor_id, now, outbox,
        additional_data={"voting_deadline": deadline.isoformat(), "option_count": len(event.options)},
    )


def confirm(
    db: Session,
    event: Event,
    option: EventPlaceOption,
    actor_id: Optional[str],
    now: datetime,
    outbox: Outbox,
    reason: Optional[str] = None,
    additional_data: Optional[dict[str, Any]] = None,
) -> EventAuditLog:
    if not can_transition(event.status, EventStatus.confirmed):
        raise InvalidTransition(event.status, EventStatus.confirmed)

    event.final_option_id = option.option_id
    event.final_place_id = option.venue_reference
    event.confirmed_at = now
    data = {"option_id": option.option_id, "final_place_id": event.final_place_id}
    data.update(additional_data or {})
    return _transition(db, event, EventStatus.confirmed, actor_id, now, outbox, reason, data)


def cancel(
    db: Session,
    event: Event,
    actor_id: str,
    reason: str,
    now: datetime,
    outbox: Outbox,
) -> EventAuditLog:
    if not reason or not reason.strip():
        raise InvalidRequest("A reason is required to cancel an event")
    if not can_transition(event.status, EventStatus.cancelled):
        raise InvalidTransition(event.status, EventStatus.cancelled)

    data = {"final_place_id": event.final_place_id} if event.final_place_id else {}
    event.cancelled_at = now
    event.cancelled_by_user_id = actor_id
    event.cancellation_reason = reason.strip()
    # Only Confirmed and Completed events carry a final place.
    event.final_place_id = None
    return _transition(db, event, EventStatus.cancelled, actor_id, now, outbox, reason.strip(), data)


def complete(
    db: Session,
    event: Event,
    actor_id: Optional[str],
    now: datetime,
    outbox: Outbox,
    reason: Optional[str] = None,
) -> EventAuditLog:
    if not can_transition(event.status, EventStatus.completed):
        raise InvalidTransition(event.status, EventStatus.completed)

    event.completed_at = now
    no_shows = check_in_service.mark_no_shows(event)
    return _transition(db, event, EventStatus.completed, actor_id, now, outbox, reason, {"no_shows": no_shows})


def reschedule(
    db: Session,
    event: Event,
    new_date: date,
    new_time: time,
    reason: str,
    actor_id: str,
    now: datetime,
    outbox: Outbox,
) -> EventAuditLog:
    if event.status not in RESCHEDULABLE:
        raise InvalidTransition(
            event.status, event.status,
            f"Cannot reschedule an event that is {event.status.value}",
        )
    if not reason or not reason.strip():
        raise InvalidRequest("A reason is required to reschedule an event")
    if new_date == event.scheduled_date and new_time == event.scheduled_time:
        raise InvalidRequest("The new schedule is the same as the current one")

    previous_date, previous_time = event.scheduled_date, event.scheduled_time
    event.scheduled_date = new_date
    event.scheduled_time = new_time
    if event.scheduled_at <= now:
        raise InvalidRequest("An event can only be rescheduled into the future")

    event.previous_scheduled_date = previous_date
    event.previous_scheduled_time = previous_time
    event.reschedule_count = (event.reschedule_count or 0) + 1
    event.last_rescheduled_at = now
    event.reschedule_reason = reason.strip()
    event.touch()

    # Reminders fire again for the new time.
    for participant in event.participants:
        participant.reminder_sent_at = None
        participant.one_hour_reminder_sent_at = None

    entry = audit_log.record_transition(
        db, event, event.status, event.status, actor_id, reason.strip(),
        {
            "previous_scheduled_date": previous_date.isoformat(),
            "previous_scheduled_time": previous_time.isoformat(),
            "new_scheduled_date": new_date.isoformat(),
            "new_scheduled_time": new_time.isoformat(),
            "reschedule_count": event.reschedule_count,
        },
        changed_at=now,
    )
    _notify_accepted(
        event, outbox, NotificationKind.rescheduled,
        scheduled_date=new_date.isoformat(), scheduled_time=new_time.isoformat(),
    )
    logger.info(
        "Event %s rescheduled from %s %s to %s %s (count=%d)",
        event.event_id, previous_date, previous_time, new_date, new_time, event.reschedule_count,
    )
    return entry
