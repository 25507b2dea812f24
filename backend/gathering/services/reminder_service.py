"""Reminder tracker.

Fire times are computed from the event's local schedule resolved to an
absolute instant, never from the time since the last sweep, so a sweep that
was missed is made up by the next one.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from gathering.config import settings
from gathering.database import as_utc, utcnow
from gathering.exceptions import DomainError
from gathering.integrations.notifier import NotificationKind, Notifier
from gathering.models.event import Event, EventStatus
from gathering.models.participant import InvitationStatus
from gathering.services.concurrency import Outbox, event_key, load_event, run_serialized

logger = logging.getLogger(__name__)

# The day-before reminder also goes to events still being voted on.
DAY_BEFORE_STATUSES = (EventStatus.voting, EventStatus.confirmed)


def reminder_fire_at(event: Event, lead: Optional[timedelta] = None) -> datetime:
    lead = lead if lead is not None else timedelta(minutes=settings.REMINDER_LEAD_MINUTES)
    return event.scheduled_at - lead


def _send_due_reminders(event: Event, now: datetime, outbox: Outbox) -> int:
    start = event.scheduled_at
    # A missed reminder is still sent late, but never once the event is over.
    if now >= event.ends_at(settings.DEFAULT_EVENT_DURATION_MINUTES):
        return 0
    one_hour_at = reminder_fire_at(event)
    day_before_at = reminder_fire_at(event, timedelta(hours=settings.DAY_BEFORE_REMINDER_HOURS))

    sent = 0
    for participant in event.participants:
        if participant.invitation_status != InvitationStatus.accepted:
            continue
        if (event.status == EventStatus.confirmed and now >= one_hour_at
                and participant.one_hour_reminder_sent_at is None):
            participant.one_hour_reminder_sent_at = now
            # A missed day-before reminder is superseded, not sent late.
            if participant.reminder_sent_at is None:
                participant.reminder_sent_at = now
            outbox.add(
                participant.user_id, event.event_id, NotificationKind.reminder,
                lead_minutes=settings.REMINDER_LEAD_MINUTES, starts_at=start.isoformat(),
            )
            sent += 1
        elif (event.status in DAY_BEFORE_STATUSES and now >= day_before_at
                and now < one_hour_at and participant.reminder_sent_at is None):
            participant.reminder_sent_at = now
            outbox.add(
                participant.user_id, event.event_id, NotificationKind.reminder,
                lead_minutes=settings.DAY_BEFORE_REMINDER_HOURS * 60, starts_at=start.isoformat(),
            )
            sent += 1
    if sent:
        event.touch()
    return sent


def sweep_reminders(db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict:
    """SweepReminders. Each participant gets each reminder at most once."""
    now = as_utc(now) if now else utcnow()
    # Local dates can sit a day either side of the UTC date.
    horizon = now.date() + timedelta(days=settings.DAY_BEFORE_REMINDER_HOURS // 24 + 2)
    candidates = (
        db.query(Event.event_id)
        .filter(
            Event.status.in_(DAY_BEFORE_STATUSES),
            Event.scheduled_date >= now.date() - timedelta(days=1),
            Event.scheduled_date <= horizon,
        )
        .all()
    )
    sent = 0
    for (event_id,) in candidates:
        def work(outbox: Outbox, event_id=event_id) -> int:
            event = load_event(db, event_id)
            if event.status not in DAY_BEFORE_STATUSES:
                return 0
            return _send_due_reminders(event, now, outbox)

        try:
            sent += run_serialized(db, event_key(event_id), work, notifier)
        except DomainError as e:
            logger.warning("Reminder sweep skipped event %s: %s", event_id, e.message)

    logger.info("Reminder sweep at %s: %d reminder(s) sent", now.isoformat(), sent)
    return {"sent": sent}
