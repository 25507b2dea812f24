"""Recurring Materializer and recurring-template commands.

Occurrence dates come from a dateutil ``rrule`` built from the template. Each
generated Event carries ``occurrence_key = sha256(template id, date)`` under a
unique constraint, so overlapping or repeated runs create every occurrence
exactly once. ``last_generated_at`` only moves once a whole run has committed.
"""
import hashlib
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

import pytz
from dateutil.rrule import DAILY, MONTHLY, WEEKLY, YEARLY, rrule, weekday
from dateutil.rrule import MO, TU, WE, TH, FR, SA, SU
from sqlalchemy.orm import Session

from gathering.database import as_utc, utcnow
from gathering.exceptions import DomainError, InvalidRequest, NotOrganizer, RecurringEventNotFound
from gathering.integrations.notifier import Notifier
from gathering.models.event import Event, EventStatus
from gathering.models.participant import InvitationStatus
from gathering.models.recurring_event import RecurrencePattern, RecurringEvent, RecurringStatus
from gathering.services.concurrency import recurring_key, run_serialized
from gathering.services.event_service import add_participant, validate_attendance, validate_timezone

logger = logging.getLogger(__name__)

WEEKDAYS: dict[str, weekday] = {
    "mon": MO, "tue": TU, "wed": WE, "thu": TH, "fri": FR, "sat": SA, "sun": SU,
}

_FREQ = {
    RecurrencePattern.daily: DAILY,
    RecurrencePattern.weekly: WEEKLY,
    RecurrencePattern.monthly: MONTHLY,
    RecurrencePattern.yearly: YEARLY,
}


def parse_weekdays(names: Optional[list[str]]) -> list[weekday]:
    days = []
    for name in names or []:
        day = WEEKDAYS.get(str(name).strip().lower()[:3])
        if day is None:
            raise InvalidRequest(f"Unknown day of week: {name}", day_of_week=name)
        if day not in days:
            days.append(day)
    return days


def _clamped_monthday(day: int) -> dict:
    """rrule arguments for "day ``day``, or the month's last day if it is shorter"."""
    if day <= 28:
        return {"bymonthday": day}
    return {"bymonthday": tuple(range(28, day + 1)), "bysetpos": -1}


def occurrence_rule(template: RecurringEvent) -> rrule:
    """Build the recurrence rule for a template, with dates as midnight datetimes."""
    kwargs = {
        "dtstart": datetime.combine(template.start_date, time.min),
        "count": template.occurrence_count,
        "until": datetime.combine(template.end_date, time.min) if template.end_date else None,
    }
    pattern = template.pattern
    if pattern == RecurrencePattern.weekly:
        kwargs["byweekday"] = parse_weekdays(template.days_of_week) or template.start_date.weekday()
    elif pattern == RecurrencePattern.monthly:
        if template.day_of_month is None:
            kwargs["bymonthday"] = -1
        else:
            kwargs.update(_clamped_monthday(template.day_of_month))
    elif pattern == RecurrencePattern.yearly:
        if template.month is not None:
            # With a month set, day_of_year is the day within that month.
            kwargs["bymonth"] = template.month
            kwargs.update(_clamped_monthday(template.day_of_year or template.start_date.day))
        elif template.day_of_year is not None:
            if template.day_of_year <= 365:
                kwargs["byyearday"] = template.day_of_year
            else:
                kwargs.update({"byyearday": (365, 366), "bysetpos": -1})
        else:
            kwargs["bymonth"] = template.start_date.month
            kwargs.update(_clamped_monthday(template.start_date.day))
    return rrule(_FREQ[pattern], **kwargs)


def occurrences_between(template: RecurringEvent, start: date, end: date) -> list[date]:
    rule = occurrence_rule(template)
    found = rule.between(datetime.combine(start, time.min), datetime.combine(end, time.min), inc=True)
    return [d.date() for d in found]


def occurrence_key(recurring_event_id: str, occurrence_date: date) -> str:
    return hashlib.sha256(f"{recurring_event_id}:{occurrence_date.isoformat()}".encode()).hexdigest()


def _validate(template: RecurringEvent) -> None:
    if template.end_date is not None and template.occurrence_count is not None:
        raise InvalidRequest("Set either end_date or occurrence_count, not both")
    if template.end_date is not None and template.end_date < template.start_date:
        raise InvalidRequest("end_date is before start_date")
    if template.occurrence_count is not None and template.occurrence_count < 1:
        raise InvalidRequest("occurrence_count must be at least 1")
    if template.days_in_advance < 0:
        raise InvalidRequest("days_in_advance cannot be negative")
    if template.pattern == RecurrencePattern.weekly:
        parse_weekdays(template.days_of_week)
    if template.day_of_month is not None and not 1 <= template.day_of_month <= 31:
        raise InvalidRequest("day_of_month must be between 1 and 31")
    if template.month is not None and not 1 <= template.month <= 12:
        raise InvalidRequest("month must be between 1 and 12")
    if template.day_of_year is not None:
        upper = 31 if template.month is not None else 366
        if not 1 <= template.day_of_year <= upper:
            raise InvalidRequest(f"day_of_year must be between 1 and {upper}")


def create_recurring_event(
    db: Session,
    organizer_id: str,
    title: str,
    pattern: RecurrencePattern,
    scheduled_time: time,
    start_date: date,
    timezone: str = "UTC",
    description: Optional[str] = None,
    event_type: str = "dining",
    days_of_week: Optional[list[str]] = None,
    day_of_month: Optional[int] = None,
    month: Optional[int] = None,
    day_of_year: Optional[int] = None,
    estimated_duration: Optional[int] = None,
    expected_attendees: int = 2,
    max_attendees: Optional[int] = None,
    budget_per_person: Optional[Decimal] = None,
    acceptance_threshold: Optional[float] = None,
    end_date: Optional[date] = None,
    occurrence_count: Optional[int] = None,
    auto_create_events: bool = True,
    days_in_advance: int = 7,
    now: Optional[datetime] = None,
) -> RecurringEvent:
    now = as_utc(now) if now else utcnow()
    validate_timezone(timezone)
    validate_attendance(expected_attendees, max_attendees, acceptance_threshold)
    template = RecurringEvent(
        organizer_id=organizer_id,
        title=title,
        description=description,
        event_type=event_type,
        pattern=pattern,
        days_of_week=days_of_week,
        day_of_month=day_of_month,
        month=month,
        day_of_year=day_of_year,
        scheduled_time=scheduled_time,
        timezone=timezone,
        estimated_duration=estimated_duration,
        expected_attendees=expected_attendees,
        max_attendees=max_attendees,
        budget_per_person=budget_per_person,
        acceptance_threshold=acceptance_threshold,
        start_date=start_date,
        end_date=end_date,
        occurrence_count=occurrence_count,
        status=RecurringStatus.active,
        auto_create_events=auto_create_events,
        days_in_advance=days_in_advance,
        created_at=now,
        updated_at=now,
    )
    _validate(template)
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info(
        "Created recurring event %s (%s) for %s starting %s",
        template.recurring_event_id, pattern.value, organizer_id, start_date,
    )
    return template


def get_recurring_event(db: Session, recurring_event_id: str, for_update: bool = False) -> RecurringEvent:
    query = db.query(RecurringEvent).filter(RecurringEvent.recurring_event_id == recurring_event_id)
    if for_update:
        query = query.with_for_update()
    template = query.first()
    if not template:
        raise RecurringEventNotFound(
            f"Recurring event {recurring_event_id} not found", recurring_event_id=recurring_event_id,
        )
    return template


def list_recurring_events(
    db: Session,
    organizer_id: Optional[str] = None,
    status: Optional[RecurringStatus] = None,
) -> list[RecurringEvent]:
    query = db.query(RecurringEvent)
    if organizer_id:
        query = query.filter(RecurringEvent.organizer_id == organizer_id)
    if status:
        query = query.filter(RecurringEvent.status == status)
    return query.order_by(RecurringEvent.created_at).all()


def _set_status(
    db: Session,
    recurring_event_id: str,
    actor_id: str,
    expected: RecurringStatus,
    new_status: RecurringStatus,
) -> RecurringEvent:
    def work(outbox) -> RecurringEvent:
        template = get_recurring_event(db, recurring_event_id, for_update=True)
        if template.organizer_id != actor_id:
            raise NotOrganizer("Only the organizer may change this recurring event")
        if template.status != expected:
            raise InvalidRequest(
                f"Recurring event is {template.status.value}, expected {expected.value}",
                status=template.status.value,
            )
        template.status = new_status
        template.updated_at = utcnow()
        logger.info("Recurring event %s is now %s", recurring_event_id, new_status.value)
        return template

    return run_serialized(db, recurring_key(recurring_event_id), work)


def pause_recurring_event(db: Session, recurring_event_id: str, actor_id: str) -> RecurringEvent:
    return _set_status(db, recurring_event_id, actor_id, RecurringStatus.active, RecurringStatus.paused)


def resume_recurring_event(db: Session, recurring_event_id: str, actor_id: str) -> RecurringEvent:
    return _set_status(db, recurring_event_id, actor_id, RecurringStatus.paused, RecurringStatus.active)


def _new_occurrence(template: RecurringEvent, occurrence_date: date, key: str, now: datetime) -> Event:
    event = Event(
        organizer_id=template.organizer_id,
        title=template.title,
        description=template.description,
        event_type=template.event_type,
        status=EventStatus.planning,
        scheduled_date=occurrence_date,
        scheduled_time=template.scheduled_time,
        timezone=template.timezone,
        estimated_duration=template.estimated_duration,
        expected_attendees=template.expected_attendees,
        max_attendees=template.max_attendees,
        budget_per_person=template.budget_per_person,
        acceptance_threshold=template.acceptance_threshold,
        recurring_event_id=template.recurring_event_id,
        occurrence_key=key,
        created_at=now,
        updated_at=now,
    )
    add_participant(event, template.organizer_id, InvitationStatus.accepted, template.organizer_id, now)
    return event


def materialize(db: Session, recurring_event_id: str, now: Optional[datetime] = None) -> list[Event]:
    """Create the template's ungenerated occurrences in ``[today, today + days_in_advance]``.

    "Today" is the template's local date. Safe to run repeatedly and
    concurrently: existing occurrence keys are skipped, and a race on a key
    rolls the whole run back for a retry against fresh state.
    """
    now = as_utc(now) if now else utcnow()

    def work(outbox) -> list[Event]:
        template = get_recurring_event(db, recurring_event_id, for_update=True)
        if template.status != RecurringStatus.active or not template.auto_create_events:
            return []

        today = now.astimezone(pytz.timezone(template.timezone)).date()
        window_end = today + timedelta(days=template.days_in_advance)
        dates = occurrences_between(template, max(today, template.start_date), window_end)
        keys = {occurrence_key(recurring_event_id, d): d for d in dates}
        existing = {
            key for (key,) in
            db.query(Event.occurrence_key).filter(Event.occurrence_key.in_(list(keys))).all()
        } if keys else set()

        created = []
        for key, occurrence_date in keys.items():
            if key in existing:
                continue
            event = _new_occurrence(template, occurrence_date, key, now)
            db.add(event)
            created.append(event)
        db.flush()

        template.last_generated_at = now
        template.updated_at = now
        bounded = template.end_date is not None or template.occurrence_count is not None
        if bounded and occurrence_rule(template).after(datetime.combine(window_end, time.min)) is None:
            template.status = RecurringStatus.completed
            logger.info("Recurring event %s has generated its last occurrence", recurring_event_id)
        if created:
            logger.info(
                "Materialized %d occurrence(s) of recurring event %s: %s",
                len(created), recurring_event_id, ", ".join(e.scheduled_date.isoformat() for e in created),
            )
        return created

    return run_serialized(db, recurring_key(recurring_event_id), work)


def sweep_recurring_materialization(
    db: Session,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> dict:
    """SweepRecurringMaterialization over every active, auto-creating template."""
    now = as_utc(now) if now else utcnow()
    template_ids = [
        row.recurring_event_id for row in
        db.query(RecurringEvent.recurring_event_id)
        .filter(RecurringEvent.status == RecurringStatus.active, RecurringEvent.auto_create_events.is_(True))
        .all()
    ]
    summary = {"templates": 0, "created": 0}
    for recurring_event_id in template_ids:
        try:
            created = materialize(db, recurring_event_id, now)
        except DomainError as e:
            logger.warning("Materialization skipped recurring event %s: %s", recurring_event_id, e.message)
            continue
        summary["templates"] += 1
        summary["created"] += len(created)

    logger.info("Recurring materialization sweep at %s: %s", now.isoformat(), summary)
    return summary
