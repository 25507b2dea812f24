"""AI-analysis progress tracker.

The recommendation itself runs in an external job. This module records when
it was dispatched, the opaque progress payload the job reports, the final
scores, and a timeout when the job goes quiet. A timeout is a status, never
an error: the organizer falls back to adding options by hand.
"""
import enum
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from gathering.config import settings
from gathering.database import as_utc, utcnow
from gathering.exceptions import DomainError, InvalidRequest, NotOrganizer
from gathering.integrations import get_notifier
from gathering.integrations.notifier import NotificationKind, Notifier
from gathering.integrations.recommender import AiAnalysisDispatcher
from gathering.models.event import Event, EventStatus
from gathering.services.concurrency import Outbox, event_key, load_event, run_serialized

logger = logging.getLogger(__name__)


class AiStatus(str, enum.Enum):
    dispatched = "dispatched"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"
    timed_out = "timed_out"
    unavailable = "unavailable"


ACTIVE = (AiStatus.dispatched.value, AiStatus.in_progress.value)
ANALYSIS_STATUSES = (EventStatus.planning, EventStatus.voting)


def _status(event: Event) -> Optional[str]:
    return (event.ai_analysis_progress or {}).get("status")


def _set_progress(event: Event, now: datetime, **changes) -> None:
    # A fresh dict, so the JSON column is seen as changed.
    progress = dict(event.ai_analysis_progress or {})
    progress.update(changes)
    event.ai_analysis_progress = progress
    event.ai_analysis_updated_at = now
    event.touch()


def analysis_state(event: Event) -> dict[str, Any]:
    return {
        "event_id": event.event_id,
        "started_at": event.ai_analysis_started_at,
        "updated_at": event.ai_analysis_updated_at,
        "progress": event.ai_analysis_progress or {},
    }


def _candidate(option) -> dict[str, Any]:
    venue = option.venue
    return {
        "option_id": option.option_id,
        "venue": venue.reference,
        "name": getattr(venue, "name", None),
        "address": getattr(venue, "address", None),
        "category": getattr(venue, "category", None),
        "estimated_cost_per_person": option.estimated_cost_per_person,
    }


def start_ai_analysis(
    db: Session,
    event_id: str,
    actor_id: str,
    dispatcher: AiAnalysisDispatcher,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> dict[str, Any]:
    """Record the dispatch, then hand the candidates to the dispatcher outside the transaction.

    Starting again while a job is still active returns the current state.
    """
    now = as_utc(now) if now else utcnow()

    def begin(outbox: Outbox):
        event = load_event(db, event_id)
        if event.organizer_id != actor_id:
            raise NotOrganizer("Only the organizer may request an AI analysis")
        if event.status not in ANALYSIS_STATUSES:
            raise InvalidRequest(f"AI analysis is not available while the event is {event.status.value}")
        if not event.options:
            raise InvalidRequest("AI analysis needs at least one candidate option")
        if _status(event) in ACTIVE:
            return None
        event.ai_analysis_started_at = now
        event.ai_analysis_progress = None
        _set_progress(event, now, status=AiStatus.dispatched.value, percentage=0)
        summary = {
            "title": event.title,
            "event_type": event.event_type,
            "scheduled_at": event.scheduled_at.isoformat(),
            "expected_attendees": event.expected_attendees,
            "budget_per_person": event.budget_per_person,
        }
        return summary, [_candidate(o) for o in event.options]

    prepared = run_serialized(db, event_key(event_id), begin)
    if prepared is None:
        logger.info("AI analysis already running for event %s", event_id)
        return analysis_state(load_event(db, event_id, for_update=False))

    summary, candidates = prepared
    try:
        job_id = dispatcher.dispatch(event_id, summary, candidates)
    except Exception as e:
        logger.exception("Dispatching AI analysis for event %s failed", event_id)
        return record_failure(db, event_id, str(e), now=now, notifier=notifier)

    def attach(outbox: Outbox) -> dict[str, Any]:
        event = load_event(db, event_id)
        if job_id is None:
            _set_progress(event, now, status=AiStatus.unavailable.value)
        else:
            _set_progress(event, event.ai_analysis_updated_at or now, job_id=job_id)
        return analysis_state(event)

    return run_serialized(db, event_key(event_id), attach)


def record_progress(
    db: Session,
    event_id: str,
    payload: dict[str, Any],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Progress callback. Late progress after a timeout revives the job."""
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> dict[str, Any]:
        event = load_event(db, event_id)
        status = _status(event)
        if event.ai_analysis_started_at is None:
            raise InvalidRequest("No AI analysis has been started for this event")
        if status in (AiStatus.completed.value, AiStatus.failed.value):
            logger.info("Ignoring progress for finished AI analysis on event %s", event_id)
            return analysis_state(event)
        changes = {k: v for k, v in payload.items() if k != "status"}
        if "percentage" in changes and changes["percentage"] is not None:
            changes["percentage"] = max(0, min(100, int(changes["percentage"])))
        _set_progress(event, now, status=AiStatus.in_progress.value, **changes)
        logger.debug("AI analysis progress for event %s: %s", event_id, changes)
        return analysis_state(event)

    return run_serialized(db, event_key(event_id), work)


def record_result(
    db: Session,
    event_id: str,
    recommendations: list[dict[str, Any]],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Result callback: writes scores, reasoning, pros and cons onto the matching options."""
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> dict[str, Any]:
        event = load_event(db, event_id)
        if event.ai_analysis_started_at is None:
            raise InvalidRequest("No AI analysis has been started for this event")
        options = {o.option_id: o for o in event.options}
        updated = 0
        for rec in recommendations:
            option = options.get(rec.get("option_id"))
            if option is None:
                logger.warning("AI result for event %s names unknown option %s", event_id, rec.get("option_id"))
                continue
            if rec.get("ai_score") is not None:
                option.ai_score = Decimal(str(rec["ai_score"])).quantize(Decimal("0.01"))
            option.ai_reasoning = rec.get("reasoning")
            option.pros = list(rec.get("pros") or [])
            option.cons = list(rec.get("cons") or [])
            updated += 1
        _set_progress(event, now, status=AiStatus.completed.value, percentage=100, updated_options=updated)
        logger.info("AI analysis completed for event %s (%d option(s) scored)", event_id, updated)
        return analysis_state(event)

    return run_serialized(db, event_key(event_id), work)


def record_failure(
    db: Session,
    event_id: str,
    error: str,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> dict[str, Any]:
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> dict[str, Any]:
        event = load_event(db, event_id)
        _set_progress(event, now, status=AiStatus.failed.value, error=error)
        outbox.add(event.organizer_id, event_id, NotificationKind.ai_analysis_failed, error=error)
        logger.error("AI analysis failed for event %s: %s", event_id, error)
        return analysis_state(event)

    return run_serialized(db, event_key(event_id), work, notifier or get_notifier())


def sweep_ai_timeouts(db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict:
    """Mark quiet AI jobs as timed out, once, and tell the organizer."""
    now = as_utc(now) if now else utcnow()
    cutoff = now - timedelta(minutes=settings.AI_ANALYSIS_TIMEOUT_MINUTES)
    candidates = (
        db.query(Event.event_id)
        .filter(
            Event.status.in_(ANALYSIS_STATUSES),
            Event.ai_analysis_started_at.isnot(None),
            Event.ai_analysis_updated_at <= cutoff,
        )
        .all()
    )
    timed_out = 0
    for (event_id,) in candidates:
        def work(outbox: Outbox, event_id=event_id) -> bool:
            event = load_event(db, event_id)
            if _status(event) not in ACTIVE or event.ai_analysis_updated_at > cutoff:
                return False
            _set_progress(event, now, status=AiStatus.timed_out.value)
            outbox.add(event.organizer_id, event_id, NotificationKind.ai_analysis_timed_out)
            logger.warning("AI analysis for event %s timed out; falling back to manual options", event_id)
            return True

        try:
            if run_serialized(db, event_key(event_id), work, notifier):
                timed_out += 1
        except DomainError as e:
            logger.warning("AI timeout sweep skipped event %s: %s", event_id, e.message)

    logger.info("AI timeout sweep at %s: %d timed out", now.isoformat(), timed_out)
    return {"timed_out": timed_out}
