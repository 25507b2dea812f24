"""Scheduler entry points.

Each sweep is an independent, idempotent function of ``now``; an external
scheduler (cron, a task queue, or the ``/api/sweeps`` endpoints) decides when
to call them. Running one twice, or on two instances at once, is safe.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from gathering.database import as_utc, utcnow
from gathering.integrations.notifier import Notifier
from gathering.services.ai_tracker import sweep_ai_timeouts
from gathering.services.capacity_service import sweep_waitlist_expiry
from gathering.services.event_service import sweep_completions
from gathering.services.recurring_service import sweep_recurring_materialization
from gathering.services.reminder_service import sweep_reminders
from gathering.services.voting_service import sweep_voting_deadlines

logger = logging.getLogger(__name__)

Sweep = Callable[[Session, Optional[datetime], Optional[Notifier]], dict]

SWEEPS: dict[str, Sweep] = {
    "voting-deadlines": sweep_voting_deadlines,
    "reminders": sweep_reminders,
    "recurring-materialization": sweep_recurring_materialization,
    "waitlist-expiry": sweep_waitlist_expiry,
    "completions": sweep_completions,
    "ai-analysis-timeouts": sweep_ai_timeouts,
}


def run_sweep(name: str, db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict:
    sweep = SWEEPS[name]
    now = as_utc(now) if now else utcnow()
    started = time.monotonic()
    summary = sweep(db, now, notifier)
    logger.info("Sweep %s finished in %.3fs", name, time.monotonic() - started)
    return summary


def run_all(db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict[str, dict]:
    now = as_utc(now) if now else utcnow()
    return {name: run_sweep(name, db, now, notifier) for name in SWEEPS}
