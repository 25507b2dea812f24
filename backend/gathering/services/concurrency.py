"""Per-event serialization, conflict retry and the post-commit outbox.

Every command that touches an Event consistency boundary runs through
``run_serialized``: it takes the process-local lock for the key, re-reads the
row ``FOR UPDATE``, and commits through the SQLAlchemy version counter. A
version or unique-key conflict from another process rolls the attempt back and
re-runs it against fresh state.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gathering.config import settings
from gathering.exceptions import ConcurrentModification, EventNotFound
from gathering.integrations.notifier import NotificationKind, Notifier
from gathering.models.event import Event

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _KeyLock:
    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


_registry_lock = threading.Lock()
# Only keys with a holder or a waiter have an entry.
_locks: dict[str, _KeyLock] = {}


@contextmanager
def serialized(key: str):
    with _registry_lock:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = _KeyLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del _locks[key]


def event_key(event_id: str) -> str:
    return f"event:{event_id}"


def recurring_key(recurring_event_id: str) -> str:
    return f"recurring:{recurring_event_id}"


class Outbox:
    """Notifications collected during a command and delivered after it commits."""

    def __init__(self):
        self._pending: list[tuple[str, str, NotificationKind, dict[str, Any]]] = []

    def add(self, user_id: str, event_id: str, kind: NotificationKind, **payload) -> None:
        self._pending.append((user_id, event_id, kind, payload))

    def __len__(self) -> int:
        return len(self._pending)

    def deliver(self, notifier: Optional[Notifier]) -> int:
        if notifier is None:
            return 0
        delivered = 0
        for user_id, event_id, kind, payload in self._pending:
            try:
                notifier.notify(user_id, event_id, kind, payload)
                delivered += 1
            except Exception:
                # The transition is already committed; a lost notification is logged, not undone.
                logger.exception("Failed to notify user %s about event %s (%s)", user_id, event_id, kind.value)
        self._pending.clear()
        return delivered


def load_event(db: Session, event_id: str, for_update: bool = True) -> Event:
    query = db.query(Event).filter(Event.event_id == event_id)
    if for_update:
        query = query.with_for_update()
    event = query.first()
    if not event:
        raise EventNotFound(f"Event {event_id} not found", event_id=event_id)
    return event


def check_version(event: Event, expected_version: Optional[int]) -> None:
    """Reject a command that was built from a stale read of the event."""
    if expected_version is not None and event.version != expected_version:
        raise ConcurrentModification(
            f"Version mismatch: expected {expected_version}, current {event.version}. Refresh and retry.",
            current_version=event.version,
        )


def run_serialized(
    db: Session,
    key: str,
    work: Callable[[Outbox], T],
    notifier: Optional[Notifier] = None,
) -> T:
    """Run ``work`` as one transaction under the lock for ``key``.

    ``work`` receives an ``Outbox``; whatever it queues is handed to
    ``notifier`` only once the transaction has committed. Domain errors roll
    back and propagate unchanged. Persistence conflicts are retried up to
    ``CONFLICT_RETRY_ATTEMPTS`` times before surfacing as
    ``ConcurrentModification``.
    """
    attempts = max(1, settings.CONFLICT_RETRY_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        outbox = Outbox()
        with serialized(key):
            db.expire_all()
            try:
                result = work(outbox)
                db.commit()
            except (StaleDataError, IntegrityError) as e:
                db.rollback()
                logger.warning("Conflict on %s (attempt %d/%d): %s", key, attempt, attempts, e)
                continue
            except Exception:
                db.rollback()
                raise
        outbox.deliver(notifier)
        return result

    logger.error("Giving up on %s after %d conflicting attempts", key, attempts)
    raise ConcurrentModification(
        "The event was modified concurrently. Refresh and retry.",
        key=key,
    )
