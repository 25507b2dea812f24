"""Attendance: check-ins and no-show marking."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from gathering.database import as_utc, utcnow
from gathering.exceptions import DuplicateCheckIn, InvalidRequest
from gathering.models.check_in import CheckInMethod, EventCheckIn
from gathering.models.event import Event, EventStatus
from gathering.models.participant import InvitationStatus
from gathering.services.concurrency import Outbox, event_key, load_event, run_serialized

logger = logging.getLogger(__name__)

CHECK_IN_STATUSES = (EventStatus.confirmed, EventStatus.completed)


def record_check_in(
    db: Session,
    event_id: str,
    user_id: str,
    method: CheckInMethod = CheckInMethod.manual,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    now: Optional[datetime] = None,
) -> EventCheckIn:
    """RecordCheckIn. A late check-in clears the no-show mark left by completion."""
    now = as_utc(now) if now else utcnow()
    if method == CheckInMethod.geo and (latitude is None or longitude is None):
        raise InvalidRequest("A geo check-in needs latitude and longitude")

    def work(outbox: Outbox) -> EventCheckIn:
        event = load_event(db, event_id)
        if event.status not in CHECK_IN_STATUSES:
            raise InvalidRequest(f"Check-in is not open while the event is {event.status.value}")
        participant = next((p for p in event.participants if p.user_id == user_id), None)
        if participant is None or participant.invitation_status != InvitationStatus.accepted:
            raise InvalidRequest("Only accepted participants can check in", user_id=user_id)

        check_in = next((c for c in event.check_ins if c.user_id == user_id), None)
        if check_in is not None and not check_in.is_no_show:
            raise DuplicateCheckIn(f"User {user_id} has already checked in", user_id=user_id)
        if check_in is None:
            check_in = EventCheckIn(event_id=event_id, user_id=user_id)
            event.check_ins.append(check_in)
        check_in.checked_in_at = now
        check_in.method = method
        check_in.latitude = latitude
        check_in.longitude = longitude
        check_in.is_no_show = False
        event.touch()
        logger.info("User %s checked in to event %s (%s)", user_id, event_id, method.value)
        return check_in

    return run_serialized(db, event_key(event_id), work)


def mark_no_shows(event: Event) -> int:
    """Record a no-show for every accepted participant who never checked in."""
    checked_in = {c.user_id for c in event.check_ins}
    marked = 0
    for participant in event.participants:
        if participant.invitation_status != InvitationStatus.accepted or participant.user_id in checked_in:
            continue
        event.check_ins.append(EventCheckIn(event_id=event.event_id, user_id=participant.user_id, is_no_show=True))
        marked += 1
    if marked:
        logger.info("Marked %d no-show(s) on event %s", marked, event.event_id)
    return marked
