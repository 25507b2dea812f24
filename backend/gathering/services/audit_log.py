"""Audit Log Writer: append-only status-change records."""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from gathering.database import utcnow
from gathering.models.audit_log import EventAuditLog
from gathering.models.event import Event, EventStatus

logger = logging.getLogger(__name__)


def record_transition(
    db: Session,
    event: Event,
    old_status: EventStatus,
    new_status: EventStatus,
    changed_by: Optional[str],
    reason: Optional[str] = None,
    additional_data: Optional[dict[str, Any]] = None,
    changed_at: Optional[datetime] = None,
) -> EventAuditLog:
    """Stage one audit row dated ``changed_at``, the command's own clock."""
    entry = EventAuditLog(
        event_id=event.event_id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        reason=reason or f"Status changed from {old_status.value} to {new_status.value}",
        additional_data=additional_data or {},
        changed_at=changed_at or utcnow(),
    )
    db.add(entry)
    logger.info(
        "Audit: event %s %s -> %s by %s (%s)",
        event.event_id, old_status.value, new_status.value, changed_by or "system", entry.reason,
    )
    return entry


def list_entries(db: Session, event_id: str) -> list[EventAuditLog]:
    return (
        db.query(EventAuditLog)
        .filter(EventAuditLog.event_id == event_id)
        .order_by(EventAuditLog.log_id)
        .all()
    )
