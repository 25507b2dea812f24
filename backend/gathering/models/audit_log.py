"""EventAuditLog ORM model: append-only record of every status change."""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey, Enum as SAEnum, event as sa_event
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime, utcnow
from gathering.models.event import EventStatus


class EventAuditLog(Base):
    __tablename__ = "event_audit_logs"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    old_status = Column(SAEnum(EventStatus), nullable=False)
    new_status = Column(SAEnum(EventStatus), nullable=False)
    changed_by = Column(String(36), nullable=True)
    reason = Column(String(1000), nullable=False)
    additional_data = Column(JSON, nullable=False, default=dict)
    changed_at = Column(UTCDateTime, nullable=False, default=utcnow)

    event = relationship("Event", back_populates="audit_logs")


@sa_event.listens_for(EventAuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError("EventAuditLog rows are immutable")
