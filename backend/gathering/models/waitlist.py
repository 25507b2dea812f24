"""EventWaitlist ORM model: overflow queue once an event is at capacity."""
import uuid
import enum
from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime, utcnow


class WaitlistStatus(str, enum.Enum):
    waiting = "Waiting"
    notified = "Notified"
    responded = "Responded"
    expired = "Expired"


# Status only moves forward along these edges.
WAITLIST_TRANSITIONS = {
    WaitlistStatus.waiting: {WaitlistStatus.notified},
    WaitlistStatus.notified: {WaitlistStatus.responded, WaitlistStatus.expired},
    WaitlistStatus.responded: set(),
    WaitlistStatus.expired: set(),
}


class EventWaitlist(Base):
    __tablename__ = "event_waitlists"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_waitlist_user"),
    )

    waitlist_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    status = Column(SAEnum(WaitlistStatus), nullable=False, default=WaitlistStatus.waiting)
    priority = Column(Integer, nullable=False)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)
    notified_at = Column(UTCDateTime, nullable=True)
    response_deadline = Column(UTCDateTime, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)
    notes = Column(String(500), nullable=True)

    event = relationship("Event", back_populates="waitlist")

    def move_to(self, new_status: WaitlistStatus) -> None:
        if new_status not in WAITLIST_TRANSITIONS[self.status]:
            raise ValueError(f"Waitlist entry cannot move from {self.status.value} to {new_status.value}")
        self.status = new_status
