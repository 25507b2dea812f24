"""EventParticipant ORM model: membership plus RSVP state."""
import uuid
import enum
from sqlalchemy import Column, String, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime, utcnow


class InvitationStatus(str, enum.Enum):
    pending = "Pending"
    accepted = "Accepted"
    declined = "Declined"
    waitlisted = "Waitlisted"


class EventParticipant(Base):
    __tablename__ = "event_participants"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participant_user"),
    )

    participant_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    invitation_status = Column(SAEnum(InvitationStatus), nullable=False, default=InvitationStatus.pending)
    invited_by = Column(String(36), nullable=True)
    invited_at = Column(UTCDateTime, nullable=False, default=utcnow)
    rsvp_date = Column(UTCDateTime, nullable=True)
    reminder_sent_at = Column(UTCDateTime, nullable=True)
    one_hour_reminder_sent_at = Column(UTCDateTime, nullable=True)

    event = relationship("Event", back_populates="participants")
