"""EventCheckIn ORM model: attendance record."""
import uuid
import enum
from sqlalchemy import Column, String, Float, Boolean, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime


class CheckInMethod(str, enum.Enum):
    manual = "manual"
    qr = "qr"
    geo = "geo"


class EventCheckIn(Base):
    __tablename__ = "event_check_ins"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_check_in_user"),
    )

    check_in_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    checked_in_at = Column(UTCDateTime, nullable=True)
    method = Column(SAEnum(CheckInMethod), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_no_show = Column(Boolean, nullable=False, default=False)

    event = relationship("Event", back_populates="check_ins")
