"""Event ORM model: one occurrence of a planned gathering."""
import uuid
import enum
from datetime import datetime, timedelta

import pytz
from sqlalchemy import (
    Column, String, Text, Date, Time, Integer, Numeric, JSON, ForeignKey, Enum as SAEnum,
)
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime, utcnow


class EventStatus(str, enum.Enum):
    planning = "Planning"
    voting = "Voting"
    confirmed = "Confirmed"
    cancelled = "Cancelled"
    completed = "Completed"


TERMINAL_STATUSES = (EventStatus.cancelled, EventStatus.completed)


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organizer_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=False, default="dining")
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.planning, index=True)

    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(Time, nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")  # IANA tz
    estimated_duration = Column(Integer, nullable=True)  # minutes

    expected_attendees = Column(Integer, nullable=False, default=2)
    max_attendees = Column(Integer, nullable=True)
    budget_per_person = Column(Numeric(10, 2), nullable=True)
    acceptance_threshold = Column(Numeric(3, 2), nullable=True)

    voting_deadline = Column(UTCDateTime, nullable=True)
    rsvp_deadline = Column(UTCDateTime, nullable=True)
    acceptance_unresolved_at = Column(UTCDateTime, nullable=True)

    final_option_id = Column(String(36), nullable=True)
    final_place_id = Column(String(300), nullable=True)

    recurring_event_id = Column(String(36), ForeignKey("recurring_events.recurring_event_id"), nullable=True, index=True)
    occurrence_key = Column(String(64), nullable=True, unique=True)
    template_id = Column(String(36), nullable=True)

    # Rescheduling
    previous_scheduled_date = Column(Date, nullable=True)
    previous_scheduled_time = Column(Time, nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)
    last_rescheduled_at = Column(UTCDateTime, nullable=True)
    reschedule_reason = Column(String(500), nullable=True)

    # External AI recommendation job
    ai_analysis_started_at = Column(UTCDateTime, nullable=True)
    ai_analysis_updated_at = Column(UTCDateTime, nullable=True)
    ai_analysis_progress = Column(JSON, nullable=True)

    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by_user_id = Column(String(36), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version}

    options = relationship(
        "EventPlaceOption", back_populates="event", cascade="all, delete-orphan",
        order_by="EventPlaceOption.added_at",
    )
    votes = relationship("EventVote", back_populates="event", cascade="all, delete-orphan")
    participants = relationship("EventParticipant", back_populates="event", cascade="all, delete-orphan")
    waitlist = relationship(
        "EventWaitlist", back_populates="event", cascade="all, delete-orphan",
        order_by="EventWaitlist.priority",
    )
    check_ins = relationship("EventCheckIn", back_populates="event", cascade="all, delete-orphan")
    audit_logs = relationship(
        "EventAuditLog", back_populates="event", cascade="all, delete-orphan",
        order_by="EventAuditLog.log_id",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def scheduled_at(self) -> datetime:
        """The scheduled start as an aware UTC instant, resolved in the event's own timezone."""
        tz = pytz.timezone(self.timezone or "UTC")
        local = tz.localize(datetime.combine(self.scheduled_date, self.scheduled_time))
        return local.astimezone(pytz.utc)

    def ends_at(self, default_duration_minutes: int) -> datetime:
        minutes = self.estimated_duration or default_duration_minutes
        return self.scheduled_at + timedelta(minutes=minutes)

    def touch(self) -> None:
        """Mark the event row dirty so the flush runs the version check."""
        self.updated_at = utcnow()
