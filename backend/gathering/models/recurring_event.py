"""RecurringEvent ORM model: a template that spawns concrete events."""
import uuid
import enum
from sqlalchemy import Column, String, Text, Date, Time, Integer, Numeric, Boolean, JSON, Enum as SAEnum

from gathering.database import Base, UTCDateTime, utcnow


class RecurrencePattern(str, enum.Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class RecurringStatus(str, enum.Enum):
    active = "active"
    paused = "paused"
    completed = "completed"
    cancelled = "cancelled"


class RecurringEvent(Base):
    __tablename__ = "recurring_events"

    recurring_event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organizer_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(String(50), nullable=False, default="dining")

    pattern = Column(SAEnum(RecurrencePattern), nullable=False)
    days_of_week = Column(JSON, nullable=True)  # ["Monday", "Wednesday"]
    day_of_month = Column(Integer, nullable=True)  # 1-31, null = last day
    month = Column(Integer, nullable=True)  # 1-12
    day_of_year = Column(Integer, nullable=True)

    scheduled_time = Column(Time, nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")
    estimated_duration = Column(Integer, nullable=True)
    expected_attendees = Column(Integer, nullable=False, default=2)
    max_attendees = Column(Integer, nullable=True)
    budget_per_person = Column(Numeric(10, 2), nullable=True)
    acceptance_threshold = Column(Numeric(3, 2), nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    occurrence_count = Column(Integer, nullable=True)

    status = Column(SAEnum(RecurringStatus), nullable=False, default=RecurringStatus.active)
    auto_create_events = Column(Boolean, nullable=False, default=True)
    days_in_advance = Column(Integer, nullable=False, default=7)
    last_generated_at = Column(UTCDateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version}
