"""Pydantic schemas for recurring-event templates."""
from __future__ import annotations
from datetime import date, datetime, time
from typing import Optional
from pydantic import BaseModel

from gathering.models.recurring_event import RecurrencePattern, RecurringStatus


class RecurringEventCreate(BaseModel):
    organizer_id: str
    title: str
    description: Optional[str] = None
    event_type: str = "dining"
    pattern: RecurrencePattern
    days_of_week: Optional[list[str]] = None
    day_of_month: Optional[int] = None
    month: Optional[int] = None
    day_of_year: Optional[int] = None
    scheduled_time: time
    timezone: str = "UTC"
    estimated_duration: Optional[int] = None
    expected_attendees: int = 2
    max_attendees: Optional[int] = None
    budget_per_person: Optional[float] = None
    acceptance_threshold: Optional[float] = None
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = None
    auto_create_events: bool = True
    days_in_advance: int = 7


class RecurringEventOut(BaseModel):
    recurring_event_id: str
    organizer_id: str
    title: str
    description: Optional[str] = None
    event_type: str
    pattern: RecurrencePattern
    days_of_week: Optional[list[str]] = None
    day_of_month: Optional[int] = None
    month: Optional[int] = None
    day_of_year: Optional[int] = None
    scheduled_time: time
    timezone: str
    start_date: date
    end_date: Optional[date] = None
    occurrence_count: Optional[int] = None
    status: RecurringStatus
    auto_create_events: bool
    days_in_advance: int
    last_generated_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RecurringActionRequest(BaseModel):
    actor_id: str
