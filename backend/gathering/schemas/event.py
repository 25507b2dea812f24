"""Pydantic schemas for Events and their lifecycle commands."""
from __future__ import annotations
from datetime import date, datetime, time
from typing import Any, Optional
from pydantic import BaseModel, Field

from gathering.models.event import EventStatus
from gathering.models.participant import InvitationStatus


class EventCreate(BaseModel):
    organizer_id: str
    title: str
    description: Optional[str] = None
    event_type: str = "dining"
    scheduled_date: date
    scheduled_time: time
    timezone: str = "UTC"
    estimated_duration: Optional[int] = Field(None, gt=0)
    expected_attendees: int = 2
    max_attendees: Optional[int] = None
    budget_per_person: Optional[float] = None
    acceptance_threshold: Optional[float] = None
    rsvp_deadline: Optional[datetime] = None
    invitee_ids: list[str] = []


class ParticipantOut(BaseModel):
    user_id: str
    invitation_status: InvitationStatus
    invited_by: Optional[str] = None
    invited_at: datetime
    rsvp_date: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EventOut(BaseModel):
    event_id: str
    organizer_id: str
    title: str
    description: Optional[str] = None
    event_type: str
    status: EventStatus
    scheduled_date: date
    scheduled_time: time
    timezone: str
    estimated_duration: Optional[int] = None
    expected_attendees: int
    max_attendees: Optional[int] = None
    budget_per_person: Optional[float] = None
    acceptance_threshold: Optional[float] = None
    voting_deadline: Optional[datetime] = None
    rsvp_deadline: Optional[datetime] = None
    acceptance_unresolved_at: Optional[datetime] = None
    final_option_id: Optional[str] = None
    final_place_id: Optional[str] = None
    recurring_event_id: Optional[str] = None
    template_id: Optional[str] = None
    previous_scheduled_date: Optional[date] = None
    previous_scheduled_time: Optional[time] = None
    reschedule_count: int
    last_rescheduled_at: Optional[datetime] = None
    reschedule_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_user_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    participants: list[ParticipantOut] = []

    model_config = {"from_attributes": True}


class OpenVotingRequest(BaseModel):
    actor_id: str
    voting_deadline: Optional[datetime] = None
    version: Optional[int] = None


class ForceDecisionRequest(BaseModel):
    actor_id: str
    option_id: Optional[str] = None
    reason: Optional[str] = None


class RescheduleRequest(BaseModel):
    actor_id: str
    new_date: date
    new_time: time
    reason: str
    version: Optional[int] = None


class CancelRequest(BaseModel):
    actor_id: str
    reason: str
    version: Optional[int] = None


class CompleteRequest(BaseModel):
    actor_id: str
    version: Optional[int] = None


class AuditLogOut(BaseModel):
    log_id: int
    event_id: str
    old_status: EventStatus
    new_status: EventStatus
    changed_by: Optional[str] = None
    reason: str
    additional_data: dict[str, Any] = {}
    changed_at: datetime

    model_config = {"from_attributes": True}
