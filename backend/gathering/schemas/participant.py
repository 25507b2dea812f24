"""Pydantic schemas for invitations, RSVPs, the waitlist and check-ins."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from gathering.models.check_in import CheckInMethod
from gathering.models.participant import InvitationStatus
from gathering.models.waitlist import WaitlistStatus
from gathering.schemas.event import ParticipantOut


class InviteRequest(BaseModel):
    actor_id: str
    user_ids: list[str] = Field(..., min_length=1)
    strict: bool = False


class RsvpRequest(BaseModel):
    user_id: str
    status: InvitationStatus
    waitlist_priority: Optional[int] = None


class WaitlistOut(BaseModel):
    waitlist_id: str
    user_id: str
    status: WaitlistStatus
    priority: int
    joined_at: datetime
    notified_at: Optional[datetime] = None
    response_deadline: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RsvpOut(BaseModel):
    participant: ParticipantOut
    waitlisted: bool
    waitlist_entry: Optional[WaitlistOut] = None
    promoted: Optional[WaitlistOut] = None

    model_config = {"from_attributes": True}


class PromotionResponse(BaseModel):
    user_id: str
    accept: bool


class PromotionOut(BaseModel):
    entry: WaitlistOut
    accepted: bool
    expired: bool
    promoted: Optional[WaitlistOut] = None

    model_config = {"from_attributes": True}


class CheckInCreate(BaseModel):
    user_id: str
    method: CheckInMethod = CheckInMethod.manual
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class CheckInOut(BaseModel):
    check_in_id: str
    event_id: str
    user_id: str
    checked_in_at: Optional[datetime] = None
    method: Optional[CheckInMethod] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_no_show: bool

    model_config = {"from_attributes": True}
