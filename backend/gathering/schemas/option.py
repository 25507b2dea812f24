"""Pydantic schemas for candidate options, votes and tallies."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, model_validator

from gathering.models.place_option import SuggestedBy
from gathering.models.event import EventStatus


class ExternalVenueIn(BaseModel):
    provider: str
    external_place_id: str
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    rating: Optional[float] = None
    total_reviews: Optional[int] = None
    phone_number: Optional[str] = None
    website: Optional[str] = None
    photo_url: Optional[str] = None
    category: Optional[str] = None


class OptionCreate(BaseModel):
    actor_id: str
    place_id: Optional[str] = None
    external: Optional[ExternalVenueIn] = None
    estimated_cost_per_person: Optional[float] = None
    suggested_by: Optional[SuggestedBy] = None

    @model_validator(mode="after")
    def _exactly_one_venue(self):
        if (self.place_id is None) == (self.external is None):
            raise ValueError("Provide exactly one of place_id or external")
        return self


class OptionOut(BaseModel):
    option_id: str
    event_id: str
    place_id: Optional[str] = None
    venue_reference: str
    suggested_by: SuggestedBy
    suggested_by_user_id: Optional[str] = None
    ai_score: Optional[float] = None
    ai_reasoning: Optional[str] = None
    pros: Optional[list[str]] = None
    cons: Optional[list[str]] = None
    estimated_cost_per_person: Optional[float] = None
    added_at: datetime
    external_provider: Optional[str] = None
    external_place_id: Optional[str] = None
    external_name: Optional[str] = None
    external_address: Optional[str] = None
    external_latitude: Optional[float] = None
    external_longitude: Optional[float] = None
    external_rating: Optional[float] = None
    external_category: Optional[str] = None

    model_config = {"from_attributes": True}


class VoteCreate(BaseModel):
    option_id: str
    voter_id: str
    vote_value: Optional[int] = None
    comment: Optional[str] = None


class VoteOut(BaseModel):
    vote_id: str
    event_id: str
    option_id: str
    voter_id: str
    vote_value: Optional[int] = None
    comment: Optional[str] = None
    voted_at: datetime

    model_config = {"from_attributes": True}


class OptionTallyOut(BaseModel):
    option_id: str
    participant_count: int
    score: float

    model_config = {"from_attributes": True}


class OutcomeOut(BaseModel):
    decision: str
    option_id: Optional[str] = None
    score: float
    participant_count: int
    quorum: int
    threshold: float
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class VoteResultOut(BaseModel):
    vote: VoteOut
    event_status: EventStatus
    final_place_id: Optional[str] = None
    outcome: Optional[OutcomeOut] = None


class TallyOut(BaseModel):
    event_id: str
    event_status: EventStatus
    options: list[OptionTallyOut]
    outcome: OutcomeOut


class DecisionOut(BaseModel):
    event_id: str
    event_status: EventStatus
    final_option_id: Optional[str] = None
    final_place_id: Optional[str] = None
    overridden: bool
    outcome: OutcomeOut
