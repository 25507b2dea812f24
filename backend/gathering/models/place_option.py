"""EventPlaceOption ORM model: a candidate venue put up for the group vote."""
import uuid
import enum
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import (
    Column, String, Text, Float, Integer, Numeric, Boolean, JSON, ForeignKey, CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime, utcnow


class SuggestedBy(str, enum.Enum):
    organizer = "organizer"
    participant = "participant"
    ai = "ai"


@dataclass(frozen=True)
class InternalVenue:
    place_id: str

    @property
    def reference(self) -> str:
        return self.place_id


@dataclass(frozen=True)
class ExternalVenue:
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

    @property
    def reference(self) -> str:
        return f"{self.provider}:{self.external_place_id}"


Venue = Union[InternalVenue, ExternalVenue]

_EXTERNAL_FIELDS = (
    "name", "address", "latitude", "longitude", "rating", "total_reviews",
    "phone_number", "website", "photo_url", "category",
)


class EventPlaceOption(Base):
    __tablename__ = "event_place_options"
    __table_args__ = (
        CheckConstraint(
            "(place_id IS NOT NULL AND external_place_id IS NULL) OR "
            "(place_id IS NULL AND external_provider IS NOT NULL AND external_place_id IS NOT NULL)",
            name="ck_event_place_option_venue",
        ),
    )

    option_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    place_id = Column(String(36), nullable=True)
    suggested_by = Column(SAEnum(SuggestedBy), nullable=False, default=SuggestedBy.organizer)
    suggested_by_user_id = Column(String(36), nullable=True)

    ai_score = Column(Numeric(4, 2), nullable=True)
    ai_reasoning = Column(Text, nullable=True)
    pros = Column(JSON, nullable=True, default=list)
    cons = Column(JSON, nullable=True, default=list)
    estimated_cost_per_person = Column(Numeric(8, 2), nullable=True)
    availability_confirmed = Column(Boolean, nullable=False, default=False)
    added_at = Column(UTCDateTime, nullable=False, default=utcnow)

    external_provider = Column(String(50), nullable=True)
    external_place_id = Column(String(255), nullable=True)
    external_name = Column(String(200), nullable=True)
    external_address = Column(String(500), nullable=True)
    external_latitude = Column(Float, nullable=True)
    external_longitude = Column(Float, nullable=True)
    external_rating = Column(Numeric(3, 2), nullable=True)
    external_total_reviews = Column(Integer, nullable=True)
    external_phone_number = Column(String(20), nullable=True)
    external_website = Column(String(500), nullable=True)
    external_photo_url = Column(String(1000), nullable=True)
    external_category = Column(String(100), nullable=True)

    event = relationship("Event", back_populates="options")
    votes = relationship("EventVote", back_populates="option", cascade="all, delete-orphan")

    @property
    def venue(self) -> Venue:
        if self.place_id:
            return InternalVenue(place_id=self.place_id)
        return ExternalVenue(
            provider=self.external_provider,
            external_place_id=self.external_place_id,
            **{field: getattr(self, f"external_{field}") for field in _EXTERNAL_FIELDS},
        )

    @venue.setter
    def venue(self, venue: Venue) -> None:
        if isinstance(venue, InternalVenue):
            self.place_id = venue.place_id
            self.external_provider = None
            self.external_place_id = None
            for field in _EXTERNAL_FIELDS:
                setattr(self, f"external_{field}", None)
        else:
            self.place_id = None
            self.external_provider = venue.provider
            self.external_place_id = venue.external_place_id
            for field in _EXTERNAL_FIELDS:
                setattr(self, f"external_{field}", getattr(venue, field))

    @property
    def venue_reference(self) -> str:
        return self.venue.reference

