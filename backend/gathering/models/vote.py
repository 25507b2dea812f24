"""EventVote ORM model: one participant's vote on one candidate option."""
import uuid
from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from gathering.database import Base, UTCDateTime, utcnow


class EventVote(Base):
    __tablename__ = "event_votes"
    __table_args__ = (
        UniqueConstraint("event_id", "option_id", "voter_id", name="uq_event_vote_option_voter"),
    )

    vote_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    option_id = Column(String(36), ForeignKey("event_place_options.option_id", ondelete="CASCADE"), nullable=False)
    voter_id = Column(String(36), nullable=False)
    vote_value = Column(Integer, nullable=True)
    comment = Column(String(1000), nullable=True)
    voted_at = Column(UTCDateTime, nullable=False, default=utcnow)

    event = relationship("Event", back_populates="votes")
    option = relationship("EventPlaceOption", back_populates="votes")
