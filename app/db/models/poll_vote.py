"""PollVote model."""
from datetime import datetime, timezone as tz
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base


class PollVote(Base):
    __tablename__ = "poll_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    poll_id = Column(String(36), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False)
    option_id = Column(String(36), ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False)
    participant_email = Column(String(320), nullable=False)
    vote_type = Column(String(12), nullable=False)
    source = Column(String(32), nullable=False, default="email")
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(tz.utc))

    # Relationships
    poll = relationship("Poll", back_populates="votes")

    __table_args__ = (
        Index("idx_poll_votes_poll", "poll_id"),
        Index("idx_poll_votes_participant", "poll_id", "participant_email"),
        UniqueConstraint("poll_id", "participant_email", "option_id", name="uq_poll_participant_option"),
    )
