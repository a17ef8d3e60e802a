"""VotingToken model."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base


class VotingToken(Base):
    __tablename__ = "voting_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    poll_id = Column(String(36), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False)
    participant_email = Column(String(320), nullable=False)  # normalized
    token_hash = Column(String(64), nullable=False)  # HMAC-SHA256 output (64 hex chars)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    poll = relationship("Poll", back_populates="tokens")

    __table_args__ = (
        UniqueConstraint("poll_id", "participant_email", name="uq_voting_token_poll_participant"),
    )
