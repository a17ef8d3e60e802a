"""Poll, option and participant models."""
import uuid
from datetime import datetime, timezone as tz
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.core.constants import POLL_STATUS_DRAFT


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(tz.utc)


class Poll(Base):
    __tablename__ = "polls"

    id = Column(String(36), primary_key=True, default=_uuid)
    case_id = Column(String(64), nullable=True, index=True)
    case_name = Column(String(200), nullable=True)
    case_number = Column(String(100), nullable=True)
    mediator_name = Column(String(200), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(300), nullable=True)
    status = Column(String(20), nullable=False, default=POLL_STATUS_DRAFT)
    created_by = Column(String(128), nullable=False, index=True)
    selected_option_id = Column(String(36), nullable=True)
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    invitations_sent_at = Column(DateTime(timezone=True), nullable=True)

    # Derived from email_tracking; written only by services.stats.refresh_subject_stats
    emails_sent = Column(Integer, nullable=False, default=0)
    emails_opened = Column(Integer, nullable=False, default=0)
    emails_failed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    # Relationships
    options = relationship(
        "PollOption", back_populates="poll", cascade="all, delete-orphan",
        order_by="PollOption.position",
    )
    participants = relationship(
        "PollParticipant", back_populates="poll", cascade="all, delete-orphan",
        order_by="PollParticipant.id",
    )
    votes = relationship("PollVote", back_populates="poll", cascade="all, delete-orphan")
    tokens = relationship("VotingToken", back_populates="poll", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_polls_creator_created", "created_by", "created_at"),)


class PollOption(Base):
    __tablename__ = "poll_options"

    id = Column(String(36), primary_key=True, default=_uuid)
    poll_id = Column(String(36), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    date = Column(String(10), nullable=False)  # ISO date, YYYY-MM-DD
    time = Column(String(5), nullable=False)   # 24h clock, HH:MM
    duration_minutes = Column(Integer, nullable=False, default=60)
    location = Column(String(300), nullable=True)

    poll = relationship("Poll", back_populates="options")

    __table_args__ = (
        Index("idx_poll_options_poll", "poll_id"),
        UniqueConstraint("poll_id", "position", name="uq_poll_option_position"),
    )


class PollParticipant(Base):
    __tablename__ = "poll_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    poll_id = Column(String(36), ForeignKey("polls.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(320), nullable=False)  # normalized
    name = Column(String(200), nullable=True)

    poll = relationship("Poll", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("poll_id", "email", name="uq_poll_participant"),
    )
