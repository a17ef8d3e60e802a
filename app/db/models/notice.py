"""Mediation notice models."""
import uuid
from datetime import datetime, timezone as tz
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.core.constants import NOTICE_STATUS_DRAFT


def _now() -> datetime:
    return datetime.now(tz.utc)


class Notice(Base):
    __tablename__ = "notices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    case_id = Column(String(64), nullable=True)
    case_name = Column(String(200), nullable=True)
    case_number = Column(String(100), nullable=True)
    mediator_name = Column(String(200), nullable=True)
    notice_type = Column(String(20), nullable=False, default="scheduled")
    mediation_date = Column(String(10), nullable=True)  # YYYY-MM-DD
    mediation_time = Column(String(5), nullable=True)   # HH:MM
    location = Column(String(300), nullable=True)
    notes = Column(Text, nullable=True)
    pdf_file_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=NOTICE_STATUS_DRAFT)
    created_by = Column(String(128), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    # Derived from email_tracking; written only by services.stats.refresh_subject_stats
    emails_sent = Column(Integer, nullable=False, default=0)
    emails_opened = Column(Integer, nullable=False, default=0)
    emails_failed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    participants = relationship(
        "NoticeParticipant", back_populates="notice", cascade="all, delete-orphan",
        order_by="NoticeParticipant.id",
    )

    __table_args__ = (Index("idx_notices_case_created", "case_id", "created_at"),)


class NoticeParticipant(Base):
    __tablename__ = "notice_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notice_id = Column(String(36), ForeignKey("notices.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(320), nullable=False)  # normalized
    name = Column(String(200), nullable=True)

    notice = relationship("Notice", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("notice_id", "email", name="uq_notice_participant"),
    )
