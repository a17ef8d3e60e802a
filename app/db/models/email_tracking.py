"""EmailTracking model: one row per recipient per send attempt."""
from datetime import datetime, timezone as tz
from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, Index

from app.db.base import Base
from app.core.constants import EMAIL_STATUS_SENT


def _now() -> datetime:
    return datetime.now(tz.utc)


class EmailTracking(Base):
    __tablename__ = "email_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tracking_key = Column(String(32), nullable=False, unique=True)  # uuid4 hex, embedded in pixel URL
    type = Column(String(32), nullable=False)
    subject_id = Column(String(36), nullable=False)  # poll id or notice id
    case_id = Column(String(64), nullable=True)
    participant_email = Column(String(320), nullable=False)
    participant_name = Column(String(200), nullable=True)
    email_subject = Column(String(300), nullable=True)
    external_id = Column(String(255), nullable=True)  # provider message id
    status = Column(String(16), nullable=False, default=EMAIL_STATUS_SENT)
    opened = Column(Boolean, nullable=False, default=False)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    voted_via_email = Column(Boolean, nullable=False, default=False)
    voted_via_email_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    has_attachment = Column(Boolean, nullable=False, default=False)
    attachment_name = Column(String(255), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        Index("idx_email_tracking_subject", "subject_id"),
        Index("idx_email_tracking_lookup", "type", "subject_id", "participant_email"),
        Index("idx_email_tracking_case", "case_id", "sent_at"),
    )
