"""Tracking ledger: lifecycle of every email sent to a participant.

Rows are appended per recipient per send attempt (a re-invite is a new
row, never an overwrite). Engagement events only move a row forward:
sent -> opened. Failed rows are terminal.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.constants import (
    EMAIL_STATUS_FAILED,
    EMAIL_STATUS_OPENED,
    EMAIL_STATUS_SENT,
    EMAIL_TYPE_POLL_INVITATION,
    EMAIL_TYPES,
)
from app.core.exceptions import InvalidRequestError, NotFoundError
from app.core.logging_config import get_logger
from app.core.sanitization import normalize_email
from app.core.utils import to_utc, utcnow
from app.db.models import EmailTracking, Notice, Poll
from app.services.stats import refresh_subject_stats
from app.services.utils import ensure_owner

logger = get_logger(__name__)


def new_tracking_key() -> str:
    """Unique key for one send; embedded in that email's pixel URL."""
    return uuid.uuid4().hex


@dataclass
class LedgerEntry:
    type: str
    subject_id: str
    participant_email: str
    status: str
    tracking_key: str
    case_id: Optional[str] = None
    participant_name: Optional[str] = None
    email_subject: Optional[str] = None
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    has_attachment: bool = False
    attachment_name: Optional[str] = None


def record_email(db: Session, entry: LedgerEntry, now: Optional[datetime] = None) -> EmailTracking:
    """Append one ledger row. Commits; storage errors propagate."""
    if entry.type not in EMAIL_TYPES:
        raise ValueError(f"Unknown email type: {entry.type}")
    if entry.status not in (EMAIL_STATUS_SENT, EMAIL_STATUS_FAILED):
        raise ValueError("New ledger entries must be 'sent' or 'failed'")

    timestamp = to_utc(now) if now else utcnow()
    record = EmailTracking(
        tracking_key=entry.tracking_key,
        type=entry.type,
        subject_id=entry.subject_id,
        case_id=entry.case_id,
        participant_email=normalize_email(entry.participant_email),
        participant_name=entry.participant_name or "",
        email_subject=entry.email_subject,
        external_id=entry.external_id,
        status=entry.status,
        opened=False,
        error_message=entry.error_message,
        retry_count=entry.retry_count,
        has_attachment=entry.has_attachment,
        attachment_name=entry.attachment_name,
        sent_at=timestamp,
        created_at=timestamp,
        updated_at=timestamp,
    )
    try:
        db.add(record)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    return record


def mark_opened(
    db: Session,
    email_type: str,
    subject_id: str,
    participant_email: str,
    tracking_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Record the first open of an email.

    With ``tracking_key`` the exact send is targeted; without it, the most
    recent unopened 'sent' row for (type, subject, participant). The
    transition itself is a conditional UPDATE, so duplicate or concurrent
    pixel fetches change opened_at at most once.

    Returns:
        True if this call performed the transition, False for a no-op.
    """
    email = normalize_email(participant_email)

    query = db.query(EmailTracking).filter(
        EmailTracking.type == email_type,
        EmailTracking.subject_id == subject_id,
        EmailTracking.participant_email == email,
    )
    if tracking_key:
        query = query.filter(EmailTracking.tracking_key == tracking_key)
    else:
        query = query.filter(
            EmailTracking.status == EMAIL_STATUS_SENT,
            EmailTracking.opened.is_(False),
        ).order_by(EmailTracking.created_at.desc(), EmailTracking.id.desc())

    record = query.first()
    if record is None:
        return False

    opened_at = to_utc(now) if now else utcnow()
    updated = db.query(EmailTracking).filter(
        EmailTracking.id == record.id,
        EmailTracking.status == EMAIL_STATUS_SENT,
        EmailTracking.opened.is_(False),
    ).update(
        {
            EmailTracking.status: EMAIL_STATUS_OPENED,
            EmailTracking.opened: True,
            EmailTracking.opened_at: opened_at,
            EmailTracking.updated_at: opened_at,
        },
        synchronize_session=False,
    )
    db.commit()

    if not updated:
        return False

    logger.info("email_opened", email_type=email_type, subject_id=subject_id, tracking_id=record.id)
    refresh_subject_stats(db, email_type, subject_id)
    return True


def mark_voted_via_email(
    db: Session,
    poll_id: str,
    participant_email: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Flag the participant's latest delivered invitation as voted-through.

    Idempotent: an already-flagged row keeps its first timestamp.

    Returns:
        True if a row was flagged by this call.
    """
    email = normalize_email(participant_email)

    record = db.query(EmailTracking).filter(
        EmailTracking.type == EMAIL_TYPE_POLL_INVITATION,
        EmailTracking.subject_id == poll_id,
        EmailTracking.participant_email == email,
        EmailTracking.status != EMAIL_STATUS_FAILED,
    ).order_by(EmailTracking.created_at.desc(), EmailTracking.id.desc()).first()

    if record is None or record.voted_via_email:
        return False

    voted_at = to_utc(now) if now else utcnow()
    updated = db.query(EmailTracking).filter(
        EmailTracking.id == record.id,
        EmailTracking.voted_via_email.is_(False),
    ).update(
        {
            EmailTracking.voted_via_email: True,
            EmailTracking.voted_via_email_at: voted_at,
            EmailTracking.updated_at: voted_at,
        },
        synchronize_session=False,
    )
    db.commit()
    return bool(updated)


def owned_by(acting_user: str):
    """Filter clause: ledger rows whose poll or notice belongs to ``acting_user``."""
    return or_(
        EmailTracking.subject_id.in_(select(Poll.id).where(Poll.created_by == acting_user)),
        EmailTracking.subject_id.in_(select(Notice.id).where(Notice.created_by == acting_user)),
    )


def ensure_subject_access(db: Session, subject_id: str, acting_user: str) -> None:
    """Raise unless ``subject_id`` is a poll or notice owned by ``acting_user``."""
    subject = db.query(Poll).filter(Poll.id == subject_id).first()
    if subject is None:
        subject = db.query(Notice).filter(Notice.id == subject_id).first()
    if subject is None:
        raise NotFoundError("Poll or notice not found")
    ensure_owner(subject, acting_user)


def list_records(
    db: Session,
    subject_id: Optional[str] = None,
    case_id: Optional[str] = None,
    email_type: Optional[str] = None,
    acting_user: Optional[str] = None,
) -> List[EmailTracking]:
    """
    Ledger rows, newest first. At least one of subject_id/case_id is required.

    With ``acting_user`` only rows for that user's polls and notices are returned.
    """
    if not subject_id and not case_id:
        raise InvalidRequestError("Subject ID or case ID is required")

    query = db.query(EmailTracking)
    if acting_user is not None:
        query = query.filter(owned_by(acting_user))
    if subject_id:
        query = query.filter(EmailTracking.subject_id == subject_id)
    if case_id:
        query = query.filter(EmailTracking.case_id == case_id)
    if email_type:
        query = query.filter(EmailTracking.type == email_type)

    return query.order_by(EmailTracking.sent_at.desc(), EmailTracking.id.desc()).all()


def get_record(db: Session, tracking_id: int) -> EmailTracking:
    record = db.query(EmailTracking).filter(EmailTracking.id == tracking_id).first()
    if record is None:
        raise NotFoundError("Tracking record not found")
    return record
