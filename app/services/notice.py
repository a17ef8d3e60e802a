"""Mediation notice business logic."""
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.constants import NOTICE_STATUS_DRAFT, NOTICE_TYPES
from app.core.exceptions import InvalidRequestError, NotFoundError
from app.core.logging_config import get_logger
from app.core.sanitization import MAX_TEXT_LENGTH, normalize_email, sanitize_text
from app.core.utils import isoformat_or_none
from app.db.models import EmailTracking, Notice, NoticeParticipant
from app.services.utils import ensure_owner

logger = get_logger(__name__)

EDITABLE_FIELDS = (
    "case_id", "case_name", "case_number", "mediator_name",
    "mediation_date", "mediation_time", "pdf_file_name",
)


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return sanitize_text(value, max_length=MAX_TEXT_LENGTH) or None


def _check_type(notice_type: str) -> str:
    if notice_type not in NOTICE_TYPES:
        raise InvalidRequestError(f"Notice type must be one of: {', '.join(NOTICE_TYPES)}")
    return notice_type


def _build_participants(participants: Iterable[Dict]) -> List[NoticeParticipant]:
    seen = {}
    for participant in participants:
        email = normalize_email(participant["email"])
        if email not in seen:
            seen[email] = NoticeParticipant(email=email, name=_clean_optional(participant.get("name")) or "")
    return list(seen.values())


def serialize_notice(notice: Notice) -> Dict:
    return {
        "id": notice.id,
        "case_id": notice.case_id,
        "case_name": notice.case_name,
        "case_number": notice.case_number,
        "mediator_name": notice.mediator_name,
        "notice_type": notice.notice_type,
        "mediation_date": notice.mediation_date,
        "mediation_time": notice.mediation_time,
        "location": notice.location,
        "notes": notice.notes,
        "pdf_file_name": notice.pdf_file_name,
        "status": notice.status,
        "created_by": notice.created_by,
        "sent_at": isoformat_or_none(notice.sent_at),
        "emails_sent": notice.emails_sent,
        "emails_opened": notice.emails_opened,
        "emails_failed": notice.emails_failed,
        "created_at": isoformat_or_none(notice.created_at),
        "updated_at": isoformat_or_none(notice.updated_at),
        "participants": [{"email": p.email, "name": p.name} for p in notice.participants],
    }


def create_notice(db: Session, acting_user: str, data: Dict) -> Notice:
    notice = Notice(
        notice_type=_check_type(data.get("notice_type") or "scheduled"),
        location=_clean_optional(data.get("location")),
        notes=_clean_optional(data.get("notes")),
        status=NOTICE_STATUS_DRAFT,
        created_by=acting_user,
        **{field: data.get(field) for field in EDITABLE_FIELDS},
    )
    notice.participants = _build_participants(data.get("participants") or [])

    try:
        db.add(notice)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(notice)

    logger.info("notice_created", notice_id=notice.id, created_by=acting_user, notice_type=notice.notice_type)
    return notice


def get_notice(db: Session, notice_id: str, acting_user: Optional[str] = None) -> Notice:
    notice = db.query(Notice).filter(Notice.id == notice_id).first()
    if not notice:
        raise NotFoundError("Notice not found")
    if acting_user is not None:
        ensure_owner(notice, acting_user)
    return notice


def get_notices_for_user(db: Session, acting_user: str) -> List[Notice]:
    return db.query(Notice).filter(
        Notice.created_by == acting_user
    ).order_by(Notice.created_at.desc()).all()


def get_notices_for_case(db: Session, case_id: str, acting_user: str) -> List[Notice]:
    return db.query(Notice).filter(
        Notice.case_id == case_id,
        Notice.created_by == acting_user,
    ).order_by(Notice.created_at.desc()).all()


def update_notice(db: Session, notice_id: str, acting_user: str, changes: Dict) -> Notice:
    """Edit a notice. Sent notices may still be corrected and re-sent."""
    notice = get_notice(db, notice_id, acting_user)

    if changes.get("notice_type") is not None:
        notice.notice_type = _check_type(changes["notice_type"])
    for field in ("location", "notes"):
        if field in changes:
            setattr(notice, field, _clean_optional(changes[field]))
    for field in EDITABLE_FIELDS:
        if field in changes:
            setattr(notice, field, changes[field])
    if changes.get("participants") is not None:
        notice.participants = []
        db.flush()
        notice.participants = _build_participants(changes["participants"])

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(notice)
    return notice


def delete_notice(db: Session, notice_id: str, acting_user: str) -> None:
    """Delete a notice and its tracking records."""
    notice = get_notice(db, notice_id, acting_user)
    try:
        db.query(EmailTracking).filter(EmailTracking.subject_id == notice_id).delete(synchronize_session=False)
        db.delete(notice)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("notice_deleted", notice_id=notice_id, deleted_by=acting_user)
