"""Aggregation reporter: email statistics recomputed from the ledger."""
from typing import Dict, Iterable

from sqlalchemy.orm import Session

from app.core.constants import (
    EMAIL_STATUS_FAILED,
    EMAIL_STATUS_OPENED,
    EMAIL_STATUS_SENT,
    EMAIL_TYPE_MEDIATION_NOTICE,
    EMAIL_TYPE_POLL_INVITATION,
)
from app.core.logging_config import get_logger
from app.core.utils import percentage
from app.db.models import EmailTracking, Notice, Poll

logger = get_logger(__name__)


def _count(records) -> Dict[str, int]:
    sent = sum(1 for r in records if r.status == EMAIL_STATUS_SENT)
    opened = sum(1 for r in records if r.status == EMAIL_STATUS_OPENED)
    failed = sum(1 for r in records if r.status == EMAIL_STATUS_FAILED)
    return {
        "total": len(records),
        "sent": sent,
        "delivered": sent + opened,
        "opened": opened,
        "failed": failed,
        "voted": sum(1 for r in records if r.voted_via_email),
    }


def compute_stats(records: Iterable) -> Dict:
    """
    Roll up a set of tracking records.

    Pure function of its input: no database access, no cached counters.

    Returns:
        Dict with total/sent/delivered/opened/failed/voted counts,
        delivery_rate (delivered/total) and open_rate (opened/delivered)
        as percentages, and the same counts grouped under by_type.
    """
    records = list(records)
    stats = _count(records)

    by_type: Dict[str, Dict[str, int]] = {}
    for email_type in sorted({r.type for r in records}):
        by_type[email_type] = _count([r for r in records if r.type == email_type])

    stats["delivery_rate"] = percentage(stats["delivered"], stats["total"])
    stats["open_rate"] = percentage(stats["opened"], stats["delivered"])
    stats["by_type"] = by_type
    return stats


def get_stats(db: Session, subject_id: str) -> Dict:
    """Stats for one poll or notice, read fresh from the ledger."""
    records = db.query(EmailTracking).filter(EmailTracking.subject_id == subject_id).all()
    return compute_stats(records)


def get_case_stats(db: Session, case_id: str) -> Dict:
    """Stats across every poll and notice email sent for a case."""
    records = db.query(EmailTracking).filter(EmailTracking.case_id == case_id).all()
    return compute_stats(records)


def refresh_subject_stats(db: Session, email_type: str, subject_id: str) -> Dict:
    """
    Recompute and store the derived email counters on a poll or notice.

    This is the only code path that writes emails_sent / emails_opened /
    emails_failed. Commits.
    """
    stats = get_stats(db, subject_id)

    if email_type == EMAIL_TYPE_POLL_INVITATION:
        subject = db.query(Poll).filter(Poll.id == subject_id).first()
    elif email_type == EMAIL_TYPE_MEDIATION_NOTICE:
        subject = db.query(Notice).filter(Notice.id == subject_id).first()
    else:
        raise ValueError(f"Unknown email type: {email_type}")

    if subject is None:
        logger.warning("stats_subject_missing", email_type=email_type, subject_id=subject_id)
        return stats

    subject.emails_sent = stats["delivered"]
    subject.emails_opened = stats["opened"]
    subject.emails_failed = stats["failed"]
    db.commit()
    return stats
