"""Email tracking endpoints: statistics, ledger listing and manual retry."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_delivery_engine, get_settings, http_error
from app.core.constants import EMAIL_TYPES
from app.core.rate_limit import RATE_LIMITS, limiter
from app.core.utils import isoformat_or_none
from app.mail.delivery import DeliveryEngine
from app.schemas import EmailStats, RetryResult, TrackingRecordOut
from app.services.invitations import retry_failed_email
from app.services.stats import compute_stats, get_stats
from app.services.tracking import ensure_subject_access, list_records

logger = logging.getLogger(__name__)
router = APIRouter()


def _serialize_record(record) -> dict:
    return {
        "id": record.id,
        "type": record.type,
        "subject_id": record.subject_id,
        "case_id": record.case_id,
        "participant_email": record.participant_email,
        "participant_name": record.participant_name,
        "email_subject": record.email_subject,
        "external_id": record.external_id,
        "status": record.status,
        "opened": record.opened,
        "opened_at": isoformat_or_none(record.opened_at),
        "voted_via_email": record.voted_via_email,
        "voted_via_email_at": isoformat_or_none(record.voted_via_email_at),
        "error_message": record.error_message,
        "retry_count": record.retry_count,
        "has_attachment": record.has_attachment,
        "attachment_name": record.attachment_name,
        "sent_at": isoformat_or_none(record.sent_at),
    }


@router.get("/stats/{subject_id}", response_model=EmailStats)
@limiter.limit(RATE_LIMITS["mediator_read"])
async def subject_stats_endpoint(
    request: Request,
    subject_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """
    Email statistics for one poll or notice.

    Always recomputed from the ledger; never served from the stored counters.

    Example:
        Response (200):
            {
                "total": 4, "sent": 1, "delivered": 3, "opened": 2, "failed": 1, "voted": 1,
                "delivery_rate": 75.0, "open_rate": 66.7,
                "by_type": {"poll_invitation": {...}}
            }
    """
    try:
        ensure_subject_access(db, subject_id, acting_user)
        return get_stats(db, subject_id)
    except ValueError as e:
        raise http_error(e)


@router.get("/cases/{case_id}/stats", response_model=EmailStats)
@limiter.limit(RATE_LIMITS["mediator_read"])
async def case_stats_endpoint(
    request: Request,
    case_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """Statistics across every poll and notice email the caller sent for a case."""
    return compute_stats(list_records(db, case_id=case_id, acting_user=acting_user))


@router.get("/records", response_model=List[TrackingRecordOut])
@limiter.limit(RATE_LIMITS["mediator_read"])
async def list_records_endpoint(
    request: Request,
    subject_id: Optional[str] = None,
    case_id: Optional[str] = None,
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """Ledger rows, newest first, by poll/notice id and/or case id."""
    if type is not None and type not in EMAIL_TYPES:
        raise HTTPException(status_code=400, detail="Unknown email type")
    try:
        if subject_id:
            ensure_subject_access(db, subject_id, acting_user)
        records = list_records(
            db, subject_id=subject_id, case_id=case_id, email_type=type, acting_user=acting_user
        )
    except ValueError as e:
        raise http_error(e)

    return [_serialize_record(record) for record in records]


@router.post("/{tracking_id}/retry", response_model=RetryResult)
@limiter.limit(RATE_LIMITS["send_email"])
def retry_email_endpoint(
    request: Request,
    tracking_id: int,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
    engine: DeliveryEngine = Depends(get_delivery_engine),
    settings=Depends(get_settings),
):
    """
    Re-send one failed email.

    Allowed while the failed row has fewer than MAX_MANUAL_RETRIES retries.
    The outcome is recorded as a new ledger row; a failed re-send is still a
    200 with ``success: false``.

    Runs in the threadpool; delivery blocks on SMTP and retry backoff.
    """
    try:
        return retry_failed_email(db, tracking_id, acting_user, engine, settings)
    except ValueError as e:
        raise http_error(e)
