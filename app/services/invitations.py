"""Outbound email pipelines: poll invitations, mediation notices, manual retries.

Each pipeline runs the delivery engine's per-recipient sequence
(mint token -> render -> send -> record). The engine isolates failures,
so a bad address never stops the rest of the batch; the caller gets a
per-recipient breakdown instead of an exception.
"""
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.constants import (
    EMAIL_STATUS_FAILED,
    EMAIL_STATUS_SENT,
    EMAIL_TYPE_MEDIATION_NOTICE,
    EMAIL_TYPE_POLL_INVITATION,
    NOTICE_STATUS_FAILED,
    NOTICE_STATUS_SENT,
    POLL_STATUS_ACTIVE,
    POLL_STATUS_DRAFT,
    POLL_STATUS_FINALIZED,
)
from app.core.exceptions import InvalidRequestError, PollStateError, RetryNotAllowedError
from app.core.logging_config import get_logger
from app.core.utils import utcnow
from app.mail.delivery import BulkSendResult, DeliveryEngine, DeliveryOutcome, PreparedMessage, Recipient
from app.mail.rendering import (
    build_tracking_url,
    build_vote_action_url,
    build_vote_url,
    invitation_subject,
    notice_subject,
    render_mediation_notice,
    render_poll_invitation,
)
from app.mail.transport import EmailAttachment, EmailMessage
from app.services.notice import get_notice
from app.services.poll import get_poll
from app.services.stats import refresh_subject_stats
from app.services.tokens import issue_token
from app.services.tracking import LedgerEntry, get_record, new_tracking_key, record_email
from app.services.utils import run_best_effort

logger = get_logger(__name__)


def _invitation_preparer(db: Session, poll, settings) -> Callable[[Recipient], PreparedMessage]:
    options = list(poll.options)

    def prepare(recipient: Recipient) -> PreparedMessage:
        try:
            token = issue_token(db, poll.id, recipient.email)
        except Exception:
            db.rollback()
            raise
        tracking_key = new_tracking_key()
        html = render_poll_invitation(
            poll,
            options,
            recipient,
            token=token,
            vote_url=build_vote_url(settings.FRONTEND_URL, poll.id, recipient.email, token),
            vote_action_url=build_vote_action_url(settings.BASE_URL),
            tracking_url=build_tracking_url(
                settings.BASE_URL, EMAIL_TYPE_POLL_INVITATION, poll.id, recipient.email,
                token=token, tracking_key=tracking_key,
            ),
            token_ttl_days=settings.VOTING_TOKEN_TTL_DAYS,
        )
        message = EmailMessage(
            sender=settings.email_sender,
            recipients=[recipient.email],
            subject=invitation_subject(poll),
            html=html,
            headers={"X-Poll-ID": poll.id, "X-Email-Type": EMAIL_TYPE_POLL_INVITATION},
        )
        return PreparedMessage(message=message, context={"tracking_key": tracking_key})

    return prepare


def _notice_preparer(notice, settings, attachments: List[EmailAttachment]) -> Callable[[Recipient], PreparedMessage]:
    attachment_name = attachments[0].filename if attachments else None

    def prepare(recipient: Recipient) -> PreparedMessage:
        tracking_key = new_tracking_key()
        html = render_mediation_notice(
            notice,
            recipient,
            tracking_url=build_tracking_url(
                settings.BASE_URL, EMAIL_TYPE_MEDIATION_NOTICE, notice.id, recipient.email,
                tracking_key=tracking_key,
            ),
            attachment_name=attachment_name,
            sent_at=utcnow(),
        )
        message = EmailMessage(
            sender=settings.email_sender,
            recipients=[recipient.email],
            subject=notice_subject(notice),
            html=html,
            attachments=list(attachments),
            headers={"X-Notice-ID": notice.id, "X-Email-Type": EMAIL_TYPE_MEDIATION_NOTICE},
        )
        return PreparedMessage(message=message, context={"tracking_key": tracking_key})

    return prepare


def _ledger_recorder(db: Session, email_type: str, subject, retry_count: int = 0) -> Callable[[DeliveryOutcome], None]:
    def record(outcome: DeliveryOutcome) -> None:
        context = outcome.context or {}
        message = outcome.message
        attachments = message.attachments if message else []
        entry = LedgerEntry(
            type=email_type,
            subject_id=subject.id,
            case_id=subject.case_id,
            participant_email=outcome.recipient.email,
            participant_name=outcome.recipient.name,
            status=EMAIL_STATUS_SENT if outcome.ok else EMAIL_STATUS_FAILED,
            tracking_key=context.get("tracking_key") or new_tracking_key(),
            email_subject=message.subject if message else None,
            external_id=outcome.external_id,
            error_message=outcome.error,
            retry_count=retry_count,
            has_attachment=bool(attachments),
            attachment_name=attachments[0].filename if attachments else None,
        )
        row = record_email(db, entry)
        outcome.context = {**context, "tracking_id": row.id}

    return record


def _summarize(result: BulkSendResult) -> Dict:
    results = []
    errors = []
    for outcome in result.outcomes:
        tracking_id = (outcome.context or {}).get("tracking_id")
        results.append({
            "email": outcome.recipient.email,
            "success": outcome.ok,
            "message_id": outcome.external_id,
            "tracking_id": tracking_id,
            "error": outcome.error,
        })
        if not outcome.ok:
            errors.append({"email": outcome.recipient.email, "error": outcome.error})
    return {
        "sent": len(result.sent),
        "failed": len(result.failed),
        "results": results,
        "errors": errors,
    }


def send_poll_invitations(
    db: Session,
    poll_id: str,
    acting_user: str,
    engine: DeliveryEngine,
    settings,
) -> Dict:
    """
    Email every participant a personal voting link.

    Every call mints fresh tokens (earlier links stop working) and appends
    new ledger rows. A draft poll becomes active once at least one
    invitation went out.

    Returns:
        {"sent": int, "failed": int, "results": [...], "errors": [...]}
    """
    poll = get_poll(db, poll_id, acting_user)
    if poll.status == POLL_STATUS_FINALIZED:
        raise PollStateError("Poll has been finalized")
    if not poll.participants:
        raise InvalidRequestError("Poll has no participants")

    recipients = [Recipient(email=p.email, name=p.name or "") for p in poll.participants]
    logger.info("poll_invitations_started", poll_id=poll_id, recipients=len(recipients))

    result = engine.send_bulk(
        recipients,
        _invitation_preparer(db, poll, settings),
        _ledger_recorder(db, EMAIL_TYPE_POLL_INVITATION, poll),
    )
    run_best_effort(db, "refresh_subject_stats", refresh_subject_stats, EMAIL_TYPE_POLL_INVITATION, poll_id)

    if result.sent:
        poll = get_poll(db, poll_id)
        if poll.status == POLL_STATUS_DRAFT:
            poll.status = POLL_STATUS_ACTIVE
        poll.invitations_sent_at = utcnow()
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

    summary = _summarize(result)
    logger.info("poll_invitations_finished", poll_id=poll_id, sent=summary["sent"], failed=summary["failed"])
    return summary


def send_mediation_notices(
    db: Session,
    notice_id: str,
    acting_user: str,
    engine: DeliveryEngine,
    settings,
    attachments: Optional[List[EmailAttachment]] = None,
) -> Dict:
    """
    Email the notice to every participant.

    The notice ends up 'sent' if anything was delivered. It becomes 'failed'
    only when nothing was delivered and it had never been sent before.
    """
    notice = get_notice(db, notice_id, acting_user)
    if not notice.participants:
        raise InvalidRequestError("Notice has no participants")

    attachments = list(attachments or [])
    recipients = [Recipient(email=p.email, name=p.name or "") for p in notice.participants]
    logger.info("mediation_notices_started", notice_id=notice_id, recipients=len(recipients),
                attachments=len(attachments))

    result = engine.send_bulk(
        recipients,
        _notice_preparer(notice, settings, attachments),
        _ledger_recorder(db, EMAIL_TYPE_MEDIATION_NOTICE, notice),
    )
    run_best_effort(db, "refresh_subject_stats", refresh_subject_stats, EMAIL_TYPE_MEDIATION_NOTICE, notice_id)

    notice = get_notice(db, notice_id)
    if result.sent:
        notice.status = NOTICE_STATUS_SENT
        notice.sent_at = utcnow()
        if attachments:
            notice.pdf_file_name = attachments[0].filename
    elif notice.status != NOTICE_STATUS_SENT:
        # A notice that already went out stays 'sent'
        notice.status = NOTICE_STATUS_FAILED
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    summary = _summarize(result)
    logger.info("mediation_notices_finished", notice_id=notice_id, sent=summary["sent"], failed=summary["failed"])
    return summary


def retry_failed_email(
    db: Session,
    tracking_id: int,
    acting_user: str,
    engine: DeliveryEngine,
    settings,
) -> Dict:
    """
    Re-send one failed email.

    The failed row stays 'failed' and has its retry_count bumped; the
    re-send is recorded as a new row carrying the same count. Invitations
    get a freshly minted token. Notice attachments are not re-sent.

    Raises:
        RetryNotAllowedError: the row is not failed or retries are used up
    """
    record = get_record(db, tracking_id)

    email_type = record.type
    if email_type == EMAIL_TYPE_POLL_INVITATION:
        subject = get_poll(db, record.subject_id, acting_user)
        if subject.status == POLL_STATUS_FINALIZED:
            raise PollStateError("Poll has been finalized")
        prepare = _invitation_preparer(db, subject, settings)
    else:
        subject = get_notice(db, record.subject_id, acting_user)
        prepare = _notice_preparer(subject, settings, [])

    if record.status != EMAIL_STATUS_FAILED:
        raise RetryNotAllowedError("Only failed emails can be retried")
    if record.retry_count >= settings.MAX_MANUAL_RETRIES:
        raise RetryNotAllowedError("Maximum retry attempts exceeded")

    retry_count = record.retry_count + 1
    record.retry_count = retry_count
    record.updated_at = utcnow()
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    recipient = Recipient(email=record.participant_email, name=record.participant_name or "")
    result = engine.send_bulk([recipient], prepare, _ledger_recorder(db, email_type, subject, retry_count))
    run_best_effort(db, "refresh_subject_stats", refresh_subject_stats, email_type, record.subject_id)

    outcome = result.outcomes[0]
    logger.info("email_retry_finished", tracking_id=tracking_id, retry_count=retry_count, success=outcome.ok)
    return {
        "success": outcome.ok,
        "tracking_id": (outcome.context or {}).get("tracking_id"),
        "retry_count": retry_count,
        "message_id": outcome.external_id,
        "error": outcome.error,
    }
