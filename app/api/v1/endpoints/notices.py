"""Mediation notice endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_delivery_engine, get_settings, http_error
from app.core.exceptions import InvalidRequestError
from app.core.rate_limit import RATE_LIMITS, limiter
from app.mail.delivery import DeliveryEngine
from app.mail.transport import EmailAttachment
from app.schemas import NoticeCreate, NoticeResponse, NoticeUpdate, SendSummary, SuccessResponse
from app.services.invitations import send_mediation_notices
from app.services.notice import (
    create_notice,
    delete_notice,
    get_notice,
    get_notices_for_case,
    get_notices_for_user,
    serialize_notice,
    update_notice,
)

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024
ATTACHMENT_CHUNK_BYTES = 1024 * 1024


def read_attachment(upload: UploadFile) -> EmailAttachment:
    """
    Buffer an uploaded notice PDF, refusing anything over the size cap.

    The declared size is checked before reading; the read itself stops one
    chunk past the cap so a missing or wrong size cannot force the whole
    upload into memory.
    """
    if upload.size is not None and upload.size > MAX_ATTACHMENT_BYTES:
        raise InvalidRequestError("Attachment exceeds 10 MB")

    chunks = []
    total = 0
    while True:
        chunk = upload.file.read(ATTACHMENT_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > MAX_ATTACHMENT_BYTES:
            raise InvalidRequestError("Attachment exceeds 10 MB")
        chunks.append(chunk)

    return EmailAttachment(
        filename=upload.filename,
        content=b"".join(chunks),
        content_type=upload.content_type or "application/pdf",
    )


@router.post("", response_model=NoticeResponse)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def create_notice_endpoint(
    request: Request,
    notice: NoticeCreate,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    try:
        return serialize_notice(create_notice(db, acting_user, notice.model_dump()))
    except ValueError as e:
        raise http_error(e)


@router.get("", response_model=List[NoticeResponse])
@limiter.limit(RATE_LIMITS["mediator_read"])
async def list_notices_endpoint(
    request: Request,
    case_id: Optional[str] = None,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """List the caller's notices, newest first, optionally for one case."""
    if case_id:
        notices = get_notices_for_case(db, case_id, acting_user)
    else:
        notices = get_notices_for_user(db, acting_user)
    return [serialize_notice(notice) for notice in notices]


@router.get("/{notice_id}", response_model=NoticeResponse)
@limiter.limit(RATE_LIMITS["mediator_read"])
async def get_notice_endpoint(
    request: Request,
    notice_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    try:
        return serialize_notice(get_notice(db, notice_id, acting_user))
    except ValueError as e:
        raise http_error(e)


@router.patch("/{notice_id}", response_model=NoticeResponse)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def update_notice_endpoint(
    request: Request,
    notice_id: str,
    changes: NoticeUpdate,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    try:
        notice = update_notice(db, notice_id, acting_user, changes.model_dump(exclude_unset=True))
        return serialize_notice(notice)
    except ValueError as e:
        raise http_error(e)


@router.delete("/{notice_id}", response_model=SuccessResponse)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def delete_notice_endpoint(
    request: Request,
    notice_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    try:
        delete_notice(db, notice_id, acting_user)
        return SuccessResponse(success=True, message="Notice deleted")
    except ValueError as e:
        raise http_error(e)


@router.post("/{notice_id}/send", response_model=SendSummary)
@limiter.limit(RATE_LIMITS["send_email"])
def send_notice_endpoint(
    request: Request,
    notice_id: str,
    attachment: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
    engine: DeliveryEngine = Depends(get_delivery_engine),
    settings=Depends(get_settings),
):
    """
    Email the notice to every participant.

    An optional multipart ``attachment`` (the signed notice PDF) is sent
    to each recipient. The notice becomes 'sent' if at least one email was
    delivered; a notice that never went out becomes 'failed'. Per-recipient
    outcomes are in the body.

    Runs in the threadpool; delivery blocks on SMTP and retry backoff.

    Example:
        Request:
            POST /api/v1/notices/9b2e.../send
            Content-Type: multipart/form-data
            attachment=@notice.pdf

        Response (200):
            {"sent": 3, "failed": 0, "results": [...], "errors": []}
    """
    try:
        attachments = []
        if attachment is not None and attachment.filename:
            attachments.append(read_attachment(attachment))
        return send_mediation_notices(db, notice_id, acting_user, engine, settings, attachments=attachments)
    except ValueError as e:
        raise http_error(e)
