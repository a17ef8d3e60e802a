"""Unauthenticated endpoints reached from inside emails.

Both are mounted under ``/api`` (the URLs baked into already-sent emails)
and ``/api/v1``.
"""
import base64
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_settings
from app.core.constants import (
    EMAIL_TYPE_MEDIATION_NOTICE,
    EMAIL_TYPE_POLL_INVITATION,
    TRACKING_PIXEL_BASE64,
    VOTE_FIELD_PREFIX,
)
from app.core.exceptions import (
    AccessDeniedError,
    NotFoundError,
    PollStateError,
    VotingTokenError,
)
from app.core.rate_limit import RATE_LIMITS, limiter
from app.services.tokens import validate_token
from app.services.tracking import mark_opened
from app.services.vote import submit_vote

logger = logging.getLogger(__name__)
router = APIRouter()

TRACKING_PIXEL = base64.b64decode(TRACKING_PIXEL_BASE64)

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _pixel_response() -> Response:
    return Response(content=TRACKING_PIXEL, media_type="image/png", headers=PIXEL_HEADERS)


def record_open(
    db: Session,
    email_type: Optional[str],
    subject_id: Optional[str],
    email: Optional[str],
    token: Optional[str] = None,
    tracking_key: Optional[str] = None,
) -> bool:
    """
    Apply one pixel fetch to the ledger.

    Returns True only when a record moved to 'opened'. A token, when
    present on an invitation pixel, must validate or nothing is recorded.
    """
    if email_type not in (EMAIL_TYPE_POLL_INVITATION, EMAIL_TYPE_MEDIATION_NOTICE):
        return False
    if not subject_id or not email:
        return False
    if token and email_type == EMAIL_TYPE_POLL_INVITATION:
        if not validate_token(db, subject_id, email, token):
            return False
    return mark_opened(db, email_type, subject_id, email, tracking_key=tracking_key)


@router.get("/track-email-open", include_in_schema=False)
@limiter.limit(RATE_LIMITS["track_open"])
async def track_email_open(
    request: Request,
    type: Optional[str] = None,
    pollId: Optional[str] = None,
    noticeId: Optional[str] = None,
    email: Optional[str] = None,
    token: Optional[str] = None,
    tk: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Open-tracking pixel.

    Always answers 200 with a 1x1 transparent PNG, whatever happens
    internally: a broken image in the recipient's mail client is worse
    than a missed open, and the response must not reveal whether the
    parameters were valid.

    Example:
        GET /api/track-email-open?type=poll_invitation&pollId=6f1c...&email=pat%40example.com&token=...&tk=...
    """
    subject_id = pollId if type == EMAIL_TYPE_POLL_INVITATION else noticeId
    try:
        record_open(db, type, subject_id, email, token=token, tracking_key=tk)
    except Exception as e:
        db.rollback()
        logger.warning(f"Open tracking failed for {type} {subject_id}: {e}")
    return _pixel_response()


@router.post("/vote", include_in_schema=False)
@limiter.limit(RATE_LIMITS["vote"])
async def vote_from_email(
    request: Request,
    db: Session = Depends(get_db),
    settings=Depends(get_settings),
):
    """
    Vote form embedded in the invitation email.

    Form fields: ``pollId``, ``email``, ``token``, ``source`` and one
    ``vote_<optionId>`` per option. Success redirects (303) to the
    confirmation page; failures answer with a plain-text reason because a
    person is reading the result in a browser tab.

    Responses:
        303: votes stored, Location: {FRONTEND_URL}/poll/{pollId}/thanks
        400: missing fields or no valid selections
        403: invalid or expired voting link
        404: poll does not exist
        409: poll is not accepting votes
    """
    form = await request.form()
    poll_id = (form.get("pollId") or "").strip()
    email = (form.get("email") or "").strip()
    token = (form.get("token") or "").strip()
    source = (form.get("source") or "email").strip()[:32]

    if not poll_id or not email or not token:
        return PlainTextResponse("Missing required fields: pollId, email and token", status_code=400)

    # Only vote_<optionId> fields are selections; pollId, email, token and
    # anything else on the form never reach the parser
    selections = {
        key: value for key, value in form.items()
        if key.startswith(VOTE_FIELD_PREFIX) and isinstance(value, str)
    }

    try:
        submit_vote(db, poll_id, email, token, selections, source=source)
    except (VotingTokenError, AccessDeniedError) as e:
        return PlainTextResponse(str(e), status_code=403)
    except NotFoundError as e:
        return PlainTextResponse(str(e), status_code=404)
    except PollStateError as e:
        return PlainTextResponse(str(e), status_code=409)
    except ValueError as e:
        return PlainTextResponse(str(e), status_code=400)

    confirmation_url = f"{settings.FRONTEND_URL.rstrip('/')}/poll/{poll_id}/thanks"
    return RedirectResponse(url=confirmation_url, status_code=303)
