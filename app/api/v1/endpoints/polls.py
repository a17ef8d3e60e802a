"""Poll endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_delivery_engine, get_settings, http_error
from app.core.rate_limit import RATE_LIMITS, limiter
from app.mail.delivery import DeliveryEngine
from app.schemas import (
    PollCreate,
    PollDetail,
    PollFinalize,
    PollResponse,
    PollResults,
    PollUpdate,
    PublicPoll,
    SendSummary,
    SuccessResponse,
    VoteResult,
    VoteSubmission,
)
from app.services.invitations import send_poll_invitations
from app.services.poll import (
    create_poll,
    delete_poll,
    finalize_poll,
    get_poll,
    get_poll_results,
    get_polls_for_case,
    get_polls_for_user,
    serialize_poll,
    serialize_public_poll,
    update_poll,
)
from app.services.vote import get_participant_votes, submit_vote

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=PollResponse)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def create_poll_endpoint(
    request: Request,
    poll: PollCreate,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """
    Create a scheduling poll in draft status.

    The poll is owned by the verified subject of the bearer token. Options
    keep the order they are submitted in; that order breaks score ties at
    finalization. Participant emails are normalized and de-duplicated.

    Example:
        Request:
            POST /api/v1/polls
            Authorization: Bearer eyJhbGc...
            {
                "title": "Smith v. Jones mediation",
                "case_id": "case-42",
                "options": [{"date": "2025-03-03", "time": "14:00"}],
                "participants": [{"email": "pat@example.com", "name": "Pat"}]
            }

        Response (200):
            {"poll_id": "6f1c..."}
    """
    try:
        created = create_poll(db, acting_user, poll.model_dump())
        return PollResponse(poll_id=created.id)
    except ValueError as e:
        raise http_error(e)


@router.get("", response_model=List[PollDetail])
@limiter.limit(RATE_LIMITS["mediator_read"])
async def list_polls_endpoint(
    request: Request,
    case_id: Optional[str] = None,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """List the caller's polls, newest first, optionally for one case."""
    if case_id:
        polls = get_polls_for_case(db, case_id, acting_user)
    else:
        polls = get_polls_for_user(db, acting_user)
    return [serialize_poll(poll) for poll in polls]


@router.get("/{poll_id}", response_model=PollDetail)
@limiter.limit(RATE_LIMITS["mediator_read"])
async def get_poll_endpoint(
    request: Request,
    poll_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    try:
        return serialize_poll(get_poll(db, poll_id, acting_user))
    except ValueError as e:
        raise http_error(e)


@router.patch("/{poll_id}", response_model=PollDetail)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def update_poll_endpoint(
    request: Request,
    poll_id: str,
    changes: PollUpdate,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """Edit a draft poll. Active and finalized polls answer 409."""
    try:
        poll = update_poll(db, poll_id, acting_user, changes.model_dump(exclude_unset=True))
        return serialize_poll(poll)
    except ValueError as e:
        raise http_error(e)


@router.delete("/{poll_id}", response_model=SuccessResponse)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def delete_poll_endpoint(
    request: Request,
    poll_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """Delete a poll together with its votes, voting tokens and tracking records."""
    try:
        delete_poll(db, poll_id, acting_user)
        return SuccessResponse(success=True, message="Poll deleted")
    except ValueError as e:
        raise http_error(e)


@router.post("/{poll_id}/invitations", response_model=SendSummary)
@limiter.limit(RATE_LIMITS["send_email"])
def send_invitations_endpoint(
    request: Request,
    poll_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
    engine: DeliveryEngine = Depends(get_delivery_engine),
    settings=Depends(get_settings),
):
    """
    Email every participant a personal voting link.

    Each call mints new voting tokens, so links from an earlier send stop
    working. Partial failure is not an error: the response lists each
    recipient's outcome and the failed ones can be retried individually
    through the tracking API.

    Runs in the threadpool; delivery blocks on SMTP and retry backoff.

    Example:
        Response (200):
            {
                "sent": 2,
                "failed": 1,
                "results": [{"email": "pat@example.com", "success": true, ...}, ...],
                "errors": [{"email": "bad@example.com", "error": "SMTP rejected message: ..."}]
            }

        Response (409):
            {"detail": "Poll has been finalized"}
    """
    try:
        return send_poll_invitations(db, poll_id, acting_user, engine, settings)
    except ValueError as e:
        raise http_error(e)


@router.post("/{poll_id}/finalize", response_model=PollDetail)
@limiter.limit(RATE_LIMITS["mediator_write"])
async def finalize_poll_endpoint(
    request: Request,
    poll_id: str,
    body: Optional[PollFinalize] = None,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    """
    Close an active poll on one option.

    With no ``option_id`` the option with the best score wins
    (yes = 2, if_need_be = 1, no = 0; ties go to the earliest option).
    """
    try:
        option_id = body.option_id if body else None
        poll = finalize_poll(db, poll_id, acting_user, option_id=option_id)
        return serialize_poll(poll)
    except ValueError as e:
        raise http_error(e)


@router.get("/{poll_id}/results", response_model=PollResults)
@limiter.limit(RATE_LIMITS["mediator_read"])
async def poll_results_endpoint(
    request: Request,
    poll_id: str,
    db: Session = Depends(get_db),
    acting_user: str = Depends(get_current_user),
):
    try:
        return get_poll_results(db, poll_id, acting_user)
    except ValueError as e:
        raise http_error(e)


@router.get("/{poll_id}/public", response_model=PublicPoll)
@limiter.limit(RATE_LIMITS["public_poll"])
async def public_poll_endpoint(
    request: Request,
    poll_id: str,
    db: Session = Depends(get_db),
):
    """Options and title for the voting page. No participant data is exposed."""
    try:
        return serialize_public_poll(get_poll(db, poll_id))
    except ValueError as e:
        raise http_error(e)


@router.post("/{poll_id}/votes", response_model=VoteResult)
@limiter.limit(RATE_LIMITS["vote"])
async def submit_vote_endpoint(
    request: Request,
    poll_id: str,
    submission: VoteSubmission,
    db: Session = Depends(get_db),
):
    """
    Replace the participant's votes from the web voting page.

    Authenticated by the voting token from the invitation link, not by a
    session. The previous vote set is replaced wholesale.

    Raises:
        HTTPException: 403 invalid or expired token, 404 unknown poll,
            409 poll not active, 400 no valid selections
    """
    try:
        submit_vote(
            db,
            poll_id,
            submission.email,
            submission.token,
            submission.votes,
            source=submission.source,
        )
        return VoteResult(
            success=True,
            poll_id=poll_id,
            votes=get_participant_votes(db, poll_id, submission.email),
        )
    except ValueError as e:
        raise http_error(e)
