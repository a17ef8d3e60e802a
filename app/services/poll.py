"""Poll business logic."""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.constants import (
    POLL_STATUS_ACTIVE,
    POLL_STATUS_DRAFT,
    POLL_STATUS_FINALIZED,
    VOTE_IF_NEED_BE,
    VOTE_NO,
    VOTE_SCORES,
    VOTE_YES,
)
from app.core.exceptions import InvalidRequestError, NotFoundError, PollStateError
from app.core.logging_config import get_logger
from app.core.sanitization import MAX_TEXT_LENGTH, normalize_email, sanitize_text, sanitize_title
from app.core.utils import isoformat_or_none, percentage, to_utc, utcnow
from app.db.models import EmailTracking, Poll, PollOption, PollParticipant
from app.services.utils import ensure_owner

logger = get_logger(__name__)

CASE_FIELDS = ("case_id", "case_name", "case_number", "mediator_name")


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = sanitize_text(value, max_length=MAX_TEXT_LENGTH)
    return cleaned or None


def _build_options(options: Iterable[Dict]) -> List[PollOption]:
    built = [
        PollOption(
            position=position,
            date=option["date"],
            time=option["time"],
            duration_minutes=option.get("duration_minutes") or 60,
            location=_clean_optional(option.get("location")),
        )
        for position, option in enumerate(options)
    ]
    if not built:
        raise InvalidRequestError("A poll needs at least one time option")
    return built


def _build_participants(participants: Iterable[Dict]) -> List[PollParticipant]:
    """Normalize emails and drop duplicates, keeping the first name given."""
    seen = {}
    for participant in participants:
        email = normalize_email(participant["email"])
        if email not in seen:
            seen[email] = PollParticipant(email=email, name=_clean_optional(participant.get("name")) or "")
    return list(seen.values())


def serialize_option(option: PollOption) -> Dict:
    return {
        "id": option.id,
        "position": option.position,
        "date": option.date,
        "time": option.time,
        "duration_minutes": option.duration_minutes,
        "location": option.location,
    }


def serialize_poll(poll: Poll) -> Dict:
    """Full poll view for its owner."""
    return {
        "id": poll.id,
        "case_id": poll.case_id,
        "case_name": poll.case_name,
        "case_number": poll.case_number,
        "mediator_name": poll.mediator_name,
        "title": poll.title,
        "description": poll.description,
        "location": poll.location,
        "status": poll.status,
        "created_by": poll.created_by,
        "selected_option_id": poll.selected_option_id,
        "finalized_at": isoformat_or_none(poll.finalized_at),
        "invitations_sent_at": isoformat_or_none(poll.invitations_sent_at),
        "emails_sent": poll.emails_sent,
        "emails_opened": poll.emails_opened,
        "emails_failed": poll.emails_failed,
        "created_at": isoformat_or_none(poll.created_at),
        "updated_at": isoformat_or_none(poll.updated_at),
        "options": [serialize_option(option) for option in poll.options],
        "participants": [{"email": p.email, "name": p.name} for p in poll.participants],
    }


def serialize_public_poll(poll: Poll) -> Dict:
    """What the voting page may show to anyone holding the link."""
    return {
        "id": poll.id,
        "title": poll.title,
        "description": poll.description,
        "location": poll.location,
        "case_name": poll.case_name,
        "mediator_name": poll.mediator_name,
        "status": poll.status,
        "selected_option_id": poll.selected_option_id,
        "options": [serialize_option(option) for option in poll.options],
    }


def create_poll(db: Session, acting_user: str, data: Dict) -> Poll:
    """Create a draft poll owned by ``acting_user``."""
    poll = Poll(
        title=sanitize_title(data["title"]),
        description=_clean_optional(data.get("description")),
        location=_clean_optional(data.get("location")),
        status=POLL_STATUS_DRAFT,
        created_by=acting_user,
        **{field: data.get(field) for field in CASE_FIELDS},
    )
    poll.options = _build_options(data.get("options") or [])
    poll.participants = _build_participants(data.get("participants") or [])

    try:
        db.add(poll)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(poll)

    logger.info("poll_created", poll_id=poll.id, created_by=acting_user, options=len(poll.options))
    return poll


def get_poll(db: Session, poll_id: str, acting_user: Optional[str] = None) -> Poll:
    """
    Load a poll.

    When ``acting_user`` is given the caller must own the poll.

    Raises:
        NotFoundError: no such poll
        AccessDeniedError: acting_user is not the creator
    """
    poll = db.query(Poll).filter(Poll.id == poll_id).first()
    if not poll:
        raise NotFoundError("Poll not found")
    if acting_user is not None:
        ensure_owner(poll, acting_user)
    return poll


def get_polls_for_user(db: Session, acting_user: str) -> List[Poll]:
    return db.query(Poll).filter(
        Poll.created_by == acting_user
    ).order_by(Poll.created_at.desc()).all()


def get_polls_for_case(db: Session, case_id: str, acting_user: str) -> List[Poll]:
    return db.query(Poll).filter(
        Poll.case_id == case_id,
        Poll.created_by == acting_user,
    ).order_by(Poll.created_at.desc()).all()


def update_poll(db: Session, poll_id: str, acting_user: str, changes: Dict) -> Poll:
    """Edit a poll. Only drafts can change; options and participants are replaced wholesale."""
    poll = get_poll(db, poll_id, acting_user)
    if poll.status != POLL_STATUS_DRAFT:
        raise PollStateError("Only draft polls can be edited")

    if changes.get("title") is not None:
        poll.title = sanitize_title(changes["title"])
    for field in ("description", "location"):
        if field in changes:
            setattr(poll, field, _clean_optional(changes[field]))
    for field in CASE_FIELDS:
        if field in changes:
            setattr(poll, field, changes[field])

    if changes.get("options") is not None:
        poll.options = []
        db.flush()
        poll.options = _build_options(changes["options"])
    if changes.get("participants") is not None:
        poll.participants = []
        db.flush()
        poll.participants = _build_participants(changes["participants"])

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(poll)
    return poll


def delete_poll(db: Session, poll_id: str, acting_user: str) -> None:
    """Delete a poll with its votes, tokens and tracking records.

    Options, participants, votes and tokens go through the relationship
    cascade; tracking rows have no foreign key and are removed explicitly.
    """
    poll = get_poll(db, poll_id, acting_user)

    try:
        db.query(EmailTracking).filter(EmailTracking.subject_id == poll_id).delete(synchronize_session=False)
        db.delete(poll)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("poll_deleted", poll_id=poll_id, deleted_by=acting_user)


def score_options(options: Iterable, votes: Iterable) -> List[Dict]:
    """
    Tally votes per option, in option order.

    score = 2 x yes + 1 x if_need_be. Votes for options not listed are ignored.
    """
    tallies = {}
    ordered = sorted(options, key=lambda option: option.position)
    for option in ordered:
        tallies[option.id] = {
            "option_id": option.id,
            "position": option.position,
            VOTE_YES: 0,
            VOTE_IF_NEED_BE: 0,
            VOTE_NO: 0,
            "total": 0,
            "score": 0,
        }

    for vote in votes:
        tally = tallies.get(vote.option_id)
        if tally is None or vote.vote_type not in VOTE_SCORES:
            continue
        tally[vote.vote_type] += 1
        tally["total"] += 1
        tally["score"] += VOTE_SCORES[vote.vote_type]

    return list(tallies.values())


def select_winning_option(scores: List[Dict]) -> Optional[str]:
    """Highest score wins; ties go to the option listed first."""
    if not scores:
        return None
    best = min(scores, key=lambda tally: (-tally["score"], tally["position"]))
    return best["option_id"]


def finalize_poll(
    db: Session,
    poll_id: str,
    acting_user: str,
    option_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Poll:
    """
    Close an active poll on one option.

    Without ``option_id`` the best-scoring option is chosen.
    """
    poll = get_poll(db, poll_id, acting_user)
    if poll.status != POLL_STATUS_ACTIVE:
        raise PollStateError("Only active polls can be finalized")

    if option_id is None:
        option_id = select_winning_option(score_options(poll.options, poll.votes))
    elif option_id not in {option.id for option in poll.options}:
        raise InvalidRequestError("Option does not belong to this poll")

    if option_id is None:
        raise InvalidRequestError("Poll has no options to finalize")

    poll.status = POLL_STATUS_FINALIZED
    poll.selected_option_id = option_id
    poll.finalized_at = to_utc(now) if now else utcnow()
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(poll)

    logger.info("poll_finalized", poll_id=poll_id, selected_option_id=option_id)
    return poll


def get_poll_results(db: Session, poll_id: str, acting_user: str) -> Dict:
    """Per-option tallies, response rate and the current top choice."""
    poll = get_poll(db, poll_id, acting_user)
    votes = poll.votes
    scores = score_options(poll.options, votes)

    respondents = {vote.participant_email for vote in votes}
    participants = [
        {"email": p.email, "name": p.name, "responded": p.email in respondents}
        for p in poll.participants
    ]

    return {
        "poll_id": poll.id,
        "status": poll.status,
        "selected_option_id": poll.selected_option_id,
        "top_choice": select_winning_option(scores) if votes else None,
        "participant_count": len(participants),
        "respondent_count": len(respondents),
        "response_rate": percentage(len(respondents), len(participants)),
        "options": scores,
        "participants": participants,
    }
