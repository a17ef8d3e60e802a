"""Vote business logic."""
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from app.core.constants import POLL_STATUS_ACTIVE, VOTE_FIELD_PREFIX, VOTE_TYPES
from app.core.exceptions import NotFoundError, PollStateError, VoteValidationError, VotingTokenError
from app.core.logging_config import get_logger
from app.core.sanitization import normalize_email
from app.core.security import token_matches
from app.core.utils import to_utc, utcnow
from app.db.models import Poll, PollVote, VotingToken
from app.services.tokens import validate_token
from app.services.tracking import mark_voted_via_email
from app.services.utils import run_best_effort

logger = get_logger(__name__)


def parse_selections(raw: Mapping, valid_option_ids: Iterable[str]) -> Dict[str, str]:
    """
    Turn a raw submission into ``{option_id: vote_type}``.

    Accepts either a plain mapping of option id to vote type or form fields
    named ``vote_<optionId>`` (other fields are ignored). Entries with an
    unknown vote type or an option id that is not part of the poll are
    dropped one by one; the rest of the submission survives.
    """
    valid = set(valid_option_ids)
    selections: Dict[str, str] = {}

    for key, value in (raw or {}).items():
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        option_id = key[len(VOTE_FIELD_PREFIX):] if key.startswith(VOTE_FIELD_PREFIX) else key
        vote_type = value.strip().lower()

        if option_id not in valid:
            continue
        if vote_type not in VOTE_TYPES:
            continue
        selections[option_id] = vote_type

    return selections


def submit_vote(
    db: Session,
    poll_id: str,
    participant_email: str,
    token: str,
    raw_selections: Mapping,
    source: str = "email",
    now: Optional[datetime] = None,
) -> List[PollVote]:
    """
    Replace a participant's votes on a poll.

    Order of checks: token, poll state, selections. The token is checked
    again once its row is locked. The old vote set is deleted and the new
    one inserted in a single transaction, so readers see either the
    previous set or the new one.

    Raises:
        VotingTokenError: token missing, superseded, mismatched or expired
        NotFoundError: poll does not exist
        PollStateError: poll is not accepting votes
        VoteValidationError: no usable selections after parsing
    """
    if not validate_token(db, poll_id, participant_email, token, now=now):
        logger.warning("vote_rejected_invalid_token", poll_id=poll_id)
        raise VotingTokenError("Invalid or expired voting link")

    email = normalize_email(participant_email)

    poll = db.query(Poll).filter(Poll.id == poll_id).first()
    if not poll:
        raise NotFoundError("Poll not found")

    if poll.status != POLL_STATUS_ACTIVE:
        raise PollStateError("This poll is not accepting votes")

    selections = parse_selections(raw_selections, [option.id for option in poll.options])
    if not selections:
        raise VoteValidationError("No valid vote selections provided")

    voted_at = to_utc(now) if now else utcnow()

    try:
        # Serializes concurrent submissions from the same participant
        locked = db.query(VotingToken).filter(
            VotingToken.poll_id == poll_id,
            VotingToken.participant_email == email,
        ).with_for_update().populate_existing().first()

        # A re-issue may have committed after validate_token read the row
        if locked is None or not token_matches(token, locked.token_hash):
            raise VotingTokenError("Invalid or expired voting link")

        db.query(PollVote).filter(
            PollVote.poll_id == poll_id,
            PollVote.participant_email == email,
        ).delete(synchronize_session=False)

        votes = [
            PollVote(
                poll_id=poll_id,
                option_id=option_id,
                participant_email=email,
                vote_type=vote_type,
                source=source or "email",
                timestamp=voted_at,
            )
            for option_id, vote_type in selections.items()
        ]
        db.add_all(votes)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("votes_replaced", poll_id=poll_id, participant_email=email, count=len(votes), source=source)

    run_best_effort(db, "mark_voted_via_email", mark_voted_via_email, poll_id, email, now=voted_at)

    return votes


def get_participant_votes(db: Session, poll_id: str, participant_email: str) -> Dict[str, str]:
    """Current ``{option_id: vote_type}`` for one participant."""
    email = normalize_email(participant_email)
    votes = db.query(PollVote).filter(
        PollVote.poll_id == poll_id,
        PollVote.participant_email == email,
    ).all()
    return {vote.option_id: vote.vote_type for vote in votes}
