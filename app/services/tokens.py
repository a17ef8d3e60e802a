"""Voting token store.

One live token per (poll, participant). Tokens authorize the unauthenticated
vote and open-tracking links, so validation fails closed: any doubt
(missing row, mismatch, expiry, storage error, malformed input) is False.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import config
from app.core.logging_config import get_logger
from app.core.sanitization import normalize_email, validate_token_format
from app.core.security import create_token_lookup_key, generate_voting_token, token_matches
from app.core.utils import to_utc, utcnow
from app.db.models import VotingToken

logger = get_logger(__name__)


def issue_token(
    db: Session,
    poll_id: str,
    participant_email: str,
    now: Optional[datetime] = None,
) -> str:
    """
    Mint a new voting token, replacing any previous one for this key.

    The previous token stops validating as soon as this commits; there is
    no grace period.

    Returns:
        The raw token. Only its HMAC lookup key is stored.
    """
    email = normalize_email(participant_email)
    issued_at = to_utc(now) if now else utcnow()
    expires_at = issued_at + timedelta(days=config.settings.VOTING_TOKEN_TTL_DAYS)
    token = generate_voting_token()
    token_hash = create_token_lookup_key(token)

    for _ in range(2):
        record = db.query(VotingToken).filter(
            VotingToken.poll_id == poll_id,
            VotingToken.participant_email == email,
        ).first()

        if record:
            record.token_hash = token_hash
            record.created_at = issued_at
            record.expires_at = expires_at
        else:
            db.add(VotingToken(
                poll_id=poll_id,
                participant_email=email,
                token_hash=token_hash,
                created_at=issued_at,
                expires_at=expires_at,
            ))

        try:
            db.commit()
            break
        except IntegrityError:
            # A concurrent issue inserted the row first; overwrite it instead
            db.rollback()
    else:
        raise RuntimeError("Could not store voting token")

    logger.info("voting_token_issued", poll_id=poll_id, participant_email=email)
    return token


def validate_token(
    db: Session,
    poll_id: str,
    participant_email: str,
    token: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check a presented token. Never raises.

    Valid only if a row exists for (poll, normalized email), the token
    matches exactly, and ``created_at <= now < expires_at``.
    """
    try:
        if not poll_id:
            return False
        email = normalize_email(participant_email)
        if validate_token_format(token) != token:
            return False
        checked_at = to_utc(now) if now else utcnow()

        record = db.query(VotingToken).filter(
            VotingToken.poll_id == poll_id,
            VotingToken.participant_email == email,
        ).first()

        if record is None:
            return False

        if not token_matches(token, record.token_hash):
            return False

        return to_utc(record.created_at) <= checked_at < to_utc(record.expires_at)
    except ValueError:
        return False
    except Exception as e:
        logger.warning("voting_token_validation_error", poll_id=poll_id, error=str(e))
        return False
