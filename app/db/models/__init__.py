"""Database models."""
from app.db.models.poll import Poll, PollOption, PollParticipant
from app.db.models.poll_vote import PollVote
from app.db.models.voting_token import VotingToken
from app.db.models.notice import Notice, NoticeParticipant
from app.db.models.email_tracking import EmailTracking

__all__ = [
    "Poll",
    "PollOption",
    "PollParticipant",
    "PollVote",
    "VotingToken",
    "Notice",
    "NoticeParticipant",
    "EmailTracking",
]
