"""Database base class and model imports."""
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import all models here for Alembic to detect them
from app.db.models.poll import Poll, PollOption, PollParticipant  # noqa: F401, E402
from app.db.models.poll_vote import PollVote  # noqa: F401, E402
from app.db.models.voting_token import VotingToken  # noqa: F401, E402
from app.db.models.notice import Notice, NoticeParticipant  # noqa: F401, E402
from app.db.models.email_tracking import EmailTracking  # noqa: F401, E402
