"""Domain errors raised by the service layer.

All of them subclass ValueError so callers that only care about "bad
request vs. server error" can keep catching ValueError.
"""


class SchedulingError(ValueError):
    """Base class for expected, user-facing failures."""


class NotFoundError(SchedulingError):
    """The poll, notice or tracking record does not exist."""


class AccessDeniedError(SchedulingError):
    """The acting user does not own the poll or notice."""


class VotingTokenError(SchedulingError):
    """The voting token is missing, invalid, superseded or expired."""


class PollStateError(SchedulingError):
    """The poll is not in a state that allows the requested operation."""


class InvalidRequestError(SchedulingError):
    """The request payload is unusable; nothing was changed."""


class VoteValidationError(InvalidRequestError):
    """A vote submission carried no recognized selections."""


class RetryNotAllowedError(InvalidRequestError):
    """The tracking record is not failed or has used up its manual retries."""
