"""Pydantic schemas for request/response validation."""
from app.schemas.poll import (
    ParticipantIn,
    PollOptionIn,
    PollCreate,
    PollUpdate,
    PollFinalize,
    PollResponse,
    PollDetail,
    PublicPoll,
    PollResults,
)
from app.schemas.notice import NoticeCreate, NoticeUpdate, NoticeResponse
from app.schemas.vote import VoteSubmission, VoteResult
from app.schemas.tracking import SendSummary, RetryResult, EmailStats, TrackingRecordOut
from app.schemas.common import SuccessResponse

__all__ = [
    "ParticipantIn",
    "PollOptionIn",
    "PollCreate",
    "PollUpdate",
    "PollFinalize",
    "PollResponse",
    "PollDetail",
    "PublicPoll",
    "PollResults",
    "NoticeCreate",
    "NoticeUpdate",
    "NoticeResponse",
    "VoteSubmission",
    "VoteResult",
    "SendSummary",
    "RetryResult",
    "EmailStats",
    "TrackingRecordOut",
    "SuccessResponse",
]
