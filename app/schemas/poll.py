"""Poll schemas."""
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.sanitization import sanitize_title


class ParticipantIn(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=200)


class PollOptionIn(BaseModel):
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    duration_minutes: int = Field(60, ge=15, le=720)
    location: Optional[str] = Field(None, max_length=300)


class CaseFields(BaseModel):
    case_id: Optional[str] = Field(None, max_length=64)
    case_name: Optional[str] = Field(None, max_length=200)
    case_number: Optional[str] = Field(None, max_length=100)
    mediator_name: Optional[str] = Field(None, max_length=200)


class PollCreate(CaseFields):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, max_length=300)
    options: List[PollOptionIn] = Field(..., min_length=1)
    participants: List[ParticipantIn] = Field(default_factory=list)

    @field_validator('title')
    @classmethod
    def sanitize_title_field(cls, v: str) -> str:
        """Sanitize and validate poll title."""
        return sanitize_title(v)


class PollUpdate(CaseFields):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, max_length=300)
    options: Optional[List[PollOptionIn]] = Field(None, min_length=1)
    participants: Optional[List[ParticipantIn]] = None


class PollFinalize(BaseModel):
    option_id: Optional[str] = None


class PollResponse(BaseModel):
    poll_id: str


class PollOptionOut(BaseModel):
    id: str
    position: int
    date: str
    time: str
    duration_minutes: int
    location: Optional[str] = None


class PollDetail(CaseFields):
    id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    status: str
    created_by: str
    selected_option_id: Optional[str] = None
    finalized_at: Optional[str] = None
    invitations_sent_at: Optional[str] = None
    emails_sent: int
    emails_opened: int
    emails_failed: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    options: List[PollOptionOut]
    participants: List[Dict[str, Optional[str]]]


class PublicPoll(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    case_name: Optional[str] = None
    mediator_name: Optional[str] = None
    status: str
    selected_option_id: Optional[str] = None
    options: List[PollOptionOut]


class OptionTally(BaseModel):
    option_id: str
    position: int
    yes: int
    if_need_be: int
    no: int
    total: int
    score: int


class ParticipantStatus(BaseModel):
    email: str
    name: Optional[str] = None
    responded: bool


class PollResults(BaseModel):
    poll_id: str
    status: str
    selected_option_id: Optional[str] = None
    top_choice: Optional[str] = None
    participant_count: int
    respondent_count: int
    response_rate: float
    options: List[OptionTally]
    participants: List[ParticipantStatus]
