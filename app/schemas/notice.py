"""Mediation notice schemas."""
from typing import Dict, List, Literal, Optional

from pydantic import Field

from app.schemas.poll import CaseFields, ParticipantIn

NoticeType = Literal["scheduled", "rescheduled", "cancelled", "reminder"]


class NoticeCreate(CaseFields):
    notice_type: NoticeType = "scheduled"
    mediation_date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    mediation_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    location: Optional[str] = Field(None, max_length=300)
    notes: Optional[str] = Field(None, max_length=5000)
    pdf_file_name: Optional[str] = Field(None, max_length=255)
    participants: List[ParticipantIn] = Field(..., min_length=1)


class NoticeUpdate(CaseFields):
    notice_type: Optional[NoticeType] = None
    mediation_date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    mediation_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    location: Optional[str] = Field(None, max_length=300)
    notes: Optional[str] = Field(None, max_length=5000)
    pdf_file_name: Optional[str] = Field(None, max_length=255)
    participants: Optional[List[ParticipantIn]] = Field(None, min_length=1)


class NoticeResponse(CaseFields):
    id: str
    notice_type: str
    mediation_date: Optional[str] = None
    mediation_time: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    pdf_file_name: Optional[str] = None
    status: str
    created_by: str
    sent_at: Optional[str] = None
    emails_sent: int
    emails_opened: int
    emails_failed: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    participants: List[Dict[str, Optional[str]]]
