"""Email delivery and tracking schemas."""
from typing import Dict, List, Optional

from pydantic import BaseModel


class SendResultItem(BaseModel):
    email: str
    success: bool
    message_id: Optional[str] = None
    tracking_id: Optional[int] = None
    error: Optional[str] = None


class SendSummary(BaseModel):
    """Outcome of a bulk send. Partial failure is still a 200."""

    sent: int
    failed: int
    results: List[SendResultItem]
    errors: List[Dict[str, Optional[str]]]


class RetryResult(BaseModel):
    success: bool
    tracking_id: Optional[int] = None
    retry_count: int
    message_id: Optional[str] = None
    error: Optional[str] = None


class StatusCounts(BaseModel):
    total: int
    sent: int
    delivered: int
    opened: int
    failed: int
    voted: int


class EmailStats(StatusCounts):
    delivery_rate: float
    open_rate: float
    by_type: Dict[str, StatusCounts]


class TrackingRecordOut(BaseModel):
    id: int
    type: str
    subject_id: str
    case_id: Optional[str] = None
    participant_email: str
    participant_name: Optional[str] = None
    email_subject: Optional[str] = None
    external_id: Optional[str] = None
    status: str
    opened: bool
    opened_at: Optional[str] = None
    voted_via_email: bool
    voted_via_email_at: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int
    has_attachment: bool
    attachment_name: Optional[str] = None
    sent_at: Optional[str] = None
