"""Vote schemas."""
from typing import Dict

from pydantic import BaseModel, Field, field_validator

from app.core.sanitization import validate_token_format


class VoteSubmission(BaseModel):
    """JSON vote submission from the web voting page."""

    email: str = Field(..., min_length=3, max_length=320)
    token: str = Field(..., min_length=1, max_length=100)
    votes: Dict[str, str] = Field(..., description="option id -> yes | if_need_be | no")
    source: str = Field("web", max_length=32)

    @field_validator('token')
    @classmethod
    def validate_token_field(cls, v: str) -> str:
        """Validate token format."""
        return validate_token_format(v)


class VoteResult(BaseModel):
    success: bool = True
    poll_id: str
    votes: Dict[str, str]

