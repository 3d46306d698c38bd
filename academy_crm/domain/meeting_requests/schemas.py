"""Meeting change request schemas"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_choice

REQUEST_TYPES = ("cancel", "postpone", "replacement")
REQUEST_STATUSES = ("pending", "approved", "rejected")


class MeetingRequestCreate(BaseModel):
    meetingId: str
    requestType: str
    reason: Optional[str] = Field(None, max_length=2000)

    @field_validator("requestType")
    @classmethod
    def validate_request_type(cls, v):
        return validate_choice(v, REQUEST_TYPES, "requestType")


class MeetingRequestReview(BaseModel):
    reviewNotes: Optional[str] = Field(None, max_length=2000)


class MeetingRequestResponse(BaseModel):
    id: str
    meetingId: str
    meetingDate: Optional[date] = None
    cycleId: Optional[str] = None
    cycleName: Optional[str] = None
    instructorId: str
    instructorName: Optional[str] = None
    requestType: str
    reason: Optional[str] = None
    status: str
    reviewedBy: Optional[str] = None
    reviewedAt: Optional[datetime] = None
    reviewNotes: Optional[str] = None
    created_at: Optional[datetime] = None


class MeetingRequestListResponse(BaseModel):
    requests: list[MeetingRequestResponse]
    total: int
    limit: int
    offset: int
