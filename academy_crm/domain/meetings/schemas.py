"""Meeting domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import MEETING_STATUSES
from ...shared.validators import validate_activity_type, validate_choice


class MeetingCreate(BaseModel):
    """Schema for adding a single meeting to a cycle"""

    cycleId: str
    instructorId: Optional[str] = None
    scheduledDate: date
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    activityType: Optional[str] = None
    topic: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None

    @field_validator("activityType")
    @classmethod
    def validate_activity(cls, v):
        return validate_activity_type(v)


class MeetingUpdate(BaseModel):
    """Administrative update; status changes here bypass the transition rules"""

    instructorId: Optional[str] = None
    scheduledDate: Optional[date] = None
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    status: Optional[str] = None
    activityType: Optional[str] = None
    topic: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    zoomMeetingId: Optional[str] = None
    zoomJoinUrl: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, MEETING_STATUSES, "status")

    @field_validator("activityType")
    @classmethod
    def validate_activity(cls, v):
        return validate_activity_type(v)

    @model_validator(mode="after")
    def check_times(self):
        if self.startTime and self.endTime and self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        return self


class MeetingStatusAction(BaseModel):
    """Optional note attached to complete/cancel/postpone"""

    notes: Optional[str] = None


class BulkMeetingIds(BaseModel):
    ids: list[str] = Field(..., min_length=1, max_length=500)


class BulkRecalculateRequest(BulkMeetingIds):
    force: bool = False


class BulkUpdateStatusRequest(BulkMeetingIds):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, MEETING_STATUSES, "status")


class BulkResult(BaseModel):
    success: bool = True
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: Optional[list[str]] = None


class MeetingResponse(BaseModel):
    """Schema for meeting response"""

    id: str
    cycleId: str
    cycleName: Optional[str] = None
    instructorId: Optional[str] = None
    instructorName: Optional[str] = None
    scheduledDate: date
    startTime: time
    endTime: time
    status: str
    activityType: Optional[str] = None
    revenue: Decimal
    instructorPayment: Decimal
    profit: Decimal
    topic: Optional[str] = None
    notes: Optional[str] = None
    zoomMeetingId: Optional[str] = None
    zoomJoinUrl: Optional[str] = None
    zoomStartUrl: Optional[str] = None
    zoomPassword: Optional[str] = None
    zoomHostKey: Optional[str] = None
    replacementForId: Optional[str] = None
    rescheduledToId: Optional[str] = None
    statusUpdatedAt: Optional[datetime] = None
    statusUpdatedBy: Optional[str] = None
    created_at: Optional[datetime] = None


class MeetingListResponse(BaseModel):
    meetings: list[MeetingResponse]
    total: int
    limit: int
    offset: int


class AttendanceRecord(BaseModel):
    registrationId: str
    status: str
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, ("present", "absent", "late"), "status")


class BulkAttendanceRequest(BaseModel):
    records: list[AttendanceRecord] = Field(..., min_length=1)


class AttendanceResponse(BaseModel):
    id: str
    meetingId: str
    registrationId: str
    studentName: Optional[str] = None
    status: str
    notes: Optional[str] = None
    recordedAt: Optional[datetime] = None
    recordedBy: str
