"""Cycle domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...models import CYCLE_STATUSES, CYCLE_TYPES
from ...shared.validators import validate_activity_type, validate_choice, validate_day_of_week


class CycleCreate(BaseModel):
    """Schema for creating a cycle"""

    name: str = Field(..., min_length=1, max_length=255)
    courseId: str
    branchId: Optional[str] = None
    instructorId: Optional[str] = None
    type: str = "private"
    startDate: date
    endDate: Optional[date] = None
    dayOfWeek: str
    startTime: time
    endTime: time
    durationMinutes: Optional[int] = Field(None, ge=1, le=600)
    totalMeetings: int = Field(..., ge=1, le=200)
    pricePerStudent: Optional[Decimal] = Field(None, ge=0)
    meetingRevenue: Optional[Decimal] = Field(None, ge=0)
    studentCount: Optional[int] = Field(None, ge=0)
    maxStudents: Optional[int] = Field(None, ge=1)
    activityType: Optional[str] = None
    zoomHostId: Optional[str] = None
    notes: Optional[str] = None
    generateMeetings: bool = True

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return validate_choice(v, CYCLE_TYPES, "type")

    @field_validator("dayOfWeek")
    @classmethod
    def validate_day(cls, v):
        return validate_day_of_week(v)

    @field_validator("activityType")
    @classmethod
    def validate_activity(cls, v):
        return validate_activity_type(v)

    @model_validator(mode="after")
    def check_schedule(self):
        if self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        if self.endDate and self.endDate < self.startDate:
            raise ValueError("endDate must not be before startDate")
        return self


class CycleUpdate(BaseModel):
    """Schema for updating a cycle; counters are reconciled by the service"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    branchId: Optional[str] = None
    instructorId: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    dayOfWeek: Optional[str] = None
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    durationMinutes: Optional[int] = Field(None, ge=1, le=600)
    totalMeetings: Optional[int] = Field(None, ge=1, le=200)
    completedMeetings: Optional[int] = Field(None, ge=0)
    pricePerStudent: Optional[Decimal] = Field(None, ge=0)
    meetingRevenue: Optional[Decimal] = Field(None, ge=0)
    studentCount: Optional[int] = Field(None, ge=0)
    maxStudents: Optional[int] = Field(None, ge=1)
    activityType: Optional[str] = None
    zoomMeetingId: Optional[str] = None
    zoomJoinUrl: Optional[str] = None
    zoomHostId: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return validate_choice(v, CYCLE_TYPES, "type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, CYCLE_STATUSES, "status")

    @field_validator("dayOfWeek")
    @classmethod
    def validate_day(cls, v):
        return validate_day_of_week(v)

    @field_validator("activityType")
    @classmethod
    def validate_activity(cls, v):
        return validate_activity_type(v)


class CycleResponse(BaseModel):
    """Schema for cycle response"""

    id: str
    name: str
    courseId: str
    courseName: Optional[str] = None
    branchId: Optional[str] = None
    instructorId: Optional[str] = None
    instructorName: Optional[str] = None
    type: str
    status: str
    startDate: date
    endDate: Optional[date] = None
    dayOfWeek: str
    startTime: time
    endTime: time
    durationMinutes: int
    totalMeetings: int
    completedMeetings: int
    remainingMeetings: int
    pricePerStudent: Optional[Decimal] = None
    meetingRevenue: Optional[Decimal] = None
    studentCount: Optional[int] = None
    maxStudents: Optional[int] = None
    isOnline: bool
    activityType: Optional[str] = None
    zoomMeetingId: Optional[str] = None
    zoomJoinUrl: Optional[str] = None
    zoomHostId: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class CycleDetailResponse(CycleResponse):
    """Cycle with meeting status counts and enrolled students"""

    meetingCounts: dict[str, int] = {}
    enrolledCount: int = 0


class CycleListResponse(BaseModel):
    cycles: list[CycleResponse]
    total: int
    limit: int
    offset: int


class GenerateMeetingsRequest(BaseModel):
    skipHolidays: bool = True


class GenerateMeetingsResponse(BaseModel):
    message: str
    generated: int
    total: int


class BulkGenerateRequest(BaseModel):
    cycleIds: list[str] = Field(..., min_length=1, max_length=100)
    skipHolidays: bool = True


class BulkGenerateResult(BaseModel):
    cycleId: str
    generated: int = 0
    error: Optional[str] = None


class BulkGenerateResponse(BaseModel):
    results: list[BulkGenerateResult]
    totalGenerated: int


class DuplicateCycleRequest(BaseModel):
    newStartDate: date
    newName: Optional[str] = Field(None, min_length=1, max_length=255)
    copyRegistrations: bool = False
    generateMeetings: bool = True


class MeetingProjection(BaseModel):
    """Expected per-meeting financials of a cycle"""

    activityType: str
    revenue: Decimal
    instructorPayment: Decimal
    profit: Decimal
    totalMeetings: int
    totalRevenue: Decimal
    totalInstructorPayment: Decimal
    totalProfit: Decimal


class DuplicateCycleResponse(BaseModel):
    cycle: CycleResponse
    generatedMeetings: int
    copiedRegistrations: int
    projection: MeetingProjection
