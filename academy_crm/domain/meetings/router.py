"""Meeting router - FastAPI endpoints for meeting operations"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from ...audit import audit_context_from_request
from ...auth import get_current_user, manager_or_admin
from ...database import get_db
from ...models import Attendance, Meeting, User
from ...tasks import dispatch_completion_followups, dispatch_replacement
from .schemas import (
    AttendanceResponse,
    BulkAttendanceRequest,
    BulkMeetingIds,
    BulkRecalculateRequest,
    BulkResult,
    BulkUpdateStatusRequest,
    MeetingCreate,
    MeetingListResponse,
    MeetingResponse,
    MeetingUpdate,
)
from .service import MeetingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetings", tags=["Meetings"])


def get_meeting_service(request: Request, db: Session = Depends(get_db)) -> MeetingService:
    """Dependency injection for MeetingService"""
    return MeetingService(db, audit_context_from_request(request))


def to_meeting_response(m: Meeting) -> MeetingResponse:
    return MeetingResponse(
        id=m.id,
        cycleId=m.cycle_id,
        cycleName=m.cycle.name if m.cycle else None,
        instructorId=m.instructor_id,
        instructorName=m.instructor.name if m.instructor else None,
        scheduledDate=m.scheduled_date,
        startTime=m.start_time,
        endTime=m.end_time,
        status=m.status,
        activityType=m.activity_type,
        revenue=m.revenue or 0,
        instructorPayment=m.instructor_payment or 0,
        profit=m.profit or 0,
        topic=m.topic,
        notes=m.notes,
        zoomMeetingId=m.zoom_meeting_id,
        zoomJoinUrl=m.zoom_join_url,
        zoomStartUrl=m.zoom_start_url,
        zoomPassword=m.zoom_password,
        zoomHostKey=m.zoom_host_key,
        replacementForId=m.replacement_for_id,
        rescheduledToId=m.rescheduled_to_id,
        statusUpdatedAt=m.status_updated_at,
        statusUpdatedBy=m.status_updated_by,
        created_at=m.created_at,
    )


def to_attendance_response(a: Attendance) -> AttendanceResponse:
    student = a.registration.student if a.registration else None
    return AttendanceResponse(
        id=a.id,
        meetingId=a.meeting_id,
        registrationId=a.registration_id,
        studentName=student.name if student else None,
        status=a.status,
        notes=a.notes,
        recordedAt=a.recorded_at,
        recordedBy=a.recorded_by,
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=MeetingListResponse)
async def list_meetings(
    cycleId: Optional[str] = Query(None),
    instructorId: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    dateFrom: Optional[date] = Query(None),
    dateTo: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: MeetingService = Depends(get_meeting_service),
):
    """List meetings; instructors only see their own"""
    meetings, total = service.list_meetings(
        current_user, cycleId, instructorId, status, dateFrom, dateTo, limit, offset
    )
    return MeetingListResponse(
        meetings=[to_meeting_response(m) for m in meetings], total=total, limit=limit, offset=offset
    )


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_user),
    service: MeetingService = Depends(get_meeting_service),
):
    return to_meeting_response(service.get_meeting(meeting_id, current_user))


@router.post("", response_model=MeetingResponse, status_code=201)
async def create_meeting(
    data: MeetingCreate,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return to_meeting_response(service.create_meeting(data, current_user))


@router.put("/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: str,
    data: MeetingUpdate,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    """Administrative update; may change status from any state"""
    return to_meeting_response(service.update_meeting(meeting_id, data, current_user))


@router.delete("/{meeting_id}")
async def delete_meeting(
    meeting_id: str,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return service.delete_meeting(meeting_id, current_user)


# ============================================================================
# STATUS TRANSITIONS
# ============================================================================


@router.post("/{meeting_id}/complete", response_model=MeetingResponse)
async def complete_meeting(
    meeting_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: MeetingService = Depends(get_meeting_service),
):
    """Mark a meeting held: computes revenue, instructor payment and profit"""
    transition = service.complete_meeting(meeting_id, current_user)
    if transition.changed:
        await dispatch_completion_followups(transition.meeting, background_tasks)
    return to_meeting_response(transition.meeting)


@router.post("/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: str,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return to_meeting_response(service.cancel_meeting(meeting_id, current_user).meeting)


@router.post("/{meeting_id}/postpone", response_model=MeetingResponse)
async def postpone_meeting(
    meeting_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    """Postpone a scheduled meeting; the replacement meeting is created in the background"""
    transition = service.postpone_meeting(meeting_id, current_user)
    if transition.meeting.rescheduled_to_id is None:
        await dispatch_replacement(transition.meeting.id, current_user.id, background_tasks)
    return to_meeting_response(transition.meeting)


@router.post("/{meeting_id}/recalculate", response_model=MeetingResponse)
async def recalculate_meeting(
    meeting_id: str,
    force: bool = Query(True),
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return to_meeting_response(service.recalculate_meeting(meeting_id, force, current_user))


# ============================================================================
# BULK OPERATIONS
# ============================================================================


@router.post("/bulk-recalculate", response_model=BulkResult)
async def bulk_recalculate(
    data: BulkRecalculateRequest,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return service.bulk_recalculate(data.ids, data.force, current_user)


@router.post("/bulk-update-status", response_model=BulkResult)
async def bulk_update_status(
    data: BulkUpdateStatusRequest,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return service.bulk_update_status(data.ids, data.status, current_user)


@router.post("/bulk-delete", response_model=BulkResult)
async def bulk_delete(
    data: BulkMeetingIds,
    current_user: User = Depends(manager_or_admin),
    service: MeetingService = Depends(get_meeting_service),
):
    return service.bulk_delete(data.ids, current_user)


# ============================================================================
# ATTENDANCE
# ============================================================================


@router.get("/{meeting_id}/attendance", response_model=list[AttendanceResponse])
async def get_attendance(
    meeting_id: str,
    current_user: User = Depends(get_current_user),
    service: MeetingService = Depends(get_meeting_service),
):
    return [to_attendance_response(a) for a in service.get_attendance(meeting_id, current_user)]


@router.post("/{meeting_id}/attendance", response_model=list[AttendanceResponse])
async def record_attendance(
    meeting_id: str,
    data: BulkAttendanceRequest,
    current_user: User = Depends(get_current_user),
    service: MeetingService = Depends(get_meeting_service),
):
    return [to_attendance_response(a) for a in service.record_attendance(meeting_id, data, current_user)]


__all__ = ["router"]
