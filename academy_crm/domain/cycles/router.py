"""Cycle router - FastAPI endpoints for cycle operations"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from ...audit import audit_context_from_request
from ...auth import get_current_user, manager_or_admin
from ...database import get_db
from ...models import Cycle, User
from ...tasks import enqueue_task
from ..meetings.router import to_meeting_response
from ..meetings.schemas import MeetingResponse
from .schemas import (
    BulkGenerateRequest,
    BulkGenerateResponse,
    CycleCreate,
    CycleDetailResponse,
    CycleListResponse,
    CycleResponse,
    CycleUpdate,
    DuplicateCycleRequest,
    DuplicateCycleResponse,
    GenerateMeetingsRequest,
    GenerateMeetingsResponse,
)
from .service import CycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cycles", tags=["Cycles"])


def get_cycle_service(request: Request, db: Session = Depends(get_db)) -> CycleService:
    """Dependency injection for CycleService"""
    return CycleService(db, audit_context_from_request(request))


def to_cycle_response(c: Cycle) -> CycleResponse:
    return CycleResponse(
        id=c.id,
        name=c.name,
        courseId=c.course_id,
        courseName=c.course.name if c.course else None,
        branchId=c.branch_id,
        instructorId=c.instructor_id,
        instructorName=c.instructor.name if c.instructor else None,
        type=c.type,
        status=c.status,
        startDate=c.start_date,
        endDate=c.end_date,
        dayOfWeek=c.day_of_week,
        startTime=c.start_time,
        endTime=c.end_time,
        durationMinutes=c.duration_minutes,
        totalMeetings=c.total_meetings,
        completedMeetings=c.completed_meetings,
        remainingMeetings=c.remaining_meetings,
        pricePerStudent=c.price_per_student,
        meetingRevenue=c.meeting_revenue,
        studentCount=c.student_count,
        maxStudents=c.max_students,
        isOnline=c.is_online,
        activityType=c.activity_type,
        zoomMeetingId=c.zoom_meeting_id,
        zoomJoinUrl=c.zoom_join_url,
        zoomHostId=c.zoom_host_id,
        notes=c.notes,
        created_at=c.created_at,
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=CycleListResponse)
async def list_cycles(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    instructorId: Optional[str] = Query(None),
    courseId: Optional[str] = Query(None),
    branchId: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: CycleService = Depends(get_cycle_service),
):
    """List cycles; instructors only see cycles they teach"""
    cycles, total = service.list_cycles(
        current_user, status, type, instructorId, courseId, branchId, search, limit, offset
    )
    return CycleListResponse(
        cycles=[to_cycle_response(c) for c in cycles], total=total, limit=limit, offset=offset
    )


@router.get("/{cycle_id}", response_model=CycleDetailResponse)
async def get_cycle(
    cycle_id: str,
    current_user: User = Depends(get_current_user),
    service: CycleService = Depends(get_cycle_service),
):
    cycle, counts, enrolled = service.get_cycle_summary(cycle_id, current_user)
    return CycleDetailResponse(
        **to_cycle_response(cycle).model_dump(), meetingCounts=counts, enrolledCount=enrolled
    )


@router.post("", response_model=CycleResponse, status_code=201)
async def create_cycle(
    data: CycleCreate,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    return to_cycle_response(await service.create_cycle(data, current_user))


@router.put("/{cycle_id}", response_model=CycleResponse)
async def update_cycle(
    cycle_id: str,
    data: CycleUpdate,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    return to_cycle_response(service.update_cycle(cycle_id, data, current_user))


@router.delete("/{cycle_id}")
async def delete_cycle(
    cycle_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    """Soft delete a cycle; its meetings' Zoom rooms are released in the worker"""
    room_ids = service.delete_cycle(cycle_id, current_user)
    for room_id in room_ids:
        await enqueue_task(
            "delete_zoom_room_task", room_id, job_id=f"zoom-delete:{room_id}", background_tasks=background_tasks
        )
    return {"message": "Cycle deleted", "releasedRooms": len(room_ids)}


@router.get("/{cycle_id}/meetings", response_model=list[MeetingResponse])
async def get_cycle_meetings(
    cycle_id: str,
    current_user: User = Depends(get_current_user),
    service: CycleService = Depends(get_cycle_service),
):
    return [to_meeting_response(m) for m in service.get_cycle_meetings(cycle_id, current_user)]


# ============================================================================
# MEETING GENERATION
# ============================================================================


@router.post("/bulk-generate-meetings", response_model=BulkGenerateResponse)
async def bulk_generate_meetings(
    data: BulkGenerateRequest,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    results = await service.bulk_generate_meetings(data.cycleIds, data.skipHolidays, current_user)
    return BulkGenerateResponse(results=results, totalGenerated=sum(r["generated"] for r in results))


@router.post("/{cycle_id}/generate-meetings", response_model=GenerateMeetingsResponse)
async def generate_meetings(
    cycle_id: str,
    data: Optional[GenerateMeetingsRequest] = None,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    """Create the meetings a cycle is still missing"""
    skip_holidays = data.skipHolidays if data else True
    meetings = await service.generate_meetings(cycle_id, skip_holidays, current_user)
    cycle = service.get_cycle(cycle_id)
    return GenerateMeetingsResponse(
        message=f"Generated {len(meetings)} meetings",
        generated=len(meetings),
        total=cycle.total_meetings,
    )


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{cycle_id}/sync-progress", response_model=CycleResponse)
async def sync_progress(
    cycle_id: str,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    """Recount completed/remaining meetings from the meetings themselves"""
    return to_cycle_response(service.sync_progress(cycle_id, current_user))


@router.post("/{cycle_id}/duplicate", response_model=DuplicateCycleResponse, status_code=201)
async def duplicate_cycle(
    cycle_id: str,
    data: DuplicateCycleRequest,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    result = await service.duplicate_cycle(
        cycle_id,
        data.newStartDate,
        new_name=data.newName,
        copy_registrations=data.copyRegistrations,
        generate_meetings=data.generateMeetings,
        user=current_user,
    )
    return DuplicateCycleResponse(
        cycle=to_cycle_response(result["cycle"]),
        generatedMeetings=result["generatedMeetings"],
        copiedRegistrations=result["copiedRegistrations"],
        projection=result["projection"],
    )


@router.post("/{cycle_id}/complete", response_model=CycleResponse)
async def complete_cycle(
    cycle_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(manager_or_admin),
    service: CycleService = Depends(get_cycle_service),
):
    """Close a cycle now; room cleanup and the summary email run in the worker"""
    cycle, room_ids, changed = service.complete_cycle(cycle_id, current_user)
    for room_id in room_ids:
        await enqueue_task(
            "delete_zoom_room_task", room_id, job_id=f"zoom-delete:{room_id}", background_tasks=background_tasks
        )
    if changed:
        await enqueue_task(
            "cycle_summary_task", cycle.id, job_id=f"cycle-summary:{cycle.id}", background_tasks=background_tasks
        )
    return to_cycle_response(service.get_cycle(cycle.id))


__all__ = ["router"]
