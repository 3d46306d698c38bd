"""Meeting change request router"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from ...audit import audit_context_from_request
from ...auth import get_current_user, manager_or_admin
from ...database import get_db
from ...models import MeetingChangeRequest, User
from ...tasks import dispatch_email, dispatch_replacement
from .schemas import (
    MeetingRequestCreate,
    MeetingRequestListResponse,
    MeetingRequestResponse,
    MeetingRequestReview,
)
from .service import MeetingRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meeting-requests", tags=["Meeting Requests"])


def get_meeting_request_service(request: Request, db: Session = Depends(get_db)) -> MeetingRequestService:
    """Dependency injection for MeetingRequestService"""
    return MeetingRequestService(db, audit_context_from_request(request))


def to_request_response(r: MeetingChangeRequest) -> MeetingRequestResponse:
    meeting = r.meeting
    return MeetingRequestResponse(
        id=r.id,
        meetingId=r.meeting_id,
        meetingDate=meeting.scheduled_date if meeting else None,
        cycleId=meeting.cycle_id if meeting else None,
        cycleName=meeting.cycle.name if meeting and meeting.cycle else None,
        instructorId=r.instructor_id,
        instructorName=r.instructor.name if r.instructor else None,
        requestType=r.request_type,
        reason=r.reason,
        status=r.status,
        reviewedBy=r.reviewed_by,
        reviewedAt=r.reviewed_at,
        reviewNotes=r.review_notes,
        created_at=r.created_at,
    )


async def notify(email: Optional[tuple[str, str, str]], job_id: str, background_tasks: BackgroundTasks) -> None:
    if email:
        to, subject, mjml_content = email
        await dispatch_email(to, subject, mjml_content, job_id=job_id, background_tasks=background_tasks)


@router.get("", response_model=MeetingRequestListResponse)
async def list_requests(
    status: Optional[str] = Query(None),
    instructorId: Optional[str] = Query(None),
    meetingId: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: MeetingRequestService = Depends(get_meeting_request_service),
):
    """Managers see all requests, instructors their own"""
    requests, total = service.list_requests(current_user, status, instructorId, meetingId, limit, offset)
    return MeetingRequestListResponse(
        requests=[to_request_response(r) for r in requests], total=total, limit=limit, offset=offset
    )


@router.get("/{request_id}", response_model=MeetingRequestResponse)
async def get_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    service: MeetingRequestService = Depends(get_meeting_request_service),
):
    return to_request_response(service.get_request(request_id, current_user))


@router.post("", response_model=MeetingRequestResponse, status_code=201)
async def create_request(
    data: MeetingRequestCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: MeetingRequestService = Depends(get_meeting_request_service),
):
    request = service.create_request(data, current_user)
    await notify(service.submission_email(request), f"request-submitted:{request.id}", background_tasks)
    return to_request_response(request)


@router.post("/{request_id}/approve", response_model=MeetingRequestResponse)
async def approve_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    data: Optional[MeetingRequestReview] = None,
    current_user: User = Depends(manager_or_admin),
    service: MeetingRequestService = Depends(get_meeting_request_service),
):
    """Approve and apply: cancel, or postpone with a replacement meeting"""
    request, transition = service.approve(request_id, current_user, data.reviewNotes if data else None)
    if transition.meeting.status == "postponed" and transition.meeting.rescheduled_to_id is None:
        await dispatch_replacement(transition.meeting.id, current_user.id, background_tasks)
    await notify(service.review_email(request), f"request-reviewed:{request.id}", background_tasks)
    return to_request_response(request)


@router.post("/{request_id}/reject", response_model=MeetingRequestResponse)
async def reject_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    data: Optional[MeetingRequestReview] = None,
    current_user: User = Depends(manager_or_admin),
    service: MeetingRequestService = Depends(get_meeting_request_service),
):
    request = service.reject(request_id, current_user, data.reviewNotes if data else None)
    await notify(service.review_email(request), f"request-reviewed:{request.id}", background_tasks)
    return to_request_response(request)


__all__ = ["router"]
