"""Meeting change request service - instructors ask, managers decide"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import ACTION_CREATE, ACTION_UPDATE, AuditContext, log_audit
from ...auth import instructor_id_for, is_instructor
from ...config import ADMIN_NOTIFICATION_EMAIL
from ...email_templates import change_request_reviewed_template, change_request_submitted_template
from ...errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ...models import MeetingChangeRequest, User
from ..meetings.lifecycle import MeetingLifecycle, Transition
from ..meetings.repository import MeetingRepository
from .repository import MeetingRequestRepository
from .schemas import MeetingRequestCreate

logger = logging.getLogger(__name__)


class MeetingRequestService:
    def __init__(self, db: Session, context: Optional[AuditContext] = None):
        self.db = db
        self.repo = MeetingRequestRepository()
        self.meeting_repo = MeetingRepository()
        self.context = context
        self.lifecycle = MeetingLifecycle(db, context)

    def get_request(self, request_id: str, user: Optional[User] = None) -> MeetingChangeRequest:
        request = self.repo.get_request(self.db, request_id)
        if not request:
            raise NotFoundError("Meeting request", request_id)
        if user is not None and is_instructor(user) and request.instructor_id != instructor_id_for(user):
            raise ForbiddenError("You can only access your own requests")
        return request

    def list_requests(
        self,
        user: User,
        status: Optional[str] = None,
        instructor_id: Optional[str] = None,
        meeting_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[MeetingChangeRequest], int]:
        if is_instructor(user):
            instructor_id = instructor_id_for(user)
            if not instructor_id:
                return [], 0
        return self.repo.list_requests(self.db, status, instructor_id, meeting_id, limit, offset)

    def create_request(self, data: MeetingRequestCreate, user: User) -> MeetingChangeRequest:
        """An instructor asks to cancel or move one of their scheduled meetings"""
        instructor_id = instructor_id_for(user)
        if not instructor_id:
            raise ForbiddenError("Only instructors can submit meeting requests")

        meeting = self.meeting_repo.get_meeting(self.db, data.meetingId)
        if not meeting:
            raise NotFoundError("Meeting", data.meetingId)
        if meeting.instructor_id != instructor_id:
            raise ForbiddenError("You can only submit requests for your own meetings")
        if meeting.status != "scheduled":
            raise ValidationError(
                f"Requests can only be made for scheduled meetings (meeting is {meeting.status})",
                {"meetingId": meeting.id, "status": meeting.status},
            )
        if self.repo.find_pending(self.db, meeting.id, data.requestType):
            raise ConflictError(
                f"A pending {data.requestType} request already exists for this meeting",
                {"meetingId": meeting.id, "requestType": data.requestType},
            )

        try:
            request = MeetingChangeRequest(
                meeting_id=meeting.id,
                instructor_id=instructor_id,
                request_type=data.requestType,
                reason=data.reason,
                status="pending",
            )
            self.db.add(request)
            self.db.flush()
            log_audit(
                self.db,
                user,
                ACTION_CREATE,
                "MeetingChangeRequest",
                request.id,
                new_value={"meetingId": meeting.id, "requestType": data.requestType, "reason": data.reason},
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📨 {data.requestType} request {request.id} submitted for meeting {meeting.id}")
        return self.get_request(request.id)

    # ========================================================================
    # REVIEW
    # ========================================================================

    def _finish_review(
        self, request: MeetingChangeRequest, new_status: str, user: User, review_notes: Optional[str]
    ) -> MeetingChangeRequest:
        try:
            if not self.repo.claim_review(self.db, request.id, new_status, user.id, review_notes):
                raise ConflictError("Request has already been reviewed", {"requestId": request.id})
            log_audit(
                self.db,
                user,
                ACTION_UPDATE,
                "MeetingChangeRequest",
                request.id,
                old_value={"status": "pending"},
                new_value={"status": new_status, "reviewNotes": review_notes},
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        logger.info(f"📋 Request {request.id} {new_status} by {user.id}")
        return request

    def approve(
        self, request_id: str, user: User, review_notes: Optional[str] = None
    ) -> tuple[MeetingChangeRequest, Transition]:
        """
        Apply the requested change to the meeting, then mark the request approved.

        cancel cancels the meeting; postpone and replacement postpone it, and
        the caller queues the replacement meeting.
        """
        request = self.get_request(request_id)
        if request.status != "pending":
            raise ConflictError(f"Request is already {request.status}", {"requestId": request.id})

        if request.request_type == "cancel":
            transition = self.lifecycle.cancel(request.meeting_id, user)
        else:
            transition = self.lifecycle.postpone(request.meeting_id, user)

        return self._finish_review(request, "approved", user, review_notes), transition

    def reject(self, request_id: str, user: User, review_notes: Optional[str] = None) -> MeetingChangeRequest:
        request = self.get_request(request_id)
        if request.status != "pending":
            raise ConflictError(f"Request is already {request.status}", {"requestId": request.id})
        return self._finish_review(request, "rejected", user, review_notes)

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    @staticmethod
    def submission_email(request: MeetingChangeRequest) -> Optional[tuple[str, str, str]]:
        """(to, subject, mjml) for management, or None when no address is configured"""
        if not ADMIN_NOTIFICATION_EMAIL:
            return None
        meeting = request.meeting
        cycle_name = meeting.cycle.name if meeting and meeting.cycle else "-"
        meeting_date = meeting.scheduled_date.isoformat() if meeting else "-"
        instructor_name = request.instructor.name if request.instructor else "Instructor"
        mjml_content = change_request_submitted_template(
            instructor_name=instructor_name,
            request_type=request.request_type,
            cycle_name=cycle_name,
            meeting_date=meeting_date,
            reason=request.reason,
        )
        return ADMIN_NOTIFICATION_EMAIL, f"Meeting request: {cycle_name} ({meeting_date})", mjml_content

    @staticmethod
    def review_email(request: MeetingChangeRequest) -> Optional[tuple[str, str, str]]:
        """(to, subject, mjml) for the instructor, or None when they have no email"""
        instructor = request.instructor
        to = None
        if instructor:
            to = instructor.email or (instructor.user.email if instructor.user else None)
        if not to:
            return None
        meeting = request.meeting
        cycle_name = meeting.cycle.name if meeting and meeting.cycle else "-"
        meeting_date = meeting.scheduled_date.isoformat() if meeting else "-"
        mjml_content = change_request_reviewed_template(
            instructor_name=instructor.name,
            request_type=request.request_type,
            status=request.status,
            cycle_name=cycle_name,
            meeting_date=meeting_date,
            review_notes=request.review_notes,
        )
        return to, f"Your meeting request was {request.status}", mjml_content
