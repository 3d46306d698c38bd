"""Meeting service - Business logic for meeting operations"""

import logging
from collections import Counter
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, AuditContext, log_audit, snapshot
from ...auth import instructor_id_for, is_instructor
from ...errors import ApiError, ForbiddenError, NotFoundError, ValidationError
from ...models import Attendance, Cycle, Instructor, Meeting, Registration, User
from .lifecycle import MeetingLifecycle, Transition
from .repository import MeetingRepository
from .schemas import BulkAttendanceRequest, MeetingCreate, MeetingUpdate

logger = logging.getLogger(__name__)

MEETING_AUDIT_FIELDS = (
    "scheduled_date",
    "start_time",
    "end_time",
    "instructor_id",
    "activity_type",
    "topic",
    "notes",
    "status",
)


class MeetingService:
    """Service layer for meeting business logic"""

    def __init__(self, db: Session, context: Optional[AuditContext] = None):
        self.db = db
        self.repo = MeetingRepository()
        self.context = context
        self.lifecycle = MeetingLifecycle(db, context)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def list_meetings(
        self,
        user: User,
        cycle_id: Optional[str] = None,
        instructor_id: Optional[str] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Meeting], int]:
        # Instructors only see their own meetings
        if is_instructor(user):
            instructor_id = instructor_id_for(user)
            if not instructor_id:
                return [], 0
        return self.repo.list_meetings(
            self.db, cycle_id, instructor_id, status, date_from, date_to, limit, offset
        )

    def get_meeting(self, meeting_id: str, user: Optional[User] = None) -> Meeting:
        meeting = self.repo.get_meeting(self.db, meeting_id)
        if not meeting:
            raise NotFoundError("Meeting", meeting_id)
        if user is not None and is_instructor(user) and meeting.instructor_id != instructor_id_for(user):
            raise ForbiddenError("You can only access your own meetings")
        return meeting

    # ========================================================================
    # CORE CRUD OPERATIONS
    # ========================================================================

    def create_meeting(self, data: MeetingCreate, user: User) -> Meeting:
        """Add one meeting to a cycle; the cycle's commitment grows by one"""
        cycle = (
            self.db.query(Cycle)
            .filter(Cycle.id == data.cycleId, Cycle.deleted_at.is_(None))
            .first()
        )
        if not cycle:
            raise NotFoundError("Cycle", data.cycleId)

        instructor_id = data.instructorId or cycle.instructor_id
        if instructor_id and not self.db.get(Instructor, instructor_id):
            raise NotFoundError("Instructor", instructor_id)

        start_time = data.startTime or cycle.start_time
        end_time = data.endTime or cycle.end_time
        if end_time <= start_time:
            raise ValidationError("endTime must be after startTime")

        try:
            meeting = self.repo.add_meeting(
                self.db,
                cycle_id=cycle.id,
                instructor_id=instructor_id,
                scheduled_date=data.scheduledDate,
                start_time=start_time,
                end_time=end_time,
                status="scheduled",
                activity_type=data.activityType,
                topic=data.topic,
                notes=data.notes,
            )
            self.repo.adjust_cycle_counters(self.db, cycle.id, remaining_delta=1, total_delta=1)
            log_audit(
                self.db,
                user,
                ACTION_CREATE,
                "Meeting",
                meeting.id,
                new_value={
                    "cycleId": cycle.id,
                    "scheduledDate": data.scheduledDate.isoformat(),
                    "instructorId": instructor_id,
                },
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(meeting)
        logger.info(f"📅 Meeting {meeting.id} added to cycle {cycle.id} on {meeting.scheduled_date}")
        return meeting

    def update_meeting(self, meeting_id: str, data: MeetingUpdate, user: User) -> Meeting:
        meeting = self.get_meeting(meeting_id)
        before = snapshot(meeting, MEETING_AUDIT_FIELDS)

        if data.instructorId is not None and not self.db.get(Instructor, data.instructorId):
            raise NotFoundError("Instructor", data.instructorId)

        updates = {
            "instructor_id": data.instructorId,
            "scheduled_date": data.scheduledDate,
            "start_time": data.startTime,
            "end_time": data.endTime,
            "activity_type": data.activityType,
            "topic": data.topic,
            "notes": data.notes,
            "zoom_meeting_id": data.zoomMeetingId,
            "zoom_join_url": data.zoomJoinUrl,
        }
        changed = {key: value for key, value in updates.items() if value is not None}

        if changed:
            try:
                for key, value in changed.items():
                    setattr(meeting, key, value)
                if meeting.end_time <= meeting.start_time:
                    raise ValidationError("endTime must be after startTime")
                log_audit(
                    self.db,
                    user,
                    ACTION_UPDATE,
                    "Meeting",
                    meeting.id,
                    old_value=before,
                    new_value=snapshot(meeting, MEETING_AUDIT_FIELDS),
                    context=self.context,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)

        if data.status and data.status != meeting.status:
            meeting = self.lifecycle.set_status(meeting.id, data.status, user).meeting

        return meeting

    def delete_meeting(self, meeting_id: str, user: User) -> dict:
        """Soft delete; a completed meeting is taken out of the cycle's completed count"""
        meeting = self.get_meeting(meeting_id)
        try:
            if meeting.status == "completed":
                self.repo.adjust_cycle_counters(self.db, meeting.cycle_id, completed_delta=-1, remaining_delta=1)
            self.repo.soft_delete(self.db, meeting, user.id)
            log_audit(
                self.db,
                user,
                ACTION_DELETE,
                "Meeting",
                meeting.id,
                old_value=snapshot(meeting, MEETING_AUDIT_FIELDS),
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"🗑️ Meeting {meeting_id} soft-deleted by {user.id}")
        return {"message": "Meeting deleted"}

    # ========================================================================
    # STATUS TRANSITIONS
    # ========================================================================

    def complete_meeting(self, meeting_id: str, user: User) -> Transition:
        self.get_meeting(meeting_id, user)
        return self.lifecycle.complete(meeting_id, user)

    def cancel_meeting(self, meeting_id: str, user: User) -> Transition:
        return self.lifecycle.cancel(meeting_id, user)

    def postpone_meeting(self, meeting_id: str, user: User) -> Transition:
        return self.lifecycle.postpone(meeting_id, user)

    def recalculate_meeting(self, meeting_id: str, force: bool = True, user: Optional[User] = None) -> Meeting:
        """Without force a meeting that already has revenue is returned untouched"""
        if not force:
            meeting = self.repo.get_meeting(self.db, meeting_id)
            if meeting and meeting.status == "completed" and meeting.revenue and meeting.revenue > 0:
                return meeting
        return self.lifecycle.recalculate(meeting_id, user)

    # ========================================================================
    # BULK OPERATIONS
    # ========================================================================

    def bulk_recalculate(self, meeting_ids: list[str], force: bool, user: User) -> dict:
        """Recalculate completed meetings; ones that already have revenue are skipped unless forced"""
        updated = skipped = 0
        errors: list[str] = []

        for meeting_id in meeting_ids:
            meeting = self.repo.get_meeting(self.db, meeting_id)
            if not meeting:
                errors.append(f"Meeting {meeting_id} not found")
                continue
            if meeting.status != "completed":
                errors.append(f"Meeting {meeting_id}: only completed meetings can be recalculated")
                continue
            if not force and meeting.revenue and meeting.revenue > 0:
                skipped += 1
                continue
            try:
                self.lifecycle.recalculate(meeting_id, user)
                updated += 1
            except ApiError as e:
                errors.append(f"Meeting {meeting_id}: {e.message}")

        logger.info(f"🔄 Bulk recalculate: {updated} updated, {skipped} skipped, {len(errors)} errors")
        return {"success": True, "updated": updated, "skipped": skipped, "errors": errors or None}

    def bulk_update_status(self, meeting_ids: list[str], status: str, user: User) -> dict:
        updated = 0
        errors: list[str] = []

        for meeting_id in meeting_ids:
            try:
                if self.lifecycle.set_status(meeting_id, status, user).changed:
                    updated += 1
            except ApiError as e:
                errors.append(f"Meeting {meeting_id}: {e.message}")

        logger.info(f"📝 Bulk status -> {status}: {updated} updated, {len(errors)} errors")
        return {"success": True, "updated": updated, "errors": errors or None}

    def bulk_delete(self, meeting_ids: list[str], user: User) -> dict:
        meetings = self.repo.get_meetings_by_ids(self.db, meeting_ids)
        completed_by_cycle = Counter(m.cycle_id for m in meetings if m.status == "completed")

        try:
            for cycle_id, count in completed_by_cycle.items():
                self.repo.adjust_cycle_counters(self.db, cycle_id, completed_delta=-count, remaining_delta=count)
            for meeting in meetings:
                self.repo.soft_delete(self.db, meeting, user.id)
            log_audit(
                self.db,
                user,
                ACTION_DELETE,
                "Meeting",
                "bulk",
                old_value={"ids": [m.id for m in meetings]},
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Bulk deleted {len(meetings)} meetings")
        return {"success": True, "deleted": len(meetings)}

    # ========================================================================
    # ATTENDANCE
    # ========================================================================

    def get_attendance(self, meeting_id: str, user: User) -> list[Attendance]:
        self.get_meeting(meeting_id, user)
        return self.repo.get_attendance(self.db, meeting_id)

    def record_attendance(self, meeting_id: str, data: BulkAttendanceRequest, user: User) -> list[Attendance]:
        """Create or update attendance for registrations of the meeting's cycle"""
        meeting = self.get_meeting(meeting_id, user)
        registration_ids = {r.registrationId for r in data.records}
        registrations = {
            r.id: r
            for r in self.db.query(Registration).filter(Registration.id.in_(registration_ids)).all()
        }

        for record in data.records:
            registration = registrations.get(record.registrationId)
            if not registration:
                raise NotFoundError("Registration", record.registrationId)
            if registration.cycle_id != meeting.cycle_id:
                raise ValidationError(
                    "Registration does not belong to this meeting's cycle",
                    {"registrationId": record.registrationId},
                )

        existing = {a.registration_id: a for a in self.repo.get_attendance(self.db, meeting.id)}
        try:
            for record in data.records:
                attendance = existing.get(record.registrationId)
                if attendance:
                    attendance.status = record.status
                    attendance.notes = record.notes
                    attendance.recorded_by = user.id
                else:
                    self.db.add(
                        Attendance(
                            meeting_id=meeting.id,
                            registration_id=record.registrationId,
                            status=record.status,
                            notes=record.notes,
                            recorded_by=user.id,
                        )
                    )
            log_audit(
                self.db,
                user,
                ACTION_UPDATE,
                "Attendance",
                meeting.id,
                new_value={"records": [r.model_dump() for r in data.records]},
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Attendance recorded for meeting {meeting.id}: {len(data.records)} records")
        return self.repo.get_attendance(self.db, meeting.id)
