"""Cycle service - Business logic for cycles, meeting generation and duplication"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, AuditContext, log_audit, snapshot
from ...auth import instructor_id_for, is_instructor
from ...errors import ApiError, ForbiddenError, NotFoundError, ValidationError
from ...models import ENROLLED_REGISTRATION_STATUSES, Cycle, Meeting, Registration, User
from ..finance.calculator import calculate_meeting_financials, resolve_activity_type
from ..meetings.repository import MeetingRepository
from .completion import complete_cycle
from .repository import CycleRepository
from .scheduling import plan_cycle_dates
from .schemas import CycleCreate, CycleUpdate

logger = logging.getLogger(__name__)

CYCLE_AUDIT_FIELDS = (
    "name",
    "instructor_id",
    "type",
    "status",
    "start_date",
    "end_date",
    "day_of_week",
    "start_time",
    "end_time",
    "total_meetings",
    "completed_meetings",
    "remaining_meetings",
    "price_per_student",
    "meeting_revenue",
    "student_count",
    "activity_type",
)

# Fields carried over when a cycle is duplicated
DUPLICATED_FIELDS = (
    "course_id",
    "branch_id",
    "instructor_id",
    "type",
    "day_of_week",
    "start_time",
    "end_time",
    "duration_minutes",
    "total_meetings",
    "price_per_student",
    "meeting_revenue",
    "student_count",
    "max_students",
    "is_online",
    "activity_type",
    "zoom_host_id",
    "notes",
)

# Nullable fields an update may clear with an explicit null
CLEARABLE_FIELDS = {
    "studentCount": "student_count",
    "meetingRevenue": "meeting_revenue",
    "pricePerStudent": "price_per_student",
    "endDate": "end_date",
}


def minutes_between(start, end) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


class CycleService:
    """Service layer for cycle business logic"""

    def __init__(self, db: Session, context: Optional[AuditContext] = None):
        self.db = db
        self.repo = CycleRepository()
        self.meeting_repo = MeetingRepository()
        self.context = context

    # ========================================================================
    # QUERIES
    # ========================================================================

    def list_cycles(
        self,
        user: User,
        status: Optional[str] = None,
        cycle_type: Optional[str] = None,
        instructor_id: Optional[str] = None,
        course_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Cycle], int]:
        if is_instructor(user):
            instructor_id = instructor_id_for(user)
            if not instructor_id:
                return [], 0
        return self.repo.list_cycles(
            self.db, status, cycle_type, instructor_id, course_id, branch_id, search, limit, offset
        )

    def get_cycle(self, cycle_id: str, user: Optional[User] = None) -> Cycle:
        cycle = self.repo.get_cycle(self.db, cycle_id)
        if not cycle:
            raise NotFoundError("Cycle", cycle_id)
        if user is not None and is_instructor(user) and cycle.instructor_id != instructor_id_for(user):
            raise ForbiddenError("You can only access your own cycles")
        return cycle

    def get_cycle_summary(self, cycle_id: str, user: Optional[User] = None) -> tuple[Cycle, dict[str, int], int]:
        """Cycle with its meeting counts per status and enrolled student count"""
        cycle = self.get_cycle(cycle_id, user)
        counts = self.meeting_repo.count_by_status(self.db, cycle.id)
        return cycle, counts, self.repo.count_enrolled(self.db, cycle.id)

    def get_cycle_meetings(self, cycle_id: str, user: Optional[User] = None) -> list[Meeting]:
        cycle = self.get_cycle(cycle_id, user)
        return self.meeting_repo.get_cycle_meetings(self.db, cycle.id)

    # ========================================================================
    # CORE CRUD OPERATIONS
    # ========================================================================

    async def create_cycle(self, data: CycleCreate, user: User) -> Cycle:
        """Create a cycle with remaining = total, then generate its meetings"""
        if not self.repo.course_exists(self.db, data.courseId):
            raise NotFoundError("Course", data.courseId)
        if data.instructorId and not self.repo.instructor_exists(self.db, data.instructorId):
            raise NotFoundError("Instructor", data.instructorId)

        end_date = data.endDate
        if end_date is None and not data.generateMeetings:
            dates = await plan_cycle_dates(data.startDate, data.dayOfWeek, data.totalMeetings)
            end_date = dates[-1] if dates else None

        try:
            cycle = self.repo.add_cycle(
                self.db,
                name=data.name,
                course_id=data.courseId,
                branch_id=data.branchId,
                instructor_id=data.instructorId,
                type=data.type,
                status="active",
                start_date=data.startDate,
                end_date=end_date,
                day_of_week=data.dayOfWeek,
                start_time=data.startTime,
                end_time=data.endTime,
                duration_minutes=data.durationMinutes or minutes_between(data.startTime, data.endTime),
                total_meetings=data.totalMeetings,
                completed_meetings=0,
                remaining_meetings=data.totalMeetings,
                price_per_student=data.pricePerStudent,
                meeting_revenue=data.meetingRevenue,
                student_count=data.studentCount,
                max_students=data.maxStudents,
                is_online=data.activityType == "online",
                activity_type=data.activityType,
                zoom_host_id=data.zoomHostId,
                notes=data.notes,
            )
            log_audit(
                self.db,
                user,
                ACTION_CREATE,
                "Cycle",
                cycle.id,
                new_value=snapshot(cycle, CYCLE_AUDIT_FIELDS),
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Cycle {cycle.id} created: {cycle.name} ({cycle.total_meetings} meetings)")

        if data.generateMeetings:
            await self.generate_meetings(cycle.id, user=user)

        return self.get_cycle(cycle.id)

    def update_cycle(self, cycle_id: str, data: CycleUpdate, user: User) -> Cycle:
        cycle = self.get_cycle(cycle_id)
        before = snapshot(cycle, CYCLE_AUDIT_FIELDS)

        if data.instructorId and not self.repo.instructor_exists(self.db, data.instructorId):
            raise NotFoundError("Instructor", data.instructorId)

        updates = {
            "name": data.name,
            "branch_id": data.branchId,
            "instructor_id": data.instructorId,
            "type": data.type,
            "status": data.status,
            "start_date": data.startDate,
            "end_date": data.endDate,
            "day_of_week": data.dayOfWeek,
            "start_time": data.startTime,
            "end_time": data.endTime,
            "duration_minutes": data.durationMinutes,
            "total_meetings": data.totalMeetings,
            "completed_meetings": data.completedMeetings,
            "price_per_student": data.pricePerStudent,
            "meeting_revenue": data.meetingRevenue,
            "student_count": data.studentCount,
            "max_students": data.maxStudents,
            "activity_type": data.activityType,
            "zoom_meeting_id": data.zoomMeetingId,
            "zoom_join_url": data.zoomJoinUrl,
            "zoom_host_id": data.zoomHostId,
            "notes": data.notes,
        }
        changed = {key: value for key, value in updates.items() if value is not None}
        for field, column in CLEARABLE_FIELDS.items():
            if field in data.model_fields_set and getattr(data, field) is None:
                changed[column] = None
        if not changed:
            return cycle

        try:
            for key, value in changed.items():
                setattr(cycle, key, value)
            if cycle.end_time <= cycle.start_time:
                raise ValidationError("endTime must be after startTime")
            if data.activityType is not None:
                cycle.is_online = data.activityType == "online"
            if data.totalMeetings is not None or data.completedMeetings is not None:
                cycle.remaining_meetings = max(cycle.total_meetings - cycle.completed_meetings, 0)

            log_audit(
                self.db,
                user,
                ACTION_UPDATE,
                "Cycle",
                cycle.id,
                old_value=before,
                new_value=snapshot(cycle, CYCLE_AUDIT_FIELDS),
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(cycle)
        logger.info(f"📝 Cycle {cycle.id} updated: {', '.join(changed)}")
        return cycle

    def delete_cycle(self, cycle_id: str, user: User) -> list[str]:
        """Soft delete a cycle; returns the Zoom rooms of its meetings to release"""
        cycle = self.get_cycle(cycle_id)
        room_ids = self.repo.zoom_room_ids(self.db, cycle.id)
        try:
            self.repo.soft_delete(self.db, cycle, user.id)
            log_audit(
                self.db,
                user,
                ACTION_DELETE,
                "Cycle",
                cycle.id,
                old_value=snapshot(cycle, CYCLE_AUDIT_FIELDS),
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"🗑️ Cycle {cycle_id} soft-deleted by {user.id}, {len(room_ids)} Zoom rooms to release")
        return room_ids

    # ========================================================================
    # PROGRESS
    # ========================================================================

    def _apply_progress(self, cycle: Cycle) -> dict[str, int]:
        counts = self.meeting_repo.count_by_status(self.db, cycle.id)
        cycle.completed_meetings = counts.get("completed", 0)
        cycle.remaining_meetings = counts.get("scheduled", 0)
        return counts

    def sync_progress(self, cycle_id: str, user: Optional[User] = None) -> Cycle:
        """Recount completed and remaining meetings from the cycle's live meetings"""
        cycle = self.get_cycle(cycle_id)
        before = {"completed": cycle.completed_meetings, "remaining": cycle.remaining_meetings}
        try:
            self._apply_progress(cycle)
            after = {"completed": cycle.completed_meetings, "remaining": cycle.remaining_meetings}
            if after != before:
                log_audit(
                    self.db,
                    user,
                    ACTION_UPDATE,
                    "Cycle",
                    cycle.id,
                    old_value=before,
                    new_value=after,
                    context=self.context,
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(cycle)
        if after != before:
            logger.info(f"🔄 Cycle {cycle.id} progress synced: {before} -> {after}")
        return cycle

    def complete_cycle(self, cycle_id: str, user: Optional[User] = None) -> tuple[Cycle, list[str], bool]:
        """Returns the cycle, Zoom rooms to release and whether it was completed by this call"""
        already_completed = self.get_cycle(cycle_id).status == "completed"
        cycle, room_ids = complete_cycle(self.db, cycle_id, actor=user, context=self.context)
        return cycle, room_ids, not already_completed

    # ========================================================================
    # MEETING GENERATION
    # ========================================================================

    async def generate_meetings(
        self, cycle_id: str, skip_holidays: bool = True, user: Optional[User] = None
    ) -> list[Meeting]:
        """
        Create the cycle's missing meetings on its weekday.

        Dates start at the cycle start date, or the day after the last existing
        meeting, and skip holidays. Meetings are created scheduled with zero
        financials; the cycle end date becomes the last meeting date and the
        counters are recounted.
        """
        cycle = self.get_cycle(cycle_id)
        existing = self.repo.count_meetings(self.db, cycle.id)
        missing = cycle.total_meetings - existing
        if missing <= 0:
            logger.info(f"ℹ️ Cycle {cycle.id} already has {existing}/{cycle.total_meetings} meetings")
            return []

        last_date = self.repo.last_meeting_date(self.db, cycle.id)
        start = last_date + timedelta(days=1) if last_date else cycle.start_date
        dates = await plan_cycle_dates(start, cycle.day_of_week, missing, skip_holidays)
        if not dates:
            return []

        try:
            meetings = [
                self.meeting_repo.add_meeting(
                    self.db,
                    cycle_id=cycle.id,
                    instructor_id=cycle.instructor_id,
                    scheduled_date=meeting_date,
                    start_time=cycle.start_time,
                    end_time=cycle.end_time,
                    status="scheduled",
                    activity_type=cycle.activity_type,
                    zoom_meeting_id=cycle.zoom_meeting_id,
                    zoom_join_url=cycle.zoom_join_url,
                )
                for meeting_date in dates
            ]
            cycle.end_date = max(dates[-1], last_date) if last_date else dates[-1]
            self._apply_progress(cycle)
            log_audit(
                self.db,
                user,
                ACTION_CREATE,
                "Meeting",
                cycle.id,
                new_value={
                    "action": "generate",
                    "generated": len(meetings),
                    "from": dates[0].isoformat(),
                    "to": dates[-1].isoformat(),
                },
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📅 Generated {len(meetings)} meetings for cycle {cycle.id} ({dates[0]} - {dates[-1]})")
        return meetings

    async def bulk_generate_meetings(
        self, cycle_ids: list[str], skip_holidays: bool = True, user: Optional[User] = None
    ) -> list[dict]:
        results = []
        for cycle_id in cycle_ids:
            try:
                meetings = await self.generate_meetings(cycle_id, skip_holidays, user)
                results.append({"cycleId": cycle_id, "generated": len(meetings)})
            except ApiError as e:
                results.append({"cycleId": cycle_id, "generated": 0, "error": e.message})
        return results

    # ========================================================================
    # DUPLICATION
    # ========================================================================

    def projection(self, cycle: Cycle, registrations: list[Registration]) -> dict:
        """Expected financials of one meeting and of the whole cycle"""
        financials = calculate_meeting_financials(cycle, cycle.instructor, registrations)
        total = Decimal(cycle.total_meetings or 0)
        return {
            "activityType": resolve_activity_type(cycle),
            "revenue": financials.revenue,
            "instructorPayment": financials.instructor_payment,
            "profit": financials.profit,
            "totalMeetings": cycle.total_meetings,
            "totalRevenue": financials.revenue * total,
            "totalInstructorPayment": financials.instructor_payment * total,
            "totalProfit": financials.profit * total,
        }

    async def duplicate_cycle(
        self,
        cycle_id: str,
        new_start_date,
        new_name: Optional[str] = None,
        copy_registrations: bool = False,
        generate_meetings: bool = True,
        user: Optional[User] = None,
    ) -> dict:
        """
        Copy a cycle's schedule and pricing to a new cycle.

        Counters start fresh; enrolled registrations are optionally copied as
        registered. The result carries the new cycle, the number of generated
        meetings and copied registrations, and the per-meeting projection.
        """
        source = self.get_cycle(cycle_id)
        source_registrations = (
            self.repo.get_registrations(self.db, source.id, ENROLLED_REGISTRATION_STATUSES)
            if copy_registrations
            else []
        )

        try:
            cycle = self.repo.add_cycle(
                self.db,
                name=new_name or f"{source.name} (copy)",
                status="active",
                start_date=new_start_date,
                completed_meetings=0,
                remaining_meetings=source.total_meetings,
                **{field: getattr(source, field) for field in DUPLICATED_FIELDS},
            )
            for registration in source_registrations:
                self.db.add(
                    Registration(
                        student_id=registration.student_id,
                        cycle_id=cycle.id,
                        registration_date=new_start_date,
                        status="registered",
                        amount=registration.amount,
                        payment_status="unpaid",
                    )
                )
            log_audit(
                self.db,
                user,
                ACTION_CREATE,
                "Cycle",
                cycle.id,
                new_value={
                    "action": "duplicate",
                    "sourceCycleId": source.id,
                    "startDate": new_start_date.isoformat(),
                    "copiedRegistrations": len(source_registrations),
                },
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📋 Cycle {source.id} duplicated as {cycle.id} starting {new_start_date}")

        generated = []
        if generate_meetings:
            generated = await self.generate_meetings(cycle.id, user=user)

        cycle = self.get_cycle(cycle.id)
        registrations = self.meeting_repo.get_enrolled_registrations(self.db, cycle.id)
        return {
            "cycle": cycle,
            "generatedMeetings": len(generated),
            "copiedRegistrations": len(source_registrations),
            "projection": self.projection(cycle, registrations),
        }
