"""Meeting repository - Database operations for meetings and cycle counters"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session, joinedload

from ...models import ENROLLED_REGISTRATION_STATUSES, Attendance, Cycle, Meeting, Registration


class MeetingRepository:
    """Repository for meeting database operations"""

    @staticmethod
    def get_meeting(db: Session, meeting_id: str, include_deleted: bool = False) -> Optional[Meeting]:
        """Get a meeting with its cycle and instructor loaded"""
        query = (
            db.query(Meeting)
            .options(joinedload(Meeting.cycle), joinedload(Meeting.instructor))
            .filter(Meeting.id == meeting_id)
        )
        if not include_deleted:
            query = query.filter(Meeting.deleted_at.is_(None))
        return query.first()

    @staticmethod
    def list_meetings(
        db: Session,
        cycle_id: Optional[str] = None,
        instructor_id: Optional[str] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Meeting], int]:
        query = db.query(Meeting).filter(Meeting.deleted_at.is_(None))
        if cycle_id:
            query = query.filter(Meeting.cycle_id == cycle_id)
        if instructor_id:
            query = query.filter(Meeting.instructor_id == instructor_id)
        if status:
            query = query.filter(Meeting.status == status)
        if date_from:
            query = query.filter(Meeting.scheduled_date >= date_from)
        if date_to:
            query = query.filter(Meeting.scheduled_date <= date_to)

        total = query.count()
        meetings = (
            query.options(joinedload(Meeting.cycle), joinedload(Meeting.instructor))
            .order_by(Meeting.scheduled_date.asc(), Meeting.start_time.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return meetings, total

    @staticmethod
    def get_meetings_by_ids(db: Session, meeting_ids: list[str]) -> list[Meeting]:
        return (
            db.query(Meeting)
            .filter(Meeting.id.in_(meeting_ids), Meeting.deleted_at.is_(None))
            .all()
        )

    @staticmethod
    def get_cycle_meetings(db: Session, cycle_id: str) -> list[Meeting]:
        return (
            db.query(Meeting)
            .filter(Meeting.cycle_id == cycle_id, Meeting.deleted_at.is_(None))
            .order_by(Meeting.scheduled_date.asc())
            .all()
        )

    @staticmethod
    def get_enrolled_registrations(db: Session, cycle_id: str) -> list[Registration]:
        """Registrations counted as enrolled students for pricing"""
        return (
            db.query(Registration)
            .filter(
                Registration.cycle_id == cycle_id,
                Registration.status.in_(ENROLLED_REGISTRATION_STATUSES),
            )
            .all()
        )

    @staticmethod
    def get_latest_active_meeting(db: Session, cycle_id: str, exclude_id: str) -> Optional[Meeting]:
        """Most recent scheduled or completed meeting of a cycle, excluding one meeting"""
        return (
            db.query(Meeting)
            .filter(
                Meeting.cycle_id == cycle_id,
                Meeting.id != exclude_id,
                Meeting.status.in_(("scheduled", "completed")),
                Meeting.deleted_at.is_(None),
            )
            .order_by(Meeting.scheduled_date.desc())
            .first()
        )

    @staticmethod
    def transition_status(
        db: Session,
        meeting_id: str,
        expected_statuses: tuple[str, ...],
        new_status: str,
        actor_id: Optional[str],
        **values,
    ) -> bool:
        """
        Compare-and-swap a meeting's status inside the current transaction.

        Returns False when the meeting is no longer in one of the expected statuses.
        """
        updated = (
            db.query(Meeting)
            .filter(
                Meeting.id == meeting_id,
                Meeting.status.in_(expected_statuses),
                Meeting.deleted_at.is_(None),
            )
            .update(
                {
                    Meeting.status: new_status,
                    Meeting.status_updated_at: datetime.utcnow(),
                    Meeting.status_updated_by: actor_id,
                    **{getattr(Meeting, key): value for key, value in values.items()},
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    @staticmethod
    def adjust_cycle_counters(
        db: Session, cycle_id: str, completed_delta: int = 0, remaining_delta: int = 0, total_delta: int = 0
    ) -> None:
        """Atomically shift cycle counters in SQL, never below zero"""

        def shifted(column, delta):
            return case((column + delta < 0, 0), else_=column + delta)

        values = {}
        if completed_delta:
            values[Cycle.completed_meetings] = shifted(Cycle.completed_meetings, completed_delta)
        if remaining_delta:
            values[Cycle.remaining_meetings] = shifted(Cycle.remaining_meetings, remaining_delta)
        if total_delta:
            values[Cycle.total_meetings] = shifted(Cycle.total_meetings, total_delta)
        if values:
            db.query(Cycle).filter(Cycle.id == cycle_id).update(values, synchronize_session=False)

    @staticmethod
    def count_by_status(db: Session, cycle_id: str) -> dict[str, int]:
        rows = (
            db.query(Meeting.status, func.count(Meeting.id))
            .filter(Meeting.cycle_id == cycle_id, Meeting.deleted_at.is_(None))
            .group_by(Meeting.status)
            .all()
        )
        return {status: count for status, count in rows}

    @staticmethod
    def add_meeting(db: Session, **meeting_data) -> Meeting:
        """Stage a new meeting in the current transaction"""
        meeting = Meeting(**meeting_data)
        db.add(meeting)
        db.flush()
        return meeting

    @staticmethod
    def soft_delete(db: Session, meeting: Meeting, deleted_by: Optional[str]) -> None:
        meeting.deleted_at = datetime.utcnow()
        meeting.deleted_by = deleted_by

    @staticmethod
    def get_attendance(db: Session, meeting_id: str) -> list[Attendance]:
        return (
            db.query(Attendance)
            .options(joinedload(Attendance.registration).joinedload(Registration.student))
            .filter(Attendance.meeting_id == meeting_id)
            .all()
        )
