"""Cycle repository - Database operations for cycles"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import ENROLLED_REGISTRATION_STATUSES, Course, Cycle, Instructor, Meeting, Registration


class CycleRepository:
    """Repository for cycle database operations"""

    @staticmethod
    def get_cycle(db: Session, cycle_id: str) -> Optional[Cycle]:
        """Get a non-deleted cycle with course and instructor loaded"""
        return (
            db.query(Cycle)
            .options(joinedload(Cycle.course), joinedload(Cycle.instructor))
            .filter(Cycle.id == cycle_id, Cycle.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def list_cycles(
        db: Session,
        status: Optional[str] = None,
        cycle_type: Optional[str] = None,
        instructor_id: Optional[str] = None,
        course_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Cycle], int]:
        query = db.query(Cycle).filter(Cycle.deleted_at.is_(None))
        if status:
            query = query.filter(Cycle.status == status)
        if cycle_type:
            query = query.filter(Cycle.type == cycle_type)
        if instructor_id:
            query = query.filter(Cycle.instructor_id == instructor_id)
        if course_id:
            query = query.filter(Cycle.course_id == course_id)
        if branch_id:
            query = query.filter(Cycle.branch_id == branch_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Cycle.name.ilike(pattern), Cycle.notes.ilike(pattern)))

        total = query.count()
        cycles = (
            query.options(joinedload(Cycle.course), joinedload(Cycle.instructor))
            .order_by(Cycle.start_date.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return cycles, total

    @staticmethod
    def course_exists(db: Session, course_id: str) -> bool:
        return db.get(Course, course_id) is not None

    @staticmethod
    def instructor_exists(db: Session, instructor_id: str) -> bool:
        return db.get(Instructor, instructor_id) is not None

    @staticmethod
    def add_cycle(db: Session, **cycle_data) -> Cycle:
        """Stage a new cycle in the current transaction"""
        cycle = Cycle(**cycle_data)
        db.add(cycle)
        db.flush()
        return cycle

    @staticmethod
    def soft_delete(db: Session, cycle: Cycle, deleted_by: Optional[str]) -> None:
        """Hide a cycle from default queries; its meetings stay addressable"""
        cycle.deleted_at = datetime.utcnow()
        cycle.deleted_by = deleted_by

    @staticmethod
    def zoom_room_ids(db: Session, cycle_id: str) -> list[str]:
        rows = (
            db.query(Meeting.zoom_meeting_id)
            .filter(
                Meeting.cycle_id == cycle_id,
                Meeting.deleted_at.is_(None),
                Meeting.zoom_meeting_id.isnot(None),
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def count_meetings(db: Session, cycle_id: str) -> int:
        return (
            db.query(func.count(Meeting.id))
            .filter(Meeting.cycle_id == cycle_id, Meeting.deleted_at.is_(None))
            .scalar()
        )

    @staticmethod
    def last_meeting_date(db: Session, cycle_id: str) -> Optional[date]:
        return (
            db.query(func.max(Meeting.scheduled_date))
            .filter(Meeting.cycle_id == cycle_id, Meeting.deleted_at.is_(None))
            .scalar()
        )

    @staticmethod
    def count_enrolled(db: Session, cycle_id: str) -> int:
        return (
            db.query(func.count(Registration.id))
            .filter(
                Registration.cycle_id == cycle_id,
                Registration.status.in_(ENROLLED_REGISTRATION_STATUSES),
            )
            .scalar()
        )

    @staticmethod
    def get_registrations(db: Session, cycle_id: str, statuses: Optional[tuple[str, ...]] = None) -> list[Registration]:
        query = (
            db.query(Registration)
            .options(joinedload(Registration.student))
            .filter(Registration.cycle_id == cycle_id)
        )
        if statuses:
            query = query.filter(Registration.status.in_(statuses))
        return query.order_by(Registration.created_at.asc()).all()
