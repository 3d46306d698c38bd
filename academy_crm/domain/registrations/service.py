"""Registration service - Students enrolled in cycles"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...audit import ACTION_CREATE, ACTION_UPDATE, AuditContext, log_audit, snapshot
from ...errors import ConflictError, NotFoundError
from ...models import Cycle, Registration, Student, User
from .schemas import RegistrationCreate, RegistrationUpdate

logger = logging.getLogger(__name__)

REGISTRATION_AUDIT_FIELDS = ("student_id", "cycle_id", "status", "amount", "payment_status", "cancellation_date")


class RegistrationService:
    def __init__(self, db: Session, context: Optional[AuditContext] = None):
        self.db = db
        self.context = context

    def _get_cycle(self, cycle_id: str) -> Cycle:
        cycle = self.db.query(Cycle).filter(Cycle.id == cycle_id, Cycle.deleted_at.is_(None)).first()
        if not cycle:
            raise NotFoundError("Cycle", cycle_id)
        return cycle

    def get_registration(self, registration_id: str) -> Registration:
        registration = (
            self.db.query(Registration)
            .options(joinedload(Registration.student))
            .filter(Registration.id == registration_id)
            .first()
        )
        if not registration:
            raise NotFoundError("Registration", registration_id)
        return registration

    def list_registrations(self, cycle_id: str) -> list[Registration]:
        cycle = self._get_cycle(cycle_id)
        return (
            self.db.query(Registration)
            .options(joinedload(Registration.student))
            .filter(Registration.cycle_id == cycle.id)
            .order_by(Registration.created_at.asc())
            .all()
        )

    def add_registration(self, cycle_id: str, data: RegistrationCreate, user: User) -> Registration:
        """Enroll a student; a student can be registered to a cycle only once"""
        cycle = self._get_cycle(cycle_id)
        if not self.db.get(Student, data.studentId):
            raise NotFoundError("Student", data.studentId)

        existing = (
            self.db.query(Registration)
            .filter(Registration.cycle_id == cycle.id, Registration.student_id == data.studentId)
            .first()
        )
        if existing:
            raise ConflictError(
                "Student is already registered to this cycle", {"registrationId": existing.id}
            )

        try:
            registration = Registration(
                student_id=data.studentId,
                cycle_id=cycle.id,
                registration_date=data.registrationDate or date.today(),
                status=data.status,
                amount=data.amount,
                payment_status=data.paymentStatus,
                notes=data.notes,
            )
            self.db.add(registration)
            self.db.flush()
            log_audit(
                self.db,
                user,
                ACTION_CREATE,
                "Registration",
                registration.id,
                new_value=snapshot(registration, REGISTRATION_AUDIT_FIELDS),
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🎓 Student {data.studentId} registered to cycle {cycle.id}")
        return self.get_registration(registration.id)

    def update_registration(self, registration_id: str, data: RegistrationUpdate, user: User) -> Registration:
        registration = self.get_registration(registration_id)
        before = snapshot(registration, REGISTRATION_AUDIT_FIELDS)

        updates = {
            "status": data.status,
            "amount": data.amount,
            "payment_status": data.paymentStatus,
            "notes": data.notes,
        }
        changed = {key: value for key, value in updates.items() if value is not None}
        if not changed:
            return registration

        try:
            for key, value in changed.items():
                setattr(registration, key, value)
            if data.status == "cancelled" and registration.cancellation_date is None:
                registration.cancellation_date = date.today()
            log_audit(
                self.db,
                user,
                ACTION_UPDATE,
                "Registration",
                registration.id,
                old_value=before,
                new_value=snapshot(registration, REGISTRATION_AUDIT_FIELDS),
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(registration)
        logger.info(f"📝 Registration {registration.id} updated: {', '.join(changed)}")
        return registration
