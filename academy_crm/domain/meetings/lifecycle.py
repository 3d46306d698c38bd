"""
Meeting lifecycle engine

Status transitions and the cycle counter updates they imply. Each transition
is one database transaction: the meeting row is swapped from its expected
status and the cycle counters are shifted in the same commit.

    scheduled -> completed   financials computed, completed +1, remaining -1
    scheduled -> cancelled   no financials, counters unchanged
    scheduled -> postponed   counters unchanged, replacement synthesis queued
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...audit import ACTION_UPDATE, AuditContext, log_audit, snapshot
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import Meeting, User
from ..finance.calculator import MeetingFinancials, calculate_meeting_financials
from .repository import MeetingRepository

logger = logging.getLogger(__name__)

AUDIT_FIELDS = ("status", "revenue", "instructor_payment", "profit", "status_updated_by")
ZERO = Decimal("0")


@dataclass
class Transition:
    """Outcome of a lifecycle call; changed is False for idempotent repeats"""

    meeting: Meeting
    changed: bool
    previous_status: Optional[str] = None


class MeetingLifecycle:
    def __init__(self, db: Session, context: Optional[AuditContext] = None):
        self.db = db
        self.repo = MeetingRepository()
        self.context = context

    def _load(self, meeting_id: str) -> Meeting:
        meeting = self.repo.get_meeting(self.db, meeting_id)
        if not meeting:
            raise NotFoundError("Meeting", meeting_id)
        return meeting

    def calculate(self, meeting: Meeting) -> MeetingFinancials:
        """Financials for a meeting from live cycle, instructor and registration data"""
        cycle = meeting.cycle
        if cycle is None:
            raise ValidationError(f"Meeting {meeting.id} has no cycle")
        registrations = self.repo.get_enrolled_registrations(self.db, cycle.id)
        return calculate_meeting_financials(cycle, meeting.instructor, registrations, meeting.activity_type)

    def _commit_transition(
        self,
        meeting: Meeting,
        expected: tuple[str, ...],
        new_status: str,
        actor: Optional[User],
        completed_delta: int = 0,
        remaining_delta: int = 0,
        **values,
    ) -> Transition:
        previous_status = meeting.status
        before = snapshot(meeting, AUDIT_FIELDS)
        actor_id = actor.id if actor else None
        try:
            swapped = self.repo.transition_status(
                self.db, meeting.id, expected, new_status, actor_id, **values
            )
            if not swapped:
                self.db.rollback()
                self.db.refresh(meeting)
                if meeting.status == new_status:
                    logger.info(f"🔁 Meeting {meeting.id} already {new_status} (concurrent update)")
                    return Transition(meeting, changed=False, previous_status=meeting.status)
                raise ConflictError(
                    f"Meeting is {meeting.status} and cannot become {new_status}",
                    {"meetingId": meeting.id, "status": meeting.status},
                )

            self.repo.adjust_cycle_counters(
                self.db, meeting.cycle_id, completed_delta=completed_delta, remaining_delta=remaining_delta
            )
            log_audit(
                self.db,
                actor,
                ACTION_UPDATE,
                "Meeting",
                meeting.id,
                old_value=before,
                new_value={"status": new_status, **{k: v for k, v in values.items() if k in AUDIT_FIELDS}},
                context=self.context,
            )
            self.db.commit()
        except ConflictError:
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(meeting)
        self.db.refresh(meeting.cycle)
        logger.info(f"✅ Meeting {meeting.id}: {previous_status} -> {new_status}")
        return Transition(meeting, changed=True, previous_status=previous_status)

    # ========================================================================
    # STATUS TRANSITIONS
    # ========================================================================

    def complete(self, meeting_id: str, actor: Optional[User]) -> Transition:
        meeting = self._load(meeting_id)
        if meeting.status == "completed":
            return Transition(meeting, changed=False, previous_status="completed")
        if meeting.status != "scheduled":
            raise ConflictError(f"Cannot complete a {meeting.status} meeting", {"meetingId": meeting.id})

        # Calculation errors abort before anything is written
        financials = self.calculate(meeting)
        return self._commit_transition(
            meeting,
            ("scheduled",),
            "completed",
            actor,
            completed_delta=1,
            remaining_delta=-1,
            revenue=financials.revenue,
            instructor_payment=financials.instructor_payment,
            profit=financials.profit,
        )

    def cancel(self, meeting_id: str, actor: Optional[User]) -> Transition:
        meeting = self._load(meeting_id)
        if meeting.status == "cancelled":
            return Transition(meeting, changed=False, previous_status="cancelled")
        if meeting.status != "scheduled":
            raise ConflictError(f"Cannot cancel a {meeting.status} meeting", {"meetingId": meeting.id})
        return self._commit_transition(meeting, ("scheduled",), "cancelled", actor)

    def postpone(self, meeting_id: str, actor: Optional[User]) -> Transition:
        """Mark a scheduled meeting postponed; the caller queues the replacement"""
        meeting = self._load(meeting_id)
        if meeting.status == "postponed":
            return Transition(meeting, changed=False, previous_status="postponed")
        if meeting.status != "scheduled":
            raise ConflictError(f"Cannot postpone a {meeting.status} meeting", {"meetingId": meeting.id})
        return self._commit_transition(meeting, ("scheduled",), "postponed", actor)

    # ========================================================================
    # ADMINISTRATIVE OVERRIDES
    # ========================================================================

    def set_status(self, meeting_id: str, new_status: str, actor: Optional[User]) -> Transition:
        """
        Force a status from any state.

        Entering completed computes financials and counts the meeting; leaving
        completed zeroes financials and returns the meeting to remaining.
        """
        meeting = self._load(meeting_id)
        old_status = meeting.status
        if old_status == new_status:
            return Transition(meeting, changed=False, previous_status=old_status)

        values = {}
        completed_delta = remaining_delta = 0
        if new_status == "completed":
            financials = self.calculate(meeting)
            values = {
                "revenue": financials.revenue,
                "instructor_payment": financials.instructor_payment,
                "profit": financials.profit,
            }
            completed_delta, remaining_delta = 1, -1
        elif old_status == "completed":
            values = {"revenue": ZERO, "instructor_payment": ZERO, "profit": ZERO}
            completed_delta, remaining_delta = -1, 1

        return self._commit_transition(
            meeting,
            (old_status,),
            new_status,
            actor,
            completed_delta=completed_delta,
            remaining_delta=remaining_delta,
            **values,
        )

    def recalculate(self, meeting_id: str, actor: Optional[User] = None) -> Meeting:
        """Reapply the financial formulas to a completed meeting without changing its status"""
        meeting = self._load(meeting_id)
        if meeting.status != "completed":
            raise ValidationError("Only completed meetings can be recalculated", {"status": meeting.status})

        before = snapshot(meeting, AUDIT_FIELDS)
        financials = self.calculate(meeting)
        try:
            meeting.revenue = financials.revenue
            meeting.instructor_payment = financials.instructor_payment
            meeting.profit = financials.profit
            log_audit(
                self.db,
                actor,
                ACTION_UPDATE,
                "Meeting",
                meeting.id,
                old_value=before,
                new_value={"action": "recalculate", **financials.as_dict()},
                context=self.context,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(meeting)
        logger.info(
            f"🔄 Recalculated meeting {meeting.id}: revenue={meeting.revenue} payment={meeting.instructor_payment}"
        )
        return meeting
