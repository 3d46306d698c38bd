"""
Cycle completion

Closes a cycle once its last meeting is held (or on manual request): the
cycle and its enrolled registrations become completed and meetings still
scheduled in the future are removed.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...audit import ACTION_UPDATE, AuditContext, log_audit
from ...config import ADMIN_NOTIFICATION_EMAIL
from ...email_service import send_email
from ...email_templates import cycle_completed_template
from ...errors import NotFoundError
from ...models import ENROLLED_REGISTRATION_STATUSES, Cycle, Meeting, Registration, User

logger = logging.getLogger(__name__)


def complete_cycle(
    db: Session,
    cycle_id: str,
    actor: Optional[User] = None,
    context: Optional[AuditContext] = None,
    today: Optional[date] = None,
) -> tuple[Cycle, list[str]]:
    """
    Mark a cycle completed.

    Returns the cycle and the Zoom room ids of removed future meetings. A
    cycle that is already completed is returned unchanged.
    """
    cycle = db.query(Cycle).filter(Cycle.id == cycle_id, Cycle.deleted_at.is_(None)).first()
    if not cycle:
        raise NotFoundError("Cycle", cycle_id)
    if cycle.status == "completed":
        logger.info(f"🔁 Cycle {cycle_id} already completed")
        return cycle, []

    today = today or date.today()
    now = datetime.utcnow()
    try:
        registrations_updated = (
            db.query(Registration)
            .filter(
                Registration.cycle_id == cycle.id,
                Registration.status.in_(ENROLLED_REGISTRATION_STATUSES),
            )
            .update({Registration.status: "completed"}, synchronize_session=False)
        )

        future_meetings = (
            db.query(Meeting)
            .filter(
                Meeting.cycle_id == cycle.id,
                Meeting.status == "scheduled",
                Meeting.scheduled_date >= today,
                Meeting.deleted_at.is_(None),
            )
            .all()
        )
        room_ids = [m.zoom_meeting_id for m in future_meetings if m.zoom_meeting_id]
        for meeting in future_meetings:
            meeting.deleted_at = now
            meeting.deleted_by = actor.id if actor else None

        cycle.status = "completed"
        cycle.remaining_meetings = 0
        log_audit(
            db,
            actor,
            ACTION_UPDATE,
            "Cycle",
            cycle.id,
            old_value={"status": "active"},
            new_value={
                "status": "completed",
                "registrationsCompleted": registrations_updated,
                "futureMeetingsRemoved": len(future_meetings),
            },
            context=context,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(cycle)
    logger.info(
        f"🏁 Cycle {cycle.id} completed: {registrations_updated} registrations closed, "
        f"{len(future_meetings)} future meetings removed"
    )
    return cycle, room_ids


def cycle_financial_totals(db: Session, cycle_id: str) -> dict[str, Decimal]:
    revenue, payment, profit = (
        db.query(
            func.coalesce(func.sum(Meeting.revenue), 0),
            func.coalesce(func.sum(Meeting.instructor_payment), 0),
            func.coalesce(func.sum(Meeting.profit), 0),
        )
        .filter(
            Meeting.cycle_id == cycle_id,
            Meeting.status == "completed",
            Meeting.deleted_at.is_(None),
        )
        .one()
    )
    return {
        "revenue": Decimal(str(revenue)),
        "instructor_payment": Decimal(str(payment)),
        "profit": Decimal(str(profit)),
    }


async def send_completion_summary(db: Session, cycle: Cycle) -> bool:
    """Email the cycle summary to management; skipped when no recipient is configured"""
    if not ADMIN_NOTIFICATION_EMAIL:
        logger.info(f"📭 No ADMIN_NOTIFICATION_EMAIL, skipping summary for cycle {cycle.id}")
        return False

    totals = cycle_financial_totals(db, cycle.id)
    mjml_content = cycle_completed_template(
        cycle_name=cycle.name,
        course_name=cycle.course.name if cycle.course else "-",
        instructor_name=cycle.instructor.name if cycle.instructor else "-",
        completed_meetings=cycle.completed_meetings,
        total_meetings=cycle.total_meetings,
        total_revenue=f"{totals['revenue']:,.0f}",
        total_payment=f"{totals['instructor_payment']:,.0f}",
        total_profit=f"{totals['profit']:,.0f}",
        cycle_id=cycle.id,
    )
    await send_email(ADMIN_NOTIFICATION_EMAIL, f"Cycle completed: {cycle.name}", mjml_content)
    return True
