"""
Meeting financial calculation

One implementation shared by meeting completion, recalculation, replacement
meetings and cycle duplication projections. Amounts are whole currency units
rounded half-up and stored as Decimal.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

EMPLOYEE_MULTIPLIER = Decimal("1.3")
ZERO = Decimal("0")


@dataclass(frozen=True)
class MeetingFinancials:
    revenue: Decimal
    instructor_payment: Decimal

    @property
    def profit(self) -> Decimal:
        # May be negative
        return self.revenue - self.instructor_payment

    def as_dict(self) -> dict:
        return {
            "revenue": self.revenue,
            "instructor_payment": self.instructor_payment,
            "profit": self.profit,
        }


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_currency(value: Any) -> Decimal:
    """Round half-up to a whole currency unit"""
    return to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def resolve_activity_type(cycle: Any, meeting_activity_type: Optional[str] = None) -> str:
    """Activity type of a meeting: its own, else the cycle's, else derived from the cycle"""
    if meeting_activity_type:
        return meeting_activity_type
    if getattr(cycle, "activity_type", None):
        return cycle.activity_type
    if getattr(cycle, "is_online", False):
        return "online"
    if getattr(cycle, "type", None) == "private":
        return "private_lesson"
    return "frontal"


def calculate_revenue(cycle: Any, enrolled_registrations: Iterable[Any]) -> Decimal:
    """
    Per-meeting revenue for a cycle's pricing mode

    - private: total enrolled registration amounts spread over the cycle's meetings
    - institutional_per_child: price per student times the effective student count
    - institutional_fixed: the flat per-meeting amount
    """
    registrations = list(enrolled_registrations)

    if cycle.type == "private":
        if not cycle.total_meetings:
            return ZERO
        total_amount = sum((to_decimal(r.amount) for r in registrations), ZERO)
        return round_currency(total_amount / Decimal(cycle.total_meetings))

    if cycle.type == "institutional_per_child":
        student_count = cycle.student_count if cycle.student_count is not None else len(registrations)
        return round_currency(to_decimal(cycle.price_per_student) * student_count)

    if cycle.type == "institutional_fixed":
        return round_currency(cycle.meeting_revenue)

    return ZERO


def select_hourly_rate(instructor: Any, activity_type: str) -> Decimal:
    """Hourly rate for the activity, falling back to the frontal rate"""
    frontal = to_decimal(instructor.rate_frontal)
    if activity_type == "online":
        return to_decimal(instructor.rate_online) if instructor.rate_online else frontal
    if activity_type == "private_lesson":
        return to_decimal(instructor.rate_private) if instructor.rate_private else frontal
    return frontal


def calculate_instructor_payment(
    instructor: Optional[Any], activity_type: str, duration_minutes: Optional[int]
) -> Decimal:
    if instructor is None:
        return ZERO

    rate = select_hourly_rate(instructor, activity_type)
    hours = Decimal(duration_minutes or 0) / Decimal(60)
    base_payment = round_currency(rate * hours)

    if instructor.employment_type == "employee":
        return round_currency(base_payment * EMPLOYEE_MULTIPLIER)
    return base_payment


def calculate_meeting_financials(
    cycle: Any,
    instructor: Optional[Any],
    enrolled_registrations: Iterable[Any],
    meeting_activity_type: Optional[str] = None,
) -> MeetingFinancials:
    """Revenue and instructor payment for one meeting of a cycle"""
    activity_type = resolve_activity_type(cycle, meeting_activity_type)
    return MeetingFinancials(
        revenue=calculate_revenue(cycle, enrolled_registrations),
        instructor_payment=calculate_instructor_payment(instructor, activity_type, cycle.duration_minutes),
    )
