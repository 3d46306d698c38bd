from datetime import date
from decimal import Decimal

import pytest

from academy_crm.domain.meetings.lifecycle import MeetingLifecycle
from academy_crm.domain.meetings.service import MeetingService
from academy_crm.errors import ConflictError, ValidationError
from academy_crm.models import AuditLog

pytestmark = pytest.mark.unit


def counters(db, cycle):
    db.refresh(cycle)
    return cycle.total_meetings, cycle.completed_meetings, cycle.remaining_meetings


class TestComplete:
    def test_completion_computes_financials_and_counters(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        transition = MeetingLifecycle(db).complete(meetings[0].id, admin)

        meeting = transition.meeting
        assert transition.changed is True
        assert transition.previous_status == "scheduled"
        assert meeting.status == "completed"
        assert meeting.revenue == Decimal("500")
        assert meeting.instructor_payment == Decimal("300")
        assert meeting.profit == Decimal("200")
        assert meeting.status_updated_by == admin.id
        assert meeting.status_updated_at is not None
        assert counters(db, cycle) == (4, 1, 3)

    def test_completing_twice_is_a_no_op(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        lifecycle = MeetingLifecycle(db)
        lifecycle.complete(meetings[0].id, admin)
        again = lifecycle.complete(meetings[0].id, admin)

        assert again.changed is False
        assert counters(db, cycle) == (4, 1, 3)

    def test_cancelled_meeting_cannot_be_completed(self, db, admin, weekly_cycle):
        _, meetings = weekly_cycle
        lifecycle = MeetingLifecycle(db)
        lifecycle.cancel(meetings[0].id, admin)

        with pytest.raises(ConflictError):
            lifecycle.complete(meetings[0].id, admin)

    def test_completion_uses_live_registrations(self, db, admin, make_cycle, make_meeting, make_registration):
        cycle = make_cycle(type="institutional_per_child", meeting_revenue=None, price_per_student=Decimal("50"))
        meeting = make_meeting(cycle, date(2024, 3, 3))
        for _ in range(12):
            make_registration(cycle, status="active")
        make_registration(cycle, status="cancelled")

        completed = MeetingLifecycle(db).complete(meeting.id, admin).meeting
        assert completed.revenue == Decimal("600")

    def test_completion_is_audited(self, db, admin, weekly_cycle):
        _, meetings = weekly_cycle
        MeetingLifecycle(db).complete(meetings[0].id, admin)

        entry = db.query(AuditLog).filter(AuditLog.entity_id == meetings[0].id).one()
        assert entry.action == "UPDATE"
        assert entry.user_id == admin.id
        assert entry.new_value["status"] == "completed"


class TestCancelAndPostpone:
    def test_cancel_leaves_counters_and_financials(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        meeting = MeetingLifecycle(db).cancel(meetings[1].id, admin).meeting

        assert meeting.status == "cancelled"
        assert meeting.revenue == Decimal("0")
        assert counters(db, cycle) == (4, 0, 4)

    def test_postpone_leaves_counters(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        meeting = MeetingLifecycle(db).postpone(meetings[1].id, admin).meeting

        assert meeting.status == "postponed"
        assert counters(db, cycle) == (4, 0, 4)

    def test_completed_meeting_cannot_be_postponed(self, db, admin, weekly_cycle):
        _, meetings = weekly_cycle
        lifecycle = MeetingLifecycle(db)
        lifecycle.complete(meetings[0].id, admin)

        with pytest.raises(ConflictError):
            lifecycle.postpone(meetings[0].id, admin)


class TestAdministrativeStatus:
    def test_leaving_completed_reverses_counters_and_zeroes_financials(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        lifecycle = MeetingLifecycle(db)
        lifecycle.complete(meetings[0].id, admin)

        meeting = lifecycle.set_status(meetings[0].id, "scheduled", admin).meeting

        assert meeting.status == "scheduled"
        assert meeting.revenue == Decimal("0")
        assert meeting.instructor_payment == Decimal("0")
        assert meeting.profit == Decimal("0")
        assert counters(db, cycle) == (4, 0, 4)

    def test_entering_completed_from_cancelled(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        lifecycle = MeetingLifecycle(db)
        lifecycle.cancel(meetings[2].id, admin)

        meeting = lifecycle.set_status(meetings[2].id, "completed", admin).meeting

        assert meeting.revenue == Decimal("500")
        assert counters(db, cycle) == (4, 1, 3)

    def test_counters_never_go_negative(self, db, admin, make_cycle, make_meeting):
        cycle = make_cycle(total_meetings=1, completed_meetings=0, remaining_meetings=0)
        meeting = make_meeting(cycle, date(2024, 3, 3))
        MeetingLifecycle(db).complete(meeting.id, admin)

        assert counters(db, cycle) == (1, 1, 0)


class TestRecalculate:
    def test_recalculate_picks_up_rate_changes(self, db, admin, instructor, weekly_cycle):
        _, meetings = weekly_cycle
        lifecycle = MeetingLifecycle(db)
        lifecycle.complete(meetings[0].id, admin)

        instructor.rate_frontal = Decimal("100")
        db.commit()
        meeting = lifecycle.recalculate(meetings[0].id, admin)

        assert meeting.instructor_payment == Decimal("150")
        assert meeting.profit == Decimal("350")
        assert meeting.status == "completed"

    def test_only_completed_meetings(self, db, admin, weekly_cycle):
        _, meetings = weekly_cycle
        with pytest.raises(ValidationError):
            MeetingLifecycle(db).recalculate(meetings[0].id, admin)

    def test_bulk_skips_meetings_with_revenue_unless_forced(self, db, admin, instructor, weekly_cycle):
        _, meetings = weekly_cycle
        service = MeetingService(db)
        service.complete_meeting(meetings[0].id, admin)
        ids = [meetings[0].id, meetings[1].id]

        result = service.bulk_recalculate(ids, force=False, user=admin)
        assert result["updated"] == 0
        assert result["skipped"] == 1
        assert len(result["errors"]) == 1

        instructor.rate_frontal = Decimal("100")
        db.commit()
        forced = service.bulk_recalculate(ids, force=True, user=admin)
        assert forced["updated"] == 1
        db.refresh(meetings[0])
        assert meetings[0].instructor_payment == Decimal("150")


class TestMeetingService:
    def test_added_meeting_grows_the_cycle(self, db, admin, weekly_cycle):
        from academy_crm.domain.meetings.schemas import MeetingCreate

        cycle, _ = weekly_cycle
        meeting = MeetingService(db).create_meeting(
            MeetingCreate(cycleId=cycle.id, scheduledDate=date(2024, 4, 7)), admin
        )

        assert meeting.status == "scheduled"
        assert meeting.revenue == Decimal("0")
        assert counters(db, cycle) == (5, 0, 5)

    def test_deleting_completed_meeting_returns_it_to_remaining(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        service = MeetingService(db)
        service.complete_meeting(meetings[0].id, admin)

        service.delete_meeting(meetings[0].id, admin)

        db.refresh(meetings[0])
        assert meetings[0].deleted_at is not None
        assert counters(db, cycle) == (4, 0, 4)

    def test_bulk_update_status_counts_changes(self, db, admin, weekly_cycle):
        cycle, meetings = weekly_cycle
        result = MeetingService(db).bulk_update_status([m.id for m in meetings[:2]], "completed", admin)

        assert result["updated"] == 2
        assert counters(db, cycle) == (4, 2, 2)
