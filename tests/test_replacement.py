from datetime import date, time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from academy_crm.domain.meetings.lifecycle import MeetingLifecycle
from academy_crm.domain.meetings.replacement import create_replacement_meeting, needs_video_room
from academy_crm.models import Meeting


@pytest.fixture
def zoom():
    client = MagicMock()
    client.find_available_host = AsyncMock(return_value={"id": "host-1", "email": "host@academy.test"})
    client.create_room = AsyncMock(
        return_value={
            "id": "98765",
            "join_url": "https://zoom.us/j/98765",
            "start_url": "https://zoom.us/s/98765",
            "password": "abc123",
            "host_key": "112233",
            "host_id": "host-1",
        }
    )
    return client


def postpone(db, admin, meeting):
    return MeetingLifecycle(db).postpone(meeting.id, admin).meeting


async def test_replacement_is_a_week_after_the_last_meeting(db, admin, weekly_cycle, zoom):
    cycle, meetings = weekly_cycle
    postponed = postpone(db, admin, meetings[1])

    replacement = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    assert replacement.scheduled_date == date(2024, 3, 31)
    assert replacement.status == "scheduled"
    assert replacement.replacement_for_id == postponed.id
    assert replacement.instructor_id == postponed.instructor_id
    assert replacement.start_time == cycle.start_time
    assert "2024-03-10" in replacement.topic
    db.refresh(postponed)
    assert postponed.rescheduled_to_id == replacement.id
    db.refresh(cycle)
    assert cycle.remaining_meetings == 5
    assert cycle.total_meetings == 4
    zoom.find_available_host.assert_not_awaited()


async def test_replacement_carries_projected_financials(db, admin, weekly_cycle, zoom):
    _, meetings = weekly_cycle
    postponed = postpone(db, admin, meetings[1])

    replacement = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    assert replacement.revenue == Decimal("500")
    assert replacement.instructor_payment == Decimal("300")
    assert replacement.profit == Decimal("200")


async def test_replacement_is_created_once(db, admin, weekly_cycle, zoom):
    cycle, meetings = weekly_cycle
    postponed = postpone(db, admin, meetings[1])

    first = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)
    second = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    assert first.id == second.id
    assert db.query(Meeting).filter(Meeting.replacement_for_id == postponed.id).count() == 1
    db.refresh(cycle)
    assert cycle.remaining_meetings == 5


async def test_scheduled_meeting_gets_no_replacement(db, weekly_cycle, zoom):
    _, meetings = weekly_cycle
    assert await create_replacement_meeting(db, meetings[1].id, zoom=zoom) is None


async def test_falls_back_to_cycle_end_date(db, admin, make_cycle, make_meeting, zoom):
    cycle = make_cycle(total_meetings=1, remaining_meetings=1, end_date=date(2024, 6, 30))
    meeting = make_meeting(cycle, date(2024, 6, 2))
    postponed = postpone(db, admin, meeting)

    replacement = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    assert replacement.scheduled_date == date(2024, 7, 7)


async def test_online_replacement_gets_a_room(db, admin, make_cycle, make_meeting, zoom):
    cycle = make_cycle(
        activity_type="online",
        is_online=True,
        zoom_meeting_id="555",
        start_time=time(18, 0),
        end_time=time(19, 0),
        duration_minutes=60,
    )
    meeting = make_meeting(cycle, date(2024, 3, 3), zoom_meeting_id="555")
    postponed = postpone(db, admin, meeting)

    replacement = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    start, duration = zoom.find_available_host.await_args.args
    assert (start.hour, start.minute) == (17, 50)
    assert start.utcoffset() is not None
    assert duration == 70
    zoom.create_room.assert_awaited_once()
    assert replacement.zoom_meeting_id == "98765"
    assert replacement.zoom_join_url == "https://zoom.us/j/98765"
    assert replacement.zoom_host_key == "112233"


async def test_room_failure_keeps_the_replacement(db, admin, make_cycle, make_meeting, zoom):
    cycle = make_cycle(activity_type="online", is_online=True, zoom_meeting_id="555")
    meeting = make_meeting(cycle, date(2024, 3, 3))
    postponed = postpone(db, admin, meeting)
    zoom.create_room.side_effect = RuntimeError("zoom down")

    replacement = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    assert replacement is not None
    db.refresh(replacement)
    assert replacement.zoom_meeting_id is None
    assert replacement.status == "scheduled"


async def test_no_free_host_leaves_room_unset(db, admin, make_cycle, make_meeting, zoom):
    cycle = make_cycle(activity_type="online", is_online=True, zoom_meeting_id="555")
    meeting = make_meeting(cycle, date(2024, 3, 3))
    postponed = postpone(db, admin, meeting)
    zoom.find_available_host.return_value = None

    replacement = await create_replacement_meeting(db, postponed.id, admin.id, zoom=zoom)

    assert replacement.zoom_meeting_id is None
    zoom.create_room.assert_not_awaited()


class TestNeedsVideoRoom:
    def make(self, **kwargs):
        cycle = MagicMock(is_online=kwargs.get("is_online", False), zoom_meeting_id=kwargs.get("cycle_room"))
        postponed = MagicMock(zoom_meeting_id=kwargs.get("meeting_room"))
        return cycle, postponed

    def test_frontal_never_needs_a_room(self):
        cycle, postponed = self.make(cycle_room="1", meeting_room="1")
        assert needs_video_room(cycle, postponed, "frontal") is False

    def test_private_lesson_with_room(self):
        cycle, postponed = self.make(meeting_room="1")
        assert needs_video_room(cycle, postponed, "private_lesson") is True

    def test_online_without_any_room(self):
        cycle, postponed = self.make(is_online=True)
        assert needs_video_room(cycle, postponed, "online") is False
