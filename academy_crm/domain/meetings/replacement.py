"""
Replacement meetings for postponed lessons

A postponed meeting gets a successor one week after the cycle's last
scheduled or completed meeting. Safe to run more than once for the same
postponed meeting: the successor link is claimed with a conditional update.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...audit import ACTION_CREATE, log_audit
from ...config import TIMEZONE, ZOOM_EARLY_JOIN_MINUTES
from ...models import Cycle, Meeting, User
from ...services.zoom_service import ZoomService, zoom_service
from ..finance.calculator import calculate_meeting_financials
from .repository import MeetingRepository

logger = logging.getLogger(__name__)

ONLINE_ACTIVITY_TYPES = ("online", "private_lesson")


def replacement_date(db: Session, postponed: Meeting) -> date:
    """One week after the cycle's latest scheduled/completed meeting, else after its end date"""
    latest = MeetingRepository.get_latest_active_meeting(db, postponed.cycle_id, postponed.id)
    if latest:
        base = latest.scheduled_date
    else:
        base = postponed.cycle.end_date or postponed.scheduled_date
    return base + timedelta(days=7)


def needs_video_room(cycle: Cycle, postponed: Meeting, activity_type: str) -> bool:
    is_online = cycle.is_online or activity_type in ONLINE_ACTIVITY_TYPES
    had_room = bool(postponed.zoom_meeting_id or cycle.zoom_meeting_id)
    return is_online and had_room


async def create_replacement_meeting(
    db: Session,
    postponed_meeting_id: str,
    actor_id: Optional[str] = None,
    zoom: ZoomService = zoom_service,
) -> Optional[Meeting]:
    """
    Create the successor of a postponed meeting.

    Returns the replacement (an existing one on repeat calls), or None when
    the meeting is missing or not postponed.
    """
    repo = MeetingRepository()
    postponed = repo.get_meeting(db, postponed_meeting_id, include_deleted=True)
    if not postponed:
        logger.warning(f"⚠️ Postponed meeting {postponed_meeting_id} not found, no replacement created")
        return None
    if postponed.status != "postponed":
        logger.warning(f"⚠️ Meeting {postponed.id} is {postponed.status}, not postponed - skipping replacement")
        return None
    if postponed.rescheduled_to_id:
        logger.info(f"🔁 Meeting {postponed.id} already has replacement {postponed.rescheduled_to_id}")
        return repo.get_meeting(db, postponed.rescheduled_to_id, include_deleted=True)

    cycle = postponed.cycle
    new_date = replacement_date(db, postponed)
    activity_type = cycle.activity_type or postponed.activity_type or "frontal"
    registrations = repo.get_enrolled_registrations(db, cycle.id)
    financials = calculate_meeting_financials(cycle, postponed.instructor, registrations, activity_type)
    original_date = postponed.scheduled_date.isoformat()
    actor = db.get(User, actor_id) if actor_id else None

    try:
        replacement = repo.add_meeting(
            db,
            cycle_id=cycle.id,
            instructor_id=postponed.instructor_id,
            scheduled_date=new_date,
            start_time=cycle.start_time,
            end_time=cycle.end_time,
            status="scheduled",
            activity_type=activity_type,
            revenue=financials.revenue,
            instructor_payment=financials.instructor_payment,
            profit=financials.profit,
            topic=f"Replacement meeting (postponed from {original_date})",
            notes=f"Replaces meeting {postponed.id} originally scheduled for {original_date}",
            replacement_for_id=postponed.id,
        )

        claimed = (
            db.query(Meeting)
            .filter(Meeting.id == postponed.id, Meeting.rescheduled_to_id.is_(None))
            .update({Meeting.rescheduled_to_id: replacement.id}, synchronize_session=False)
        )
        if claimed != 1:
            db.rollback()
            db.refresh(postponed)
            logger.info(f"🔁 Replacement for {postponed.id} created concurrently, discarding duplicate")
            return repo.get_meeting(db, postponed.rescheduled_to_id, include_deleted=True)

        # total_meetings stays as sold; remaining counts the extra meeting
        repo.adjust_cycle_counters(db, cycle.id, remaining_delta=1)
        log_audit(
            db,
            actor,
            ACTION_CREATE,
            "Meeting",
            replacement.id,
            new_value={
                "action": "replacement",
                "replacementFor": postponed.id,
                "scheduledDate": new_date.isoformat(),
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(replacement)
    logger.info(f"✅ Replacement meeting {replacement.id} created for {new_date} (postponed {postponed.id})")

    if needs_video_room(cycle, postponed, activity_type):
        await provision_video_room(db, replacement, cycle, zoom)

    return replacement


async def provision_video_room(db: Session, meeting: Meeting, cycle: Cycle, zoom: ZoomService) -> bool:
    """
    Open a room 10 minutes before the lesson for the lesson length plus 10 minutes.

    Provider failures are logged; the meeting stays without a room for manual provisioning.
    """
    start = datetime.combine(meeting.scheduled_date, meeting.start_time, tzinfo=ZoneInfo(TIMEZONE))
    start -= timedelta(minutes=ZOOM_EARLY_JOIN_MINUTES)
    duration = (cycle.duration_minutes or 60) + ZOOM_EARLY_JOIN_MINUTES
    topic = f"{cycle.name} - replacement {meeting.scheduled_date.isoformat()}"

    try:
        host = await zoom.find_available_host(start, duration)
        if not host:
            logger.warning(f"⚠️ No Zoom host free for replacement meeting {meeting.id}, needs manual room")
            return False

        room = await zoom.create_room(host["id"], topic, start, duration)
        meeting.zoom_meeting_id = room["id"]
        meeting.zoom_join_url = room.get("join_url")
        meeting.zoom_start_url = room.get("start_url")
        meeting.zoom_password = room.get("password")
        meeting.zoom_host_key = room.get("host_key")
        meeting.zoom_host_id = room.get("host_id", host["id"])
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to provision Zoom room for replacement meeting {meeting.id}: {e}")
        return False

    logger.info(f"🎥 Zoom room {meeting.zoom_meeting_id} attached to replacement meeting {meeting.id}")
    return True
