"""
Weekly meeting date planning

Dates fall on the cycle's weekday and skip Israeli holidays. The number of
weeks inspected is capped at three times the requested count so a calendar
full of holidays cannot loop forever.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from ...services.holidays_service import get_holidays_between
from ...shared.validators import day_name_to_number

logger = logging.getLogger(__name__)


def first_weekday_on_or_after(start: date, day_of_week: str) -> date:
    # day_name_to_number counts from sunday=0, date.weekday() from monday=0
    target = (day_name_to_number(day_of_week) - 1) % 7
    return start + timedelta(days=(target - start.weekday()) % 7)


def plan_meeting_dates(
    start: date,
    day_of_week: str,
    count: int,
    holidays: Optional[set[date]] = None,
    max_attempts: Optional[int] = None,
) -> list[date]:
    """
    Weekly dates on day_of_week from start (inclusive), skipping holidays.

    May return fewer than count dates when max_attempts runs out.
    """
    if count <= 0:
        return []
    holidays = holidays or set()
    max_attempts = max_attempts if max_attempts is not None else count * 3

    dates: list[date] = []
    current = first_weekday_on_or_after(start, day_of_week)
    attempts = 0
    while len(dates) < count and attempts < max_attempts:
        attempts += 1
        if current not in holidays:
            dates.append(current)
        current += timedelta(days=7)

    if len(dates) < count:
        logger.warning(f"⚠️ Only {len(dates)} of {count} dates found from {start} within {max_attempts} weeks")
    return dates


async def plan_cycle_dates(
    start: date, day_of_week: str, count: int, skip_holidays: bool = True
) -> list[date]:
    """plan_meeting_dates with the holiday calendar loaded for the covered period"""
    holidays: set[date] = set()
    if skip_holidays and count > 0:
        horizon = start + timedelta(weeks=count * 3)
        holidays = await get_holidays_between(start, horizon)
    return plan_meeting_dates(start, day_of_week, count, holidays)
