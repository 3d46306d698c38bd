"""Shared validation utilities"""

import uuid
from typing import Optional

from ..models import ACTIVITY_TYPES, DAYS_OF_WEEK


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError):
        return False


def validate_choice(value: Optional[str], choices: tuple[str, ...], field: str) -> Optional[str]:
    """Reject values outside a fixed vocabulary"""
    if value is None:
        return value
    if value not in choices:
        raise ValueError(f"{field} must be one of: {', '.join(choices)}")
    return value


def validate_day_of_week(value: Optional[str]) -> Optional[str]:
    """Normalize a weekday name to lowercase (sunday..saturday)"""
    if value is None:
        return value
    normalized = value.strip().lower()
    if normalized not in DAYS_OF_WEEK:
        raise ValueError(f"dayOfWeek must be one of: {', '.join(DAYS_OF_WEEK)}")
    return normalized


def validate_activity_type(value: Optional[str]) -> Optional[str]:
    return validate_choice(value, ACTIVITY_TYPES, "activityType")


def day_name_to_number(day_name: str) -> int:
    """Weekday index with sunday=0"""
    return DAYS_OF_WEEK.index(day_name.lower())
