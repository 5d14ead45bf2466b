"""Shared validation utilities"""

import re
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


def validate_time_of_day(value: Optional[str]) -> Optional[str]:
    """
    Validate a wall-clock time in HH:MM (24h) format.

    Accepts "HH:MM:SS" as well and truncates the seconds, since slot times
    coming from schedule generation may carry them.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if value is None:
        return value

    candidate = value.strip()
    if not TIME_PATTERN.match(candidate):
        raise ValueError("Time must be in HH:MM format")
    return candidate[:5]


def validate_price(value: Optional[int]) -> Optional[int]:
    """Prices are whole currency units and cannot be negative"""
    if value is None:
        return value
    if value < 0:
        raise ValueError("Price cannot be negative")
    return value


def local_to_utc(on_date: date, at_time: str, tz_name: str) -> datetime:
    """
    Combine a local date and HH:MM time in the given timezone and return
    the equivalent naive UTC datetime.
    """
    hours, minutes = (int(part) for part in validate_time_of_day(at_time).split(":"))
    local = datetime.combine(on_date, time(hours, minutes), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(ZoneInfo("UTC")).replace(tzinfo=None)
