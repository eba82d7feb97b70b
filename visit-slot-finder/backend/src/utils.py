"""Utility helpers for the visit slot finder."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Optional


_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers."""
    R = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def parse_minutes(value: Any) -> Optional[int]:
    """Minutes after midnight for an ``HH:MM`` string, ``None`` when malformed."""
    if not isinstance(value, str):
        return None
    match = _HHMM.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 24 or minute > 59 or (hour == 24 and minute):
        return None
    return hour * 60 + minute


def midnight(day: date, tz: Optional[tzinfo]) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def at_minutes(day: date, minutes: int, tz: Optional[tzinfo]) -> datetime:
    return midnight(day, tz) + timedelta(minutes=minutes)


def align_instant(value: datetime, tz: Optional[tzinfo]) -> datetime:
    """Bring ``value`` into the same naive/aware world as ``tz``.

    Aware values are converted (to local time when ``tz`` is None, then made
    naive); naive values are tagged with ``tz``.
    """
    if value.tzinfo is None:
        return value if tz is None else value.replace(tzinfo=tz)
    if tz is None:
        return value.astimezone().replace(tzinfo=None)
    return value.astimezone(tz)


def coerce_instant(value: Any, tz: Optional[tzinfo]) -> Optional[datetime]:
    if isinstance(value, datetime):
        return align_instant(value, tz)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return align_instant(parsed, tz)
    return None


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def day_key(day: date) -> str:
    return day.isoformat()


def format_day_label(day: date) -> str:
    """``Mon, Feb 13`` style label."""
    return f"{day.strftime('%a')}, {day.strftime('%b')} {day.day}"


def format_time_range(start: datetime, end: datetime) -> str:
    return f"{start:%H:%M}–{end:%H:%M}"
