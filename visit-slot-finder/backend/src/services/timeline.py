from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from models import AnchorKind, Commitment, Coordinate, SearchWindow, TimelineAnchor
from utils import at_minutes, coerce_instant, intervals_overlap, parse_minutes


Interval = Tuple[datetime, datetime]

_TIME_RANGE = re.compile(r"^\s*(\d{1,2}:\d{2})\s*[-–]\s*(\d{1,2}:\d{2})\s*$")


@dataclass(frozen=True)
class DayEvent:
    commitment: Commitment
    start: datetime
    end: datetime
    has_coordinate: bool


def parse_time_range(text: Optional[str], day: date, tz: Optional[tzinfo]) -> Optional[Interval]:
    """Read ``"HH:MM - HH:MM"`` on ``day``. Returns None for anything malformed."""
    if not text or not isinstance(text, str):
        return None
    match = _TIME_RANGE.match(text)
    if not match:
        return None
    open_min = parse_minutes(match.group(1))
    close_min = parse_minutes(match.group(2))
    if open_min is None or close_min is None:
        return None
    if close_min == open_min:
        return None
    if close_min < open_min:
        close_min += 24 * 60
    return at_minutes(day, open_min, tz), at_minutes(day, close_min, tz)


def commitment_interval(commitment: Commitment, day: date, tz: Optional[tzinfo]) -> Optional[Interval]:
    if commitment.start is not None and commitment.end is not None:
        start = coerce_instant(commitment.start, tz)
        end = coerce_instant(commitment.end, tz)
        if start is not None and end is not None:
            return start, end
    return parse_time_range(commitment.time_text, commitment.day or day, tz)


def filter_schedule_to_window(
    schedule: Iterable[Commitment], window: SearchWindow, tz: Optional[tzinfo]
) -> List[Commitment]:
    """Commitments overlapping the window. Unparseable entries are kept."""
    anchor_day = window.start.date()
    kept: list[Commitment] = []
    for commitment in schedule:
        interval = commitment_interval(commitment, anchor_day, tz)
        if interval is None:
            kept.append(commitment)
            continue
        if intervals_overlap(interval[0], interval[1], window.start, window.end):
            kept.append(commitment)
    return kept


def day_window(
    day: date,
    work_start_min: int,
    work_end_min: int,
    window: SearchWindow,
    tz: Optional[tzinfo],
) -> Optional[Interval]:
    """Working hours of ``day`` clamped to the search window, or None if empty."""
    start = at_minutes(day, work_start_min, tz)
    end = at_minutes(day, work_end_min, tz)
    if day == window.start.date():
        start = max(start, window.start)
    if day == window.end.date():
        end = min(end, window.end)
    if end <= start:
        return None
    return start, end


def events_for_day(
    schedule: Iterable[Commitment],
    day: date,
    eff_start: datetime,
    eff_end: datetime,
    tz: Optional[tzinfo],
) -> List[DayEvent]:
    """Commitments overlapping ``[eff_start, eff_end)``, clipped to it and sorted.

    A commitment that began the previous evening still blocks the part that
    reaches into this day.
    """
    events: list[DayEvent] = []
    for commitment in schedule:
        interval = commitment_interval(commitment, day, tz)
        if interval is None:
            logger.warning("skipping commitment {} with unusable time data", commitment.id)
            continue
        start, end = interval
        if not intervals_overlap(start, end, eff_start, eff_end):
            continue
        start = max(start, eff_start)
        end = min(end, eff_end)
        if end <= start:
            continue
        events.append(
            DayEvent(
                commitment=commitment,
                start=start,
                end=end,
                has_coordinate=commitment.coordinate is not None,
            )
        )
    events.sort(key=lambda e: e.start)
    return events


def build_timeline(
    day_events: List[DayEvent],
    home: Coordinate,
    eff_start: datetime,
    eff_end: datetime,
) -> List[TimelineAnchor]:
    """``[Start, ...events, End]`` for one day."""
    start_anchor = TimelineAnchor(
        id="_start",
        title="Start",
        kind=AnchorKind.START,
        start=eff_start,
        end=eff_start,
        coordinate=home,
    )
    end_anchor = TimelineAnchor(
        id="_end",
        title="End",
        kind=AnchorKind.END,
        start=eff_end,
        end=eff_end,
        coordinate=home,
    )
    event_anchors = [
        TimelineAnchor(
            id=event.commitment.id,
            title=event.commitment.title or "(No title)",
            kind=AnchorKind.EVENT,
            start=event.start,
            end=event.end,
            coordinate=event.commitment.coordinate or home,
            has_real_coordinate=event.has_coordinate,
        )
        for event in day_events
    ]
    return [start_anchor, *sorted(event_anchors, key=lambda a: a.start), end_anchor]


def iter_days(first: date, last: date) -> Iterable[date]:
    day = first
    while day <= last:
        yield day
        day += timedelta(days=1)
