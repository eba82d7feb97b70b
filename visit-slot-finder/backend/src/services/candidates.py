from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from models import AnchorKind, Preferences, TimelineAnchor, VisitRequest
from services.travel import estimate_travel_minutes
from utils import midnight, minutes_between


SNAP_MINUTES = 15
MAX_CANDIDATES_PER_GAP = 3


def snap_up(instant: datetime) -> datetime:
    """Round up to the next quarter hour of the local day."""
    base = midnight(instant.date(), instant.tzinfo)
    grid = SNAP_MINUTES * 60
    steps = math.ceil((instant - base).total_seconds() / grid)
    return base + timedelta(seconds=steps * grid)


@dataclass(frozen=True)
class GapPlan:
    """Where the new visit could go between two consecutive anchors."""

    prev: TimelineAnchor
    next: TimelineAnchor
    prev_depart: datetime
    next_arrive_by: datetime
    travel_to: int
    # drive counted when leaving the Start anchor; 0 in field mode
    effective_travel_to: int
    earliest: datetime
    travel_from_now: Optional[int] = None
    starts: List[datetime] = field(default_factory=list)

    @property
    def gap_minutes(self) -> float:
        return minutes_between(self.prev_depart, self.next_arrive_by)

    @property
    def buffer_waived_at_start(self) -> bool:
        return self.prev.kind is AnchorKind.START

    @property
    def buffer_waived_at_end(self) -> bool:
        return self.next.kind is AnchorKind.END


def plan_gap(
    prev: TimelineAnchor,
    next_: TimelineAnchor,
    visit: VisitRequest,
    prefs: Preferences,
    *,
    now: datetime,
    is_today: bool,
    not_before: Optional[datetime] = None,
    max_starts: int = MAX_CANDIDATES_PER_GAP,
) -> Optional[GapPlan]:
    """Propose snapped start instants for one gap; None when the gap is closed.

    ``not_before`` is the earliest start that is not in the past; starts are
    never proposed ahead of it.
    """
    pre = timedelta(minutes=prefs.pre_buffer_minutes)
    post = timedelta(minutes=prefs.post_buffer_minutes)

    prev_depart = prev.end + post if prev.is_event else prev.end
    next_arrive_by = next_.start - pre if next_.is_event else next_.start
    if next_arrive_by <= prev_depart:
        return None

    travel_to = estimate_travel_minutes(prev.coordinate, visit.location, prev_depart)
    travel_from_now: Optional[int] = None

    if prev.kind is AnchorKind.START:
        effective = travel_to if prefs.start_from_home_base else 0
        earliest = prev_depart + timedelta(minutes=effective)
        if is_today:
            # cannot leave home before now
            travel_from_now = estimate_travel_minutes(prev.coordinate, visit.location, now)
            earliest = max(earliest, now + timedelta(minutes=travel_from_now))
    else:
        effective = travel_to
        earliest = prev_depart + timedelta(minutes=travel_to) + pre

    if not_before is not None:
        earliest = max(earliest, not_before)

    first = snap_up(earliest)
    starts = [first + timedelta(minutes=SNAP_MINUTES * k) for k in range(max(0, max_starts))]
    return GapPlan(
        prev=prev,
        next=next_,
        prev_depart=prev_depart,
        next_arrive_by=next_arrive_by,
        travel_to=travel_to,
        effective_travel_to=effective,
        earliest=earliest,
        travel_from_now=travel_from_now,
        starts=starts,
    )


def plan_empty_day(
    start: TimelineAnchor,
    end: TimelineAnchor,
    visit: VisitRequest,
    prefs: Preferences,
    *,
    now: datetime,
    is_today: bool,
    not_before: Optional[datetime] = None,
) -> Optional[GapPlan]:
    """Single candidate for a day in a window with no commitments at all.

    The visit goes at the earliest reachable quarter hour after leaving home.
    """
    return plan_gap(start, end, visit, prefs, now=now, is_today=is_today, not_before=not_before, max_starts=1)
