from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from models import Preferences, SearchWindow, VisitRequest
from services.candidates import GapPlan
from services.timeline import DayEvent
from services.travel import estimate_travel_minutes
from utils import intervals_overlap


@dataclass(frozen=True)
class DayBounds:
    """Everything about the day a candidate is checked against."""

    eff_start: datetime
    eff_end: datetime
    window: SearchWindow
    min_start: datetime
    now: datetime
    events: List[DayEvent]


@dataclass(frozen=True)
class FeasibilityCheck:
    start: datetime
    end: datetime
    depart_at: datetime
    travel_from: int
    required_minutes: int
    fits_gap: bool
    within_working_hours: bool
    within_window: bool
    not_past: bool
    arrives_in_time: bool
    reachable_from_work_start: Optional[bool]
    travel_feasible_from_now: Optional[bool]
    no_overlap: bool
    travel_feasible: bool
    reason: Optional[str] = None

    @property
    def feasible(self) -> bool:
        return self.reason is None


def check_candidate(
    plan: GapPlan,
    start: datetime,
    visit: VisitRequest,
    prefs: Preferences,
    bounds: DayBounds,
) -> FeasibilityCheck:
    pre = prefs.pre_buffer_minutes
    post = prefs.post_buffer_minutes
    waived_start = plan.buffer_waived_at_start
    waived_end = plan.buffer_waived_at_end

    end = start + timedelta(minutes=visit.duration_minutes)
    depart_at = end if waived_end else end + timedelta(minutes=post)
    travel_from = estimate_travel_minutes(visit.location, plan.next.coordinate, depart_at)

    required = plan.effective_travel_to + visit.duration_minutes
    if not waived_start:
        required += pre
    if not waived_end:
        required += post + travel_from

    fits_gap = plan.gap_minutes >= required
    ends_in_day = end <= bounds.eff_end
    ends_in_window = end <= bounds.window.end
    starts_in_day = start >= bounds.eff_start
    starts_in_window = start >= bounds.window.start
    arrives_in_time = waived_end or depart_at + timedelta(minutes=travel_from) <= plan.next_arrive_by
    not_past = start >= bounds.min_start

    reachable: Optional[bool] = None
    from_now: Optional[bool] = None
    if waived_start:
        reachable = plan.prev_depart + timedelta(minutes=plan.effective_travel_to) <= start
        if plan.travel_from_now is not None:
            from_now = bounds.now + timedelta(minutes=plan.travel_from_now) <= start
        arrive_ok = reachable and from_now is not False
    else:
        arrive_ok = plan.prev_depart + timedelta(minutes=plan.travel_to) <= start - timedelta(minutes=pre)

    no_overlap = not any(intervals_overlap(start, end, ev.start, ev.end) for ev in bounds.events)

    reason: Optional[str] = None
    if not fits_gap:
        reason = f"Gap too small (need {required} min)"
    elif not ends_in_day:
        reason = "Ends after work end"
    elif not ends_in_window:
        reason = "Ends after window"
    elif not starts_in_day:
        reason = "Before work start"
    elif not starts_in_window:
        reason = "Before window"
    elif not arrives_in_time:
        reason = "Can't reach next meeting in time"
    elif not not_past:
        reason = "In the past"
    elif reachable is False:
        reason = "Arrive late"
    elif from_now is False:
        reason = "Can't leave now in time"
    elif not no_overlap:
        reason = "Overlaps existing meeting"

    return FeasibilityCheck(
        start=start,
        end=end,
        depart_at=depart_at,
        travel_from=travel_from,
        required_minutes=required,
        fits_gap=fits_gap,
        within_working_hours=starts_in_day and ends_in_day,
        within_window=starts_in_window and ends_in_window,
        not_past=not_past,
        arrives_in_time=arrives_in_time,
        reachable_from_work_start=reachable,
        travel_feasible_from_now=from_now,
        no_overlap=no_overlap,
        travel_feasible=bool(arrive_ok and arrives_in_time),
        reason=reason,
    )


def is_consistent(check: FeasibilityCheck) -> bool:
    """Last look at a slot about to be returned; any false flag drops it."""
    return (
        check.fits_gap
        and check.within_working_hours
        and check.within_window
        and check.not_past
        and check.arrives_in_time
        and check.no_overlap
        and check.travel_feasible
        and check.reachable_from_work_start is not False
        and check.travel_feasible_from_now is not False
    )
