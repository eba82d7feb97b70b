"""Diagnostic side channel for the slot search.

Nothing here feeds back into accept/reject or scoring; it only records what
those steps decided so QA tooling and tests can ask why a slot was or was not
proposed.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, List, Optional

from loguru import logger

from models import (
    AnchorSnapshot,
    CandidateCallback,
    SlotConsidered,
    SlotExplain,
    TimelineAnchor,
)
from services.candidates import GapPlan
from services.feasibility import FeasibilityCheck
from services.scoring import SlotScore
from services.timeline import DayEvent
from utils import day_key, format_day_label, format_time_range, minutes_between


class CandidateReporter:
    """Wraps the optional per-candidate callback; a no-op when none is given."""

    def __init__(self, callback: Optional[CandidateCallback] = None) -> None:
        self._callback = callback

    @property
    def enabled(self) -> bool:
        return self._callback is not None

    def report(self, build_entry: Callable[[], SlotConsidered]) -> None:
        if self._callback is None:
            return
        try:
            self._callback(build_entry())
        except Exception as exc:
            logger.exception("candidate callback failed: {}", exc)


def snapshot(anchor: TimelineAnchor) -> AnchorSnapshot:
    return AnchorSnapshot(
        id=anchor.id,
        title=anchor.title,
        kind=anchor.kind.value,
        start=anchor.start,
        end=anchor.end,
        has_real_coordinate=anchor.has_real_coordinate,
    )


def summarize(check: FeasibilityCheck, score: Optional[SlotScore], *, empty_week: bool = False) -> str:
    if check.reason:
        return f"Rejected: {check.reason}."
    if score is None:
        return "Accepted."
    if empty_week:
        return f"Empty day. +{score.detour_minutes} min round trip. Score {score.score:.1f}."
    if score.detour_minutes >= 0:
        detour = f"+{score.detour_minutes} min"
    else:
        detour = f"Saves {abs(score.detour_minutes)} min"
    return f"{detour} drive, {score.slack_minutes:.0f} min slack. Score {score.score:.1f}."


def build_explain(
    day: date,
    plan: GapPlan,
    check: FeasibilityCheck,
    score: Optional[SlotScore],
    *,
    pre_buffer: int,
    post_buffer: int,
    day_events: List[DayEvent],
    empty_week: bool = False,
) -> SlotExplain:
    arrive_by = check.start - timedelta(minutes=pre_buffer)
    margin: Optional[float] = None
    if plan.buffer_waived_at_start:
        margin = minutes_between(plan.prev_depart + timedelta(minutes=plan.effective_travel_to), check.start)
    return SlotExplain(
        day_key=day_key(day),
        prev=snapshot(plan.prev),
        next=snapshot(plan.next),
        prev_depart=plan.prev_depart,
        arrive_by=arrive_by,
        meeting_start=check.start,
        meeting_end=check.end,
        depart_at=check.depart_at,
        next_arrive_by=plan.next_arrive_by,
        gap_minutes=plan.gap_minutes,
        travel_to_minutes=plan.travel_to,
        travel_from_minutes=check.travel_from,
        travel_to_used_fallback=plan.prev.is_event and not plan.prev.has_real_coordinate,
        travel_from_used_fallback=plan.next.is_event and not plan.next.has_real_coordinate,
        pre_buffer=pre_buffer,
        post_buffer=post_buffer,
        baseline_minutes=score.baseline_minutes if score else 0,
        new_path_minutes=score.new_path_minutes if score else plan.travel_to + check.travel_from,
        detour_minutes=score.detour_minutes if score else 0,
        slack_minutes=score.slack_minutes if score else 0.0,
        score=score.score if score else None,
        fits_gap=check.fits_gap,
        within_working_hours=check.within_working_hours,
        not_past=check.not_past,
        working_day_allowed=True,
        no_overlap=check.no_overlap,
        travel_feasible=check.travel_feasible,
        buffer_waived_at_start=plan.buffer_waived_at_start,
        buffer_waived_at_end=plan.buffer_waived_at_end,
        travel_feasible_from_now=check.travel_feasible_from_now,
        reachable_from_work_start=check.reachable_from_work_start,
        arrival_margin_minutes=margin,
        arrive_early_preferred=margin is not None and margin >= pre_buffer,
        events_with_missing_coords=[
            ev.commitment.title or "(No title)" for ev in day_events if not ev.has_coordinate
        ],
        summary=summarize(check, score, empty_week=empty_week),
    )


def considered_entry(
    day: date,
    plan: GapPlan,
    check: FeasibilityCheck,
    score: Optional[SlotScore],
    *,
    label: Optional[str] = None,
    explain: Optional[SlotExplain] = None,
    empty_week: bool = False,
) -> SlotConsidered:
    common = dict(
        day_key=day_key(day),
        day_label=format_day_label(day),
        time_range=format_time_range(check.start, check.end),
        prev=plan.prev.title,
        next=plan.next.title,
        explain=explain,
    )
    if check.reason or score is None:
        return SlotConsidered(status="rejected", reason=check.reason, summary=summarize(check, None), **common)
    return SlotConsidered(
        status="accepted",
        detour_minutes=score.detour_minutes,
        baseline_minutes=score.baseline_minutes,
        new_path_minutes=score.new_path_minutes,
        slack_minutes=score.slack_minutes,
        score=score.score,
        label=label,
        summary=summarize(check, score, empty_week=empty_week),
        **common,
    )
