from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List

from models import AnchorKind, ScoredSlot, TimelineAnchor
from services.candidates import GapPlan
from services.feasibility import FeasibilityCheck
from services.travel import estimate_travel_minutes
from utils import minutes_between


MAX_SLOTS = 100

DETOUR_WEIGHT = 10
TIGHT_SLACK_MINUTES = 10
TIGHT_SLACK_PENALTY = 5000
IDLE_SLACK_MINUTES = 90
IDLE_SLACK_WEIGHT = 2
EMPTY_DAY_PENALTY = 150


@dataclass(frozen=True)
class SlotScore:
    baseline_minutes: int
    new_path_minutes: int
    detour_minutes: int
    slack_minutes: float
    score: float


def slack_penalty(slack_minutes: float) -> float:
    if slack_minutes < TIGHT_SLACK_MINUTES:
        return TIGHT_SLACK_PENALTY
    if slack_minutes > IDLE_SLACK_MINUTES:
        return (slack_minutes - IDLE_SLACK_MINUTES) * IDLE_SLACK_WEIGHT
    return 0.0


def score_candidate(plan: GapPlan, check: FeasibilityCheck, *, empty_day: bool) -> SlotScore:
    """Detour against the existing prev -> next leg, plus slack and empty-day penalties."""
    baseline = estimate_travel_minutes(plan.prev.coordinate, plan.next.coordinate, plan.prev_depart)
    new_path = plan.travel_to + check.travel_from
    detour = new_path - baseline

    score = float(detour * DETOUR_WEIGHT)
    slack = 0.0
    if not plan.buffer_waived_at_end:
        arrive_next = check.depart_at + timedelta(minutes=check.travel_from)
        slack = minutes_between(arrive_next, plan.next_arrive_by)
        score += slack_penalty(slack)
    if empty_day:
        score += EMPTY_DAY_PENALTY

    return SlotScore(
        baseline_minutes=baseline,
        new_path_minutes=new_path,
        detour_minutes=detour,
        slack_minutes=slack,
        score=score,
    )


def score_empty_week(plan: GapPlan, check: FeasibilityCheck) -> SlotScore:
    """Round trip from home; nothing to compare against."""
    detour = 2 * plan.travel_to
    return SlotScore(
        baseline_minutes=0,
        new_path_minutes=plan.travel_to + check.travel_from,
        detour_minutes=detour,
        slack_minutes=0.0,
        score=float(detour * DETOUR_WEIGHT + EMPTY_DAY_PENALTY),
    )


def slot_label(prev: TimelineAnchor, next_: TimelineAnchor, *, empty_day: bool) -> str:
    if empty_day:
        return "At start of day"
    if next_.kind is AnchorKind.END:
        return f"After {prev.title}"
    return f"Between {prev.title} and {next_.title}"


def rank_slots(slots: List[ScoredSlot], *, has_real_commitments: bool, limit: int = MAX_SLOTS) -> List[ScoredSlot]:
    """Best first. An empty window is listed chronologically instead."""
    if has_real_commitments:
        ordered = sorted(slots, key=lambda s: (s.score, s.start, s.day_key))
    else:
        ordered = sorted(slots, key=lambda s: (s.day_key, s.start))
    return ordered[: max(0, limit)]
