from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from models import (
    DEFAULT_WORKING_DAYS,
    Commitment,
    Preferences,
    ScoredSlot,
    SearchOptions,
    SearchWindow,
    SlotMetrics,
    VisitRequest,
)
from services.candidates import plan_empty_day, plan_gap
from services.explain import CandidateReporter, build_explain, considered_entry
from services.feasibility import DayBounds, FeasibilityCheck, check_candidate, is_consistent
from services.scoring import MAX_SLOTS, rank_slots, score_candidate, score_empty_week, slot_label
from services.timeline import (
    build_timeline,
    day_window,
    events_for_day,
    filter_schedule_to_window,
    iter_days,
)
from utils import align_instant, day_key, midnight, parse_minutes


def _working_day_flags(prefs: Preferences) -> Tuple[bool, ...]:
    flags = tuple(bool(v) for v in (prefs.working_days or ()))
    if len(flags) != 7:
        logger.warning("working_days needs 7 entries (Sun..Sat), got {}; using Mon-Fri", len(flags))
        return DEFAULT_WORKING_DAYS
    return flags


def find_slots(
    schedule: Iterable[Commitment],
    visit: VisitRequest,
    preferences: Preferences,
    window: SearchWindow,
    options: Optional[SearchOptions] = None,
    *,
    now: datetime,
) -> List[ScoredSlot]:
    """Ranked, feasible slots for inserting ``visit`` into ``schedule``.

    The search is pure: ``now`` is passed in, nothing is read from the wall
    clock, and bad calendar data only ever means fewer results.

    Args:
        schedule: existing commitments, already fetched by the caller.
        visit: where the new visit is and how long it takes.
        preferences: working hours/days, buffers and home base.
        window: inclusive date range to search.
        options: clamp-to-today, explain trace and per-candidate callback.
        now: the current instant.

    Returns:
        At most 100 slots, best first.
    """
    options = options or SearchOptions()
    reporter = CandidateReporter(options.on_candidate)

    tz = window.start.tzinfo
    window = SearchWindow(start=window.start, end=align_instant(window.end, tz))
    now = align_instant(now, tz)

    if visit.duration_minutes <= 0:
        logger.warning("visit duration must be positive, got {}", visit.duration_minutes)
        return []
    if window.end < window.start:
        logger.warning("search window ends before it starts: {} > {}", window.start, window.end)
        return []
    work_start_min = parse_minutes(preferences.working_hours.start)
    work_end_min = parse_minutes(preferences.working_hours.end)
    if work_start_min is None or work_end_min is None:
        logger.warning(
            "unusable working hours {}-{}", preferences.working_hours.start, preferences.working_hours.end
        )
        return []

    working_days = _working_day_flags(preferences)
    pre = preferences.pre_buffer_minutes
    post = preferences.post_buffer_minutes
    home = preferences.resolved_home()
    today = now.date()
    min_start = now + timedelta(minutes=pre)

    search_start = window.start
    if options.clamp_start_to_today:
        search_start = max(window.start, midnight(today, tz))

    in_window = filter_schedule_to_window(schedule, window, tz)
    has_real_commitments = bool(in_window)

    accepted: list[tuple[ScoredSlot, FeasibilityCheck]] = []
    for day in iter_days(search_start.date(), window.end.date()):
        if len(accepted) >= MAX_SLOTS:
            break
        # Sun..Sat indexing
        if not working_days[(day.weekday() + 1) % 7]:
            continue
        effective = day_window(day, work_start_min, work_end_min, window, tz)
        if effective is None:
            continue
        eff_start, eff_end = effective
        is_today = day == today
        if is_today and min_start > eff_end:
            logger.debug("{}: working day already over", day)
            continue

        day_events = events_for_day(in_window, day, eff_start, eff_end, tz)
        timeline = build_timeline(day_events, home, eff_start, eff_end)
        bounds = DayBounds(
            eff_start=eff_start,
            eff_end=eff_end,
            window=window,
            min_start=min_start,
            now=now,
            events=day_events,
        )
        empty_day = not day_events
        empty_week = empty_day and not has_real_commitments
        logger.debug(
            "{}: window {:%H:%M}-{:%H:%M} events={} empty_week={}",
            day,
            eff_start,
            eff_end,
            len(day_events),
            empty_week,
        )

        for prev, next_ in zip(timeline, timeline[1:]):
            if len(accepted) >= MAX_SLOTS:
                break
            if empty_week:
                # as soon as possible when today
                plan = plan_empty_day(
                    prev, next_, visit, preferences, now=now, is_today=is_today, not_before=min_start
                )
            else:
                plan = plan_gap(prev, next_, visit, preferences, now=now, is_today=is_today)
            if plan is None:
                continue

            label = slot_label(prev, next_, empty_day=empty_day)
            for start in plan.starts:
                if len(accepted) >= MAX_SLOTS:
                    break
                check = check_candidate(plan, start, visit, preferences, bounds)
                score = None
                if check.feasible:
                    score = (
                        score_empty_week(plan, check)
                        if empty_week
                        else score_candidate(plan, check, empty_day=empty_day)
                    )
                explain = None
                if options.include_explain:
                    explain = build_explain(
                        day,
                        plan,
                        check,
                        score,
                        pre_buffer=pre,
                        post_buffer=post,
                        day_events=day_events,
                        empty_week=empty_week,
                    )
                reporter.report(
                    lambda: considered_entry(
                        day, plan, check, score, label=label, explain=explain, empty_week=empty_week
                    )
                )
                if score is None:
                    continue

                slot = ScoredSlot(
                    day_key=day_key(day),
                    start=check.start,
                    end=check.end,
                    score=score.score,
                    metrics=SlotMetrics(
                        detour_minutes=score.detour_minutes,
                        slack_minutes=score.slack_minutes,
                        travel_to_minutes=plan.travel_to,
                        travel_from_minutes=check.travel_from,
                    ),
                    label=label,
                    explain=explain,
                )
                accepted.append((slot, check))

    consistent = [slot for slot, check in accepted if is_consistent(check)]
    if len(consistent) != len(accepted):
        logger.debug("dropped {} inconsistent slot(s)", len(accepted) - len(consistent))

    ranked = rank_slots(consistent, has_real_commitments=has_real_commitments)
    logger.debug(
        "slot search: commitments_in_window={} candidates_kept={} returned={}",
        len(in_window),
        len(accepted),
        len(ranked),
    )
    return ranked
