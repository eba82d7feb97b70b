"""Data models for the visit slot finder."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


DEFAULT_HOME_BASE = Coordinate(lat=55.6761, lon=12.5683)  # Copenhagen

# Sun..Sat, Monday to Friday on
DEFAULT_WORKING_DAYS: Tuple[bool, ...] = (False, True, True, True, True, True, False)


@dataclass(frozen=True)
class VisitRequest:
    location: Coordinate
    duration_minutes: int


@dataclass(frozen=True)
class Commitment:
    """An existing calendar entry.

    Either ``start``/``end`` (datetimes or ISO strings) or a ``time_text`` such
    as ``"09:00 - 10:00"`` must be present for the entry to block time.
    ``time_text`` is read relative to ``day`` when given, otherwise relative to
    whichever day is being evaluated.
    """

    id: str
    title: str = "(No title)"
    start: Optional[Union[datetime, str]] = None
    end: Optional[Union[datetime, str]] = None
    coordinate: Optional[Coordinate] = None
    time_text: Optional[str] = None
    day: Optional[date] = None


@dataclass(frozen=True)
class WorkingHours:
    start: str = "08:00"
    end: str = "17:00"


@dataclass(frozen=True)
class Preferences:
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    pre_buffer_minutes: int = 15
    post_buffer_minutes: int = 15
    home_base: Optional[Coordinate] = None
    working_days: Tuple[bool, ...] = DEFAULT_WORKING_DAYS
    # False = field mode: the first visit of the day needs no drive from home
    start_from_home_base: bool = True

    def resolved_home(self) -> Coordinate:
        return self.home_base or DEFAULT_HOME_BASE


@dataclass(frozen=True)
class SearchWindow:
    start: datetime
    end: datetime


class AnchorKind(str, Enum):
    START = "start"
    END = "end"
    EVENT = "event"


@dataclass(frozen=True)
class TimelineAnchor:
    id: str
    title: str
    kind: AnchorKind
    start: datetime
    end: datetime
    coordinate: Coordinate
    has_real_coordinate: bool = True

    @property
    def is_event(self) -> bool:
        return self.kind is AnchorKind.EVENT


@dataclass(frozen=True)
class SlotMetrics:
    detour_minutes: int
    slack_minutes: float
    travel_to_minutes: int
    travel_from_minutes: int


@dataclass(frozen=True)
class AnchorSnapshot:
    id: str
    title: str
    kind: str
    start: datetime
    end: datetime
    has_real_coordinate: bool


@dataclass(frozen=True)
class SlotExplain:
    day_key: str
    prev: AnchorSnapshot
    next: AnchorSnapshot
    prev_depart: datetime
    arrive_by: datetime
    meeting_start: datetime
    meeting_end: datetime
    depart_at: datetime
    next_arrive_by: datetime
    gap_minutes: float
    travel_to_minutes: int
    travel_from_minutes: int
    travel_to_used_fallback: bool
    travel_from_used_fallback: bool
    pre_buffer: int
    post_buffer: int
    baseline_minutes: int
    new_path_minutes: int
    detour_minutes: int
    slack_minutes: float
    score: Optional[float]
    fits_gap: bool
    within_working_hours: bool
    not_past: bool
    working_day_allowed: bool
    no_overlap: bool
    travel_feasible: bool
    buffer_waived_at_start: bool
    buffer_waived_at_end: bool
    travel_feasible_from_now: Optional[bool]
    reachable_from_work_start: Optional[bool]
    arrival_margin_minutes: Optional[float]
    arrive_early_preferred: bool
    events_with_missing_coords: List[str] = field(default_factory=list)
    summary: str = ""


@dataclass(frozen=True)
class ScoredSlot:
    day_key: str
    start: datetime
    end: datetime
    score: float
    metrics: SlotMetrics
    label: str
    explain: Optional[SlotExplain] = None

    def slot_id(self) -> str:
        return f"{self.day_key}-{self.start.isoformat()}"


@dataclass(frozen=True)
class SlotConsidered:
    """One evaluated candidate, accepted or rejected, for QA tooling."""

    day_key: str
    day_label: str
    time_range: str
    status: str  # "accepted" or "rejected"
    reason: Optional[str] = None
    detour_minutes: Optional[int] = None
    baseline_minutes: Optional[int] = None
    new_path_minutes: Optional[int] = None
    slack_minutes: Optional[float] = None
    score: Optional[float] = None
    label: Optional[str] = None
    prev: Optional[str] = None
    next: Optional[str] = None
    summary: Optional[str] = None
    explain: Optional[SlotExplain] = None


CandidateCallback = Callable[[SlotConsidered], None]


@dataclass(frozen=True)
class SearchOptions:
    clamp_start_to_today: bool = True
    include_explain: bool = False
    on_candidate: Optional[CandidateCallback] = None
