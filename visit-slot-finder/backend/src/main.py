from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from config import Configuration
from models import (
    Commitment,
    Coordinate,
    Preferences,
    ScoredSlot,
    SearchOptions,
    SearchWindow,
    SlotConsidered,
    VisitRequest,
    WorkingHours,
)
from services.locations import lookup_known_location
from services.slot_search import find_slots
from services.travel import estimate_travel_minutes, is_rush_hour
from utils import align_instant, haversine_km, midnight


load_dotenv()

app = FastAPI(title="Visit Slot Finder")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CoordinatePayload(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)


class CommitmentPayload(BaseModel):
    id: str
    title: str = "(No title)"
    # kept as text; unparseable values exclude the entry instead of failing the request
    start: Optional[str] = Field(None, description="ISO 8601 start instant")
    end: Optional[str] = Field(None, description="ISO 8601 end instant")
    time: Optional[str] = Field(None, description='Display range such as "09:00 - 10:00"')
    day: Optional[date] = None
    coordinate: Optional[CoordinatePayload] = None


class PreferencesPayload(BaseModel):
    work_start: Optional[str] = None
    work_end: Optional[str] = None
    pre_buffer_minutes: Optional[int] = Field(None, ge=0)
    post_buffer_minutes: Optional[int] = Field(None, ge=0)
    home_base: Optional[CoordinatePayload] = None
    working_days: Optional[List[bool]] = Field(None, description="Seven flags, Sunday first")
    start_from_home_base: Optional[bool] = None


class SlotSearchRequest(BaseModel):
    schedule: List[CommitmentPayload] = []
    location: Optional[CoordinatePayload] = None
    location_name: Optional[str] = Field(None, description="Known place name used when location is omitted")
    duration_minutes: int = Field(..., gt=0)
    preferences: Optional[PreferencesPayload] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    clamp_start_to_today: bool = True
    include_explain: Optional[bool] = None
    now: Optional[datetime] = Field(None, description="Override the current instant")


class SlotMetricsPayload(BaseModel):
    detour_minutes: int
    slack_minutes: float
    travel_to_minutes: int
    travel_from_minutes: int


class ScoredSlotPayload(BaseModel):
    slot_id: str
    day_key: str
    start: datetime
    end: datetime
    score: float
    label: str
    metrics: SlotMetricsPayload
    explain: Optional[Dict[str, Any]] = None


class SlotSearchResponse(BaseModel):
    slots: List[ScoredSlotPayload]
    considered: List[Dict[str, Any]] = []
    window: Tuple[datetime, datetime]
    now: datetime


class TravelRequest(BaseModel):
    origin: CoordinatePayload
    destination: CoordinatePayload
    departure: Optional[datetime] = None


def _load_config() -> Configuration:
    try:
        cfg = Configuration.from_env()
        cfg.require_valid()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return cfg


def _merge_preferences(cfg: Configuration, payload: Optional[PreferencesPayload]) -> Preferences:
    base = cfg.default_preferences()
    if payload is None:
        return base
    if payload.working_days is not None and len(payload.working_days) != 7:
        raise ValueError("working_days must have 7 entries, Sunday first")
    return Preferences(
        working_hours=WorkingHours(
            start=payload.work_start or base.working_hours.start,
            end=payload.work_end or base.working_hours.end,
        ),
        pre_buffer_minutes=(
            payload.pre_buffer_minutes if payload.pre_buffer_minutes is not None else base.pre_buffer_minutes
        ),
        post_buffer_minutes=(
            payload.post_buffer_minutes if payload.post_buffer_minutes is not None else base.post_buffer_minutes
        ),
        home_base=payload.home_base.to_coordinate() if payload.home_base else base.home_base,
        working_days=tuple(payload.working_days) if payload.working_days is not None else base.working_days,
        start_from_home_base=(
            payload.start_from_home_base
            if payload.start_from_home_base is not None
            else base.start_from_home_base
        ),
    )


def _resolve_location(req: SlotSearchRequest) -> Coordinate:
    if req.location is not None:
        return req.location.to_coordinate()
    if req.location_name:
        coord = lookup_known_location(req.location_name)
        if coord is None:
            raise ValueError(f"Unknown location {req.location_name!r}; send coordinates instead.")
        return coord
    raise ValueError("Either location or location_name is required.")


def _to_commitment(item: CommitmentPayload) -> Commitment:
    return Commitment(
        id=item.id,
        title=item.title,
        start=item.start,
        end=item.end,
        coordinate=item.coordinate.to_coordinate() if item.coordinate else None,
        time_text=item.time,
        day=item.day,
    )


def _slot_payload(slot: ScoredSlot) -> ScoredSlotPayload:
    return ScoredSlotPayload(
        slot_id=slot.slot_id(),
        day_key=slot.day_key,
        start=slot.start,
        end=slot.end,
        score=slot.score,
        label=slot.label,
        metrics=SlotMetricsPayload(**asdict(slot.metrics)),
        explain=asdict(slot.explain) if slot.explain else None,
    )


@app.get("/healthz")
def healthz() -> dict:
    cfg = Configuration.from_env()
    logger.info("cfg: {}", cfg.log_summary())
    return {"status": "ok"}


@app.post("/travel-time")
def travel_time(req: TravelRequest) -> dict:
    cfg = _load_config()
    tz = cfg.zone()
    departure = align_instant(req.departure, tz) if req.departure else datetime.now(tz)
    origin = req.origin.to_coordinate()
    destination = req.destination.to_coordinate()
    return {
        "minutes": estimate_travel_minutes(origin, destination, departure),
        "distance_km": round(haversine_km(origin.lat, origin.lon, destination.lat, destination.lon), 3),
        "rush_hour": is_rush_hour(departure),
    }


@app.post("/slots", response_model=SlotSearchResponse)
def search_slots(req: SlotSearchRequest) -> SlotSearchResponse:
    cfg = _load_config()
    tz = cfg.zone()

    try:
        now = align_instant(req.now, tz) if req.now else datetime.now(tz)
        window_start = align_instant(req.window_start, tz) if req.window_start else midnight(now.date(), tz)
        if req.window_end:
            window_end = align_instant(req.window_end, tz)
        else:
            window_end = midnight(window_start.date() + timedelta(days=cfg.search_days), tz) - timedelta(seconds=1)
        if window_end < window_start:
            raise ValueError("window_end must not be before window_start")

        visit = VisitRequest(location=_resolve_location(req), duration_minutes=req.duration_minutes)
        prefs = _merge_preferences(cfg, req.preferences)
        include_explain = cfg.include_explain if req.include_explain is None else req.include_explain

        considered: list[SlotConsidered] = []
        options = SearchOptions(
            clamp_start_to_today=req.clamp_start_to_today,
            include_explain=include_explain,
            on_candidate=considered.append if include_explain else None,
        )
        slots = find_slots(
            [_to_commitment(item) for item in req.schedule],
            visit,
            prefs,
            SearchWindow(start=window_start, end=window_end),
            options,
            now=now,
        )
        logger.info(
            "slot search commitments={} duration={} window={}..{} slots={} best={}",
            len(req.schedule),
            req.duration_minutes,
            window_start.date(),
            window_end.date(),
            len(slots),
            slots[0].slot_id() if slots else None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("slot search failed: {}", exc)
        raise HTTPException(status_code=500, detail="internal error")

    return SlotSearchResponse(
        slots=[_slot_payload(s) for s in slots],
        considered=[asdict(entry) for entry in considered],
        window=(window_start, window_end),
        now=now,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
