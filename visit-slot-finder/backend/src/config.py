from __future__ import annotations

import os
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from models import Coordinate, Preferences, WorkingHours
from utils import parse_minutes


class Configuration(BaseModel):
    # Home base used when a request does not carry one
    home_base_lat: float = Field(default=55.6761)
    home_base_lon: float = Field(default=12.5683)

    # Default preferences
    pre_buffer_minutes: int = Field(default=15)
    post_buffer_minutes: int = Field(default=15)
    work_start: str = Field(default="08:00")
    work_end: str = Field(default="17:00")
    # Sun..Sat as 0/1 characters
    working_days: str = Field(default="0111110")
    start_from_home_base: bool = Field(default=True)

    # Search
    timezone: str = Field(default="Europe/Copenhagen")
    search_days: int = Field(default=7)
    include_explain: bool = Field(default=False)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "home_base_lat": os.getenv("HOME_BASE_LAT"),
            "home_base_lon": os.getenv("HOME_BASE_LON"),
            "pre_buffer_minutes": os.getenv("PRE_BUFFER_MINUTES"),
            "post_buffer_minutes": os.getenv("POST_BUFFER_MINUTES"),
            "work_start": os.getenv("WORK_START"),
            "work_end": os.getenv("WORK_END"),
            "working_days": os.getenv("WORKING_DAYS"),
            "start_from_home_base": os.getenv("START_FROM_HOME_BASE"),
            "timezone": os.getenv("SLOTS_TIMEZONE"),
            "search_days": os.getenv("SEARCH_DAYS"),
            "include_explain": os.getenv("INCLUDE_EXPLAIN"),
        }

        bool_fields = {"start_from_home_base", "include_explain"}

        for k, v in env_map.items():
            if v is None:
                continue
            if k in bool_fields:
                raw[k] = str(v).lower() in {"1", "true", "yes", "on"}
            else:
                raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_valid(self) -> None:
        if parse_minutes(self.work_start) is None or parse_minutes(self.work_end) is None:
            raise ValueError(f"WORK_START/WORK_END must be HH:MM, got {self.work_start!r}/{self.work_end!r}")
        if len(self.working_days) != 7 or set(self.working_days) - {"0", "1"}:
            raise ValueError("WORKING_DAYS must be 7 characters of 0/1, Sunday first")
        if self.pre_buffer_minutes < 0 or self.post_buffer_minutes < 0:
            raise ValueError("buffers must not be negative")
        if self.search_days < 1:
            raise ValueError("SEARCH_DAYS must be at least 1")
        self.zone()

    def zone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {self.timezone!r}") from exc

    def home_base(self) -> Coordinate:
        return Coordinate(lat=self.home_base_lat, lon=self.home_base_lon)

    def default_preferences(self) -> Preferences:
        return Preferences(
            working_hours=WorkingHours(start=self.work_start, end=self.work_end),
            pre_buffer_minutes=self.pre_buffer_minutes,
            post_buffer_minutes=self.post_buffer_minutes,
            home_base=self.home_base(),
            working_days=tuple(ch == "1" for ch in self.working_days),
            start_from_home_base=self.start_from_home_base,
        )

    def log_summary(self) -> str:
        return (
            "home=%.4f,%.4f hours=%s-%s days=%s buffers=%d/%d tz=%s search_days=%d explain=%s"
            % (
                self.home_base_lat,
                self.home_base_lon,
                self.work_start,
                self.work_end,
                self.working_days,
                self.pre_buffer_minutes,
                self.post_buffer_minutes,
                self.timezone,
                self.search_days,
                self.include_explain,
            )
        )
