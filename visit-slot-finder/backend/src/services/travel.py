from __future__ import annotations

import math
from datetime import datetime

from models import Coordinate
from utils import haversine_km


RUSH_WINDOWS = ((7, 9), (15, 18))  # local hours, [start, end)

# (upper bound km, road factor, off-peak km/h, rush km/h)
DISTANCE_BANDS = (
    (5.0, 1.45, 28.0, 22.0),
    (20.0, 1.30, 45.0, 35.0),
    (math.inf, 1.18, 75.0, 65.0),
)


def is_rush_hour(departure: datetime) -> bool:
    hour = departure.hour
    return any(start <= hour < end for start, end in RUSH_WINDOWS)


def _band(distance_km: float) -> tuple[float, float, float, float]:
    if distance_km < DISTANCE_BANDS[0][0]:
        return DISTANCE_BANDS[0]
    if distance_km <= DISTANCE_BANDS[1][0]:
        return DISTANCE_BANDS[1]
    return DISTANCE_BANDS[2]


def road_factor(distance_km: float) -> float:
    """Short hops are less direct than highway trips."""
    return _band(distance_km)[1]


def speed_kmh(distance_km: float, departure: datetime) -> float:
    _, _, off_peak, rush = _band(distance_km)
    return rush if is_rush_hour(departure) else off_peak


def estimate_travel_minutes(origin: Coordinate, destination: Coordinate, departure: datetime) -> int:
    """Closed-form driving estimate, whole minutes rounded up. No buffers."""
    distance_km = haversine_km(origin.lat, origin.lon, destination.lat, destination.lon)
    raw = distance_km * road_factor(distance_km) / speed_kmh(distance_km, departure) * 60
    return max(0, math.ceil(raw))
