from datetime import datetime

from models import Coordinate
from services.travel import estimate_travel_minutes, is_rush_hour, road_factor, speed_kmh


OFF_PEAK = datetime(2025, 3, 4, 11, 0)
RUSH = datetime(2025, 3, 4, 8, 0)


def test_same_point_is_zero_minutes():
    here = Coordinate(lat=55.6761, lon=12.5683)
    assert estimate_travel_minutes(here, here, OFF_PEAK) == 0


def test_short_trip_slower_in_rush_hour():
    a = Coordinate(lat=0.0, lon=0.0)
    b = Coordinate(lat=0.018, lon=0.0)  # ~2 km
    # ceil(2.0015 * 1.45 / 28 * 60) and ceil(2.0015 * 1.45 / 22 * 60)
    assert estimate_travel_minutes(a, b, OFF_PEAK) == 7
    assert estimate_travel_minutes(a, b, RUSH) == 8


def test_rush_windows_are_half_open():
    day = (2025, 3, 4)
    assert not is_rush_hour(datetime(*day, 6, 59))
    assert is_rush_hour(datetime(*day, 7, 0))
    assert is_rush_hour(datetime(*day, 8, 59))
    assert not is_rush_hour(datetime(*day, 9, 0))
    assert not is_rush_hour(datetime(*day, 14, 59))
    assert is_rush_hour(datetime(*day, 15, 0))
    assert is_rush_hour(datetime(*day, 17, 59))
    assert not is_rush_hour(datetime(*day, 18, 0))


def test_distance_bands():
    assert road_factor(4.99) == 1.45
    assert road_factor(5.0) == 1.30
    assert road_factor(20.0) == 1.30
    assert road_factor(20.01) == 1.18

    assert speed_kmh(2.0, OFF_PEAK) == 28
    assert speed_kmh(2.0, RUSH) == 22
    assert speed_kmh(10.0, OFF_PEAK) == 45
    assert speed_kmh(10.0, RUSH) == 35
    assert speed_kmh(40.0, OFF_PEAK) == 75
    assert speed_kmh(40.0, RUSH) == 65


def test_koge_to_hoje_taastrup_uses_highway_band():
    koge = Coordinate(lat=55.458, lon=12.182)
    hoje_taastrup = Coordinate(lat=55.6517, lon=12.2722)
    minutes = estimate_travel_minutes(koge, hoje_taastrup, OFF_PEAK)
    # ~22.3 km straight line, factor 1.18 at 75 km/h
    assert 20 <= minutes <= 23
    assert estimate_travel_minutes(hoje_taastrup, koge, OFF_PEAK) == minutes

