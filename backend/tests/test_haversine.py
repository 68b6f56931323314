"""Tests for Haversine distance helper."""
import math
import pytest
from src.data.geo import EARTH_RADIUS_M, bbox_delta_deg, haversine_distance_m


def test_same_point_zero_distance():
    assert haversine_distance_m(40.0, -88.0, 40.0, -88.0) == 0.0
    assert haversine_distance_m(0.0, 0.0, 0.0, 0.0) == 0.0


def test_thirty_meters_at_equator():
    # 0.00027 deg of longitude at the equator ~ 30 m
    d = haversine_distance_m(0.0, 0.0, 0.0, 0.00027)
    assert d == pytest.approx(30.0, abs=1.0)


def test_about_eleven_meters():
    d = haversine_distance_m(10.0, 20.0, 10.0, 20.0001)
    assert round(d) == 11


def test_antipodal_roughly_half_circumference():
    d = haversine_distance_m(0.0, 0.0, 0.0, 180.0)
    expected = math.pi * EARTH_RADIUS_M
    assert abs(d - expected) < 1000.0


@pytest.mark.parametrize(
    "p, q",
    [
        ((40.1, -88.2), (40.2, -88.1)),
        ((37.5665, 126.9780), (37.5667, 126.9781)),
        ((-33.86, 151.21), (51.5, -0.12)),
    ],
)
def test_symmetry(p, q):
    assert haversine_distance_m(*p, *q) == haversine_distance_m(*q, *p)
    assert haversine_distance_m(*p, *q) > 0


def test_bbox_delta_deg_covers_radius():
    dlat, dlng = bbox_delta_deg(37.5, 127.0, 30)
    # The box edge must be at least radius away from the center
    assert haversine_distance_m(37.5, 127.0, 37.5 + dlat, 127.0) >= 29.0
    assert haversine_distance_m(37.5, 127.0, 37.5, 127.0 + dlng) >= 29.0
