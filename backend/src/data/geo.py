"""
Haversine distance for proximity checks between connected users.
"""
import math

# Mean Earth radius in meters
EARTH_RADIUS_M = 6_371_000.0

# Valid coordinate ranges in degrees
LAT_MIN, LAT_MAX = -90.0, 90.0
LNG_MIN, LNG_MAX = -180.0, 180.0


def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Return great-circle distance between two points in meters.
    Arguments in degrees.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bbox_delta_deg(lat: float, lng: float, radius_m: float) -> tuple[float, float]:
    """Approximate lat/lng deltas for a bounding box around (lat, lng) with radius_m meters."""
    # 1 deg lat ~ 111 km; 1 deg lng ~ 111 * cos(lat) km
    km = radius_m / 1000.0
    dlat = km / 111.0
    dlng = km / (111.0 * max(0.01, math.cos(math.radians(lat))))
    return dlat, dlng

