"""
Nearby-user query: linear scan of the presence registry with a Haversine radius filter.
"""
from src.data.geo import haversine_distance_m
from src.presence.models import NeighborResult
from src.presence.registry import PresenceRegistry

# Users within this many meters of each other see each other's presence and chat
PROXIMITY_RADIUS_M = 30.0


def find_nearby(
    registry: PresenceRegistry,
    latitude: float | None,
    longitude: float | None,
    exclude_connection_id: str | None = None,
    radius_m: float = PROXIMITY_RADIUS_M,
) -> list[NeighborResult]:
    """
    Return every registered user within radius_m of (latitude, longitude).
    Users without a position are skipped. The inclusion test uses the exact
    distance; distance_m in the result is rounded to whole meters.
    """
    if latitude is None or longitude is None:
        return []
    results: list[NeighborResult] = []
    for connection_id, user in registry.all():
        if connection_id == exclude_connection_id or not user.has_position:
            continue
        d = haversine_distance_m(latitude, longitude, user.latitude, user.longitude)
        if d <= radius_m:
            results.append(
                NeighborResult(
                    connection_id=connection_id,
                    display_name=user.display_name,
                    distance_m=round(d),
                    latitude=user.latitude,
                    longitude=user.longitude,
                )
            )
    return results
