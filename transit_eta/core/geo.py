"""
Distance and baseline travel-time estimates.
"""

import math
from typing import Optional, Tuple

from transit_eta.config import settings

EARTH_RADIUS_KM = 6371.0

LatLon = Tuple[float, float]


def haversine_km(origin: LatLon, destination: LatLon) -> float:
    """
    Great-circle distance between two (latitude, longitude) points.

    Args:
        origin: (lat, lon) in degrees.
        destination: (lat, lon) in degrees.

    Returns:
        Distance in kilometres.
    """
    lat1, lon1 = origin
    lat2, lon2 = destination

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def baseline_minutes(
    distance_km: float,
    speed_kmh: float,
    min_speed_kmh: Optional[float] = None,
) -> float:
    """
    Naive travel time at the current speed.

    Speed is floored (5 km/h by default) so stationary or crawling
    vehicles still produce a finite estimate.
    """
    floor = min_speed_kmh if min_speed_kmh is not None else settings.MIN_SPEED_KMH
    return distance_km / max(speed_kmh, floor) * 60
