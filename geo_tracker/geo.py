"""Geospatial helpers."""

import math

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters between two lat/lon points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def passes_distance_filter(previous, current, distance_filter_m: int) -> bool:
    """
    Whether `current` is far enough from the previously delivered fix.
    The first fix always passes, as does everything when the filter is 0.
    """
    if previous is None or distance_filter_m <= 0:
        return True
    moved = haversine_m(previous.latitude, previous.longitude, current.latitude, current.longitude)
    return moved >= distance_filter_m
