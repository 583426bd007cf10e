# app/utils/geo.py
"""Great-circle distance helpers for nearby-space filtering."""

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two (lat, lon) points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def is_valid_latitude(value) -> bool:
    return isinstance(value, (int, float)) and not math.isnan(value) and -90 <= value <= 90


def is_valid_longitude(value) -> bool:
    return isinstance(value, (int, float)) and not math.isnan(value) and -180 <= value <= 180
