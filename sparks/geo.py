"""
Proximity helpers.

Distances use a flat-degree approximation: one degree of latitude or
longitude counts as 111 km, in both axes, at every latitude. Callers
rely on this exact formula for compatibility; do not swap in a
geodesic distance.
"""

import math

from sparks.models import Coordinates, Group

KM_PER_DEGREE = 111


def distance_km(lat: float, lng: float, origin: Coordinates) -> float:
    d_lat = lat - origin.latitude
    d_lng = lng - origin.longitude
    return math.sqrt(d_lat * d_lat + d_lng * d_lng) * KM_PER_DEGREE


def is_within_radius(group: Group, origin: Coordinates, radius_km: float) -> bool:
    return distance_km(group.lat, group.lng, origin) <= radius_km


def format_distance(group: Group, origin: Coordinates) -> str:
    """Human-friendly distance label, e.g. '3 km away'."""
    # half-up rounding, so 2.5 km reads as "3 km away"
    km = math.floor(distance_km(group.lat, group.lng, origin) + 0.5)
    return f"{km} km away"
