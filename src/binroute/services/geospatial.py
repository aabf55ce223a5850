"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ..models.domain import SmartBin

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def nearest_smart_bin(
    latitude: float,
    longitude: float,
    smart_bins: Sequence[SmartBin],
    max_distance_m: float,
) -> Optional[SmartBin]:
    """Closest smart bin within ``max_distance_m`` of the point, if any."""

    best: Optional[SmartBin] = None
    best_distance = max_distance_m / 1000.0
    for candidate in smart_bins:
        distance = haversine_km(latitude, longitude, candidate.latitude, candidate.longitude)
        if distance < best_distance or (best is None and distance == best_distance):
            best, best_distance = candidate, distance
    return best
