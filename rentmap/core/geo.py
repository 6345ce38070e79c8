"""Great-circle distance helpers."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rentmap.models import LatLng

EARTH_RADIUS_MILES = 3958.8


def haversine_miles(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> float:
    """
    Compute the great-circle distance between two coordinates in degrees.

    Returns
    -------
    float
        Distance in miles. NaN inputs propagate as NaN.
    """
    lat1, lng1 = math.radians(a_lat), math.radians(a_lng)
    lat2, lng2 = math.radians(b_lat), math.radians(b_lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance_between(a: LatLng, b: LatLng) -> float:
    return haversine_miles(a.lat, a.lng, b.lat, b.lng)


def format_miles(value: float) -> str:
    return f"{value:.2f} mi"
