"""Geospatial utilities used for distance filtering and display."""

from __future__ import annotations

from math import atan2, cos, radians, sin, sqrt
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from src.models.profile import Location

EARTH_RADIUS_MILES = 3_959


def _central_angle(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    lat1_rad = radians(lat1)
    lng1_rad = radians(lng1)
    lat2_rad = radians(lat2)
    lng2_rad = radians(lng2)

    delta_lat = lat2_rad - lat1_rad
    delta_lng = lng2_rad - lng1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(
        delta_lng / 2
    ) ** 2
    # Clamp rounding drift so antipodal points never produce sqrt(<0).
    a = min(max(a, 0.0), 1.0)
    return 2 * atan2(sqrt(a), sqrt(1 - a))


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate distance between two lat/lng points in miles.

    Args:
        lat1: Latitude of the first point.
        lng1: Longitude of the first point.
        lat2: Latitude of the second point.
        lng2: Longitude of the second point.

    Returns:
        Non-negative distance in miles.

    Notes:
        Uses the Haversine formula with a mean Earth radius of 3,959 miles.
        Swapping the two points yields the same value.
    """

    return EARTH_RADIUS_MILES * _central_angle(lat1, lng1, lat2, lng2)


def distance_between(
    first: Optional["Location"], second: Optional["Location"]
) -> Optional[float]:
    """Distance in miles between two profile locations.

    Returns None when either side has no usable coordinates. Callers treat
    None as "unknown" and skip distance constraints instead of failing them.
    """

    if first is None or second is None:
        return None
    if not first.has_coordinates or not second.has_coordinates:
        return None

    return haversine_miles(
        first.latitude, first.longitude, second.latitude, second.longitude
    )
