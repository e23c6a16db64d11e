#Purpose: Position-vs-geometry checks used while a courier is in transit.
#Typical responsibilities:
#Given a courier position + the planned route -> distance to the route
#Apply the off-route tolerance (default 200 m)
#Given a courier position + the destination -> inside the arrival radius or not
#Output: plain booleans / distances for the tracking jobs.

import logging
from typing import Optional

from routing.geo import LatLon, haversine_meters, parse_route_points

logger = logging.getLogger(__name__)

DEFAULT_OFF_ROUTE_TOLERANCE_M = 200.0


def distance_to_route(position: LatLon, route: str) -> Optional[float]:
    """
    Minimum distance in meters from the position to any point of the route.
    None when the route is empty or cannot be decoded.
    """
    if not route:
        return None

    try:
        points = parse_route_points(route)
    except ValueError as e:
        logger.error(f"Could not decode route polyline: {e}")
        return None

    if not points:
        return None

    return min(haversine_meters(position, point) for point in points)


def is_off_route(position: LatLon, route: str, tolerance_m: float = DEFAULT_OFF_ROUTE_TOLERANCE_M) -> bool:
    """
    True when the courier is farther than tolerance_m from every route point.
    An unknown route never counts as off-route.
    """
    distance = distance_to_route(position, route)
    if distance is None:
        return False
    return distance > tolerance_m


def within_geofence(position: LatLon, center: LatLon, radius_m: float) -> bool:
    """Inclusive radius check: exactly radius_m away is inside."""
    return haversine_meters(position, center) <= radius_m
