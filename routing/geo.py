"""
Purpose: Pure geometry helpers shared by every routing service.
What it does:
- Great-circle (haversine) distance in meters
- Google encoded polyline decoding
- Parsing of stored routes (encoded polyline or the fallback "lat,lng;lat,lng" form)

Rule: No HTTP, no database, no logging side effects. Pure functions only.
"""

from __future__ import annotations

import math
from typing import List, Tuple

# internal coordinate type: (lat, lng)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0


def haversine_meters(origin: LatLon, destination: LatLon) -> float:
    """
    Straight-line distance between two points on the earth surface, in meters.
    """
    lat1, lng1 = origin
    lat2, lng2 = destination

    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c * 1000


def decode_polyline(encoded: str) -> List[LatLon]:
    """
    Decode a Google encoded polyline (precision 1e5) into a list of (lat, lng).

    Raises ValueError when the string is truncated mid-value.
    """
    points: List[LatLon] = []
    index = 0
    lat = 0
    lng = 0
    length = len(encoded)

    while index < length:
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                if index >= length:
                    raise ValueError("Truncated polyline")
                b = ord(encoded[index]) - 63
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)

        lat += deltas[0]
        lng += deltas[1]
        points.append((lat / 1e5, lng / 1e5))

    return points


def encode_fallback_route(points: List[LatLon]) -> str:
    """Serialize points into the straight-line fallback format 'lat,lng;lat,lng'."""
    return ";".join(f"{lat},{lng}" for lat, lng in points)


def parse_route_points(route: str) -> List[LatLon]:
    """
    Turn a stored route into points.

    The fallback router stores plain 'lat,lng;lat,lng' pairs; anything else is
    treated as an encoded polyline.
    """
    if not route:
        return []

    if ";" in route:
        points = []
        for pair in route.split(";"):
            if not pair.strip():
                continue
            lat, lng = pair.split(",")
            points.append((float(lat), float(lng)))
        return points

    return decode_polyline(route)
