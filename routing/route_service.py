#Purpose: Route computation and address resolution for downstream use.
#Returns the "best route" information needed by:
#dispatch (destination coordinates, stored polyline for off-route checks)
#tracking (the planned path a courier should follow)
#Uses the provider /geocode and /directions when an api key is configured,
#otherwise deterministic straight-line fallbacks.

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .eta_service import AVERAGE_SPEED_KMH
from .geo import LatLon, encode_fallback_route, haversine_meters
from .maps_client import MapsClient, MapsError

logger = logging.getLogger(__name__)

# Centre used for fabricated development coordinates (Sao Paulo)
FALLBACK_ORIGIN: LatLon = (-23.55, -46.63)

_HTML_TAG = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class GeocodeResult:
    """
    Resolved coordinates plus how far they can be trusted.

    approximate=True means the point was fabricated from a hash of the address
    (no provider configured). It is stable for the same address but is NOT a
    real location.
    """
    location: LatLon
    approximate: bool = False
    confidence: str = "provider"


@dataclass(frozen=True)
class RouteStep:
    instruction: str
    distance_m: int
    duration_s: int


@dataclass(frozen=True)
class RouteResult:
    distance_m: int
    duration_s: int
    polyline: str
    steps: List[RouteStep] = field(default_factory=list)


def approximate_coordinates(address: str) -> LatLon:
    """
    Deterministic pseudo-coordinate for an address.
    Same address -> same point, within ~0.1 degree of FALLBACK_ORIGIN.
    """
    digest = hashlib.sha256(address.encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], "big")
    lat = FALLBACK_ORIGIN[0] + (value % 100) / 1000
    lng = FALLBACK_ORIGIN[1] + ((value >> 8) % 100) / 1000
    return (round(lat, 6), round(lng, 6))


def geocode_address(address: str, client: MapsClient) -> Optional[GeocodeResult]:
    """
    Resolve a free-text address.

    Returns None when the provider is configured but cannot resolve it.
    """
    if not address:
        return None

    if not client.enabled:
        logger.warning("Maps api key not configured, using approximate coordinates for address")
        return GeocodeResult(
            location=approximate_coordinates(address),
            approximate=True,
            confidence="approximate",
        )

    try:
        data = client.geocode(address)
        results = data.get("results") or []
        if not results:
            logger.error("Geocoding returned no results")
            return None
        location = results[0]["geometry"]["location"]
        return GeocodeResult(location=(float(location["lat"]), float(location["lng"])))
    except (MapsError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Geocoding failed: {e}")
        return None


def straight_line_route(origin: LatLon, destination: LatLon) -> RouteResult:
    """
    Fallback route: straight line at the average urban speed,
    two-point polyline and a single step.
    """
    distance_m = haversine_meters(origin, destination)
    duration_s = (distance_m / 1000 / AVERAGE_SPEED_KMH) * 3600

    return RouteResult(
        distance_m=round(distance_m),
        duration_s=round(duration_s),
        polyline=encode_fallback_route([origin, destination]),
        steps=[
            RouteStep(
                instruction="Head towards the destination",
                distance_m=round(distance_m),
                duration_s=round(duration_s),
            )
        ],
    )


def compute_route(origin: LatLon, destination: LatLon, client: MapsClient) -> Optional[RouteResult]:
    """
    Planned route between two points, or None if the provider fails.
    """
    if not client.enabled:
        logger.warning("Maps api key not configured, using straight-line route")
        return straight_line_route(origin, destination)

    try:
        data = client.directions(origin, destination)
        route = data["routes"][0]
        leg = route["legs"][0]
        traffic = leg.get("duration_in_traffic") or leg["duration"]

        return RouteResult(
            distance_m=int(leg["distance"]["value"]),
            duration_s=int(traffic["value"]),
            polyline=route["overview_polyline"]["points"],
            steps=[
                RouteStep(
                    instruction=_HTML_TAG.sub("", step.get("html_instructions", "")),
                    distance_m=int(step["distance"]["value"]),
                    duration_s=int(step["duration"]["value"]),
                )
                for step in leg.get("steps", [])
            ],
        )
    except (MapsError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.error(f"Route computation failed: {e}")
        return None
