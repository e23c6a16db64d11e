#Purpose: ETA estimation policy.
#Converts routing outputs into the customer-facing "arrives in X minutes".
#Typical responsibilities:
#live traffic adjusted duration from the provider
#traffic classification from trafficked / free-flow ratio
#straight-line fallback at an average urban speed (with a floor)

from __future__ import annotations

import logging
from dataclasses import dataclass

from .geo import LatLon, haversine_meters
from .maps_client import MapsClient, MapsError

logger = logging.getLogger(__name__)

AVERAGE_SPEED_KMH = 25.0
MIN_FALLBACK_ETA_MINUTES = 3

HEAVY_TRAFFIC_RATIO = 1.5
MODERATE_TRAFFIC_RATIO = 1.2

TRAFFIC_LIGHT = "light"
TRAFFIC_MODERATE = "moderate"
TRAFFIC_HEAVY = "heavy"


@dataclass(frozen=True)
class EtaResult:
    minutes: int
    distance_m: int
    traffic_level: str
    estimated: bool = False  # True when produced by the fallback


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def classify_traffic(traffic_duration_s: float, free_flow_duration_s: float) -> str:
    if free_flow_duration_s <= 0:
        return TRAFFIC_LIGHT
    ratio = traffic_duration_s / free_flow_duration_s
    if ratio > HEAVY_TRAFFIC_RATIO:
        return TRAFFIC_HEAVY
    if ratio > MODERATE_TRAFFIC_RATIO:
        return TRAFFIC_MODERATE
    return TRAFFIC_LIGHT


def fallback_eta(origin: LatLon, destination: LatLon) -> EtaResult:
    distance_m = haversine_meters(origin, destination)
    minutes = _round_half_up((distance_m / 1000 / AVERAGE_SPEED_KMH) * 60)
    return EtaResult(
        minutes=max(minutes, MIN_FALLBACK_ETA_MINUTES),
        distance_m=_round_half_up(distance_m),
        traffic_level=TRAFFIC_MODERATE,
        estimated=True,
    )


def estimate_eta(origin: LatLon, destination: LatLon, client: MapsClient) -> EtaResult:
    """
    Minutes from origin to destination. Never raises: provider problems
    degrade to the straight-line estimate.
    """
    if not client.enabled:
        return fallback_eta(origin, destination)

    try:
        data = client.distance_matrix(origin, destination)
        element = data["rows"][0]["elements"][0]
        if element.get("status") != "OK":
            raise MapsError(f"element status: {element.get('status')}")

        free_flow = float(element["duration"]["value"])
        in_traffic = float((element.get("duration_in_traffic") or element["duration"])["value"])

        return EtaResult(
            minutes=_round_half_up(in_traffic / 60),
            distance_m=int(element["distance"]["value"]),
            traffic_level=classify_traffic(in_traffic, free_flow),
        )
    except (MapsError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.error(f"ETA provider failed, using straight-line estimate: {e}")
        return fallback_eta(origin, destination)
