#Purpose: The mapping provider "adapter/client".
#Sole responsibility: talk to the Google Maps web services via HTTP and return raw JSON.
#Encapsulates provider-specific details:
#coordinate formatting ("lat,lng")
#URL construction (/geocode, /directions, /distancematrix)
#timeouts and error handling
#It should not contain fallback math, dispatch rules or scoring.


from dotenv import load_dotenv
import os
from typing import Any, Dict, Optional, Tuple
import requests

# Read the provider settings from environment
# Example in .env:
# GOOGLE_MAPS_API_KEY=...
# MAPS_TIMEOUT_SECONDS=5
load_dotenv()
API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "")
BASE_URL = os.getenv("MAPS_BASE_URL", "https://maps.googleapis.com/maps/api")
TIMEOUT_SECONDS = float(os.getenv("MAPS_TIMEOUT_SECONDS", "5"))

# Internal coordinate type: (lat, lng)
LatLon = Tuple[float, float]


class MapsError(Exception):
    """Raised for transport failures, non-OK provider statuses and malformed payloads."""
    pass


class MapsClient:
    """
    Maps Adapter / Client

    Sole responsibility:
    - Talk to the provider via HTTP
    - Convert internal (lat, lng) -> "lat,lng"
    - Validate the envelope and hand the JSON body back

    A client without an api key is "disabled"; callers must check `enabled`
    and use their deterministic fallbacks instead of calling it.
    """
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, session=None):
        self.api_key = API_KEY if api_key is None else api_key
        self.base_url = (base_url or BASE_URL).rstrip("/")
        self.timeout = TIMEOUT_SECONDS if timeout is None else timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def format_coordinate(self, coord: LatLon) -> str:
        lat, lng = coord
        return f"{lat},{lng}"

    def _get(self, service: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.enabled:
            raise MapsError("Maps api key not configured")

        url = f"{self.base_url}/{service}/json"
        try:
            response = self.session.get(
                url,
                params={**params, "key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MapsError(f"{service} request failed: {exc}") from exc

        if not response.ok:
            raise MapsError(f"{service} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise MapsError(f"{service} returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise MapsError(f"{service} returned an unexpected payload")

        if data.get("status") != "OK":
            raise MapsError(f"{service} status: {data.get('status', 'UNKNOWN')}")

        return data

    #----------------
    # Public methods
    #----------------
    def geocode(self, address: str) -> Dict[str, Any]:
        """
        calls /geocode with the address. Returns the provider body.
        """
        return self._get("geocode", {"address": address})

    def directions(self, origin: LatLon, destination: LatLon) -> Dict[str, Any]:
        """
        calls /directions for a driving route with live traffic.
        """
        return self._get("directions", {
            "origin": self.format_coordinate(origin),
            "destination": self.format_coordinate(destination),
            "mode": "driving",
            "departure_time": "now",
            "traffic_model": "best_guess",
        })

    def distance_matrix(self, origin: LatLon, destination: LatLon) -> Dict[str, Any]:
        """
        calls /distancematrix for a single origin/destination pair.
        used for ETA: returns both free-flow and in-traffic durations.
        """
        return self._get("distancematrix", {
            "origins": self.format_coordinate(origin),
            "destinations": self.format_coordinate(destination),
            "mode": "driving",
            "departure_time": "now",
            "traffic_model": "best_guess",
        })
