#Marks routing as a package.
#Re-exports clean public APIs (MapsClient, geocode_address, compute_route,
#estimate_eta, is_off_route) so other modules import from routing without
#knowing internal file names.
#No business logic.

from .geo import LatLon, haversine_meters, decode_polyline, parse_route_points
from .maps_client import MapsClient, MapsError
from .route_service import GeocodeResult, RouteResult, geocode_address, compute_route
from .eta_service import EtaResult, estimate_eta, classify_traffic
from .geofence import is_off_route, distance_to_route, within_geofence

__all__ = [
           "LatLon",
           "haversine_meters",
             "decode_polyline",
             "parse_route_points",
             "MapsClient",
             "MapsError",
             "GeocodeResult",
             "RouteResult",
             "geocode_address",
             "compute_route",
             "EtaResult",
             "estimate_eta",
             "classify_traffic",
             "is_off_route",
             "distance_to_route",
             "within_geofence",
             ]
