import pytest
import requests

from conftest import MockMapsSession, MockResponse, PICKUP, north_of
from routing.eta_service import (
    MIN_FALLBACK_ETA_MINUTES,
    TRAFFIC_HEAVY,
    TRAFFIC_LIGHT,
    TRAFFIC_MODERATE,
    classify_traffic,
    estimate_eta,
    fallback_eta,
)
from routing.geo import decode_polyline, encode_fallback_route, haversine_meters, parse_route_points
from routing.geofence import distance_to_route, is_off_route, within_geofence
from routing.maps_client import MapsClient, MapsError
from routing.route_service import (
    FALLBACK_ORIGIN,
    compute_route,
    geocode_address,
    straight_line_route,
)


def test_haversine_one_degree_of_longitude_at_equator():
    assert haversine_meters((0.0, 0.0), (0.0, 1.0)) == pytest.approx(111_194.9, rel=1e-5)
    assert haversine_meters(PICKUP, PICKUP) == 0


def test_decode_polyline_reference_example():
    points = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")

    assert points == [
        pytest.approx((38.5, -120.2)),
        pytest.approx((40.7, -120.95)),
        pytest.approx((43.252, -126.453)),
    ]


def test_decode_polyline_rejects_truncated_input():
    with pytest.raises(ValueError):
        decode_polyline("_p~iF~ps|U_")


def test_parse_route_points_reads_fallback_format():
    route = encode_fallback_route([(-23.5, -46.6), (-23.6, -46.7)])

    assert route == "-23.5,-46.6;-23.6,-46.7"
    assert parse_route_points(route) == [(-23.5, -46.6), (-23.6, -46.7)]
    assert parse_route_points("") == []


# --- ETA ---

def test_fallback_eta_has_a_floor():
    eta = fallback_eta(PICKUP, PICKUP)

    assert eta.minutes == MIN_FALLBACK_ETA_MINUTES
    assert eta.estimated is True
    assert eta.traffic_level == TRAFFIC_MODERATE


def test_fallback_eta_uses_average_urban_speed():
    # 10 km at 25 km/h
    eta = fallback_eta(PICKUP, north_of(PICKUP, 10_000))

    assert eta.minutes == 24
    assert eta.distance_m == 10_000


@pytest.mark.parametrize("in_traffic,free_flow,expected", [
    (100, 100, TRAFFIC_LIGHT),
    (120, 100, TRAFFIC_LIGHT),
    (121, 100, TRAFFIC_MODERATE),
    (150, 100, TRAFFIC_MODERATE),
    (151, 100, TRAFFIC_HEAVY),
    (10, 0, TRAFFIC_LIGHT),
])
def test_classify_traffic(in_traffic, free_flow, expected):
    assert classify_traffic(in_traffic, free_flow) == expected


def _matrix_response(duration, in_traffic, distance=5000):
    return MockResponse(200, {
        "status": "OK",
        "rows": [{"elements": [{
            "status": "OK",
            "distance": {"value": distance},
            "duration": {"value": duration},
            "duration_in_traffic": {"value": in_traffic},
        }]}],
    })


def test_estimate_eta_from_provider_uses_traffic_duration():
    session = MockMapsSession({"distancematrix": _matrix_response(600, 960)})
    client = MapsClient(api_key="key", session=session)

    eta = estimate_eta(PICKUP, north_of(PICKUP, 5000), client)

    assert eta.minutes == 16
    assert eta.traffic_level == TRAFFIC_HEAVY
    assert eta.estimated is False
    assert session.calls[0]["params"]["key"] == "key"
    assert session.calls[0]["params"]["origins"] == f"{PICKUP[0]},{PICKUP[1]}"


@pytest.mark.parametrize("response", [
    MockResponse(200, {"status": "OVER_QUERY_LIMIT"}),
    MockResponse(500, {"status": "UNKNOWN_ERROR"}),
    MockResponse(200, None, text="<html>oops</html>"),
    MockResponse(200, {"status": "OK", "rows": []}),
    requests.ConnectionError("connection refused"),
])
def test_estimate_eta_falls_back_on_provider_problems(response):
    client = MapsClient(api_key="key", session=MockMapsSession({"distancematrix": response}))

    eta = estimate_eta(PICKUP, PICKUP, client)

    assert eta.estimated is True
    assert eta.minutes == MIN_FALLBACK_ETA_MINUTES


def test_maps_client_raises_maps_error_on_non_ok_status():
    client = MapsClient(api_key="key", session=MockMapsSession({"geocode": MockResponse(200, {"status": "ZERO_RESULTS"})}))

    with pytest.raises(MapsError):
        client.geocode("nowhere")


def test_disabled_maps_client_never_calls_out(maps):
    with pytest.raises(MapsError):
        maps.directions(PICKUP, PICKUP)
    assert maps.session.calls == []


# --- Geocoding / routes ---

def test_fallback_geocode_is_deterministic_and_flagged(maps):
    first = geocode_address("Rua Augusta 500", maps)
    second = geocode_address("Rua Augusta 500", maps)
    other = geocode_address("Rua Oscar Freire 10", maps)

    assert first == second
    assert first.approximate is True
    assert first.confidence == "approximate"
    assert first.location != other.location
    assert abs(first.location[0] - FALLBACK_ORIGIN[0]) <= 0.1
    assert abs(first.location[1] - FALLBACK_ORIGIN[1]) <= 0.1


def test_geocode_from_provider():
    body = {"status": "OK", "results": [{"geometry": {"location": {"lat": -23.56, "lng": -46.65}}}]}
    client = MapsClient(api_key="key", session=MockMapsSession({"geocode": MockResponse(200, body)}))

    result = geocode_address("Av. Paulista 1000", client)

    assert result.location == (-23.56, -46.65)
    assert result.approximate is False


def test_geocode_provider_failure_returns_none():
    client = MapsClient(api_key="key", session=MockMapsSession({"geocode": requests.Timeout("slow")}))

    assert geocode_address("Av. Paulista 1000", client) is None
    assert geocode_address("", client) is None


def test_straight_line_route_shape():
    route = straight_line_route(PICKUP, north_of(PICKUP, 2500))

    assert route.distance_m == 2500
    assert route.duration_s == 360
    assert len(route.steps) == 1
    assert parse_route_points(route.polyline) == [PICKUP, pytest.approx(north_of(PICKUP, 2500))]


def test_compute_route_strips_html_from_steps():
    body = {
        "status": "OK",
        "routes": [{
            "overview_polyline": {"points": "_p~iF~ps|U_ulLnnqC"},
            "legs": [{
                "distance": {"value": 1200},
                "duration": {"value": 300},
                "duration_in_traffic": {"value": 420},
                "steps": [{
                    "html_instructions": "Turn <b>left</b> onto <div>Rua Augusta</div>",
                    "distance": {"value": 1200},
                    "duration": {"value": 300},
                }],
            }],
        }],
    }
    client = MapsClient(api_key="key", session=MockMapsSession({"directions": MockResponse(200, body)}))

    route = compute_route(PICKUP, north_of(PICKUP, 1200), client)

    assert route.duration_s == 420
    assert route.polyline == "_p~iF~ps|U_ulLnnqC"
    assert route.steps[0].instruction == "Turn left onto Rua Augusta"


def test_compute_route_returns_none_when_provider_fails():
    client = MapsClient(api_key="key", session=MockMapsSession())

    assert compute_route(PICKUP, PICKUP, client) is None


# --- Geofence ---

@pytest.fixture
def planned_route():
    return encode_fallback_route([PICKUP, north_of(PICKUP, 1000), north_of(PICKUP, 2000)])


def test_off_route_when_250m_from_every_point(planned_route):
    position = north_of(PICKUP, -250)

    assert distance_to_route(position, planned_route) == pytest.approx(250, abs=0.5)
    assert is_off_route(position, planned_route, tolerance_m=200) is True


def test_not_off_route_when_150m_from_nearest_point(planned_route):
    position = north_of(PICKUP, 1150)

    assert is_off_route(position, planned_route, tolerance_m=200) is False


def test_unknown_route_is_never_off_route():
    assert distance_to_route(PICKUP, "") is None
    assert distance_to_route(PICKUP, "_p~iF~ps|U_") is None
    assert is_off_route(PICKUP, "_p~iF~ps|U_") is False


def test_within_geofence_is_inclusive():
    assert within_geofence(north_of(PICKUP, 49), PICKUP, 50) is True
    assert within_geofence(north_of(PICKUP, 51), PICKUP, 50) is False
