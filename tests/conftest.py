import json as jsonlib
from datetime import datetime, timedelta, timezone

import pytest

from couriers.models import Courier
from dispatch.dispatcher import Dispatcher
from events.bus import EventBus
from notifications.channel import WebhookChannel
from orders.models import Order, OrderStatus
from routing.maps_client import MapsClient
from store.memory import InMemoryStore
from store.models import Tenant

TENANT_ID = "T1"
PICKUP = (-23.5505, -46.6333)

# One degree of latitude on the haversine sphere, in meters.
METERS_PER_DEGREE_LAT = 6371000.0 * 3.141592653589793 / 180


def north_of(point, meters):
    """Point `meters` due north of `point`."""
    return (point[0] + meters / METERS_PER_DEGREE_LAT, point[1])


class MockResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else jsonlib.dumps(payload)

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class MockWebhookSession:
    """Records every POST and answers with the configured response (or raises it)."""
    def __init__(self, response=None):
        self.response = response or MockResponse(200, {"queued": True})
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class MockMapsSession:
    """Answers GETs from a {service: response} table; unknown services get a 404."""
    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        for service, response in self.responses.items():
            if f"/{service}/" in url:
                if isinstance(response, Exception):
                    raise response
                return response
        return MockResponse(404, {"status": "NOT_FOUND"})


@pytest.fixture
def now():
    return datetime(2026, 3, 14, 19, 30, tzinfo=timezone.utc)


@pytest.fixture
def store():
    s = InMemoryStore()
    s.add_tenant(Tenant(
        id=TENANT_ID,
        name="Pizzaria Centro",
        address="Av. Paulista 1000, Sao Paulo",
        pickup_location=PICKUP,
        webhook_url="https://hooks.test/t1",
        webhook_token="secret-token",
    ))
    return s


@pytest.fixture
def maps():
    # No api key: every routing call uses the deterministic fallbacks.
    return MapsClient(api_key="", session=MockMapsSession())


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def webhook_session():
    return MockWebhookSession()


@pytest.fixture
def channel(store, webhook_session):
    return WebhookChannel(store, session=webhook_session, timeout=2)


@pytest.fixture
def dispatcher(store, bus, maps):
    return Dispatcher(store, bus, maps)


@pytest.fixture
def make_courier(store, now):
    def _make(courier_id, location=PICKUP, idle_minutes=0, tenant_id=TENANT_ID, **kwargs):
        lat, lng = location if location is not None else (None, None)
        courier = Courier.new(
            courier_id=courier_id,
            tenant_id=tenant_id,
            name=kwargs.pop("name", f"Courier {courier_id}"),
            lat=lat,
            lng=lng,
            last_location_at=now - timedelta(minutes=idle_minutes),
            **kwargs,
        )
        return store.add_courier(courier)
    return _make


@pytest.fixture
def make_order(store):
    def _make(order_id, status=OrderStatus.READY, tenant_id=TENANT_ID, **kwargs):
        kwargs.setdefault("delivery_address", f"Rua {order_id}, 10")
        return store.add_order(Order(id=order_id, tenant_id=tenant_id, status=status, **kwargs))
    return _make
