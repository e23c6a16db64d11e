import csv
import os
import random
from datetime import datetime, timedelta, timezone
from typing import List

from couriers.models import Courier
from engine.runtime import DeliveryEngine, configure_logging
from notifications.channel import WebhookChannel
from orders.models import Order, OrderStatus
from routing.maps_client import MapsClient
from store.memory import InMemoryStore
from store.models import Tenant

TENANT_ID = "pizzaria-centro"
PICKUP = (-23.5505, -46.6333)


class MockWebhookResponse:
    ok = True
    status_code = 200
    text = '{"queued": true}'

    def json(self):
        return {"queued": True}


class MockWebhookSession:
    """Stands in for the customer messaging webhook. Prints instead of sending."""
    def post(self, url, json=None, headers=None, timeout=None):
        print(f"  [webhook] {url.rsplit('/', 1)[-1]} -> order {json.get('orderId')}: {json.get('message', json.get('type'))}")
        return MockWebhookResponse()


def build_couriers(num_couriers: int = 8) -> List[Courier]:
    now = datetime.now(timezone.utc)
    couriers = []
    for i in range(num_couriers):
        couriers.append(
            Courier.new(
                courier_id=f"courier_{i}",
                tenant_id=TENANT_ID,
                name=f"Courier {i}",
                lat=PICKUP[0] + random.uniform(-0.05, 0.05),
                lng=PICKUP[1] + random.uniform(-0.05, 0.05),
                last_location_at=now - timedelta(minutes=random.randint(0, 45)),
            )
        )
    return couriers


def build_orders(num_orders: int = 6) -> List[Order]:
    orders = []
    for i in range(num_orders):
        orders.append(
            Order(
                id=f"order_{i}",
                tenant_id=TENANT_ID,
                status=OrderStatus.PREPARING,
                delivery_address=f"Rua Exemplo {100 + i}, Sao Paulo",
                customer_name=f"Customer {i}",
                destination=(PICKUP[0] + random.uniform(-0.03, 0.03), PICKUP[1] + random.uniform(-0.03, 0.03)),
            )
        )
    return orders


def run_simulation():
    configure_logging()
    print("=== STARTING END-TO-END DISPATCH SIMULATION ===")

    # 1. Load Data
    store = InMemoryStore()
    store.add_tenant(Tenant(
        id=TENANT_ID,
        name="Pizzaria Centro",
        pickup_location=PICKUP,
        webhook_url="https://hooks.example.invalid/pizzaria-centro",
        webhook_token="simulation-token",
    ))
    couriers = build_couriers()
    orders = build_orders()
    for courier in couriers:
        store.add_courier(courier)
    for order in orders:
        store.add_order(order)
    print(f"Loaded {len(orders)} Orders and {len(couriers)} Couriers.\n")

    # 2. Configure System
    engine = DeliveryEngine.build(
        store,
        maps=MapsClient(),
        channel=WebhookChannel(store, session=MockWebhookSession()),
    )

    # 3. Kitchen marks every order ready -> order.ready -> automatic dispatch
    print("Marking orders ready (automatic dispatch runs on order.ready)...")
    for order in orders:
        engine.orders.change_status(TENANT_ID, order.id, OrderStatus.READY)

    # 4. Simulate 20 minutes of driving: each courier moves halfway to its destination
    print("\nAdvancing the clock 20 minutes and moving couriers...")
    later = datetime.now(timezone.utc) + timedelta(minutes=20)
    for order in store.list_orders(TENANT_ID, statuses=[OrderStatus.DISPATCHED]):
        courier = store.get_courier(TENANT_ID, order.courier_id)
        lat = (courier.location[0] + order.destination[0]) / 2
        lng = (courier.location[1] + order.destination[1]) / 2
        engine.couriers.update_position(TENANT_ID, courier.id, lat, lng, now=later)

    eta_report = engine.eta_job.run_cycle(now=later)
    alert_report = engine.alert_job.run_cycle(now=later)
    print(f"ETA cycle: {eta_report}")
    print(f"Alert cycle: {alert_report}")

    # 5. One courier drops out -> redistribution
    dispatched = store.list_orders(TENANT_ID, statuses=[OrderStatus.DISPATCHED])
    if dispatched:
        dropped = dispatched[0].courier_id
        print(f"\nCourier {dropped} goes offline, redistributing...")
        report = engine.redistributor.redistribute(TENANT_ID, dropped)
        for outcome in report.outcomes:
            status = f"-> {outcome.reassigned_to}" if outcome.reassigned_to else f"STRANDED ({outcome.reason})"
            print(f"  {outcome.order_id} {status}")

    # Save next to the script
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    output_path = os.path.join(base_dir, "dispatch_results.csv")

    with open(output_path, "w", newline='') as file:
        writer = csv.writer(file)
        writer.writerow(["order_id", "status", "courier_id", "eta_minutes", "eta_alert_sent", "arriving_alert_sent"])
        for order in store.list_orders(TENANT_ID):
            writer.writerow([
                order.id, order.status.value, order.courier_id, order.eta_minutes,
                order.eta_alert_sent, order.arriving_alert_sent,
            ])

    decisions = store.list_decisions(TENANT_ID)
    print("\n=== SIMULATION COMPLETE ===")
    print(f"Decision log entries: {len(decisions)}")
    print(f"Fleet alerts: {len(store.list_fleet_alerts(TENANT_ID))}")
    print(f"Notifications logged: {len(store.list_notification_logs(TENANT_ID))}")
    print(f"Results written to '{output_path}'.")


if __name__ == "__main__":
    run_simulation()
