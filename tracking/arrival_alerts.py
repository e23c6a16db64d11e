"""
Purpose: One-shot customer arrival alerts.
What it does:
- Timed path (run_cycle, every 60 s across all tenants): "about 10 minutes
  away" once now >= eta_computed_at + eta_minutes - lead
- Geofence path (on_courier_position_update): "arriving now" once the courier
  is within the arrival radius of the destination

Each alert is claimed with a compare-and-set on the order before anything is
sent, so overlapping ticks or repeated position pings cannot fire it twice in
the same delivery leg. The claim is refused once the order has been
delivered or handed to another courier. A failed send is logged; the flag
stays set.

A tenant without a notification channel is skipped silently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from dispatch.candidate_filter import check_tenant
from dispatch.errors import TenantMismatch
from events.bus import AlertSent, CourierPositionUpdated, EventBus
from notifications.channel import WebhookChannel
from orders.models import ALERT_ARRIVING, ALERT_ETA_10_MIN, Order, OrderStatus
from routing.geo import haversine_meters
from .policy import TrackingPolicy, default_tracking_policy
from .scheduler import run_units

logger = logging.getLogger(__name__)

ENDPOINT_CUSTOMER_ALERT = "customer_alert"


def alert_instant(eta_minutes: int, eta_computed_at: datetime, lead_minutes: int = 10) -> datetime:
    return eta_computed_at + timedelta(minutes=eta_minutes) - timedelta(minutes=lead_minutes)


def is_alert_due(eta_minutes: int, eta_computed_at: datetime, now: datetime, lead_minutes: int = 10) -> bool:
    return now >= alert_instant(eta_minutes, eta_computed_at, lead_minutes)


@dataclass
class AlertCycleReport:
    tenants_checked: int = 0
    tenants_skipped: int = 0
    alerts_sent: int = 0
    failed: int = 0


class ArrivalAlertJob:
    name = "arrival-alerts"

    def __init__(self, store, bus: EventBus, channel: WebhookChannel, policy: Optional[TrackingPolicy] = None):
        self.store = store
        self.bus = bus
        self.channel = channel
        self.policy = policy or default_tracking_policy()

    # --- Timed path ---

    def run_cycle(self, now: Optional[datetime] = None) -> AlertCycleReport:
        now = now or datetime.now(timezone.utc)
        report = AlertCycleReport()
        tenants = self.store.list_tenants()
        logger.debug(f"Checking arrival alerts for {len(tenants)} tenants")

        due = []
        for tenant in tenants:
            if not tenant.notifications_configured:
                report.tenants_skipped += 1
                continue
            report.tenants_checked += 1

            for order in self.store.list_orders(tenant.id, statuses=[OrderStatus.DISPATCHED]):
                try:
                    check_tenant(tenant.id, order.tenant_id, order.id)
                except TenantMismatch as e:
                    logger.error(f"SECURITY: {e}")
                    continue

                if not order.courier_id or order.eta_alert_sent:
                    continue
                if order.eta_minutes is None or order.eta_computed_at is None:
                    continue
                if is_alert_due(order.eta_minutes, order.eta_computed_at, now, self.policy.alert_lead_minutes):
                    due.append((tenant.id, order))

        sent: List[bool] = []
        stats = run_units(
            due,
            lambda unit: sent.append(self._send_eta_alert(unit[0], unit[1], now)),
            max_workers=self.policy.max_workers,
            describe=lambda unit: f"order {unit[1].id} (tenant {unit[0]})",
        )
        report.alerts_sent = sum(1 for s in sent if s)
        report.failed = stats.failed
        return report

    def _send_eta_alert(self, tenant_id: str, order: Order, now: datetime) -> bool:
        if not self.store.claim_alert(
            tenant_id, order.id, ALERT_ETA_10_MIN, courier_id=order.courier_id, dispatched_at=order.dispatched_at,
        ):
            return False

        logger.info(f"[{tenant_id}] Sending ETA alert for order {order.id}")
        result = self.channel.send(tenant_id, ENDPOINT_CUSTOMER_ALERT, {
            "type": ALERT_ETA_10_MIN,
            "orderId": order.id,
            "customerName": order.customer_name or "Customer",
            "customerPhone": order.customer_phone,
            "etaMinutes": order.eta_minutes,
            "deliveryAddress": order.delivery_address,
            "message": (
                f"Your order is on its way! Expected arrival in about {self.policy.alert_lead_minutes} minutes."
            ),
            "timestamp": now.isoformat(),
        })
        if not result.success:
            logger.warning(f"[{tenant_id}] ETA alert for order {order.id} not delivered: {result.error}")

        self.bus.publish(AlertSent(
            tenant_id=tenant_id, order_id=order.id, alert_type=ALERT_ETA_10_MIN, delivered=result.success,
        ))
        return True

    # --- Geofence path ---

    def on_courier_position_update(self, event: CourierPositionUpdated) -> int:
        """
        Check every order the courier is carrying against the arrival radius.
        Returns how many "arriving" alerts this update fired.
        """
        tenant_id = event.tenant_id
        if not self.channel.is_configured(tenant_id):
            return 0

        position = (event.lat, event.lng)
        fired = 0
        orders = self.store.list_orders(tenant_id, statuses=[OrderStatus.DISPATCHED], courier_id=event.courier_id)

        for order in orders:
            try:
                check_tenant(tenant_id, order.tenant_id, order.id)
            except TenantMismatch as e:
                logger.error(f"SECURITY: {e}")
                continue

            if order.arriving_alert_sent or order.destination is None:
                continue
            if order.destination_approximate and not self.policy.trust_approximate_destinations:
                logger.debug(f"[{tenant_id}] Order {order.id} has an approximate destination, geofence skipped")
                continue

            distance = haversine_meters(position, order.destination)
            if distance > self.policy.arrival_geofence_m:
                continue

            if self._send_arriving_alert(tenant_id, order, round(distance), event.at):
                fired += 1
        return fired

    def _send_arriving_alert(self, tenant_id: str, order: Order, distance_m: int, now: datetime) -> bool:
        if not self.store.claim_alert(
            tenant_id, order.id, ALERT_ARRIVING, courier_id=order.courier_id, dispatched_at=order.dispatched_at,
        ):
            return False

        logger.info(f"[{tenant_id}] Courier arriving for order {order.id} ({distance_m} m)")
        result = self.channel.send(tenant_id, ENDPOINT_CUSTOMER_ALERT, {
            "type": ALERT_ARRIVING,
            "orderId": order.id,
            "customerName": order.customer_name or "Customer",
            "customerPhone": order.customer_phone,
            "distanceMeters": distance_m,
            "deliveryAddress": order.delivery_address,
            "message": f"Your order is arriving! The courier is only {distance_m} meters away.",
            "timestamp": now.isoformat(),
        })
        if not result.success:
            logger.warning(f"[{tenant_id}] Arriving alert for order {order.id} not delivered: {result.error}")

        self.bus.publish(AlertSent(
            tenant_id=tenant_id, order_id=order.id, alert_type=ALERT_ARRIVING, delivered=result.success,
        ))
        return True
