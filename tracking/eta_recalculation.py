"""
Purpose: Periodic ETA refresh for every order in transit.
What it does, per tick and per DISPATCHED order with a courier:
1. Reads the courier's latest position (tenant scoped)
2. Recomputes the ETA to the stored destination and persists it with the
   time it was computed
3. Notifies the customer channel and publishes eta.changed when the ETA moved
   by at least the policy threshold
4. Checks the stored route; an off-route courier produces a "warn" fleet
   alert (this never blocks step 2)

One order failing is logged and the rest of the tick carries on.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from dispatch.candidate_filter import check_tenant
from dispatch.errors import TenantMismatch
from events.bus import EtaChanged, EventBus
from notifications.channel import WebhookChannel
from orders.models import Order, OrderStatus
from routing.eta_service import estimate_eta
from routing.geofence import distance_to_route
from routing.maps_client import MapsClient
from store.models import SEVERITY_WARN, FleetAlert
from .policy import TrackingPolicy, default_tracking_policy
from .scheduler import run_units

logger = logging.getLogger(__name__)

ENDPOINT_ETA_UPDATED = "eta_updated"
ALERT_KIND_OFF_ROUTE = "courier_off_route"


@dataclass
class CycleReport:
    orders_seen: int = 0
    updated: int = 0
    notified: int = 0
    off_route: int = 0
    skipped: int = 0
    failed: int = 0


class EtaRecalculationJob:
    name = "eta-recalculation"

    def __init__(self, store, bus: EventBus, channel: WebhookChannel, maps: Optional[MapsClient] = None,
                 policy: Optional[TrackingPolicy] = None):
        self.store = store
        self.bus = bus
        self.channel = channel
        self.maps = maps or MapsClient()
        self.policy = policy or default_tracking_policy()
        self._report_lock = threading.Lock()

    def run_cycle(self, now: Optional[datetime] = None) -> CycleReport:
        now = now or datetime.now(timezone.utc)
        report = CycleReport()

        units = []
        for tenant in self.store.list_tenants():
            for order in self.store.list_orders(tenant.id, statuses=[OrderStatus.DISPATCHED]):
                if order.courier_id:
                    units.append((tenant.id, order))

        report.orders_seen = len(units)
        logger.info(f"Recalculating ETA for {len(units)} orders in transit")

        stats = run_units(
            units,
            lambda unit: self._process(unit[0], unit[1], now, report),
            max_workers=self.policy.max_workers,
            describe=lambda unit: f"order {unit[1].id} (tenant {unit[0]})",
        )
        report.failed = stats.failed
        return report

    def _count(self, report: CycleReport, attr: str) -> None:
        with self._report_lock:
            setattr(report, attr, getattr(report, attr) + 1)

    def _process(self, tenant_id: str, order: Order, now: datetime, report: CycleReport) -> None:
        try:
            check_tenant(tenant_id, order.tenant_id, order.id)
        except TenantMismatch as e:
            logger.error(f"SECURITY: {e}")
            self._count(report, "skipped")
            return

        if order.destination is None:
            self._count(report, "skipped")
            return

        courier = self.store.get_courier(tenant_id, order.courier_id)
        if courier is None or not courier.has_location:
            self._count(report, "skipped")
            return

        eta = estimate_eta(courier.location, order.destination, self.maps)

        with self.store.transaction():
            current = self.store.get_order(tenant_id, order.id)
            # Delivered, cancelled or handed to someone else since the tick started.
            if current is None or not current.in_transit or current.courier_id != courier.id:
                self._count(report, "skipped")
                return
            previous = current.eta_minutes if current.eta_minutes is not None else eta.minutes

            self.store.update_order(
                tenant_id, order.id,
                eta_minutes=eta.minutes,
                eta_computed_at=now,
                traffic_level=eta.traffic_level,
                tracking={
                    **current.tracking,
                    "last_eta_minutes": eta.minutes,
                    "traffic_level": eta.traffic_level,
                    "courier_location": courier.location,
                },
                updated_at=now,
            )
        self._count(report, "updated")

        if abs(eta.minutes - previous) >= self.policy.eta_change_threshold_minutes:
            logger.info(f"[{tenant_id}] ETA changed for order {order.id}: {previous} -> {eta.minutes} min")
            self._notify_change(tenant_id, current, previous, eta.minutes, now)
            self.bus.publish(EtaChanged(
                tenant_id=tenant_id, order_id=order.id, previous_minutes=previous, new_minutes=eta.minutes,
            ))
            self._count(report, "notified")

        if order.route_polyline:
            self._check_route(tenant_id, order, courier.id, courier.location, report)

    def _notify_change(self, tenant_id: str, order: Order, previous: int, new: int, now: datetime) -> None:
        if not self.channel.is_configured(tenant_id):
            logger.info(f"[{tenant_id}] No notification channel configured, ETA change not sent")
            return

        self.channel.send(tenant_id, ENDPOINT_ETA_UPDATED, {
            "type": ENDPOINT_ETA_UPDATED,
            "orderId": order.id,
            "previousEta": previous,
            "newEta": new,
            "differenceMinutes": new - previous,
            "deliveryAddress": order.delivery_address,
            "timestamp": now.isoformat(),
        })

    def _check_route(self, tenant_id: str, order: Order, courier_id: str,
                     position: Tuple[float, float], report: CycleReport) -> None:
        distance = distance_to_route(position, order.route_polyline)
        if distance is None or distance <= self.policy.off_route_tolerance_m:
            return

        logger.warning(f"[{tenant_id}] Courier {courier_id} off route for order {order.id} ({round(distance)} m)")
        self.store.add_fleet_alert(FleetAlert(
            tenant_id=tenant_id,
            kind=ALERT_KIND_OFF_ROUTE,
            severity=SEVERITY_WARN,
            message=f"Courier off the planned route. Distance: {round(distance)}m",
            meta={"courier_id": courier_id, "order_id": order.id, "distance_m": round(distance)},
        ))
        self._count(report, "off_route")
