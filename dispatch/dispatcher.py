"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Accepts a READY order, asks the scorer for the best courier and commits the
assignment: destination, route and ETA are resolved outside the store lock,
then the order update and the courier counter increment happen in one
transaction. Also closes the loop when a delivery completes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from couriers.models import CourierStatus
from couriers.policy import DispatchPolicy, default_dispatch_policy
from events.bus import DeliveryCompleted, DispatchCompleted, EventBus, OrderReady
from orders.models import Order, OrderStatus
from routing.eta_service import EtaResult, estimate_eta
from routing.maps_client import MapsClient
from routing.route_service import RouteResult, compute_route, geocode_address
from .decision_log import KIND_ASSIGNMENT, DecisionLogEntry, record_decision
from .errors import NoCourierAvailable, NotFound
from .scoring import DispatchScorer, resolve_pickup_location
from .state_machines.courier_state import ensure_can_take_order, status_after_release
from .state_machines.order_state import dispatch_changes, ensure_assignable, ensure_transition

logger = logging.getLogger(__name__)


def release_courier(store, tenant_id: str, courier_id: str):
    """
    Give back one slot on the courier once an order it carried is resolved
    (delivered, cancelled or handed back). Call inside store.transaction().
    An UNAVAILABLE courier keeps its status; only the counter moves.
    """
    courier = store.adjust_active_orders(tenant_id, courier_id, -1)
    if courier is not None and courier.status != CourierStatus.UNAVAILABLE:
        courier = store.update_courier(tenant_id, courier_id, status=status_after_release(courier.active_orders))
    return courier


@dataclass(frozen=True)
class AssignmentResult:
    order: Order
    courier_id: str
    score: Optional[float]
    eta: Optional[EtaResult]
    route: Optional[RouteResult]


class Dispatcher:
    """
    Coordinates the transaction of an Order to a Courier.
    """
    def __init__(self, store, bus: EventBus, maps: Optional[MapsClient] = None,
                 scorer: Optional[DispatchScorer] = None, policy: Optional[DispatchPolicy] = None):
        self.store = store
        self.bus = bus
        self.maps = maps or MapsClient()
        self.policy = policy or default_dispatch_policy()
        self.scorer = scorer or DispatchScorer(store, self.maps, self.policy)

    def _get_order(self, tenant_id: str, order_id: str) -> Order:
        order = self.store.get_order(tenant_id, order_id)
        if order is None:
            raise NotFound("order", order_id, tenant_id)
        return order

    def dispatch(self, tenant_id: str, order_id: str, *, exclude_ids: Optional[Iterable[str]] = None,
                 now: Optional[datetime] = None) -> AssignmentResult:
        """
        Score + assign as a single unit.
        Raises NoCourierAvailable (order left untouched) when nobody qualifies.
        """
        now = now or datetime.now(timezone.utc)
        order = self._get_order(tenant_id, order_id)
        ensure_assignable(order)

        pickup = resolve_pickup_location(self.store, self.maps, tenant_id, self.policy)
        selection = self.scorer.select(
            tenant_id, pickup, order_id=order_id, exclude_ids=exclude_ids, now=now,
        )
        if selection.best is None:
            raise NoCourierAvailable(tenant_id, order_id)

        return self.assign(
            tenant_id, order_id, selection.best.courier_id,
            score=selection.best.final_score, now=now,
        )

    def assign(self, tenant_id: str, order_id: str, courier_id: str, *,
               score: Optional[float] = None, now: Optional[datetime] = None) -> AssignmentResult:
        now = now or datetime.now(timezone.utc)

        order = self._get_order(tenant_id, order_id)
        courier = self.store.get_courier(tenant_id, courier_id)
        if courier is None:
            raise NotFound("courier", courier_id, tenant_id)

        ensure_assignable(order)
        ensure_can_take_order(courier)

        # 1. Destination (geocode once, keep the confidence flag with it)
        destination = order.destination
        approximate = order.destination_approximate
        if destination is None and order.delivery_address:
            geocoded = geocode_address(order.delivery_address, self.maps)
            if geocoded is not None:
                destination = geocoded.location
                approximate = geocoded.approximate

        # 2. Route + ETA from where the courier is now. Missing pieces mean a null ETA, not a failed dispatch.
        route = None
        eta = None
        if destination is not None and courier.has_location:
            route = compute_route(courier.location, destination, self.maps)
            eta = estimate_eta(courier.location, destination, self.maps)
        else:
            logger.warning(f"[{tenant_id}] Order {order_id} dispatched without ETA (missing destination or courier position)")

        # 3. Commit. Re-check under the lock: another worker may have taken the order meanwhile.
        with self.store.transaction():
            current = self._get_order(tenant_id, order_id)
            ensure_assignable(current)
            ensure_transition(current, OrderStatus.DISPATCHED)

            current_courier = self.store.get_courier(tenant_id, courier_id)
            if current_courier is None:
                raise NotFound("courier", courier_id, tenant_id)
            ensure_can_take_order(current_courier)

            changes = dispatch_changes(courier_id, now, eta=eta, route=route)
            changes.update(
                destination=destination,
                destination_approximate=approximate,
                tracking={
                    **current.tracking,
                    "courier_name": courier.name,
                    "courier_phone": courier.phone,
                    "route_distance_m": route.distance_m if route else None,
                    "route_duration_s": route.duration_s if route else None,
                },
            )
            updated = self.store.update_order(tenant_id, order_id, **changes)
            self.store.adjust_active_orders(tenant_id, courier_id, +1, status=CourierStatus.EN_ROUTE)

        record_decision(self.store, DecisionLogEntry(
            tenant_id=tenant_id,
            kind=KIND_ASSIGNMENT,
            order_id=order_id,
            courier_id=courier_id,
            rationale=f"Order {order_id} assigned to courier {courier.name}",
            details={
                "courier_name": courier.name,
                "score": score,
                "eta_minutes": eta.minutes if eta else None,
                "active_orders_before": courier.active_orders,
            },
        ))

        self.bus.publish(DispatchCompleted(
            tenant_id=tenant_id, order_id=order_id, courier_id=courier_id, score=score,
        ))

        return AssignmentResult(order=updated, courier_id=courier_id, score=score, eta=eta, route=route)

    def complete_delivery(self, tenant_id: str, order_id: str, *, now: Optional[datetime] = None) -> Order:
        """
        Mark the order delivered and release the courier's slot.
        """
        now = now or datetime.now(timezone.utc)

        with self.store.transaction():
            order = self._get_order(tenant_id, order_id)
            ensure_transition(order, OrderStatus.DELIVERED)

            updated = self.store.update_order(
                tenant_id, order_id, status=OrderStatus.DELIVERED, delivered_at=now, updated_at=now,
            )

            if order.courier_id:
                release_courier(self.store, tenant_id, order.courier_id)

        logger.info(f"[{tenant_id}] Order {order_id} delivered")
        self.bus.publish(DeliveryCompleted(tenant_id=tenant_id, order_id=order_id, courier_id=order.courier_id))
        return updated

    def handle_order_ready(self, event: OrderReady) -> Optional[AssignmentResult]:
        """
        Event entry point for order.ready. A missing courier is a soft failure:
        it is logged and the order stays READY for a later attempt.
        """
        order = self.store.get_order(event.tenant_id, event.order_id)
        if order is None:
            logger.error(f"[{event.tenant_id}] order.ready for unknown order {event.order_id}")
            return None

        if order.courier_id:
            logger.info(f"[{event.tenant_id}] Order {event.order_id} already has courier {order.courier_id}")
            return None

        try:
            result = self.dispatch(event.tenant_id, event.order_id)
        except NoCourierAvailable as e:
            logger.info(f"Automatic dispatch postponed: {e}")
            return None

        logger.info(f"[{event.tenant_id}] Automatic dispatch: order {event.order_id} -> courier {result.courier_id}")
        return result
