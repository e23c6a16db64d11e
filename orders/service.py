"""
Purpose: Order status changes coming from the surrounding platform
(kitchen marks an order ready, an operator cancels it).
Validates the move and publishes the lifecycle events the engine reacts to.

Leaving DISPATCHED always gives the courier's slot back in the same
transaction as the status change.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from dispatch.dispatcher import release_courier
from dispatch.errors import NotFound
from dispatch.state_machines.order_state import ensure_transition, revert_to_ready_changes
from events.bus import DeliveryCompleted, EventBus, OrderReady, OrderStatusChanged
from .models import Order, OrderStatus

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, store, bus: EventBus):
        self.store = store
        self.bus = bus

    def change_status(self, tenant_id: str, order_id: str, new_status: OrderStatus,
                      now: Optional[datetime] = None) -> Order:
        now = now or datetime.now(timezone.utc)

        with self.store.transaction():
            order = self.store.get_order(tenant_id, order_id)
            if order is None:
                raise NotFound("order", order_id, tenant_id)
            ensure_transition(order, new_status)
            previous = order.status

            changes = {"status": new_status, "updated_at": now}
            if new_status == OrderStatus.READY and previous == OrderStatus.DISPATCHED:
                changes.update(revert_to_ready_changes(now))
            elif new_status == OrderStatus.DELIVERED:
                changes["delivered_at"] = now

            updated = self.store.update_order(tenant_id, order_id, **changes)

            released = previous == OrderStatus.DISPATCHED and order.courier_id is not None
            if released:
                release_courier(self.store, tenant_id, order.courier_id)

        if released:
            logger.info(f"[{tenant_id}] Courier {order.courier_id} released from order {order_id} ({new_status.value})")

        self.bus.publish(OrderStatusChanged(
            tenant_id=tenant_id, order_id=order_id,
            previous_status=previous.value, new_status=new_status.value,
        ))

        if new_status == OrderStatus.DELIVERED:
            self.bus.publish(DeliveryCompleted(tenant_id=tenant_id, order_id=order_id, courier_id=order.courier_id))
        elif new_status == OrderStatus.READY:
            self.bus.publish(OrderReady(tenant_id=tenant_id, order_id=order_id))

        return updated
