from typing import Dict, FrozenSet

from orders.models import Order, OrderStatus


class OrderStateException(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class OrderAlreadyAssigned(OrderStateException):
    """Raised when an order that already has a courier is assigned again."""

    def __init__(self, order_id: str, courier_id: str):
        super().__init__(f"Order {order_id} already assigned to courier {courier_id}")
        self.order_id = order_id
        self.courier_id = courier_id


# Allowed lifecycle moves. DISPATCHED -> READY is the redistribution path.
ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.RECEIVED: frozenset({OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DISPATCHED, OrderStatus.CANCELLED}),
    OrderStatus.DISPATCHED: frozenset({OrderStatus.DELIVERED, OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ORDER_TRANSITIONS.get(current, frozenset())


def ensure_transition(order: Order, new: OrderStatus) -> None:
    if not can_transition(order.status, new):
        raise OrderStateException(
            f"Cannot transition order {order.id} from {order.status.value} to {new.value}"
        )


def ensure_assignable(order: Order) -> None:
    """
    Called right before a courier is attached.
    The order must be READY and nobody may hold it yet.
    """
    if order.courier_id:
        raise OrderAlreadyAssigned(order.id, order.courier_id)
    if order.status != OrderStatus.READY:
        raise OrderStateException(
            f"Order {order.id} is not ready for dispatch. Current: {order.status.value}"
        )


def dispatch_changes(courier_id: str, now, eta=None, route=None) -> dict:
    """
    Field changes that open a new delivery leg. Alert flags are re-armed
    here and nowhere else.
    """
    return {
        "status": OrderStatus.DISPATCHED,
        "courier_id": courier_id,
        "dispatched_at": now,
        "eta_minutes": eta.minutes if eta else None,
        "eta_computed_at": now if eta else None,
        "traffic_level": eta.traffic_level if eta else None,
        "route_polyline": route.polyline if route else None,
        "eta_alert_sent": False,
        "arriving_alert_sent": False,
        "updated_at": now,
    }


def revert_to_ready_changes(now) -> dict:
    """
    Emergency Fallback: the courier became unavailable mid-delivery.
    The order goes back to READY so the dispatcher can pick it up again.
    """
    return {
        "status": OrderStatus.READY,
        "courier_id": None,
        "dispatched_at": None,
        "eta_minutes": None,
        "eta_computed_at": None,
        "traffic_level": None,
        "route_polyline": None,
        "updated_at": now,
    }
