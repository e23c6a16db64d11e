"""
Purpose: The one place where collaborators are subscribed to the bus.
Called once by the process lifecycle (or once per test) with explicit
collaborators; importing this module subscribes nothing.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .bus import (
    ALERT_SENT,
    COURIER_DEACTIVATED,
    COURIER_POSITION_UPDATED,
    DELIVERY_COMPLETED,
    DISPATCH_COMPLETED,
    ETA_CHANGED,
    ORDER_READY,
    ORDER_STATUS_CHANGED,
    EventBus,
    Handler,
)

LIVE_UPDATE_TOPICS = (
    ORDER_STATUS_CHANGED,
    DISPATCH_COMPLETED,
    ETA_CHANGED,
    ALERT_SENT,
    DELIVERY_COMPLETED,
)


def register_handlers(
    bus: EventBus,
    *,
    dispatcher=None,
    redistributor=None,
    arrival_alerts=None,
    live_updates: Optional[Handler] = None,
) -> List[Tuple[str, Handler]]:
    """
    Wire the engine onto the bus:
    - order.ready              -> dispatcher.handle_order_ready
    - courier.positionUpdated  -> arrival_alerts.on_courier_position_update
    - courier.deactivated      -> redistributor.handle_courier_deactivated
    - lifecycle events         -> live_updates

    Returns the (topic, handler) pairs so callers can unsubscribe them.
    """
    subscriptions: List[Tuple[str, Handler]] = []

    if dispatcher is not None:
        subscriptions.append((ORDER_READY, dispatcher.handle_order_ready))
    if arrival_alerts is not None:
        subscriptions.append((COURIER_POSITION_UPDATED, arrival_alerts.on_courier_position_update))
    if redistributor is not None:
        subscriptions.append((COURIER_DEACTIVATED, redistributor.handle_courier_deactivated))
    if live_updates is not None:
        subscriptions.extend((topic, live_updates) for topic in LIVE_UPDATE_TOPICS)

    for topic, handler in subscriptions:
        bus.subscribe(topic, handler)
    return subscriptions
