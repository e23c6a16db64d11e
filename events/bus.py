"""
Purpose: In-process publish/subscribe hub for order and courier lifecycle events.
What it does:
- Holds topic -> handlers subscriptions
- Fans every published event out to its handlers, synchronously, in
  subscription order
- Isolates handler failures: one failing handler is logged and the others
  still run

Rule: The bus is a plain value. Build one per process (or per test) and wire
it with events.handlers.register_handlers. Nothing subscribes at import time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, ClassVar, Dict, List, Optional

logger = logging.getLogger(__name__)

ORDER_READY = "order.ready"
ORDER_STATUS_CHANGED = "order.statusChanged"
COURIER_POSITION_UPDATED = "courier.positionUpdated"
COURIER_DEACTIVATED = "courier.deactivated"
DISPATCH_COMPLETED = "dispatch.completed"
ETA_CHANGED = "eta.changed"
ALERT_SENT = "alert.sent"
DELIVERY_COMPLETED = "delivery.completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Inbound events ---

@dataclass(frozen=True)
class OrderReady:
    topic: ClassVar[str] = ORDER_READY
    tenant_id: str
    order_id: str


@dataclass(frozen=True)
class OrderStatusChanged:
    topic: ClassVar[str] = ORDER_STATUS_CHANGED
    tenant_id: str
    order_id: str
    previous_status: str
    new_status: str


@dataclass(frozen=True)
class CourierPositionUpdated:
    topic: ClassVar[str] = COURIER_POSITION_UPDATED
    tenant_id: str
    courier_id: str
    lat: float
    lng: float
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class CourierDeactivated:
    topic: ClassVar[str] = COURIER_DEACTIVATED
    tenant_id: str
    courier_id: str


# --- Outbound events ---

@dataclass(frozen=True)
class DispatchCompleted:
    topic: ClassVar[str] = DISPATCH_COMPLETED
    tenant_id: str
    order_id: str
    courier_id: str
    score: Optional[float]
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class EtaChanged:
    topic: ClassVar[str] = ETA_CHANGED
    tenant_id: str
    order_id: str
    previous_minutes: int
    new_minutes: int


@dataclass(frozen=True)
class AlertSent:
    topic: ClassVar[str] = ALERT_SENT
    tenant_id: str
    order_id: str
    alert_type: str
    delivered: bool


@dataclass(frozen=True)
class DeliveryCompleted:
    topic: ClassVar[str] = DELIVERY_COMPLETED
    tenant_id: str
    order_id: str
    courier_id: Optional[str]


Handler = Callable[[object], None]


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)
        logger.debug(f"Handler registered for {topic}")

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def handlers_for(self, topic: str) -> List[Handler]:
        with self._lock:
            return list(self._handlers.get(topic, []))

    def publish(self, event) -> int:
        """
        Deliver the event to every handler of its topic.
        Returns how many handlers completed without raising.
        """
        topic = event.topic
        logger.debug(f"Event published: {topic} {event}")

        delivered = 0
        for handler in self.handlers_for(topic):
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(f"Handler {getattr(handler, '__qualname__', handler)} failed for {topic}")
        return delivered
