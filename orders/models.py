"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines the Order record as the dispatch engine sees it
  (status, assigned courier, destination, ETA state, planned route, alert flags)

Defines enums/constants:
- OrderStatus = RECEIVED | PREPARING | READY | DISPATCHED | DELIVERED | CANCELLED

Rule: No HTTP calls, no dispatch logic. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

LatLon = Tuple[float, float]


class OrderStatus(str, Enum):
    RECEIVED = "received"
    PREPARING = "preparing"
    READY = "ready"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# One-shot customer alerts. Each maps to the boolean flag on the order.
ALERT_ETA_10_MIN = "eta_10_min"
ALERT_ARRIVING = "arriving"

ALERT_FLAGS = {
    ALERT_ETA_10_MIN: "eta_alert_sent",
    ALERT_ARRIVING: "arriving_alert_sent",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Order:
    """
    A tenant-scoped delivery order.

    eta_alert_sent / arriving_alert_sent only go False -> True within a
    delivery leg; they are reset when a new leg starts (re-dispatch).
    """

    id: str
    tenant_id: str
    status: OrderStatus = OrderStatus.RECEIVED

    delivery_address: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    courier_id: Optional[str] = None

    destination: Optional[LatLon] = None
    destination_approximate: bool = False

    eta_minutes: Optional[int] = None
    eta_computed_at: Optional[datetime] = None
    traffic_level: Optional[str] = None
    route_polyline: Optional[str] = None

    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    eta_alert_sent: bool = False
    arriving_alert_sent: bool = False

    tracking: Dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def in_transit(self) -> bool:
        return self.status == OrderStatus.DISPATCHED and self.courier_id is not None
