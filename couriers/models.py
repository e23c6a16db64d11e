"""
Purpose: Core data models for the couriers domain.
What it does:
Defines the structure of a Courier and their status without relying on any ORM.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

LatLon = Tuple[float, float]


class CourierStatus(str, Enum):
    """
    Standardizes the state a courier can be in.
    """
    AVAILABLE = "available"
    EN_ROUTE = "en_route"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Courier:
    """
    A snapshot of a courier at a specific point in time.

    Snapshots are immutable: the store hands out copies and every change goes
    back through the store (active_orders only via atomic increments).
    """
    id: str
    tenant_id: str
    name: str
    status: CourierStatus = CourierStatus.AVAILABLE

    location: Optional[LatLon] = None
    last_location_at: Optional[datetime] = None
    active_orders: int = 0
    phone: Optional[str] = None

    @property
    def has_location(self) -> bool:
        if self.location is None:
            return False
        lat, lng = self.location
        # (0, 0) is how unset coordinates arrive from the device app
        return not (lat == 0 and lng == 0)

    @classmethod
    def new(
        cls,
        courier_id: str,
        tenant_id: str,
        name: str,
        lat: float | None = None,
        lng: float | None = None,
        status: str | CourierStatus = CourierStatus.AVAILABLE,
        active_orders: int = 0,
        last_location_at: datetime | None = None,
        phone: str | None = None,
    ) -> Courier:
        if isinstance(status, str):
            status = CourierStatus(status)

        location = (lat, lng) if lat is not None and lng is not None else None

        return cls(
            id=courier_id,
            tenant_id=tenant_id,
            name=name,
            status=status,
            location=location,
            last_location_at=last_location_at,
            active_orders=active_orders,
            phone=phone,
        )
