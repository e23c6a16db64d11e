"""
Purpose: Courier-side inputs to the engine: live GPS pings and going off shift.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from dispatch.errors import NotFound
from events.bus import CourierDeactivated, CourierPositionUpdated, EventBus
from .models import Courier


class CourierService:
    def __init__(self, store, bus: EventBus):
        self.store = store
        self.bus = bus

    def update_position(self, tenant_id: str, courier_id: str, lat: float, lng: float,
                        now: Optional[datetime] = None) -> Courier:
        now = now or datetime.now(timezone.utc)
        courier = self.store.update_courier(
            tenant_id, courier_id, location=(lat, lng), last_location_at=now,
        )
        if courier is None:
            raise NotFound("courier", courier_id, tenant_id)

        self.bus.publish(CourierPositionUpdated(
            tenant_id=tenant_id, courier_id=courier_id, lat=lat, lng=lng, at=now,
        ))
        return courier

    def deactivate(self, tenant_id: str, courier_id: str) -> None:
        """Announce that the courier dropped out; redistribution reacts to the event."""
        if self.store.get_courier(tenant_id, courier_id) is None:
            raise NotFound("courier", courier_id, tenant_id)
        self.bus.publish(CourierDeactivated(tenant_id=tenant_id, courier_id=courier_id))
