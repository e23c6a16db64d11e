from .bus import (
    EventBus,
    OrderReady,
    OrderStatusChanged,
    CourierPositionUpdated,
    CourierDeactivated,
    DispatchCompleted,
    EtaChanged,
    AlertSent,
    DeliveryCompleted,
)
from .handlers import register_handlers
from .live_updates import LiveUpdateRelay

__all__ = [
    "EventBus",
    "OrderReady",
    "OrderStatusChanged",
    "CourierPositionUpdated",
    "CourierDeactivated",
    "DispatchCompleted",
    "EtaChanged",
    "AlertSent",
    "DeliveryCompleted",
    "register_handlers",
    "LiveUpdateRelay",
]
