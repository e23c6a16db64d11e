"""
Purpose: Package entry + stable exports.
What it does:

Marks orders as a Python package and re-exports the public API so other
modules can do:

from orders import Order, OrderStatus

Should not contain business logic.

Public API:
- Domain models: Order, OrderStatus
- Alert kinds: ALERT_ETA_10_MIN, ALERT_ARRIVING
"""
from .models import Order, OrderStatus, ALERT_ETA_10_MIN, ALERT_ARRIVING, ALERT_FLAGS

__all__ = ["Order",
           "OrderStatus",
             "ALERT_ETA_10_MIN",
               "ALERT_ARRIVING"
               , "ALERT_FLAGS"
               ]
