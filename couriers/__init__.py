from .models import Courier, CourierStatus
from .policy import DispatchPolicy, default_dispatch_policy
from .selection import CourierScore, rank_couriers, score_courier

__all__ = [
    "Courier",
    "CourierStatus",
    "DispatchPolicy",
    "default_dispatch_policy",
    "CourierScore",
    "rank_couriers",
    "score_courier",
]
