"""
Purpose: Business rules and distance math for choosing the best courier.
What it does:
Accepts a reference point (pickup) and a pool of already-eligible couriers,
computes four normalized sub-scores per courier and ranks them.

Sub-scores (0-100, higher is better):
- proximity: linear falloff from 0 m to policy.proximity_cap_m
- load: linear falloff from 0 active orders to policy.load_cap
- idle: linear ramp from 0 to policy.idle_target_minutes since last location update
- performance: fixed baseline
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from routing.geo import haversine_meters
from .models import Courier
from .policy import DispatchPolicy, default_dispatch_policy


@dataclass(frozen=True)
class CourierScore:
    courier_id: str
    name: str
    distance_m: float
    active_orders: int
    idle_minutes: float
    proximity_score: float
    load_score: float
    idle_score: float
    performance_score: float
    final_score: float

    def summary(self) -> dict:
        """Compact form written to the decision log."""
        return {
            "courier_id": self.courier_id,
            "name": self.name,
            "score": round(self.final_score, 2),
        }


def proximity_score(distance_m: float, policy: DispatchPolicy) -> float:
    return max(0.0, 100.0 - (distance_m / policy.proximity_cap_m) * 100.0)


def load_score(active_orders: int, policy: DispatchPolicy) -> float:
    return max(0.0, 100.0 - (active_orders / policy.load_cap) * 100.0)


def idle_score(idle_minutes: float, policy: DispatchPolicy) -> float:
    return max(0.0, min(100.0, (idle_minutes / policy.idle_target_minutes) * 100.0))


def idle_minutes_since(last_location_at: Optional[datetime], now: datetime) -> float:
    if last_location_at is None:
        return 0.0
    if last_location_at.tzinfo is None:
        last_location_at = last_location_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - last_location_at).total_seconds() / 60)


def score_courier(
    courier: Courier,
    reference: Tuple[float, float],
    now: datetime,
    policy: Optional[DispatchPolicy] = None,
) -> Optional[CourierScore]:
    """
    Score one courier against the reference point.
    Returns None when the courier has no usable coordinates.
    """
    policy = policy or default_dispatch_policy()

    if not courier.has_location:
        return None

    distance_m = haversine_meters(courier.location, reference)
    active_orders = max(0, courier.active_orders)
    idle_minutes = idle_minutes_since(courier.last_location_at, now)

    proximity = proximity_score(distance_m, policy)
    load = load_score(active_orders, policy)
    idle = idle_score(idle_minutes, policy)
    performance = policy.performance_baseline

    final = (
        proximity * policy.proximity_weight
        + load * policy.load_weight
        + idle * policy.idle_weight
        + performance * policy.performance_weight
    )

    return CourierScore(
        courier_id=courier.id,
        name=courier.name,
        distance_m=distance_m,
        active_orders=active_orders,
        idle_minutes=idle_minutes,
        proximity_score=proximity,
        load_score=load,
        idle_score=idle,
        performance_score=performance,
        final_score=final,
    )


def neutral_score(courier: Courier, policy: Optional[DispatchPolicy] = None) -> CourierScore:
    """
    Score used when nobody has coordinates: availability beats optimality.
    """
    policy = policy or default_dispatch_policy()
    return CourierScore(
        courier_id=courier.id,
        name=courier.name,
        distance_m=0.0,
        active_orders=max(0, courier.active_orders),
        idle_minutes=0.0,
        proximity_score=0.0,
        load_score=100.0,
        idle_score=0.0,
        performance_score=policy.performance_baseline,
        final_score=policy.fallback_score,
    )


def rank_couriers(
    couriers: Sequence[Courier],
    reference: Tuple[float, float],
    now: Optional[datetime] = None,
    policy: Optional[DispatchPolicy] = None,
) -> List[CourierScore]:
    """
    Score every courier with coordinates and sort best first.
    The sort is stable, so ties keep the input order.
    """
    policy = policy or default_dispatch_policy()
    now = now or datetime.now(timezone.utc)

    scored = []
    for courier in couriers:
        score = score_courier(courier, reference, now, policy)
        if score is not None:
            scored.append(score)

    scored.sort(key=lambda s: s.final_score, reverse=True)
    return scored
