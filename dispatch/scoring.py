#Purpose: Ranking/selection model (the "who is best" layer).
#Takes the tenant's rule-qualified couriers + a reference point (pickup)
#Produces:
#the best courier (or none)
#the full ranked list, of which the top N is written to the decision log
#Deterministic: same couriers, same reference and same `now` give the same ranking.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from couriers.models import CourierStatus
from couriers.policy import DispatchPolicy, default_dispatch_policy
from couriers.selection import CourierScore, neutral_score, rank_couriers
from routing.maps_client import MapsClient
from routing.route_service import geocode_address
from .candidate_filter import build_base_candidates
from .decision_log import KIND_SELECTION, DecisionLogEntry, record_decision
from .errors import NotFound

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class Selection:
    best: Optional[CourierScore]
    candidates: List[CourierScore] = field(default_factory=list)
    degraded: bool = False  # True when nobody had coordinates


def resolve_pickup_location(store, maps: MapsClient, tenant_id: str, policy: DispatchPolicy) -> LatLon:
    """
    The tenant's pickup point: cached value, else the geocoded tenant address
    (cached for next time), else the policy default.
    """
    tenant = store.get_tenant(tenant_id)
    if tenant is None:
        raise NotFound("tenant", tenant_id, tenant_id)

    if tenant.pickup_location:
        return tenant.pickup_location

    if tenant.address:
        result = geocode_address(tenant.address, maps)
        if result is not None:
            if not result.approximate:
                store.update_tenant(tenant_id, pickup_location=result.location)
            return result.location

    return policy.default_pickup_location


class DispatchScorer:
    """
    Ranks a tenant's available couriers for one order.
    Read-only apart from the decision log entry it writes on every call.
    """
    def __init__(self, store, maps: Optional[MapsClient] = None, policy: Optional[DispatchPolicy] = None):
        self.store = store
        self.maps = maps or MapsClient()
        self.policy = policy or default_dispatch_policy()

    def select(
        self,
        tenant_id: str,
        reference: Optional[LatLon] = None,
        *,
        order_id: Optional[str] = None,
        exclude_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> Selection:
        now = now or datetime.now(timezone.utc)

        couriers = self.store.list_couriers(tenant_id, statuses=[CourierStatus.AVAILABLE])
        eligible = build_base_candidates(tenant_id, couriers, exclude_ids)

        if not eligible:
            self._log(tenant_id, order_id, None, [], "No available courier found")
            return Selection(best=None)

        if reference is None:
            reference = resolve_pickup_location(self.store, self.maps, tenant_id, self.policy)

        ranked = rank_couriers(eligible, reference, now, self.policy)

        if not ranked:
            fallback = neutral_score(eligible[0], self.policy)
            self._log(
                tenant_id, order_id, fallback.courier_id, [fallback],
                "No courier with a valid location, selecting the first available",
            )
            return Selection(best=fallback, candidates=[fallback], degraded=True)

        best = ranked[0]
        self._log(
            tenant_id, order_id, best.courier_id, ranked,
            f"Courier {best.name} selected with score {best.final_score:.2f}",
            details={
                "proximity_score": round(best.proximity_score, 2),
                "load_score": round(best.load_score, 2),
                "idle_score": round(best.idle_score, 2),
                "performance_score": round(best.performance_score, 2),
                "distance_m": round(best.distance_m),
                "active_orders": best.active_orders,
            },
        )
        return Selection(best=best, candidates=ranked)

    def _log(self, tenant_id, order_id, courier_id, ranked, rationale, details=None) -> None:
        record_decision(self.store, DecisionLogEntry(
            tenant_id=tenant_id,
            kind=KIND_SELECTION,
            order_id=order_id,
            courier_id=courier_id,
            candidates=tuple(score.summary() for score in ranked[: self.policy.audit_top_n]),
            rationale=rationale,
            details=details or {},
        ))
