#Purpose: Audit trail for dispatch decisions (the "why this courier" layer).
#Every scoring run, assignment and redistribution writes exactly one entry.
#Entries are immutable once written; they feed the redistribution quality loop
#and the dispatch metrics below.

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

KIND_SELECTION = "selection"
KIND_ASSIGNMENT = "assignment"
KIND_REDISTRIBUTION = "redistribution"


@dataclass(frozen=True)
class DecisionLogEntry:
    tenant_id: str
    kind: str
    rationale: str
    order_id: Optional[str] = None
    courier_id: Optional[str] = None
    candidates: Tuple[Dict[str, Any], ...] = ()
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def record_decision(store, entry: DecisionLogEntry) -> DecisionLogEntry:
    store.add_decision(entry)
    logger.info(f"[{entry.tenant_id}] {entry.kind}: {entry.rationale}")
    return entry


@dataclass(frozen=True)
class DispatchMetrics:
    total_dispatches: int
    success_rate: float
    most_used_couriers: List[Dict[str, Any]]


def dispatch_metrics(store, tenant_id: str, limit: int = 100, top_n: int = 5) -> DispatchMetrics:
    """
    Summary of the most recent assignment decisions for a tenant.
    success_rate compares assignments with selection attempts over the same window.
    """
    assignments = sorted(
        store.list_decisions(tenant_id, KIND_ASSIGNMENT),
        key=lambda e: e.created_at,
        reverse=True,
    )[:limit]
    selections = sorted(
        store.list_decisions(tenant_id, KIND_SELECTION),
        key=lambda e: e.created_at,
        reverse=True,
    )[:limit]

    per_courier: Counter = Counter()
    names: Dict[str, str] = {}
    for entry in assignments:
        if entry.courier_id:
            per_courier[entry.courier_id] += 1
            names.setdefault(entry.courier_id, entry.details.get("courier_name", "unknown"))

    success_rate = 0.0
    if selections:
        success_rate = round(min(1.0, len(assignments) / len(selections)) * 100, 2)

    return DispatchMetrics(
        total_dispatches=len(assignments),
        success_rate=success_rate,
        most_used_couriers=[
            {"courier_id": courier_id, "name": names[courier_id], "deliveries": count}
            for courier_id, count in per_courier.most_common(top_n)
        ],
    )
