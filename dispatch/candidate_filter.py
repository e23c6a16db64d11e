#Purpose: Non-routing hard eligibility filtering (rule gates).
#Builds the base candidate set before scoring.
#Typical responsibilities:
#status must be available
#tenant scope (a courier of another tenant is never a candidate)
#explicit exclusions (e.g. the courier whose orders are being redistributed)

#Output: "rule-qualified couriers" (still not ranked), in store order.

import logging
from typing import Iterable, List, Optional

from couriers.models import Courier, CourierStatus
from dispatch.errors import TenantMismatch

logger = logging.getLogger(__name__)


def check_tenant(tenant_id: str, record_tenant_id: str, record_id: str) -> None:
    """Raise TenantMismatch if a record surfaced under the wrong tenant."""
    if record_tenant_id != tenant_id:
        raise TenantMismatch(tenant_id, record_tenant_id, record_id)


def build_base_candidates(
    tenant_id: str,
    couriers: Iterable[Courier],
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[Courier]:
    excluded = set(exclude_ids or ())
    candidates = []

    for courier in couriers:
        try:
            check_tenant(tenant_id, courier.tenant_id, courier.id)
        except TenantMismatch as e:
            logger.error(f"SECURITY: {e}")
            continue

        if courier.status != CourierStatus.AVAILABLE:
            continue

        if courier.id in excluded:
            continue

        candidates.append(courier)

    return candidates
