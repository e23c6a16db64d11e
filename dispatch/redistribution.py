"""
Purpose: Move every in-flight order off a courier that became unavailable.
What it does:
- Marks the courier UNAVAILABLE
- Reverts each of its DISPATCHED orders to READY (courier, dispatch time and
  ETA cleared, counter decremented atomically)
- Re-dispatches each order on its own, excluding that courier
- Reports per order: reassigned (to whom) or stranded (why). No order is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from couriers.models import CourierStatus
from events.bus import CourierDeactivated
from orders.models import OrderStatus
from .decision_log import KIND_REDISTRIBUTION, DecisionLogEntry, record_decision
from .dispatcher import Dispatcher, release_courier
from .errors import DispatchError, NotFound
from .state_machines.courier_state import CourierStateException
from .state_machines.order_state import OrderStateException, revert_to_ready_changes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedistributionOutcome:
    order_id: str
    reassigned_to: Optional[str] = None
    reason: Optional[str] = None

    @property
    def stranded(self) -> bool:
        return self.reassigned_to is None


@dataclass
class RedistributionReport:
    tenant_id: str
    courier_id: str
    outcomes: List[RedistributionOutcome] = field(default_factory=list)

    @property
    def reassigned(self) -> List[RedistributionOutcome]:
        return [o for o in self.outcomes if not o.stranded]

    @property
    def stranded(self) -> List[RedistributionOutcome]:
        return [o for o in self.outcomes if o.stranded]

    @property
    def success(self) -> bool:
        return not self.stranded


class Redistributor:
    def __init__(self, store, dispatcher: Dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    def redistribute(self, tenant_id: str, courier_id: str, *, now: Optional[datetime] = None) -> RedistributionReport:
        now = now or datetime.now(timezone.utc)

        courier = self.store.get_courier(tenant_id, courier_id)
        if courier is None:
            raise NotFound("courier", courier_id, tenant_id)

        self.store.update_courier(tenant_id, courier_id, status=CourierStatus.UNAVAILABLE)

        held = self.store.list_orders(tenant_id, statuses=[OrderStatus.DISPATCHED], courier_id=courier_id)
        report = RedistributionReport(tenant_id=tenant_id, courier_id=courier_id)

        for order in held:
            report.outcomes.append(self._move_order(tenant_id, courier_id, order.id, now))

        record_decision(self.store, DecisionLogEntry(
            tenant_id=tenant_id,
            kind=KIND_REDISTRIBUTION,
            courier_id=courier_id,
            rationale=(
                f"Redistributed {len(held)} orders of courier {courier_id}"
                if held else "No pending orders to redistribute"
            ),
            details={
                "total_orders": len(held),
                "reassigned": [o.order_id for o in report.reassigned],
                "stranded": {o.order_id: o.reason for o in report.stranded},
            },
        ))

        if report.stranded:
            logger.warning(
                f"[{tenant_id}] {len(report.stranded)} orders stranded after courier {courier_id} became unavailable"
            )
        return report

    def _move_order(self, tenant_id: str, courier_id: str, order_id: str, now: datetime) -> RedistributionOutcome:
        with self.store.transaction():
            order = self.store.get_order(tenant_id, order_id)
            # Delivered or reassigned while we were iterating: nothing to move.
            if order is None or order.courier_id != courier_id or order.status != OrderStatus.DISPATCHED:
                return RedistributionOutcome(order_id=order_id, reason="order no longer held by courier")

            self.store.update_order(tenant_id, order_id, **revert_to_ready_changes(now))
            release_courier(self.store, tenant_id, courier_id)

        # The chosen courier can drop out or the order can move between selection and commit.
        try:
            result = self.dispatcher.dispatch(tenant_id, order_id, exclude_ids=[courier_id], now=now)
        except (DispatchError, OrderStateException, CourierStateException) as e:
            logger.info(f"[{tenant_id}] Order {order_id} stranded: {e}")
            return RedistributionOutcome(order_id=order_id, reason=str(e))

        return RedistributionOutcome(order_id=order_id, reassigned_to=result.courier_id)

    def handle_courier_deactivated(self, event: CourierDeactivated) -> RedistributionReport:
        return self.redistribute(event.tenant_id, event.courier_id)
