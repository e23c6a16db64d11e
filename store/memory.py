"""
Purpose: Tenant-scoped record store used by every dispatch and tracking service.
What it does:
- Owns tenants, orders, couriers and the append-only logs
  (dispatch decisions, fleet alerts, notification attempts)
- Every read/write takes an explicit tenant_id. A record outside the tenant
  is treated as missing.
- Hands out copies, never live references, so callers cannot mutate state
  behind the store's back.

Provides the atomic operations the engine relies on:
   - adjust_active_orders(tenant_id, courier_id, delta)  (atomic increment/decrement)
   - claim_alert(tenant_id, order_id, alert)             (one-shot compare-and-set on the current leg)
   - transaction()                                       (groups read-check-write)

Rule: Store owns persistence and atomicity; services own business rules.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from couriers.models import Courier, CourierStatus
from orders.models import ALERT_FLAGS, Order, OrderStatus, utcnow
from .models import FleetAlert, NotificationLogEntry, Tenant

Key = Tuple[str, str]  # (tenant_id, entity_id)


@dataclass
class InMemoryStore:
    """
    In-memory stand-in for the relational store.

    A single re-entrant lock makes each method atomic; `transaction()` holds
    the same lock across several calls.
    """
    _tenants: Dict[str, Tenant] = field(default_factory=dict)
    _orders: Dict[Key, Order] = field(default_factory=dict)
    _couriers: Dict[Key, Courier] = field(default_factory=dict)

    _decisions: List[object] = field(default_factory=list)
    _fleet_alerts: List[FleetAlert] = field(default_factory=list)
    _notification_logs: List[NotificationLogEntry] = field(default_factory=list)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        with self._lock:
            yield self

    # --- Tenants ---

    def add_tenant(self, tenant: Tenant) -> Tenant:
        with self._lock:
            self._tenants[tenant.id] = tenant
            return tenant

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        with self._lock:
            return self._tenants.get(tenant_id)

    def list_tenants(self) -> List[Tenant]:
        with self._lock:
            return list(self._tenants.values())

    def update_tenant(self, tenant_id: str, **changes) -> Optional[Tenant]:
        with self._lock:
            tenant = self._tenants.get(tenant_id)
            if tenant is None:
                return None
            tenant = replace(tenant, **changes)
            self._tenants[tenant_id] = tenant
            return tenant

    # --- Orders ---

    def add_order(self, order: Order) -> Order:
        with self._lock:
            self._orders[(order.tenant_id, order.id)] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def get_order(self, tenant_id: str, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get((tenant_id, order_id))
            return copy.deepcopy(order) if order else None

    def list_orders(
        self,
        tenant_id: str,
        *,
        statuses: Optional[Iterable[OrderStatus]] = None,
        courier_id: Optional[str] = None,
    ) -> List[Order]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            result = []
            for (owner, _), order in self._orders.items():
                if owner != tenant_id:
                    continue
                if wanted is not None and order.status not in wanted:
                    continue
                if courier_id is not None and order.courier_id != courier_id:
                    continue
                result.append(copy.deepcopy(order))
            return result

    def update_order(self, tenant_id: str, order_id: str, **changes) -> Optional[Order]:
        with self._lock:
            key = (tenant_id, order_id)
            order = self._orders.get(key)
            if order is None:
                return None
            changes.setdefault("updated_at", utcnow())
            order = replace(order, **changes)
            self._orders[key] = order
            return copy.deepcopy(order)

    def claim_alert(self, tenant_id: str, order_id: str, alert: str, *,
                    courier_id: Optional[str] = None, dispatched_at: Optional[datetime] = None) -> bool:
        """
        Flip the one-shot flag for `alert` from False to True.
        Returns True only for the caller that performed the flip.

        The order must still be DISPATCHED. When given, courier_id and
        dispatched_at must match the delivery leg the caller looked at.
        """
        flag = ALERT_FLAGS[alert]
        with self._lock:
            key = (tenant_id, order_id)
            order = self._orders.get(key)
            if order is None or order.status != OrderStatus.DISPATCHED or getattr(order, flag):
                return False
            if courier_id is not None and order.courier_id != courier_id:
                return False
            if dispatched_at is not None and order.dispatched_at != dispatched_at:
                return False
            self._orders[key] = replace(order, **{flag: True, "updated_at": utcnow()})
            return True

    # --- Couriers ---

    def add_courier(self, courier: Courier) -> Courier:
        with self._lock:
            self._couriers[(courier.tenant_id, courier.id)] = courier
            return courier

    def get_courier(self, tenant_id: str, courier_id: str) -> Optional[Courier]:
        with self._lock:
            return self._couriers.get((tenant_id, courier_id))

    def list_couriers(
        self,
        tenant_id: str,
        *,
        statuses: Optional[Iterable[CourierStatus]] = None,
    ) -> List[Courier]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                courier
                for (owner, _), courier in self._couriers.items()
                if owner == tenant_id and (wanted is None or courier.status in wanted)
            ]

    def update_courier(self, tenant_id: str, courier_id: str, **changes) -> Optional[Courier]:
        if "active_orders" in changes:
            raise ValueError("active_orders is only changed through adjust_active_orders")
        with self._lock:
            key = (tenant_id, courier_id)
            courier = self._couriers.get(key)
            if courier is None:
                return None
            courier = replace(courier, **changes)
            self._couriers[key] = courier
            return courier

    def adjust_active_orders(
        self,
        tenant_id: str,
        courier_id: str,
        delta: int,
        *,
        status: Optional[CourierStatus] = None,
    ) -> Optional[Courier]:
        """
        Atomic increment/decrement of the active-order counter, floored at 0,
        optionally setting the status in the same step.
        """
        with self._lock:
            key = (tenant_id, courier_id)
            courier = self._couriers.get(key)
            if courier is None:
                return None
            changes = {"active_orders": max(0, courier.active_orders + delta)}
            if status is not None:
                changes["status"] = status
            courier = replace(courier, **changes)
            self._couriers[key] = courier
            return courier

    # --- Append-only logs ---

    def add_decision(self, entry) -> None:
        with self._lock:
            self._decisions.append(entry)

    def list_decisions(self, tenant_id: str, kind: Optional[str] = None) -> List[object]:
        with self._lock:
            return [
                entry for entry in self._decisions
                if entry.tenant_id == tenant_id and (kind is None or entry.kind == kind)
            ]

    def add_fleet_alert(self, alert: FleetAlert) -> None:
        with self._lock:
            self._fleet_alerts.append(alert)

    def list_fleet_alerts(self, tenant_id: str) -> List[FleetAlert]:
        with self._lock:
            return [alert for alert in self._fleet_alerts if alert.tenant_id == tenant_id]

    def add_notification_log(self, entry: NotificationLogEntry) -> None:
        with self._lock:
            self._notification_logs.append(entry)

    def list_notification_logs(self, tenant_id: str) -> List[NotificationLogEntry]:
        with self._lock:
            return [entry for entry in self._notification_logs if entry.tenant_id == tenant_id]
