"""
Error taxonomy for the dispatch engine.

NotFound and NoCourierAvailable are returned to callers. ProviderUnavailable is
absorbed (fallback or skip) and TenantMismatch is logged and the record skipped;
neither may abort a scheduler tick.
"""


class DispatchError(Exception):
    """Base class for every dispatch engine error."""
    pass


class NotFound(DispatchError):
    """Order, courier or tenant missing within the tenant scope. Not retried."""

    def __init__(self, kind: str, entity_id: str, tenant_id: str):
        super().__init__(f"{kind} {entity_id} not found for tenant {tenant_id}")
        self.kind = kind
        self.entity_id = entity_id
        self.tenant_id = tenant_id


class NoCourierAvailable(DispatchError):
    """Soft failure: nobody can take the order right now. Callers may retry later."""

    def __init__(self, tenant_id: str, order_id: str):
        super().__init__(f"No courier available for order {order_id} (tenant {tenant_id})")
        self.tenant_id = tenant_id
        self.order_id = order_id


class ProviderUnavailable(DispatchError):
    """External geocode / route / notification failure."""
    pass


class TenantMismatch(DispatchError):
    """A record surfaced under the wrong tenant. Security relevant."""

    def __init__(self, expected_tenant_id: str, actual_tenant_id: str, entity_id: str):
        super().__init__(
            f"Record {entity_id} belongs to tenant {actual_tenant_id}, expected {expected_tenant_id}"
        )
        self.expected_tenant_id = expected_tenant_id
        self.actual_tenant_id = actual_tenant_id
        self.entity_id = entity_id
