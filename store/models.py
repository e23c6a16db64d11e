"""
Purpose: Records that belong to the surrounding platform but that the engine
reads or writes: tenants, fleet alerts and the outbound notification log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

LatLon = Tuple[float, float]

SEVERITY_INFO = "info"
SEVERITY_WARN = "warn"
SEVERITY_CRITICAL = "critical"

NOTIFICATION_SENT = "sent"
NOTIFICATION_ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Tenant:
    """
    An isolated pizzeria / franchise account.

    pickup_location is the cached geocode of `address`. The notification
    channel is considered configured only when both webhook_url and
    webhook_token are present.
    """
    id: str
    name: str
    address: Optional[str] = None
    pickup_location: Optional[LatLon] = None
    webhook_url: Optional[str] = None
    webhook_token: Optional[str] = None

    @property
    def notifications_configured(self) -> bool:
        return bool(self.webhook_url and self.webhook_token)


@dataclass(frozen=True)
class FleetAlert:
    tenant_id: str
    kind: str
    severity: str
    message: str
    meta: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class NotificationLogEntry:
    """One outbound notification attempt, whatever its outcome."""
    tenant_id: str
    endpoint: str
    payload: Dict[str, Any]
    status: str
    response: Optional[Any] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)
