"""
Purpose: Outbound customer notification channel (per-tenant webhook).
What it does:
- POSTs JSON to <tenant webhook url>/<endpoint> with the tenant bearer token
- Bounded timeout on every call
- Writes a NotificationLogEntry for every attempt: sent, HTTP error or
  transport error
- Never raises on delivery failure; the caller gets a NotificationResult

Rule: Notification is best-effort. The state change it describes (ETA, alert
flag) is the source of truth and is never rolled back here.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

from dispatch.errors import NotFound, ProviderUnavailable
from store.models import NOTIFICATION_ERROR, NOTIFICATION_SENT, NotificationLogEntry

load_dotenv()
TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    status_code: Optional[int] = None
    data: Optional[Any] = None
    error: Optional[str] = None


class WebhookChannel:
    def __init__(self, store, session=None, timeout: Optional[float] = None):
        self.store = store
        self.session = session or requests.Session()
        self.timeout = TIMEOUT_SECONDS if timeout is None else timeout

    def is_configured(self, tenant_id: str) -> bool:
        tenant = self.store.get_tenant(tenant_id)
        return bool(tenant and tenant.notifications_configured)

    def send(self, tenant_id: str, endpoint: str, payload: Dict[str, Any]) -> NotificationResult:
        try:
            return self._post(tenant_id, endpoint, payload)
        except (NotFound, ProviderUnavailable) as e:
            logger.error(f"[{tenant_id}] Notification {endpoint} failed: {e}")
            self._log(tenant_id, endpoint, payload, NOTIFICATION_ERROR, error=str(e))
            return NotificationResult(success=False, error=str(e))

    def _post(self, tenant_id: str, endpoint: str, payload: Dict[str, Any]) -> NotificationResult:
        tenant = self.store.get_tenant(tenant_id)
        if tenant is None:
            raise NotFound("tenant", tenant_id, tenant_id)
        if not tenant.notifications_configured:
            raise ProviderUnavailable("Tenant has no notification webhook configured")

        url = f"{tenant.webhook_url.rstrip('/')}/{endpoint.lstrip('/')}"
        body = {
            "tenantId": tenant_id,
            "tenantName": tenant.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }

        try:
            response = self.session.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {tenant.webhook_token}",
                    "X-Tenant-ID": tenant_id,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderUnavailable(f"Webhook request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if not response.ok:
            error = f"HTTP {response.status_code}"
            logger.warning(f"[{tenant_id}] Notification {endpoint} rejected: {error}")
            self._log(tenant_id, url, payload, NOTIFICATION_ERROR, data, error, response.status_code)
            return NotificationResult(success=False, status_code=response.status_code, data=data, error=error)

        self._log(tenant_id, url, payload, NOTIFICATION_SENT, data, status_code=response.status_code)
        return NotificationResult(success=True, status_code=response.status_code, data=data)

    def _log(self, tenant_id, endpoint, payload, status, response=None, error=None, status_code=None) -> None:
        self.store.add_notification_log(NotificationLogEntry(
            tenant_id=tenant_id,
            endpoint=endpoint,
            payload=payload,
            status=status,
            response=response,
            error=error,
            status_code=status_code,
        ))
