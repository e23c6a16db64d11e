"""
Purpose: Relay lifecycle events to the live-update transport (dashboards,
tracking page). The transport itself is external; it is injected as a
`publish(tenant_id, message)` callable.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

Publisher = Callable[[str, Dict[str, Any]], None]


def event_message(event) -> Dict[str, Any]:
    """Serialise an event dataclass into the JSON-friendly message sent to clients."""
    data = {}
    for f in dataclasses.fields(event):
        value = getattr(event, f.name)
        data[f.name] = value.isoformat() if isinstance(value, datetime) else value
    return {"type": event.topic, "data": data}


class LiveUpdateRelay:
    def __init__(self, publish: Publisher):
        self.publish = publish

    def __call__(self, event) -> None:
        self.publish(event.tenant_id, event_message(event))
