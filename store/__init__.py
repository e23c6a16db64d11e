from .memory import InMemoryStore
from .models import Tenant, FleetAlert, NotificationLogEntry

__all__ = ["InMemoryStore", "Tenant", "FleetAlert", "NotificationLogEntry"]
