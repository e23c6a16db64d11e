"""
Purpose: Central configuration for in-transit tracking jobs.
What it does:

Stores all tunable intervals/thresholds used while couriers are on the road:

ETA_INTERVAL_SECONDS = 300
ALERT_INTERVAL_SECONDS = 60
ETA_CHANGE_THRESHOLD_MINUTES = 2
ALERT_LEAD_MINUTES = 10
ARRIVAL_GEOFENCE_M = 50
OFF_ROUTE_TOLERANCE_M = 200

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TrackingPolicy:
    """
    Central configuration for the ETA and arrival alert jobs.
    """

    # --- Scheduling ---
    eta_interval_seconds: float = 300.0
    alert_interval_seconds: float = 60.0

    # Per-order work inside one tick runs on this many threads.
    # Keep it at or below the store's connection capacity.
    max_workers: int = 4

    # --- ETA recalculation ---
    # Customers are told about an ETA change only when it moves at least this much.
    eta_change_threshold_minutes: int = 2
    off_route_tolerance_m: float = 200.0

    # --- Arrival alerts ---
    # "Your order is about N minutes away" fires at eta_computed_at + eta - lead.
    alert_lead_minutes: int = 10
    arrival_geofence_m: float = 50.0

    # Hash-derived development coordinates are not real places; the
    # "arriving now" geofence ignores them unless this is switched on.
    trust_approximate_destinations: bool = False

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.eta_interval_seconds <= 0 or self.alert_interval_seconds <= 0:
            raise ValueError("job intervals must be > 0")

        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        if self.eta_change_threshold_minutes < 0:
            raise ValueError("eta_change_threshold_minutes must be >= 0")

        if self.off_route_tolerance_m <= 0 or self.arrival_geofence_m <= 0:
            raise ValueError("distances must be > 0")

        if self.alert_lead_minutes < 0:
            raise ValueError("alert_lead_minutes must be >= 0")


def default_tracking_policy() -> TrackingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = TrackingPolicy()
    p.validate()
    return p
