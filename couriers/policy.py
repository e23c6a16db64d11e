"""
Purpose: Central configuration for courier scoring and dispatch.
What it does:

Stores all tunable weights/caps used to rank couriers:

WEIGHTS = proximity 0.40, load 0.30, idle 0.20, performance 0.10
PROXIMITY_CAP_M = 10000
LOAD_CAP = 5
IDLE_TARGET_MINUTES = 30

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for courier selection.
    """

    # --- Weights (must add up to 1.0) ---
    proximity_weight: float = 0.40
    load_weight: float = 0.30
    idle_weight: float = 0.20
    performance_weight: float = 0.10

    # --- Sub-score normalisation ---
    # Distance at which the proximity score reaches 0.
    proximity_cap_m: float = 10_000.0

    # Active orders at which the load score reaches 0.
    load_cap: int = 5

    # Minutes since last location update at which the idle score saturates at 100.
    idle_target_minutes: float = 30.0

    # Placeholder until historical delivery performance is available.
    performance_baseline: float = 80.0

    # --- Degraded selection ---
    # Score reported when no available courier has coordinates and the first
    # available courier is picked instead.
    fallback_score: float = 50.0

    # --- Audit ---
    # How many ranked candidates are kept in each decision log entry.
    audit_top_n: int = 5

    # Used when a tenant has no address (or it cannot be geocoded).
    default_pickup_location: Tuple[float, float] = (-23.5505, -46.6333)

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        total = self.proximity_weight + self.load_weight + self.idle_weight + self.performance_weight
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"score weights must add up to 1.0 (got {total})")

        if self.proximity_cap_m <= 0:
            raise ValueError("proximity_cap_m must be > 0")

        if self.load_cap <= 0:
            raise ValueError("load_cap must be > 0")

        if self.idle_target_minutes <= 0:
            raise ValueError("idle_target_minutes must be > 0")

        if self.audit_top_n <= 0:
            raise ValueError("audit_top_n must be > 0")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p
