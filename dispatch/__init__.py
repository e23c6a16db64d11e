#Expose the high-level pipeline pieces:
#Candidate filtering (hard rules)
#Scoring / ranking
#Dispatcher orchestrator (the "one call" entry point)
#Redistribution when a courier drops out

from .errors import DispatchError, NotFound, NoCourierAvailable, ProviderUnavailable, TenantMismatch
from .candidate_filter import build_base_candidates
from .scoring import DispatchScorer, Selection
from .dispatcher import Dispatcher, AssignmentResult #the main class to call to dispatch an order to a courier
from .redistribution import Redistributor, RedistributionReport

__all__ = [
    "DispatchError",
    "NotFound",
    "NoCourierAvailable",
    "ProviderUnavailable",
    "TenantMismatch",
    "build_base_candidates",
    "DispatchScorer",
    "Selection",
    "Dispatcher",
    "AssignmentResult",
    "Redistributor",
    "RedistributionReport",
]
