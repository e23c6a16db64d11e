from .policy import TrackingPolicy, default_tracking_policy
from .scheduler import PeriodicJob, run_units
from .eta_recalculation import EtaRecalculationJob, CycleReport
from .arrival_alerts import ArrivalAlertJob, AlertCycleReport, alert_instant, is_alert_due

__all__ = [
    "TrackingPolicy",
    "default_tracking_policy",
    "PeriodicJob",
    "run_units",
    "EtaRecalculationJob",
    "CycleReport",
    "ArrivalAlertJob",
    "AlertCycleReport",
    "alert_instant",
    "is_alert_due",
]
