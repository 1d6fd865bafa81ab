"""
Models package for autoscaler data structures
"""

from .metrics import (
    SignalKind,
    Direction,
    Statistic,
    AlarmStatus,
    AlarmTransition,
    Decision,
    UtilizationSample,
    AlarmSpec,
    FleetCapacity,
    ScalingDecision,
    AlarmStatusView,
    PolicyStatusView,
    AutoscalerStatus,
    HealthStatus,
)

__all__ = [
    "SignalKind",
    "Direction",
    "Statistic",
    "AlarmStatus",
    "AlarmTransition",
    "Decision",
    "UtilizationSample",
    "AlarmSpec",
    "FleetCapacity",
    "ScalingDecision",
    "AlarmStatusView",
    "PolicyStatusView",
    "AutoscalerStatus",
    "HealthStatus",
]
