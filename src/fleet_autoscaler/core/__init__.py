"""
Core autoscaler modules
"""

from .alarms import AlarmBank, AlarmEvaluator
from .autoscaler import FleetAutoscaler
from .clock import Clock, ManualClock, SystemClock
from .fleet import CapacityInvariantError, FleetController
from .metrics import InMemoryMetricSource, MetricSource, PrometheusMetricSource
from .provisioning import DryRunProvisioner, Provisioner, ProvisioningError, WebhookProvisioner
from .reconciliation import Reconciler, TickBarrier
from .scaling import PolicySet, ScalingPolicy

__all__ = [
    "AlarmBank",
    "AlarmEvaluator",
    "FleetAutoscaler",
    "Clock",
    "ManualClock",
    "SystemClock",
    "CapacityInvariantError",
    "FleetController",
    "InMemoryMetricSource",
    "MetricSource",
    "PrometheusMetricSource",
    "DryRunProvisioner",
    "Provisioner",
    "ProvisioningError",
    "WebhookProvisioner",
    "Reconciler",
    "TickBarrier",
    "PolicySet",
    "ScalingPolicy",
]
