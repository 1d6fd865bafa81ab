#!/usr/bin/env python3
"""
Event handlers attached to the autoscaler's event bus
"""

import logging

from prometheus_client import Counter

from .base import Event, EventHandler, EventType

logger = logging.getLogger(__name__)

SCALING_DECISIONS = Counter(
    'fleet_autoscaler_scaling_decisions_total',
    'Scaling policy firings by outcome',
    ['policy', 'decision']
)
ALARM_TRANSITIONS = Counter(
    'fleet_autoscaler_alarm_transitions_total',
    'Alarm rising and falling edges',
    ['alarm', 'transition']
)
CONVERGE_FAILURES = Counter('fleet_autoscaler_converge_failures_total', 'Failed convergence requests')
DEFERRED_SCALE_DOWNS = Counter(
    'fleet_autoscaler_deferred_scale_downs_total',
    'Scale-down requests postponed by a scale-up in the same tick'
)

_DECISION_EVENTS = (
    EventType.SCALING_APPLIED,
    EventType.SCALING_SKIPPED_COOLDOWN,
    EventType.SCALING_SATURATED,
)


class MetricsEventHandler(EventHandler):
    """Turns alarm, decision and provisioning events into Prometheus counters"""

    def __init__(self):
        super().__init__("MetricsEventHandler", _DECISION_EVENTS + (
            EventType.ALARM_ENTERED,
            EventType.ALARM_CLEARED,
            EventType.SCALE_DOWN_DEFERRED,
            EventType.CONVERGE_FAILED,
        ))

    def handle(self, event: Event) -> bool:
        if event.event_type in _DECISION_EVENTS:
            SCALING_DECISIONS.labels(
                policy=event.data.get("policy", "unknown"),
                decision=event.data.get("decision", "unknown"),
            ).inc()
        elif event.event_type in (EventType.ALARM_ENTERED, EventType.ALARM_CLEARED):
            transition = "entered" if event.event_type == EventType.ALARM_ENTERED else "cleared"
            ALARM_TRANSITIONS.labels(alarm=event.data.get("alarm", "unknown"), transition=transition).inc()
        elif event.event_type == EventType.SCALE_DOWN_DEFERRED:
            DEFERRED_SCALE_DOWNS.inc()
        elif event.event_type == EventType.CONVERGE_FAILED:
            CONVERGE_FAILURES.inc()
        else:
            logger.warning(f"{self.name} got unsubscribed event {event.event_type.value}")
            return False
        return True
