#!/usr/bin/env python3
"""
Events module for the autoscaler decision history
"""

from .base import Event, EventType, EventHandler
from .core_events import alarm_event, decision_event, deferred_event, converge_failed_event
from .event_bus import EventBus
from .handlers import MetricsEventHandler

__all__ = [
    "Event",
    "EventType",
    "EventHandler",
    "alarm_event",
    "decision_event",
    "deferred_event",
    "converge_failed_event",
    "EventBus",
    "MetricsEventHandler",
]
