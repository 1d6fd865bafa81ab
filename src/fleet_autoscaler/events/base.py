#!/usr/bin/env python3
"""
Base event classes for the autoscaler's decision history
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Set
from dataclasses import dataclass, field
from enum import Enum


class EventType(str, Enum):
    """Event types for the autoscaler"""

    # Alarm Events
    ALARM_ENTERED = "AlarmEntered"
    ALARM_CLEARED = "AlarmCleared"

    # Scaling Events
    SCALING_APPLIED = "ScalingApplied"
    SCALING_SKIPPED_COOLDOWN = "ScalingSkippedCooldown"
    SCALING_SATURATED = "ScalingSaturated"
    SCALE_DOWN_DEFERRED = "ScaleDownDeferred"

    # Provisioning Events
    CONVERGE_FAILED = "ConvergeFailed"

    # State Events
    AUTOSCALER_STARTED = "AutoscalerStarted"
    AUTOSCALER_STOPPED = "AutoscalerStopped"


@dataclass
class Event:
    """Base class for all autoscaler events"""

    event_type: EventType
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    clock_time: float = 0.0
    source: str = "autoscaler"
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "clock_time": self.clock_time,
            "source": self.source,
            "data": self.data,
        }

    def to_json(self) -> str:
        """Convert event to JSON string"""
        return json.dumps(self.to_dict(), default=str)


class EventHandler:
    """Observer of selected event types; handle() returns False on failure"""

    def __init__(self, name: str, event_types: Iterable[EventType] = ()):
        self.name = name
        self.subscribed_events: Set[EventType] = set(event_types)

    def handle(self, event: Event) -> bool:
        raise NotImplementedError("Subclasses must implement handle() method")

    def subscribe(self, event_type: EventType) -> None:
        self.subscribed_events.add(event_type)
