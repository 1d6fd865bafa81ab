#!/usr/bin/env python3
"""
Builders for the events published by the control loop
"""

from typing import List

from ..models.metrics import AlarmTransition, Decision, ScalingDecision
from .base import Event, EventType

_DECISION_EVENTS = {
    Decision.APPLIED: EventType.SCALING_APPLIED,
    Decision.SKIPPED_COOLDOWN: EventType.SCALING_SKIPPED_COOLDOWN,
    Decision.SATURATED: EventType.SCALING_SATURATED,
}


def alarm_event(view, transition: AlarmTransition, clock_time: float) -> Event:
    """Event for an alarm edge; only called for ENTERED_ALARM and CLEARED"""
    if transition == AlarmTransition.ENTERED_ALARM:
        event_type = EventType.ALARM_ENTERED
    elif transition == AlarmTransition.CLEARED:
        event_type = EventType.ALARM_CLEARED
    else:
        raise ValueError(f"No event for transition {transition.value}")

    return Event(
        event_type=event_type,
        clock_time=clock_time,
        data={
            "alarm": view.name,
            "threshold": view.threshold,
            "consecutive_breaches": view.consecutive_breaches,
            "recent_aggregates": list(view.recent_aggregates),
        },
    )


def decision_event(decision: ScalingDecision) -> Event:
    return Event(
        event_type=_DECISION_EVENTS[decision.decision],
        clock_time=decision.timestamp,
        data=decision.model_dump(mode="json"),
    )


def deferred_event(triggers: List[str], clock_time: float) -> Event:
    return Event(
        event_type=EventType.SCALE_DOWN_DEFERRED,
        clock_time=clock_time,
        data={"triggered_by": list(triggers)},
    )


def converge_failed_event(desired: int, error: str, clock_time: float) -> Event:
    return Event(
        event_type=EventType.CONVERGE_FAILED,
        clock_time=clock_time,
        data={"desired": desired, "error": error},
    )
