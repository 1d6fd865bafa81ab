#!/usr/bin/env python3
"""
Per-tick reconciliation of alarm transitions into scaling policy firings

CPU and memory alarms of the same direction share one policy. All four
transitions of a tick are collected first (the tick barrier), then:

- rising edges of the same direction are coalesced into one firing;
- Up is handled before Down; a scale-down requested in a tick that also
  requested a scale-up is deferred to the next tick without a scale-up
  request, and dropped if no Down alarm is still in ALARM by then.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

from ..models.metrics import AlarmTransition, Direction, ScalingDecision
from .alarms import AlarmBank, AlarmKey
from .fleet import FleetController
from .scaling import PolicySet

logger = logging.getLogger(__name__)


class TickBarrier:
    """
    One slot per (signal, direction); collect() blocks until every slot of
    the current tick has been filled by its poller

    Slots are only accepted for the open tick. Once a tick is collected or
    closed, fills carrying its id are discarded, so a poller that outlives
    its tick can neither evaluate alarms nor leak into the next tick.
    """

    def __init__(self, keys: Iterable[AlarmKey]):
        self.keys = list(keys)
        self.discarded = 0
        self._tick_id = 0
        self._open: Optional[int] = None
        self._slots: Dict[AlarmKey, AlarmTransition] = {}
        self._condition = threading.Condition()

    def begin(self) -> int:
        """Open a new tick, dropping whatever an unfinished one left behind"""
        with self._condition:
            self._tick_id += 1
            self._open = self._tick_id
            self._slots.clear()
            return self._tick_id

    def fill(self, tick_id: int, produce: Callable[[], Dict[AlarmKey, AlarmTransition]]) -> bool:
        """
        Run `produce` and store its transitions, atomically with respect to
        collect() and close()

        Returns:
            False (without calling `produce`) when `tick_id` is no longer open
        """
        with self._condition:
            if tick_id != self._open:
                self.discarded += 1
                return False

            transitions = produce()
            for key in transitions:
                if key not in self.keys:
                    raise KeyError(f"Unknown alarm slot: {key}")
                if key in self._slots:
                    raise RuntimeError(f"Slot {key[0].value}-{key[1].value} already filled for tick {tick_id}")
            self._slots.update(transitions)
            self._condition.notify_all()
            return True

    def submit(self, tick_id: int, key: AlarmKey, transition: AlarmTransition) -> bool:
        return self.fill(tick_id, lambda: {key: transition})

    def is_complete(self) -> bool:
        with self._condition:
            return len(self._slots) == len(self.keys)

    def collect(self, timeout: Optional[float] = None) -> Dict[AlarmKey, AlarmTransition]:
        """
        Wait for all slots, then hand them over and close the tick

        Raises:
            TimeoutError: If the slots were not all filled in time; the tick
                stays open until close()
        """
        with self._condition:
            filled = self._condition.wait_for(lambda: len(self._slots) == len(self.keys), timeout)
            if not filled:
                missing = [f"{k[0].value}-{k[1].value}" for k in self.keys if k not in self._slots]
                raise TimeoutError(f"Tick barrier incomplete, missing slots: {missing}")
            slots = dict(self._slots)
            self._slots.clear()
            self._open = None
            return slots

    def close(self) -> Dict[AlarmKey, AlarmTransition]:
        """Close the open tick and return the slots filled so far"""
        with self._condition:
            slots = dict(self._slots)
            self._slots.clear()
            self._open = None
            return slots


class Reconciler:
    """Turns one complete tick of alarm transitions into policy firings"""

    def __init__(self, alarms: AlarmBank, policies: PolicySet, fleet: FleetController):
        self.alarms = alarms
        self.policies = policies
        self.fleet = fleet
        self.deferred_down: List[str] = []

    @property
    def has_deferred_down(self) -> bool:
        return bool(self.deferred_down)

    def _rising_edges(self, transitions: Dict[AlarmKey, AlarmTransition], direction: Direction) -> List[str]:
        return [
            self.alarms.get(*key).name
            for key in self.alarms.keys()
            if key[1] == direction and transitions[key] == AlarmTransition.ENTERED_ALARM
        ]

    def reconcile(self, transitions: Dict[AlarmKey, AlarmTransition]) -> List[ScalingDecision]:
        """
        Apply the scaling decisions implied by one tick

        Args:
            transitions: Transition of every alarm for this tick

        Returns:
            Decisions recorded this tick, Up first
        """
        missing = [k for k in self.alarms.keys() if k not in transitions]
        if missing:
            raise ValueError(f"Refusing to reconcile a partial tick, missing: {missing}")

        decisions: List[ScalingDecision] = []
        up_triggers = self._rising_edges(transitions, Direction.UP)
        down_triggers = self._rising_edges(transitions, Direction.DOWN)

        if up_triggers:
            decisions.append(self.policies.fire(Direction.UP, self.fleet, up_triggers))
            if down_triggers:
                for name in down_triggers:
                    if name not in self.deferred_down:
                        self.deferred_down.append(name)
                logger.info(f"Scale down from {down_triggers} deferred: scale up requested in the same tick")
            return decisions

        triggers = list(down_triggers)
        if self.deferred_down:
            if down_triggers or self.alarms.in_alarm(Direction.DOWN):
                triggers = self.deferred_down + [n for n in down_triggers if n not in self.deferred_down]
            else:
                logger.info(f"Dropping deferred scale down from {self.deferred_down}: no Down alarm active")
            self.deferred_down = []

        if triggers:
            decisions.append(self.policies.fire(Direction.DOWN, self.fleet, triggers))

        return decisions
