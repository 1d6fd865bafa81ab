#!/usr/bin/env python3
"""
Alarm evaluation module

Each alarm watches one (signal, direction) pair. Periods are aligned to
multiples of the period length, and every period that closed since the
previous tick is aggregated exactly once; a period breaches when the
aggregate crosses the threshold in the alarm's direction. The alarm enters
ALARM only after `evaluation_periods` consecutive breaching periods and
leaves it on the first non-breaching one. Periods with no samples never
breach.
"""

import logging
import math
from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.metrics import (
    AlarmSpec,
    AlarmStatus,
    AlarmStatusView,
    AlarmTransition,
    Direction,
    SignalKind,
    Statistic,
    UtilizationSample,
)

logger = logging.getLogger(__name__)

AlarmKey = Tuple[SignalKind, Direction]


def aggregate(values: Iterable[float], statistic: Statistic) -> Optional[float]:
    """Reduce one period's values; None when the period has no data"""
    values = list(values)
    if not values:
        return None

    if statistic == Statistic.AVERAGE:
        return sum(values) / len(values)
    elif statistic == Statistic.MINIMUM:
        return min(values)
    elif statistic == Statistic.MAXIMUM:
        return max(values)
    elif statistic == Statistic.SUM:
        return sum(values)
    elif statistic == Statistic.SAMPLE_COUNT:
        return float(len(values))
    raise ValueError(f"Unknown statistic: {statistic}")


def period_values(samples: Iterable[UtilizationSample], start: float, end: float) -> List[float]:
    """Values of the samples whose timestamp falls in [start, end)"""
    return [s.value for s in samples if start <= s.timestamp < end]


class AlarmEvaluator:
    """Edge-triggered threshold alarm for one (signal, direction) pair"""

    def __init__(self, spec: AlarmSpec):
        self.spec = spec
        self.status = AlarmStatus.OK
        self.consecutive_breaches = 0
        self.last_transition = AlarmTransition.NONE
        self.recent_aggregates: deque = deque(maxlen=spec.evaluation_periods)
        # Index of the last period fed to evaluate(); period i is [i*length, (i+1)*length)
        self.last_period_index: Optional[int] = None

    @property
    def key(self) -> AlarmKey:
        return (self.spec.signal_kind, self.spec.direction)

    @property
    def name(self) -> str:
        return self.spec.name

    def is_breach(self, value: Optional[float]) -> bool:
        if value is None:
            return False
        if self.spec.direction == Direction.UP:
            return value >= self.spec.threshold
        return value <= self.spec.threshold

    def evaluate(self, value: Optional[float]) -> AlarmTransition:
        """
        Feed the aggregate of one closed period

        Args:
            value: Period aggregate, or None when the period had no samples

        Returns:
            The transition caused by this period
        """
        self.recent_aggregates.append(value)

        if not self.is_breach(value):
            self.consecutive_breaches = 0
            if self.status == AlarmStatus.ALARM:
                self.status = AlarmStatus.OK
                transition = AlarmTransition.CLEARED
                logger.info(f"Alarm {self.name} cleared (aggregate={_fmt(value)})")
            else:
                transition = AlarmTransition.NONE
            self.last_transition = transition
            return transition

        self.consecutive_breaches += 1
        if self.status == AlarmStatus.ALARM:
            transition = AlarmTransition.STILL_ALARM
        elif self.consecutive_breaches == self.spec.evaluation_periods:
            self.status = AlarmStatus.ALARM
            transition = AlarmTransition.ENTERED_ALARM
            logger.info(
                f"Alarm {self.name} entered ALARM: {_fmt(value)} "
                f"{'>=' if self.spec.direction == Direction.UP else '<='} {self.spec.threshold} "
                f"for {self.consecutive_breaches} consecutive periods"
            )
        else:
            transition = AlarmTransition.NONE
            logger.debug(
                f"Alarm {self.name} breach {self.consecutive_breaches}/{self.spec.evaluation_periods}"
            )

        self.last_transition = transition
        return transition

    def period_bounds(self, index: int) -> Tuple[float, float]:
        length = self.spec.period_length
        return index * length, (index + 1) * length

    def pending_periods(self, now: float) -> List[int]:
        """Indexes of the periods closed at `now` that were not evaluated yet"""
        closed = math.floor(now / self.spec.period_length) - 1
        if self.last_period_index is None:
            return [closed]
        return list(range(self.last_period_index + 1, closed + 1))

    def evaluate_closed(self, samples: Iterable[UtilizationSample], now: float) -> AlarmTransition:
        """
        Evaluate every period closed since the previous call

        A call inside the period that was already evaluated is a no-op and
        returns NONE. When several periods closed (a late or skipped tick)
        they are evaluated in order and folded into one transition.

        Args:
            samples: Samples covering the pending periods
            now: Current clock time

        Returns:
            The transition of this tick
        """
        pending = self.pending_periods(now)
        if not pending:
            return AlarmTransition.NONE

        samples = list(samples)
        before = self.status
        transitions = []
        for index in pending:
            start, end = self.period_bounds(index)
            transitions.append(self.evaluate(aggregate(period_values(samples, start, end), self.spec.statistic)))
        self.last_period_index = pending[-1]

        if len(transitions) > 1:
            self.last_transition = _fold(before, self.status, transitions)
        return self.last_transition

    def view(self) -> AlarmStatusView:
        return AlarmStatusView(
            name=self.name,
            signal_kind=self.spec.signal_kind,
            direction=self.spec.direction,
            threshold=self.spec.threshold,
            evaluation_periods=self.spec.evaluation_periods,
            period_length=self.spec.period_length,
            statistic=self.spec.statistic,
            status=self.status,
            consecutive_breaches=self.consecutive_breaches,
            last_transition=self.last_transition,
            recent_aggregates=list(self.recent_aggregates),
        )


class AlarmBank:
    """The set of independent alarms, addressable by (signal, direction)"""

    def __init__(self, specs: Iterable[AlarmSpec]):
        self.alarms: Dict[AlarmKey, AlarmEvaluator] = {}
        for spec in specs:
            key = (spec.signal_kind, spec.direction)
            if key in self.alarms:
                raise ValueError(f"Duplicate alarm definition for {spec.name}")
            self.alarms[key] = AlarmEvaluator(spec)

    def __iter__(self):
        return iter(self.alarms.values())

    def __len__(self) -> int:
        return len(self.alarms)

    def get(self, signal_kind: SignalKind, direction: Direction) -> AlarmEvaluator:
        return self.alarms[(signal_kind, direction)]

    def keys(self) -> List[AlarmKey]:
        return list(self.alarms.keys())

    def for_signal(self, signal_kind: SignalKind) -> List[AlarmEvaluator]:
        return [a for a in self.alarms.values() if a.spec.signal_kind == signal_kind]

    def signals(self) -> List[SignalKind]:
        seen = []
        for signal_kind, _ in self.alarms:
            if signal_kind not in seen:
                seen.append(signal_kind)
        return seen

    def evaluate(self, signal_kind: SignalKind, direction: Direction, value: Optional[float]) -> AlarmTransition:
        return self.get(signal_kind, direction).evaluate(value)

    def in_alarm(self, direction: Direction) -> List[AlarmEvaluator]:
        return [
            a for a in self.alarms.values()
            if a.spec.direction == direction and a.status == AlarmStatus.ALARM
        ]

    @property
    def longest_window(self) -> float:
        return max((a.spec.window for a in self.alarms.values()), default=0.0)

    @property
    def shortest_period(self) -> float:
        return min(a.spec.period_length for a in self.alarms.values())


def _fmt(value: Optional[float]) -> str:
    return "no data" if value is None else f"{value:.1f}%"


def _fold(before: AlarmStatus, after: AlarmStatus, transitions: List[AlarmTransition]) -> AlarmTransition:
    """One transition for several periods evaluated in a single tick"""
    if before == AlarmStatus.OK and after == AlarmStatus.ALARM:
        return AlarmTransition.ENTERED_ALARM
    if before == AlarmStatus.ALARM and after == AlarmStatus.OK:
        return AlarmTransition.CLEARED
    if after == AlarmStatus.ALARM:
        # Cleared and re-entered within the catch-up: a new rising edge
        if AlarmTransition.CLEARED in transitions:
            return AlarmTransition.ENTERED_ALARM
        return AlarmTransition.STILL_ALARM
    return AlarmTransition.NONE
