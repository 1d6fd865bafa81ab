#!/usr/bin/env python3
"""
Core autoscaler tick loop
"""

import concurrent.futures
import logging
import math
import threading
from typing import Any, Dict, List, Optional

from prometheus_client import Counter, Gauge

from ..config.settings import AutoscalerSettings
from ..events import EventBus, EventType, Event, MetricsEventHandler
from ..events import alarm_event, converge_failed_event, decision_event, deferred_event
from ..models.metrics import (
    AlarmStatus,
    AlarmTransition,
    AutoscalerStatus,
    Direction,
    ScalingDecision,
    SignalKind,
    UtilizationSample,
)
from .alarms import AlarmBank, AlarmEvaluator, AlarmKey
from .clock import Clock, SystemClock
from .fleet import CapacityInvariantError, FleetController
from .logging_config import log_section, log_separator
from .metrics import METRIC_FETCH_FAILURES, InMemoryMetricSource, MetricSource, Window
from .provisioning import Provisioner
from .reconciliation import Reconciler, TickBarrier
from .scaling import PolicySet

logger = logging.getLogger(__name__)

# Prometheus metrics
TICKS = Counter('fleet_autoscaler_ticks_total', 'Total evaluation ticks')
DESIRED_CAPACITY = Gauge('fleet_autoscaler_desired_capacity', 'Current desired fleet size')
ALARM_STATE = Gauge('fleet_autoscaler_alarm_state', '1 while the alarm is in ALARM', ['alarm'])
COOLDOWN_REMAINING = Gauge(
    'fleet_autoscaler_cooldown_remaining_seconds',
    'Seconds until the policy may fire again',
    ['policy']
)


class FleetAutoscaler:
    """Evaluates the four alarms every tick and applies the resulting scaling decisions"""

    def __init__(
        self,
        settings: AutoscalerSettings,
        metric_source: Optional[MetricSource] = None,
        provisioner: Optional[Provisioner] = None,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None
    ):
        """
        Initialize the autoscaler

        Args:
            settings: Autoscaler settings
            metric_source: Where samples come from (in-memory when omitted)
            provisioner: Receives converge() calls
            clock: Time source for ticks and cooldowns
            event_bus: Receives alarm and decision events
        """
        self.settings = settings
        self.fleet_id = settings.fleet_id
        self.clock = clock or SystemClock()
        self.event_bus = event_bus or EventBus()
        self.event_bus.register_handler(MetricsEventHandler())

        self.alarms = AlarmBank(settings.alarm_specs())
        self.metric_source = metric_source or InMemoryMetricSource(retention=self.alarms.longest_window)
        self.fleet = FleetController(
            min_size=settings.min_size,
            max_size=settings.max_size,
            desired=settings.initial_desired,
            provisioner=provisioner,
        )
        self.policies = PolicySet.from_settings(settings, self.clock)
        self.reconciler = Reconciler(self.alarms, self.policies, self.fleet)
        self.barrier = TickBarrier(self.alarms.keys())

        self.period = self.alarms.shortest_period
        self.executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        if settings.concurrent_polling:
            self.executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=2 * len(self.alarms.signals()),
                thread_name_prefix="metric-poller"
            )

        self.running = False
        self.tick_count = 0
        self.last_tick_at: Optional[float] = None
        self._tick_lock = threading.Lock()

        self._update_gauges()
        logger.info(
            f"Fleet autoscaler initialized for {self.fleet_id}: "
            f"capacity {settings.initial_desired} in [{settings.min_size}, {settings.max_size}], "
            f"{len(self.alarms)} alarms, period {self.period}s, "
            f"{'concurrent' if self.executor else 'sequential'} polling"
        )

    def _fetch_window(self, alarms: List[AlarmEvaluator], tick_time: float) -> Optional[Window]:
        """Span of every period the signal's alarms still have to evaluate"""
        bounds = [a.period_bounds(i) for a in alarms for i in a.pending_periods(tick_time)]
        if not bounds:
            return None
        return (min(start for start, _ in bounds), max(end for _, end in bounds))

    def _poll_signal(self, signal_kind: SignalKind, tick_id: int, tick_time: float) -> None:
        """Fetch one signal and fill the barrier slots of its alarms"""
        alarms = self.alarms.for_signal(signal_kind)
        window = self._fetch_window(alarms, tick_time)

        samples: List[UtilizationSample] = []
        if window is not None:
            try:
                samples = self.metric_source.fetch(signal_kind, self.fleet_id, window)
            except Exception as e:
                # Collaborator failure: the period counts as missing data
                logger.error(f"Error fetching {signal_kind.value} samples: {e}", exc_info=True)
                METRIC_FETCH_FAILURES.labels(signal=signal_kind.value).inc()

            if not samples:
                logger.info(f"No {signal_kind.value} samples for {self.fleet_id} in [{window[0]:.0f}, {window[1]:.0f})")

        def evaluate():
            return {alarm.key: alarm.evaluate_closed(samples, tick_time) for alarm in alarms}

        if not self.barrier.fill(tick_id, evaluate):
            logger.warning(f"Discarded {signal_kind.value} samples that arrived after tick {tick_id} closed")

    @staticmethod
    def _log_poller_failure(future: concurrent.futures.Future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Metric poller failed: {error}", exc_info=error)

    def _collect_transitions(self, tick_id: int, tick_time: float) -> Dict[AlarmKey, AlarmTransition]:
        signals = self.alarms.signals()

        if self.executor is None:
            for signal_kind in signals:
                self._poll_signal(signal_kind, tick_id, tick_time)
            return self.barrier.collect(timeout=0)

        for signal_kind in signals:
            future = self.executor.submit(self._poll_signal, signal_kind, tick_id, tick_time)
            future.add_done_callback(self._log_poller_failure)

        try:
            return self.barrier.collect(timeout=self.settings.fetch_timeout)
        except TimeoutError as e:
            # Late pollers can no longer fill this tick; their signals count as no sample
            transitions = self.barrier.close()
            for signal_kind in signals:
                alarms = self.alarms.for_signal(signal_kind)
                if all(alarm.key in transitions for alarm in alarms):
                    continue
                logger.warning(f"{signal_kind.value} fetch missed the tick deadline, treating as no sample: {e}")
                METRIC_FETCH_FAILURES.labels(signal=signal_kind.value).inc()
                for alarm in alarms:
                    transitions[alarm.key] = alarm.evaluate_closed([], tick_time)
            return transitions

    def run_tick(self) -> Dict[str, Any]:
        """
        Run one evaluation tick

        Returns:
            Dict containing the tick's transitions, decisions and capacity

        Raises:
            CapacityInvariantError: If the fleet bounds were ever violated
        """
        with self._tick_lock:
            tick_time = self.clock.now()
            tick_id = self.barrier.begin()
            try:
                return self._run_tick(tick_id, tick_time)
            finally:
                self.barrier.close()

    def _run_tick(self, tick_id: int, tick_time: float) -> Dict[str, Any]:
        self.tick_count += 1
        log_separator(logger, f"TICK #{self.tick_count} @ {tick_time:.0f}", 60)

        log_section(logger, "ALARM EVALUATION")
        transitions = self._collect_transitions(tick_id, tick_time)
        for key, transition in transitions.items():
            if transition in (AlarmTransition.ENTERED_ALARM, AlarmTransition.CLEARED):
                self.event_bus.publish(alarm_event(self.alarms.get(*key).view(), transition, tick_time))

        log_section(logger, "RECONCILIATION")
        deferred_before = list(self.reconciler.deferred_down)
        failures_before = self.fleet.converge_failures
        decisions = self.reconciler.reconcile(transitions)
        self._record(decisions, deferred_before, failures_before, tick_time)

        if isinstance(self.metric_source, InMemoryMetricSource):
            self.metric_source.prune(tick_time)

        TICKS.inc()
        self.last_tick_at = tick_time
        self._update_gauges()

        capacity = self.fleet.snapshot()
        logger.info(
            f"Tick complete: desired={capacity.desired} "
            f"[{capacity.min}, {capacity.max}], decisions={[d.decision.value for d in decisions]}"
        )
        return {
            "tick": self.tick_count,
            "clock_time": tick_time,
            "transitions": {
                self.alarms.get(*key).name: transition.value for key, transition in transitions.items()
            },
            "decisions": [d.model_dump(mode="json") for d in decisions],
            "capacity": capacity.model_dump(),
        }

    def _record(self, decisions: List[ScalingDecision], deferred_before: List[str],
                failures_before: int, tick_time: float) -> None:
        newly_deferred = [n for n in self.reconciler.deferred_down if n not in deferred_before]
        if newly_deferred:
            self.event_bus.publish(deferred_event(newly_deferred, tick_time))

        for decision in decisions:
            self.event_bus.publish(decision_event(decision))

        for _ in range(self.fleet.converge_failures - failures_before):
            self.event_bus.publish(converge_failed_event(
                self.fleet.current_desired(), self.fleet.last_converge_error or "", tick_time
            ))

    def fire_policy(self, direction: Direction, reason: str = "manual") -> ScalingDecision:
        """Fire a policy outside the tick; cooldown and clamping still apply"""
        with self._tick_lock:
            failures_before = self.fleet.converge_failures
            decision = self.policies.fire(direction, self.fleet, [reason])
            self._record([decision], list(self.reconciler.deferred_down), failures_before, self.clock.now())
            self._update_gauges()
            return decision

    def _update_gauges(self) -> None:
        DESIRED_CAPACITY.set(self.fleet.current_desired())
        for alarm in self.alarms:
            ALARM_STATE.labels(alarm=alarm.name).set(1 if alarm.status == AlarmStatus.ALARM else 0)
        for policy in self.policies:
            COOLDOWN_REMAINING.labels(policy=policy.name).set(policy.cooldown_remaining())

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick every period until stop() is called (or max_ticks ticks ran)"""
        self.running = True
        self.event_bus.publish(Event(event_type=EventType.AUTOSCALER_STARTED, clock_time=self.clock.now()))
        logger.info(f"Starting autoscaling loop with {self.period}s period")

        ticks = 0
        while self.running:
            # Tick on period boundaries; an overrun tick skips to the next one
            next_tick = (math.floor(self.clock.now() / self.period) + 1) * self.period
            self.clock.sleep(next_tick - self.clock.now())
            if not self.running:
                break

            try:
                self.run_tick()
            except CapacityInvariantError:
                logger.critical("Fleet capacity invariant violated, stopping autoscaler", exc_info=True)
                self.running = False
                raise
            except Exception as e:
                logger.error(f"Unexpected error in autoscaling tick: {e}", exc_info=True)

            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break

        self.running = False
        self.event_bus.publish(Event(event_type=EventType.AUTOSCALER_STOPPED, clock_time=self.clock.now()))
        logger.info("Autoscaling loop stopped")

    def stop(self) -> None:
        self.running = False

    def cleanup(self) -> None:
        self.stop()
        if self.executor is not None:
            self.executor.shutdown(wait=False)

    def get_status(self) -> AutoscalerStatus:
        return AutoscalerStatus(
            fleet_id=self.fleet_id,
            capacity=self.fleet.snapshot(),
            alarms={alarm.name: alarm.view() for alarm in self.alarms},
            policies={policy.name: policy.view() for policy in self.policies},
            tick_count=self.tick_count,
            last_tick_at=self.last_tick_at,
            deferred_scale_down=self.reconciler.has_deferred_down,
            last_converge_error=self.fleet.last_converge_error,
            running=self.running,
        )
