#!/usr/bin/env python3
"""
Tests for per-tick reconciliation and the tick barrier
"""

import threading

import pytest

from fleet_autoscaler.core.alarms import AlarmBank
from fleet_autoscaler.core.clock import ManualClock
from fleet_autoscaler.core.fleet import FleetController
from fleet_autoscaler.core.reconciliation import Reconciler, TickBarrier
from fleet_autoscaler.core.scaling import PolicySet
from fleet_autoscaler.models.metrics import AlarmTransition, Decision, Direction, SignalKind

from conftest import make_settings

CPU_UP = (SignalKind.CPU, Direction.UP)
CPU_DOWN = (SignalKind.CPU, Direction.DOWN)
MEM_UP = (SignalKind.MEMORY, Direction.UP)
MEM_DOWN = (SignalKind.MEMORY, Direction.DOWN)


def tick(**entered):
    """Transitions for one tick: every alarm NONE unless overridden"""
    transitions = {key: AlarmTransition.NONE for key in (CPU_UP, CPU_DOWN, MEM_UP, MEM_DOWN)}
    transitions.update({
        {"cpu_up": CPU_UP, "cpu_down": CPU_DOWN, "mem_up": MEM_UP, "mem_down": MEM_DOWN}[name]: value
        for name, value in entered.items()
    })
    return transitions


@pytest.fixture
def reconciler():
    settings = make_settings(max_size=10)
    clock = ManualClock()
    alarms = AlarmBank(settings.alarm_specs())
    fleet = FleetController(min_size=2, max_size=10, desired=4)
    return Reconciler(alarms, PolicySet.from_settings(settings, clock), fleet)


def force_alarm(reconciler, key):
    """Drive an alarm into ALARM the same way a breaching signal would"""
    alarm = reconciler.alarms.get(*key)
    value = 100.0 if key[1] == Direction.UP else 0.0
    for _ in range(alarm.spec.evaluation_periods):
        alarm.evaluate(value)


class TestReconciler:
    """Test coalescing and Up-before-Down ordering"""

    def test_no_edges_no_decisions(self, reconciler):
        assert reconciler.reconcile(tick()) == []
        assert reconciler.fleet.current_desired() == 4

    def test_same_direction_edges_coalesced(self, reconciler):
        """CPU-up and memory-up in one tick fire scale_up once"""
        decisions = reconciler.reconcile(tick(
            cpu_up=AlarmTransition.ENTERED_ALARM,
            mem_up=AlarmTransition.ENTERED_ALARM,
        ))

        assert len(decisions) == 1
        assert decisions[0].policy == "scale_up"
        assert decisions[0].triggered_by == ["cpu-up", "memory-up"]
        assert reconciler.fleet.current_desired() == 6

    def test_still_alarm_is_not_actionable(self, reconciler):
        decisions = reconciler.reconcile(tick(
            cpu_up=AlarmTransition.STILL_ALARM,
            cpu_down=AlarmTransition.CLEARED,
        ))

        assert decisions == []

    def test_conflict_tick_prefers_scale_up(self, reconciler):
        """Up is applied; the simultaneous Down is deferred to the next tick"""
        force_alarm(reconciler, MEM_DOWN)

        decisions = reconciler.reconcile(tick(
            cpu_up=AlarmTransition.ENTERED_ALARM,
            mem_down=AlarmTransition.ENTERED_ALARM,
        ))

        assert [d.policy for d in decisions] == ["scale_up"]
        assert reconciler.fleet.current_desired() == 6
        assert reconciler.has_deferred_down

        decisions = reconciler.reconcile(tick(
            cpu_up=AlarmTransition.STILL_ALARM,
            mem_down=AlarmTransition.STILL_ALARM,
        ))

        assert [d.policy for d in decisions] == ["scale_down"]
        assert decisions[0].decision == Decision.APPLIED
        assert decisions[0].triggered_by == ["memory-down"]
        assert reconciler.fleet.current_desired() == 5
        assert not reconciler.has_deferred_down

    def test_deferred_down_waits_while_scale_up_requested(self, reconciler):
        reconciler.reconcile(tick(
            cpu_up=AlarmTransition.ENTERED_ALARM,
            mem_down=AlarmTransition.ENTERED_ALARM,
        ))

        decisions = reconciler.reconcile(tick(
            mem_up=AlarmTransition.ENTERED_ALARM,
        ))

        assert [d.policy for d in decisions] == ["scale_up"]
        assert reconciler.has_deferred_down

    def test_deferred_down_dropped_when_no_down_alarm_remains(self, reconciler):
        reconciler.reconcile(tick(
            cpu_up=AlarmTransition.ENTERED_ALARM,
            mem_down=AlarmTransition.ENTERED_ALARM,
        ))
        desired = reconciler.fleet.current_desired()

        decisions = reconciler.reconcile(tick(mem_down=AlarmTransition.CLEARED))

        assert decisions == []
        assert reconciler.fleet.current_desired() == desired
        assert not reconciler.has_deferred_down

    def test_deferred_and_new_down_edges_fire_once(self, reconciler):
        reconciler.reconcile(tick(
            cpu_up=AlarmTransition.ENTERED_ALARM,
            mem_down=AlarmTransition.ENTERED_ALARM,
        ))

        decisions = reconciler.reconcile(tick(cpu_down=AlarmTransition.ENTERED_ALARM))

        assert len(decisions) == 1
        assert decisions[0].triggered_by == ["memory-down", "cpu-down"]
        assert reconciler.fleet.current_desired() == 5

    def test_partial_tick_refused(self, reconciler):
        transitions = tick()
        del transitions[MEM_DOWN]

        with pytest.raises(ValueError):
            reconciler.reconcile(transitions)


class TestTickBarrier:
    """Test the per-tick synchronization point"""

    def test_collect_returns_all_slots_and_closes_tick(self):
        barrier = TickBarrier([CPU_UP, CPU_DOWN])
        tick_id = barrier.begin()
        barrier.submit(tick_id, CPU_UP, AlarmTransition.NONE)
        assert not barrier.is_complete()
        barrier.submit(tick_id, CPU_DOWN, AlarmTransition.ENTERED_ALARM)

        slots = barrier.collect(timeout=0)

        assert slots == {CPU_UP: AlarmTransition.NONE, CPU_DOWN: AlarmTransition.ENTERED_ALARM}
        assert not barrier.is_complete()
        assert not barrier.submit(tick_id, CPU_UP, AlarmTransition.NONE)

    def test_timed_out_tick_closes_with_partial_slots(self):
        barrier = TickBarrier([CPU_UP, CPU_DOWN])
        tick_id = barrier.begin()
        barrier.submit(tick_id, CPU_UP, AlarmTransition.NONE)

        with pytest.raises(TimeoutError):
            barrier.collect(timeout=0.01)

        assert barrier.close() == {CPU_UP: AlarmTransition.NONE}

    def test_late_fill_is_discarded_without_running(self):
        barrier = TickBarrier([CPU_UP])
        calls = []
        stale = barrier.begin()
        barrier.close()
        current = barrier.begin()

        def produce():
            calls.append(True)
            return {CPU_UP: AlarmTransition.ENTERED_ALARM}

        assert not barrier.fill(stale, produce)
        assert calls == []
        assert barrier.discarded == 1

        assert barrier.submit(current, CPU_UP, AlarmTransition.NONE)
        assert barrier.collect(timeout=0) == {CPU_UP: AlarmTransition.NONE}

    def test_begin_drops_unfinished_tick(self):
        barrier = TickBarrier([CPU_UP, CPU_DOWN])
        first = barrier.begin()
        barrier.submit(first, CPU_UP, AlarmTransition.ENTERED_ALARM)

        second = barrier.begin()

        assert not barrier.submit(first, CPU_DOWN, AlarmTransition.NONE)
        assert barrier.close() == {}
        assert second != first

    def test_double_submit_rejected(self):
        barrier = TickBarrier([CPU_UP])
        tick_id = barrier.begin()
        barrier.submit(tick_id, CPU_UP, AlarmTransition.NONE)

        with pytest.raises(RuntimeError):
            barrier.submit(tick_id, CPU_UP, AlarmTransition.NONE)

    def test_unknown_slot_rejected(self):
        barrier = TickBarrier([CPU_UP])
        tick_id = barrier.begin()

        with pytest.raises(KeyError):
            barrier.submit(tick_id, MEM_UP, AlarmTransition.NONE)

    def test_collect_blocks_until_pollers_finish(self):
        keys = [CPU_UP, CPU_DOWN, MEM_UP, MEM_DOWN]
        barrier = TickBarrier(keys)
        tick_id = barrier.begin()
        start = threading.Event()

        def poller(key):
            start.wait()
            barrier.submit(tick_id, key, AlarmTransition.NONE)

        threads = [threading.Thread(target=poller, args=(key,)) for key in keys]
        for thread in threads:
            thread.start()
        start.set()

        slots = barrier.collect(timeout=5)
        for thread in threads:
            thread.join()

        assert set(slots) == set(keys)
        assert barrier.discarded == 0
