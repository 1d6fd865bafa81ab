#!/usr/bin/env python3
"""
Shared fixtures: a logical clock, an in-memory metric source and an
autoscaler wired to both
"""

from typing import Optional

import pytest

from fleet_autoscaler.config.settings import AutoscalerSettings
from fleet_autoscaler.core.autoscaler import FleetAutoscaler
from fleet_autoscaler.core.clock import ManualClock
from fleet_autoscaler.core.metrics import InMemoryMetricSource
from fleet_autoscaler.core.provisioning import DryRunProvisioner
from fleet_autoscaler.models.metrics import SignalKind

FLEET_ID = "web-fleet"
PERIOD = 10.0


def make_settings(**overrides) -> AutoscalerSettings:
    """Settings with the documented defaults, independent of the environment"""
    values = dict(
        fleet_id=FLEET_ID,
        period_seconds=PERIOD,
        evaluation_periods=2,
        cpu_threshold_up=50.0,
        cpu_threshold_down=30.0,
        memory_threshold_up=70.0,
        memory_threshold_down=30.0,
        min_size=2,
        max_size=5,
        desired_capacity=None,
        scale_up_adjustment=2,
        scale_down_adjustment=-1,
        scale_up_cooldown=300.0,
        scale_down_cooldown=300.0,
        concurrent_polling=False,
    )
    values.update(overrides)
    return AutoscalerSettings(**values)


class Harness:
    """Drives an autoscaler one period at a time on a logical clock"""

    def __init__(self, autoscaler: FleetAutoscaler, clock: ManualClock,
                 source: InMemoryMetricSource, provisioner: DryRunProvisioner):
        self.autoscaler = autoscaler
        self.clock = clock
        self.source = source
        self.provisioner = provisioner

    @property
    def desired(self) -> int:
        return self.autoscaler.fleet.current_desired()

    def step(self, cpu: Optional[float] = None, memory: Optional[float] = None) -> dict:
        """Record one sample per given signal for the next period, then tick at its end"""
        midpoint = self.clock.now() + PERIOD / 2
        if cpu is not None:
            self.source.add(SignalKind.CPU, FLEET_ID, cpu, midpoint)
        if memory is not None:
            self.source.add(SignalKind.MEMORY, FLEET_ID, memory, midpoint)
        self.clock.advance(PERIOD)
        return self.autoscaler.run_tick()


@pytest.fixture
def clock():
    return ManualClock(start=0.0)


@pytest.fixture
def source():
    return InMemoryMetricSource(retention=PERIOD * 2)


@pytest.fixture
def provisioner():
    return DryRunProvisioner(fleet_id=FLEET_ID)


@pytest.fixture
def harness_factory(clock, source, provisioner):
    """Build a Harness with setting overrides"""
    created = []

    def _build(**overrides) -> Harness:
        autoscaler = FleetAutoscaler(
            make_settings(**overrides),
            metric_source=source,
            provisioner=provisioner,
            clock=clock,
        )
        created.append(autoscaler)
        return Harness(autoscaler, clock, source, provisioner)

    yield _build

    for autoscaler in created:
        autoscaler.cleanup()


@pytest.fixture
def harness(harness_factory):
    return harness_factory()
