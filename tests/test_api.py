#!/usr/bin/env python3
"""
Tests for the HTTP observability and control surface
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from fleet_autoscaler.api.server import APIServer
from fleet_autoscaler.core.autoscaler import FleetAutoscaler
from fleet_autoscaler.core.provisioning import ProvisioningError
from fleet_autoscaler.models.metrics import SignalKind

from conftest import make_settings


@pytest.fixture
def client(harness):
    server = APIServer(harness.autoscaler, {"autoscaler": {"fleet_id": "web-fleet"}})
    return TestClient(server.app)


def push(client, clock, signal, value):
    """Push one sample in the middle of the next period"""
    return client.post("/samples", json={
        "samples": [{"signal_kind": signal, "value": value, "timestamp": clock.now() + 5}]
    })


def test_root_and_config(client):
    assert client.get("/").json()["fleet_id"] == "web-fleet"
    assert client.get("/config").json() == {"autoscaler": {"fleet_id": "web-fleet"}}


def test_health_reports_running_state(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_health_unhealthy_after_converge_failure(clock, source):
    provisioner = Mock()
    provisioner.converge.side_effect = ProvisioningError("provisioner unreachable")
    autoscaler = FleetAutoscaler(make_settings(), metric_source=source, provisioner=provisioner, clock=clock)
    client = TestClient(APIServer(autoscaler, {}).app)

    client.post("/scale", json={"action": "scale_up"})
    response = client.get("/health")

    assert response.status_code == 503
    assert "unreachable" in response.json()["details"]["last_converge_error"]


def test_samples_and_cycle_drive_scaling(client, harness):
    for _ in range(2):
        assert push(client, harness.clock, "cpu", 60).json()["accepted"] == 1
        harness.clock.advance(10)
        result = client.post("/cycle").json()

    assert result["transitions"]["cpu-up"] == "entered_alarm"
    assert result["capacity"]["desired"] == 4

    status = client.get("/status").json()
    assert status["capacity"]["desired"] == 4
    assert status["alarms"]["cpu-up"]["status"] == "ALARM"
    assert status["policies"]["scale_up"]["cooldown_remaining"] == 300.0


def test_samples_default_to_clock_time(client, harness):
    harness.clock.advance(5)
    client.post("/samples", json={"samples": [{"signal_kind": "memory", "value": 80}]})

    samples = harness.source.fetch(SignalKind.MEMORY, "web-fleet", (0.0, 10.0))
    assert [s.timestamp for s in samples] == [5.0]


def test_samples_rejected_out_of_range(client):
    response = client.post("/samples", json={"samples": [{"signal_kind": "cpu", "value": 120}]})

    assert response.status_code == 422


def test_samples_rejected_for_external_source(clock):
    autoscaler = FleetAutoscaler(make_settings(), metric_source=Mock(), clock=clock)
    client = TestClient(APIServer(autoscaler, {}).app)

    response = client.post("/samples", json={"samples": [{"signal_kind": "cpu", "value": 50}]})

    assert response.status_code == 400


def test_alarms_and_policies(client):
    alarms = client.get("/alarms").json()
    policies = client.get("/policies").json()

    assert alarms["count"] == 4
    assert {a["name"] for a in alarms["alarms"]} == {"cpu-up", "cpu-down", "memory-up", "memory-down"}
    assert policies["count"] == 2
    assert {p["name"] for p in policies["policies"]} == {"scale_up", "scale_down"}


def test_manual_scale_respects_cooldown(client):
    first = client.post("/scale", json={"action": "scale_up", "reason": "load test"}).json()
    second = client.post("/scale", json={"action": "scale_up"}).json()

    assert first["decision"] == "applied"
    assert first["triggered_by"] == ["load test"]
    assert second["decision"] == "skipped_cooldown"


def test_manual_scale_rejects_unknown_action(client):
    response = client.post("/scale", json={"action": "scale_sideways"})

    assert response.status_code == 400


def test_history_filters_by_event_type(client):
    client.post("/scale", json={"action": "scale_up"})
    client.post("/scale", json={"action": "scale_up"})

    skipped = client.get("/history", params={"event_type": "ScalingSkippedCooldown"}).json()
    assert skipped["count"] == 1

    everything = client.get("/history").json()
    assert everything["count"] == 2

    assert client.get("/history", params={"event_type": "bogus"}).status_code == 400


def test_stop(client, harness):
    harness.autoscaler.running = True

    assert client.post("/stop").status_code == 200
    assert not harness.autoscaler.running


@pytest.mark.parametrize("limit", [-1, 0])
def test_history_rejects_non_positive_limit(client, limit):
    response = client.get("/history", params={"limit": limit})

    assert response.status_code == 422


def test_history_limit_caps_events(client):
    client.post("/scale", json={"action": "scale_up"})
    client.post("/scale", json={"action": "scale_down"})

    assert client.get("/history", params={"limit": 1}).json()["count"] == 1
