#!/usr/bin/env python3
"""
Tests for the provisioning adapters
"""

from unittest.mock import Mock

import pytest
import requests

from fleet_autoscaler.core.provisioning import DryRunProvisioner, ProvisioningError, WebhookProvisioner

HEALTH_CHECK = {"path": "/", "interval": 30, "timeout": 5, "healthy_threshold": 2, "unhealthy_threshold": 2}


def test_dry_run_records_requests():
    provisioner = DryRunProvisioner(fleet_id="web-fleet")
    assert provisioner.last_requested is None

    provisioner.converge(4)
    provisioner.converge(3)

    assert provisioner.requests == [4, 3]
    assert provisioner.last_requested == 3


def test_webhook_posts_desired_capacity_and_health_check():
    session = Mock()
    provisioner = WebhookProvisioner(
        "http://provisioner/converge", "web-fleet", health_check=HEALTH_CHECK, timeout=2.0, session=session
    )

    provisioner.converge(4)

    args, kwargs = session.post.call_args
    assert args[0] == "http://provisioner/converge"
    assert kwargs["timeout"] == 2.0
    payload = kwargs["json"]
    assert payload["fleet_id"] == "web-fleet"
    assert payload["desired_capacity"] == 4
    assert payload["health_check"] == HEALTH_CHECK
    assert "timestamp" in payload


@pytest.mark.parametrize("error", [
    requests.exceptions.ConnectionError("refused"),
    requests.exceptions.Timeout("slow"),
])
def test_webhook_transport_errors_raise_provisioning_error(error):
    session = Mock()
    session.post.side_effect = error
    provisioner = WebhookProvisioner("http://provisioner/converge", "web-fleet", session=session)

    with pytest.raises(ProvisioningError):
        provisioner.converge(4)


def test_webhook_rejection_raises_provisioning_error():
    session = Mock()
    session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("409 Conflict")
    provisioner = WebhookProvisioner("http://provisioner/converge", "web-fleet", session=session)

    with pytest.raises(ProvisioningError, match="409"):
        provisioner.converge(5)
