#!/usr/bin/env python3
"""
Provisioning layer adapters

The control loop only tells the provisioning layer how many instances the
fleet should have. Creating and terminating instances, and registering them
with the load balancer's target group, happens on the other side of
converge().
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """The provisioning layer could not accept a convergence request"""


class Provisioner:
    """Base class for provisioning adapters"""

    def converge(self, desired: int) -> None:
        """
        Ask the provisioning layer to converge the fleet to `desired` instances

        Raises:
            ProvisioningError: If the request could not be delivered
        """
        raise NotImplementedError("Subclasses must implement converge() method")


class DryRunProvisioner(Provisioner):
    """Records convergence requests without acting on them"""

    def __init__(self, fleet_id: str = "web-fleet"):
        self.fleet_id = fleet_id
        self.requests: List[int] = []

    def converge(self, desired: int) -> None:
        self.requests.append(desired)
        logger.info(f"Dry-run: would converge fleet {self.fleet_id} to {desired} instances")

    @property
    def last_requested(self) -> Optional[int]:
        return self.requests[-1] if self.requests else None


class WebhookProvisioner(Provisioner):
    """POSTs the desired size and target group health check to an HTTP endpoint"""

    def __init__(
        self,
        url: str,
        fleet_id: str,
        health_check: Optional[Dict[str, Any]] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None
    ):
        self.url = url
        self.fleet_id = fleet_id
        self.health_check = health_check or {}
        self.timeout = timeout
        self.session = session or requests.Session()

    def converge(self, desired: int) -> None:
        payload = {
            "fleet_id": self.fleet_id,
            "desired_capacity": desired,
            "health_check": self.health_check,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ProvisioningError(f"Converge to {desired} failed: {e}") from e

        logger.info(f"Converge request for {desired} instances accepted by {self.url}")
