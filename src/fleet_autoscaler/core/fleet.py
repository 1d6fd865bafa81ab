#!/usr/bin/env python3
"""
Fleet controller owning the desired capacity of the autoscaling group
"""

import logging
import threading
from typing import Optional

from ..models.metrics import FleetCapacity
from .provisioning import Provisioner, ProvisioningError

logger = logging.getLogger(__name__)


class CapacityInvariantError(RuntimeError):
    """desired fell outside [min, max]; the controller state can no longer be trusted"""


class FleetController:
    """
    Single writer of the fleet's desired capacity

    Readers call snapshot() and get a frozen FleetCapacity; the reference is
    swapped whole on every change, so no lock is needed to read.
    """

    def __init__(self, min_size: int, max_size: int, desired: Optional[int] = None,
                 provisioner: Optional[Provisioner] = None):
        if min_size < 0 or max_size < min_size:
            raise ValueError(f"Invalid capacity bounds [{min_size}, {max_size}]")

        desired = min_size if desired is None else desired
        if not min_size <= desired <= max_size:
            raise ValueError(f"Initial desired {desired} outside [{min_size}, {max_size}]")

        self._capacity = FleetCapacity(desired=desired, min=min_size, max=max_size)
        self._write_lock = threading.Lock()
        self.provisioner = provisioner
        self.last_converge_error: Optional[str] = None
        self.converge_failures = 0

    def snapshot(self) -> FleetCapacity:
        return self._capacity

    def current_desired(self) -> int:
        return self._capacity.desired

    def set_desired(self, new_value: int) -> FleetCapacity:
        """
        Record a new desired size and ask the provisioning layer to converge

        Args:
            new_value: Desired instance count, already clamped by the caller

        Returns:
            The new capacity snapshot

        Raises:
            CapacityInvariantError: If new_value lies outside [min, max]
        """
        with self._write_lock:
            current = self._capacity
            if not current.min <= new_value <= current.max:
                raise CapacityInvariantError(
                    f"Desired capacity {new_value} outside [{current.min}, {current.max}]"
                )

            self._capacity = FleetCapacity(desired=new_value, min=current.min, max=current.max)

        logger.info(f"Desired capacity {current.desired} -> {new_value}")
        self._converge(new_value)
        return self._capacity

    def _converge(self, desired: int) -> None:
        if self.provisioner is None:
            return

        try:
            self.provisioner.converge(desired)
            self.last_converge_error = None
        except ProvisioningError as e:
            # Not retried here: the next tick re-fires if the condition persists
            self.converge_failures += 1
            self.last_converge_error = str(e)
            logger.error(f"Provisioning layer failed to converge to {desired}: {e}")
