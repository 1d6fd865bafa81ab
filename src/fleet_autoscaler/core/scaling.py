#!/usr/bin/env python3
"""
Scaling policy module for applying capacity adjustments with cooldowns
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.metrics import Decision, Direction, FleetCapacity, PolicyStatusView, ScalingDecision
from .clock import Clock
from .fleet import FleetController

logger = logging.getLogger(__name__)


class ScalingPolicy:
    """
    Simple scaling policy: a fixed signed adjustment plus a cooldown

    Every alarm of the policy's direction fires the same instance, so the
    cooldown is shared between the CPU and memory alarms that drive it.
    """

    def __init__(self, name: str, direction: Direction, adjustment: int, cooldown: float, clock: Clock):
        """
        Initialize scaling policy

        Args:
            name: Policy name ("scale_up" / "scale_down")
            direction: Direction of the alarms bound to this policy
            adjustment: Signed instance count delta
            cooldown: Seconds during which further firings are dropped
            clock: Clock used to track the cooldown
        """
        if direction == Direction.UP and adjustment <= 0:
            raise ValueError(f"{name}: scale-up adjustment must be positive")
        if direction == Direction.DOWN and adjustment >= 0:
            raise ValueError(f"{name}: scale-down adjustment must be negative")

        self.name = name
        self.direction = direction
        self.adjustment = adjustment
        self.cooldown = cooldown
        self.clock = clock
        self._cooldown_until: Optional[float] = None
        self.last_decision: Optional[Decision] = None

    def cooldown_remaining(self) -> float:
        if self._cooldown_until is None:
            return 0.0
        return max(0.0, self._cooldown_until - self.clock.now())

    def is_cooldown_active(self) -> bool:
        return self.cooldown_remaining() > 0

    def start_cooldown(self) -> None:
        self._cooldown_until = self.clock.now() + self.cooldown

    def apply(self, capacity: FleetCapacity) -> Tuple[int, Decision]:
        """
        Compute the capacity after this policy fires

        Args:
            capacity: Current capacity snapshot

        Returns:
            Tuple (new_desired, decision); starts the cooldown when applied
        """
        if self.is_cooldown_active():
            return capacity.desired, Decision.SKIPPED_COOLDOWN

        candidate = max(capacity.min, min(capacity.max, capacity.desired + self.adjustment))
        if candidate == capacity.desired:
            return capacity.desired, Decision.SATURATED

        self.start_cooldown()
        return candidate, Decision.APPLIED

    def view(self) -> PolicyStatusView:
        return PolicyStatusView(
            name=self.name,
            direction=self.direction,
            adjustment=self.adjustment,
            cooldown=self.cooldown,
            cooldown_remaining=self.cooldown_remaining(),
            last_decision=self.last_decision,
        )

    def fire(self, fleet: FleetController, triggered_by: Sequence[str] = ()) -> ScalingDecision:
        """Fire the policy against the fleet and record the decision"""
        capacity = fleet.snapshot()
        new_desired, decision = self.apply(capacity)

        if decision == Decision.APPLIED:
            fleet.set_desired(new_desired)
            reason = f"{self.name} {self.adjustment:+d}: {capacity.desired} -> {new_desired}"
            logger.info(f"Scaling decision: {reason} (triggered by {', '.join(triggered_by) or 'manual'})")
        elif decision == Decision.SKIPPED_COOLDOWN:
            reason = f"{self.name} in cooldown: {self.cooldown_remaining():.0f}s remaining"
            logger.info(f"Scaling skipped: {reason}")
        else:
            bound = capacity.max if self.direction == Direction.UP else capacity.min
            reason = f"{self.name} saturated at {bound} instances"
            logger.info(f"Scaling no-op: {reason}")

        self.last_decision = decision
        return ScalingDecision(
            policy=self.name,
            direction=self.direction,
            decision=decision,
            old_desired=capacity.desired,
            new_desired=new_desired,
            adjustment=self.adjustment,
            triggered_by=list(triggered_by),
            cooldown_remaining=self.cooldown_remaining(),
            reason=reason,
            timestamp=self.clock.now(),
        )


class PolicySet:
    """One shared policy per direction"""

    def __init__(self, policies: List[ScalingPolicy]):
        self.policies: Dict[Direction, ScalingPolicy] = {}
        for policy in policies:
            if policy.direction in self.policies:
                raise ValueError(f"Duplicate policy for direction {policy.direction.value}")
            self.policies[policy.direction] = policy

    @classmethod
    def from_settings(cls, settings, clock: Clock) -> "PolicySet":
        return cls([
            ScalingPolicy("scale_up", Direction.UP, settings.scale_up_adjustment,
                          settings.scale_up_cooldown, clock),
            ScalingPolicy("scale_down", Direction.DOWN, settings.scale_down_adjustment,
                          settings.scale_down_cooldown, clock),
        ])

    def __iter__(self):
        return iter(self.policies.values())

    def for_direction(self, direction: Direction) -> ScalingPolicy:
        return self.policies[direction]

    def fire(self, direction: Direction, fleet: FleetController,
             triggered_by: Sequence[str] = ()) -> ScalingDecision:
        return self.for_direction(direction).fire(fleet, triggered_by)
