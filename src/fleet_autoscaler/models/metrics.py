#!/usr/bin/env python3
"""
Pydantic models for utilization samples, alarms and scaling decisions
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SignalKind(str, Enum):
    """Utilization signals observed per fleet"""
    CPU = "cpu"
    MEMORY = "memory"


class Direction(str, Enum):
    """Scaling direction of an alarm or policy"""
    UP = "up"
    DOWN = "down"


class Statistic(str, Enum):
    """Aggregation applied to the samples of one period"""
    AVERAGE = "average"
    MINIMUM = "minimum"
    MAXIMUM = "maximum"
    SUM = "sum"
    SAMPLE_COUNT = "sample_count"


class AlarmStatus(str, Enum):
    OK = "OK"
    ALARM = "ALARM"


class AlarmTransition(str, Enum):
    """Outcome of evaluating one period; only ENTERED_ALARM is actionable"""
    NONE = "none"
    ENTERED_ALARM = "entered_alarm"
    STILL_ALARM = "still_alarm"
    CLEARED = "cleared"


class Decision(str, Enum):
    """Recorded outcome of a policy firing"""
    APPLIED = "applied"
    SKIPPED_COOLDOWN = "skipped_cooldown"
    SATURATED = "saturated"


class UtilizationSample(BaseModel):
    """A single utilization reading for one fleet"""
    model_config = ConfigDict(frozen=True)

    signal_kind: SignalKind = Field(..., description="Signal the sample belongs to")
    fleet_id: str = Field(..., description="Fleet identifier")
    value: float = Field(..., ge=0, le=100, description="Utilization percentage")
    timestamp: float = Field(..., description="Sample time in clock seconds")


class AlarmSpec(BaseModel):
    """Static definition of one (signal, direction) alarm"""
    model_config = ConfigDict(frozen=True)

    signal_kind: SignalKind
    direction: Direction
    threshold: float = Field(..., ge=0, le=100, description="Threshold percentage")
    evaluation_periods: int = Field(2, ge=1, description="Consecutive breaching periods to alarm")
    period_length: float = Field(10.0, gt=0, description="Period length in clock seconds")
    statistic: Statistic = Statistic.AVERAGE

    @property
    def name(self) -> str:
        return f"{self.signal_kind.value}-{self.direction.value}"

    @property
    def window(self) -> float:
        """Longest span of samples this alarm ever looks at"""
        return self.period_length * self.evaluation_periods


class FleetCapacity(BaseModel):
    """Immutable snapshot of the fleet size bounds"""
    model_config = ConfigDict(frozen=True)

    desired: int = Field(..., ge=0)
    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)


class ScalingDecision(BaseModel):
    """Model for a recorded scaling policy firing"""
    policy: str = Field(..., description="Policy name: 'scale_up' or 'scale_down'")
    direction: Direction
    decision: Decision
    old_desired: int = Field(..., ge=0)
    new_desired: int = Field(..., ge=0)
    adjustment: int = Field(..., description="Configured signed capacity delta")
    triggered_by: list[str] = Field(default_factory=list, description="Alarms that fired the policy")
    cooldown_remaining: float = Field(0.0, ge=0)
    reason: str = ""
    timestamp: float = Field(..., description="Clock time of the firing")

    @property
    def changed(self) -> bool:
        return self.new_desired != self.old_desired


class AlarmStatusView(BaseModel):
    """Inspectable state of one alarm"""
    name: str
    signal_kind: SignalKind
    direction: Direction
    threshold: float
    evaluation_periods: int
    period_length: float
    statistic: Statistic
    status: AlarmStatus
    consecutive_breaches: int
    last_transition: AlarmTransition
    recent_aggregates: list[Optional[float]] = Field(default_factory=list)


class PolicyStatusView(BaseModel):
    """Inspectable state of one scaling policy"""
    name: str
    direction: Direction
    adjustment: int
    cooldown: float
    cooldown_remaining: float
    last_decision: Optional[Decision] = None


class AutoscalerStatus(BaseModel):
    """Status response for the observability surface"""
    fleet_id: str
    capacity: FleetCapacity
    alarms: Dict[str, AlarmStatusView]
    policies: Dict[str, PolicyStatusView]
    tick_count: int = 0
    last_tick_at: Optional[float] = None
    deferred_scale_down: bool = False
    last_converge_error: Optional[str] = None
    running: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HealthStatus(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Optional[Dict[str, object]] = Field(None, description="Additional health details")
