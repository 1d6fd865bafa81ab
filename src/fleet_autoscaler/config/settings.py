#!/usr/bin/env python3
"""
Configuration settings using Pydantic for environment variable loading
"""

import os
from typing import Optional, Dict, Any, List

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models.metrics import AlarmSpec, Direction, SignalKind, Statistic

# Load environment variables from .env file if it exists
load_dotenv()


class AutoscalerSettings(BaseSettings):
    """Main autoscaler configuration settings"""
    model_config = SettingsConfigDict(env_prefix="AUTOSCALER_", extra="ignore")

    fleet_id: str = "web-fleet"
    dry_run: bool = False
    concurrent_polling: bool = False

    # Alarm evaluation
    period_seconds: float = 10.0
    evaluation_periods: int = 2
    statistic: Statistic = Statistic.AVERAGE

    # Threshold settings
    cpu_threshold_up: float = 50.0
    cpu_threshold_down: float = 30.0
    memory_threshold_up: float = 70.0
    memory_threshold_down: float = 30.0

    # Limit settings
    min_size: int = 2
    max_size: int = 5
    desired_capacity: Optional[int] = None

    # Policy settings
    scale_up_adjustment: int = 2
    scale_down_adjustment: int = -1
    scale_up_cooldown: float = 300.0
    scale_down_cooldown: float = 300.0

    # Metric fetch
    fetch_timeout: float = 5.0

    @field_validator("evaluation_periods")
    @classmethod
    def _check_periods(cls, value: int) -> int:
        if value < 1:
            raise ValueError("evaluation_periods must be >= 1")
        return value

    @field_validator("period_seconds", "fetch_timeout")
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("scale_up_cooldown", "scale_down_cooldown")
    @classmethod
    def _check_cooldown(cls, value: float) -> float:
        if value < 0:
            raise ValueError("cooldown must be >= 0")
        return value

    @model_validator(mode="after")
    def _check_limits(self) -> "AutoscalerSettings":
        if self.min_size < 0:
            raise ValueError("min_size must be >= 0")
        if self.max_size < self.min_size:
            raise ValueError(f"max_size ({self.max_size}) must be >= min_size ({self.min_size})")
        desired = self.initial_desired
        if not self.min_size <= desired <= self.max_size:
            raise ValueError(
                f"desired_capacity ({desired}) must lie within [{self.min_size}, {self.max_size}]"
            )
        if self.scale_up_adjustment <= 0:
            raise ValueError("scale_up_adjustment must be positive")
        if self.scale_down_adjustment >= 0:
            raise ValueError("scale_down_adjustment must be negative")
        return self

    @property
    def initial_desired(self) -> int:
        """Starting desired capacity (defaults to min_size)"""
        if self.desired_capacity is None:
            return self.min_size
        return self.desired_capacity

    def alarm_specs(self) -> List[AlarmSpec]:
        """Build the four alarm definitions from the flat threshold settings"""
        thresholds = {
            (SignalKind.CPU, Direction.UP): self.cpu_threshold_up,
            (SignalKind.CPU, Direction.DOWN): self.cpu_threshold_down,
            (SignalKind.MEMORY, Direction.UP): self.memory_threshold_up,
            (SignalKind.MEMORY, Direction.DOWN): self.memory_threshold_down,
        }
        return [
            AlarmSpec(
                signal_kind=signal_kind,
                direction=direction,
                threshold=threshold,
                evaluation_periods=self.evaluation_periods,
                period_length=self.period_seconds,
                statistic=self.statistic,
            )
            for (signal_kind, direction), threshold in thresholds.items()
        ]


class PrometheusSettings(BaseSettings):
    """Prometheus configuration settings"""
    model_config = SettingsConfigDict(env_prefix="PROMETHEUS_", extra="ignore")

    enabled: bool = False
    url: str = "http://prometheus:9090"
    step_seconds: float = 1.0
    cpu_query: str = (
        'avg(100 - (irate(node_cpu_seconds_total{mode="idle",fleet="{fleet_id}"}[1m]) * 100))'
    )
    memory_query: str = (
        'avg((1 - (node_memory_MemAvailable_bytes{fleet="{fleet_id}"} '
        '/ node_memory_MemTotal_bytes{fleet="{fleet_id}"})) * 100)'
    )


class HealthCheckSettings(BaseSettings):
    """Target group health check handed to the provisioning layer"""
    model_config = SettingsConfigDict(env_prefix="HEALTH_CHECK_", extra="ignore")

    path: str = "/"
    interval: int = 30
    timeout: int = 5
    healthy_threshold: int = 2
    unhealthy_threshold: int = 2


class ProvisioningSettings(BaseSettings):
    """Provisioning layer configuration settings"""
    model_config = SettingsConfigDict(env_prefix="PROVISIONING_", extra="ignore")

    mode: str = "dry_run"
    webhook_url: Optional[str] = None
    timeout: float = 5.0

    @model_validator(mode="after")
    def _check_mode(self) -> "ProvisioningSettings":
        if self.mode not in ("dry_run", "webhook"):
            raise ValueError(f"Unknown provisioning mode: {self.mode}")
        if self.mode == "webhook" and not self.webhook_url:
            raise ValueError("webhook_url is required when mode is 'webhook'")
        return self


class LoggingSettings(BaseSettings):
    """Logging configuration settings"""
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = "INFO"
    file: Optional[str] = None
    colors: bool = True


class ApiSettings(BaseSettings):
    """API and exporter settings"""
    model_config = SettingsConfigDict(env_prefix="API_", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8080
    metrics_port: int = 9091


class Settings(BaseSettings):
    """Main settings class that includes all sub-settings"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = False

    # Component settings
    autoscaler: AutoscalerSettings = Field(default_factory=AutoscalerSettings)
    prometheus: PrometheusSettings = Field(default_factory=PrometheusSettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)
    health_check: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    def get_config_dict(self) -> Dict[str, Any]:
        """Sanitized view of the settings for the /config endpoint"""
        scaler = self.autoscaler
        return {
            "autoscaler": {
                "fleet_id": scaler.fleet_id,
                "dry_run": scaler.dry_run,
                "concurrent_polling": scaler.concurrent_polling,
                "evaluation": {
                    "period_seconds": scaler.period_seconds,
                    "evaluation_periods": scaler.evaluation_periods,
                    "statistic": scaler.statistic.value,
                },
                "thresholds": {
                    "cpu_up": scaler.cpu_threshold_up,
                    "cpu_down": scaler.cpu_threshold_down,
                    "memory_up": scaler.memory_threshold_up,
                    "memory_down": scaler.memory_threshold_down,
                },
                "limits": {
                    "min_size": scaler.min_size,
                    "max_size": scaler.max_size,
                    "desired_capacity": scaler.initial_desired,
                },
                "policies": {
                    "scale_up": {
                        "adjustment": scaler.scale_up_adjustment,
                        "cooldown": scaler.scale_up_cooldown,
                    },
                    "scale_down": {
                        "adjustment": scaler.scale_down_adjustment,
                        "cooldown": scaler.scale_down_cooldown,
                    },
                },
            },
            "prometheus": {
                "enabled": self.prometheus.enabled,
                "url": self.prometheus.url,
            },
            "provisioning": {
                "mode": self.provisioning.mode,
            },
            "health_check": self.health_check.model_dump(),
        }

    @classmethod
    def load_from_yaml_with_env_override(cls, yaml_path: str) -> "Settings":
        """Load settings from YAML file and override with environment variables"""
        import yaml

        # Load YAML if it exists
        yaml_config = {}
        if os.path.exists(yaml_path):
            with open(yaml_path, 'r') as f:
                # Process environment variables in YAML
                yaml_content = f.read()
                for key, value in os.environ.items():
                    yaml_content = yaml_content.replace(f"${{{key}}}", value)
                yaml_config = yaml.safe_load(yaml_content) or {}

        return Settings(
            environment=yaml_config.get("environment", "development"),
            debug=yaml_config.get("debug", False),
            autoscaler=AutoscalerSettings(**yaml_config.get("autoscaler", {})),
            prometheus=PrometheusSettings(**yaml_config.get("prometheus", {})),
            provisioning=ProvisioningSettings(**yaml_config.get("provisioning", {})),
            health_check=HealthCheckSettings(**yaml_config.get("health_check", {})),
            logging=LoggingSettings(**yaml_config.get("logging", {})),
            api=ApiSettings(**yaml_config.get("api", {})),
        )
