"""
Configuration module for autoscaler settings
"""

from .settings import (
    Settings,
    AutoscalerSettings,
    PrometheusSettings,
    ProvisioningSettings,
    HealthCheckSettings,
    LoggingSettings,
    ApiSettings,
)

__all__ = [
    "Settings",
    "AutoscalerSettings",
    "PrometheusSettings",
    "ProvisioningSettings",
    "HealthCheckSettings",
    "LoggingSettings",
    "ApiSettings",
]
