#!/usr/bin/env python3
"""
Fleet Autoscaler - Main Entry Point
Scales a load-balanced compute fleet from CPU and memory utilization alarms
"""

import os
import sys
import signal
import threading
from typing import Optional

from prometheus_client import start_http_server

from .api.server import APIServer
from .config import Settings
from .core.autoscaler import FleetAutoscaler
from .core.fleet import CapacityInvariantError
from .core.logging_config import setup_logging, get_logger
from .core.metrics import InMemoryMetricSource, MetricSource, PrometheusMetricSource
from .core.provisioning import DryRunProvisioner, Provisioner, WebhookProvisioner
from .models.metrics import SignalKind


def build_metric_source(settings: Settings) -> Optional[MetricSource]:
    """Prometheus when enabled, otherwise the autoscaler's in-memory source"""
    if not settings.prometheus.enabled:
        return None
    return PrometheusMetricSource(
        url=settings.prometheus.url,
        queries={
            SignalKind.CPU: settings.prometheus.cpu_query,
            SignalKind.MEMORY: settings.prometheus.memory_query,
        },
        timeout=settings.autoscaler.fetch_timeout,
        step=settings.prometheus.step_seconds,
    )


def build_provisioner(settings: Settings) -> Provisioner:
    if settings.autoscaler.dry_run or settings.provisioning.mode == "dry_run":
        return DryRunProvisioner(fleet_id=settings.autoscaler.fleet_id)
    return WebhookProvisioner(
        url=settings.provisioning.webhook_url,
        fleet_id=settings.autoscaler.fleet_id,
        health_check=settings.health_check.model_dump(),
        timeout=settings.provisioning.timeout,
    )


class AutoscalerService:
    """Main autoscaler service that coordinates all components"""

    def __init__(self, config_path: Optional[str] = None, settings: Optional[Settings] = None):
        """Initialize the autoscaler service"""
        if settings is not None:
            self.settings = settings
        elif config_path and os.path.exists(config_path):
            self.settings = Settings.load_from_yaml_with_env_override(config_path)
        else:
            self.settings = Settings()

        setup_logging(
            level=self.settings.logging.level,
            log_file=self.settings.logging.file,
            enable_colors=self.settings.logging.colors,
            fleet_id=self.settings.autoscaler.fleet_id
        )
        self.logger = get_logger(__name__)

        self.autoscaler = FleetAutoscaler(
            self.settings.autoscaler,
            metric_source=build_metric_source(self.settings),
            provisioner=build_provisioner(self.settings),
        )
        self.api_server = APIServer(self.autoscaler, self.settings.get_config_dict())

        self.logger.info("Fleet Autoscaler Service initialized")
        if isinstance(self.autoscaler.metric_source, InMemoryMetricSource):
            self.logger.warning("Prometheus disabled: samples must be pushed through POST /samples")
        if self.settings.debug:
            self.logger.info(f"Debug mode enabled. Settings: {self.settings.model_dump()}")

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.autoscaler.stop()

    def run(self):
        """Main run loop"""
        self.logger.info("Starting Fleet Autoscaler Service...")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        start_http_server(self.settings.api.metrics_port)
        self.logger.info(f"Prometheus metrics server started on :{self.settings.api.metrics_port}")

        api_thread = threading.Thread(
            target=self.api_server.run,
            kwargs={'host': self.settings.api.host, 'port': self.settings.api.port},
            daemon=True
        )
        api_thread.start()
        self.logger.info(f"API server started on :{self.settings.api.port}")

        self.autoscaler.run()
        self.logger.info("Autoscaler service stopped")

    def cleanup(self):
        """Cleanup resources"""
        self.autoscaler.cleanup()
        self.logger.info("Cleanup completed")


def main():
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Fleet Autoscaler')
    parser.add_argument(
        '--config',
        default=os.getenv('CONFIG_PATH', 'config.yaml'),
        help='Path to configuration file'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Run in dry-run mode (no convergence requests)'
    )

    args = parser.parse_args()

    if args.config and os.path.exists(args.config):
        settings = Settings.load_from_yaml_with_env_override(args.config)
    else:
        settings = Settings()

    # Override dry-run setting if specified
    if args.dry_run:
        settings.autoscaler.dry_run = True

    service = AutoscalerService(settings=settings)
    if args.dry_run:
        service.logger.info("Dry-run mode enabled")

    try:
        service.run()
    except KeyboardInterrupt:
        service.logger.info("Received keyboard interrupt")
    except CapacityInvariantError as e:
        service.logger.critical(f"Fatal invariant violation: {e}")
        sys.exit(2)
    except Exception as e:
        service.logger.error(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        service.cleanup()


if __name__ == "__main__":
    main()
