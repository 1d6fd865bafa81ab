#!/usr/bin/env python3
"""
FastAPI server module for autoscaler observability and control endpoints
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.autoscaler import FleetAutoscaler
from ..core.fleet import CapacityInvariantError
from ..core.metrics import InMemoryMetricSource
from ..events import EventType
from ..models.metrics import Direction, HealthStatus, SignalKind, UtilizationSample

logger = logging.getLogger(__name__)


# Pydantic models for request/response
class ScalingRequest(BaseModel):
    action: str  # "scale_up" or "scale_down"
    reason: Optional[str] = None


class SampleRequest(BaseModel):
    signal_kind: SignalKind
    value: float = Field(..., ge=0, le=100)
    timestamp: Optional[float] = None
    fleet_id: Optional[str] = None


class SamplesRequest(BaseModel):
    samples: List[SampleRequest]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class APIServer:
    """FastAPI server for autoscaler endpoints"""

    def __init__(self, autoscaler: FleetAutoscaler, config: Dict[str, Any]):
        """
        Initialize API server

        Args:
            autoscaler: FleetAutoscaler instance
            config: Sanitized configuration dictionary
        """
        self.autoscaler = autoscaler
        self.config = config
        self.app = FastAPI(
            title="Fleet Autoscaler API",
            description="Observability and control for the fleet autoscaling loop",
            version="1.0.0"
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes"""

        @self.app.get("/")
        async def root():
            """Root endpoint"""
            return {
                "service": "Fleet Autoscaler",
                "version": "1.0.0",
                "fleet_id": self.autoscaler.fleet_id,
                "timestamp": _now()
            }

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint"""
            status = self.autoscaler.get_status()
            healthy = status.last_converge_error is None
            health = HealthStatus(
                status="healthy" if healthy else "unhealthy",
                details={
                    "running": status.running,
                    "tick_count": status.tick_count,
                    "last_converge_error": status.last_converge_error,
                }
            )
            return JSONResponse(
                content=health.model_dump(mode="json"),
                status_code=200 if healthy else 503
            )

        @self.app.get("/status")
        async def get_status():
            """Desired capacity, alarm states and policy cooldowns"""
            return self.autoscaler.get_status().model_dump(mode="json")

        @self.app.get("/alarms")
        async def get_alarms():
            """Get every alarm's state"""
            alarms = [alarm.view().model_dump(mode="json") for alarm in self.autoscaler.alarms]
            return {"alarms": alarms, "count": len(alarms)}

        @self.app.get("/policies")
        async def get_policies():
            """Get every scaling policy and its cooldown"""
            policies = [policy.view().model_dump(mode="json") for policy in self.autoscaler.policies]
            return {"policies": policies, "count": len(policies)}

        @self.app.get("/history")
        async def get_history(limit: int = Query(50, ge=1, le=1000), event_type: Optional[str] = None):
            """Get recent alarm and scaling events"""
            selected = None
            if event_type is not None:
                try:
                    selected = EventType(event_type)
                except ValueError:
                    raise HTTPException(status_code=400, detail=f"Unknown event type: {event_type}")

            events = self.autoscaler.event_bus.get_history(limit=limit, event_type=selected)
            return {
                "events": [event.to_dict() for event in events],
                "count": len(events),
                "limit": limit
            }

        @self.app.get("/config")
        async def get_config():
            """Get current autoscaler configuration (sanitized)"""
            return self.config

        @self.app.post("/samples")
        async def post_samples(request: SamplesRequest):
            """Push samples into the in-memory metric source"""
            source = self.autoscaler.metric_source
            if not isinstance(source, InMemoryMetricSource):
                raise HTTPException(
                    status_code=400,
                    detail="Samples can only be pushed when the in-memory metric source is active"
                )

            now = self.autoscaler.clock.now()
            accepted = [
                UtilizationSample(
                    signal_kind=item.signal_kind,
                    fleet_id=item.fleet_id or self.autoscaler.fleet_id,
                    value=item.value,
                    timestamp=now if item.timestamp is None else item.timestamp,
                )
                for item in request.samples
            ]
            source.record_many(accepted)
            return {"accepted": len(accepted), "timestamp": _now()}

        @self.app.post("/cycle")
        def run_tick():
            """Run one evaluation tick now"""
            try:
                return self.autoscaler.run_tick()
            except CapacityInvariantError as e:
                logger.critical(f"Capacity invariant violated during manual tick: {e}")
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/scale")
        def manual_scale(request: ScalingRequest):
            """Fire a scaling policy by hand; cooldown and bounds still apply"""
            directions = {"scale_up": Direction.UP, "scale_down": Direction.DOWN}
            if request.action not in directions:
                raise HTTPException(
                    status_code=400,
                    detail="Action must be 'scale_up' or 'scale_down'"
                )

            decision = self.autoscaler.fire_policy(
                directions[request.action], reason=request.reason or "manual"
            )
            return decision.model_dump(mode="json")

        @self.app.post("/stop")
        async def stop_autoscaler():
            """Stop the autoscaler"""
            self.autoscaler.stop()
            return {
                "message": "Autoscaler stopped",
                "timestamp": _now()
            }

    def run(self, host: str = "0.0.0.0", port: int = 8080):
        """Run the API server"""
        logger.info(f"Starting API server on {host}:{port}")
        uvicorn.run(self.app, host=host, port=port, log_level="info")
