# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from schoolportal import __version__
from schoolportal.api.container import Container
from schoolportal.api.dependencies import get_container

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class BackgroundHealth(BaseModel):
    """Background dispatcher counters."""
    status: str = Field(description="Dispatcher status")
    pending: int = Field(description="Queued side effects")
    failed: int = Field(description="Side effects that raised")
    dropped: int = Field(description="Side effects dropped on a full queue")


class ComponentsHealth(BaseModel):
    """All components health status."""
    document_store: ComponentHealth | None = None
    background: BackgroundHealth | None = None


class HealthResponse(BaseModel):
    """Health check response model."""
    ok: bool = Field(description="Whether every component is healthy")
    status: str = Field(description="Overall health status")
    env: str = Field(description="Deployment environment")
    version: str = Field(description="API version")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_document_store(container: Container) -> ComponentHealth:
    """Read a document to check the store answers."""
    try:
        start = time.time()
        await container.store.get("health", "ping")
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="healthy", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("Document store health check failed: %s", str(e))
        return ComponentHealth(status="unhealthy", message=str(e))


def check_background(container: Container) -> BackgroundHealth:
    dispatcher = container.dispatcher
    return BackgroundHealth(
        status="healthy" if dispatcher.is_running else "stopped",
        pending=dispatcher.pending,
        failed=dispatcher.failed,
        dropped=dispatcher.dropped,
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(container: Container = Depends(get_container)) -> HealthResponse:
    """Check if the API is healthy with component details.

    Returns:
        HealthResponse with detailed status.
    """
    store_health = await check_document_store(container)
    background_health = check_background(container)

    statuses = [store_health.status, background_health.status]
    if all(s == "healthy" for s in statuses):
        overall_status = "healthy"
    elif store_health.status == "unhealthy":
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthResponse(
        ok=overall_status == "healthy",
        status=overall_status,
        env=container.settings.environment,
        version=__version__,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=datetime.now(timezone.utc),
        components=ComponentsHealth(document_store=store_health, background=background_health),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(container: Container = Depends(get_container)) -> ReadinessResponse:
    """Check if the API is ready to accept traffic.

    Returns:
        ReadinessResponse with individual check results.
    """
    store_health = await check_document_store(container)
    checks: dict[str, Any] = {
        "document_store": {"status": store_health.status, "latency_ms": store_health.latency_ms},
        "background": {"running": container.dispatcher.is_running},
    }
    ready = store_health.status == "healthy" and container.dispatcher.is_running
    return ReadinessResponse(ready=ready, checks=checks)
