# api/routes/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.core.config import settings
from api.core.logging import get_structlog_logger
from api.db.session import health_check as database_health_check

logger = get_structlog_logger()

router = APIRouter(tags=["health"])

STARTED_AT = time.time()
SERVICE_NAME = "call-outcome-relay"


class StatusResponse(BaseModel):
    name: str
    version: str
    environment: str
    uptime: float
    services: List[str]
    timestamp: str


@router.get("/status", response_model=StatusResponse)
async def service_status():
    return StatusResponse(
        name=SERVICE_NAME,
        version=settings.app_version,
        environment=settings.environment,
        uptime=round(time.time() - STARTED_AT, 3),
        services=settings.configured_services(),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/health")
async def health():
    """Database round-trip; 503 when it fails."""
    database: Dict[str, Any] = await database_health_check()
    healthy = database.get("status") == "healthy"

    if not healthy:
        logger.warning("health.check", status="unhealthy", database=database)

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": SERVICE_NAME,
            "version": settings.app_version,
            "checks": {"database": database},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
