"""
Health check endpoints.

- /health: Basic liveness check (is the process running?)
- /health/ready: Readiness check (can we serve traffic?)

Orchestrators treat the two differently: a failing liveness check restarts
the process, a failing readiness check only stops traffic to it.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...infrastructure.snowflake.client import check_connection, get_snowflake_connection
from ..dependencies import SettingsDep, snowflake_config

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Liveness check. Fast, and never touches external dependencies."""
    return HealthResponse(
        status="ok",
        version=__version__,
        details={"mock_mode": settings.snowflake_mock_mode},
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if the service can handle traffic. Checks configuration and the database.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
def readiness_check(settings: SettingsDep, response: Response) -> ReadinessResponse:
    """
    Readiness check - can we serve traffic?

    Verifies configuration and runs a trivial query against Snowflake
    (skipped in mock mode). Returns 503 if any check fails, which tells
    load balancers not to route traffic here.
    """
    checks: list[ReadinessCheck] = []

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="error",
            error=f"Missing required fields: {', '.join(missing_fields)}"
        ))
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    if settings.snowflake_mock_mode:
        checks.append(ReadinessCheck(name="database", status="ok", error="mock mode"))
    elif missing_fields:
        checks.append(ReadinessCheck(name="database", status="error", error="not configured"))
    else:
        try:
            with get_snowflake_connection(snowflake_config(settings)) as conn:
                check_connection(conn)
            checks.append(ReadinessCheck(name="database", status="ok"))
        except Exception as e:
            logger.error("Database health check failed", extra={"error": str(e)})
            checks.append(ReadinessCheck(name="database", status="error", error=str(e)))

    all_ok = all(check.status == "ok" for check in checks)
    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            }
        )

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
