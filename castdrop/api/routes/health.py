"""
Liveness and readiness checks.

/health answers as long as the process is up. /health/ready also proves
the bucket is reachable with our credentials, since no request can be
served without it.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ...config.settings import Settings
from ...infrastructure.storage.client import StorageClient, StorageError
from ..dependencies import SettingsDep, StorageClientDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthStatus(BaseModel):
    """Liveness payload, plus the limits this instance enforces."""
    status: str
    version: str
    details: dict[str, Any] = {}


class CheckResult(BaseModel):
    name: str
    status: str  # "ok" | "error"
    error: Optional[str] = None


class ReadinessStatus(BaseModel):
    status: str  # "ready" | "not_ready"
    version: str
    checks: list[CheckResult]


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _check_configuration(settings: Settings) -> CheckResult:
    missing = settings.validate_required_fields()
    if missing:
        return CheckResult(
            name="configuration",
            status="error",
            error=f"Missing: {', '.join(missing)}",
        )
    return CheckResult(name="configuration", status="ok")


async def _check_storage(storage: StorageClient, mock_mode: bool) -> CheckResult:
    try:
        await storage.ping()
    except StorageError as e:
        logger.error("Bucket check failed", extra={"error": str(e)})
        return CheckResult(name="storage", status="error", error=str(e))

    return CheckResult(name="storage", status="ok", error="mock mode" if mock_mode else None)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=HealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
    description="200 while the process runs. Touches no external service.",
)
async def health_check(settings: SettingsDep) -> HealthStatus:
    return HealthStatus(
        status="ok",
        version=__version__,
        details={
            "mock_mode": {"r2": settings.r2_mock_mode},
            "max_file_size_mb": settings.max_file_size_mb,
            "chunk_size_mb": settings.chunk_size_mb,
            "max_age_minutes": settings.max_age_minutes,
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessStatus,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="200 when configuration is complete and the bucket answers, 503 otherwise.",
    responses={503: {"description": "Not ready", "model": ReadinessStatus}},
)
async def readiness_check(
    settings: SettingsDep,
    storage: StorageClientDep,
    response: Response,
) -> ReadinessStatus:
    """
    Every upload, playback and delete goes to the bucket, so a failed
    storage check means this instance should be taken out of rotation.
    """
    checks = [
        _check_configuration(settings),
        await _check_storage(storage, settings.r2_mock_mode),
    ]

    ready = all(check.status == "ok" for check in checks)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Instance not ready",
            extra={"failed_checks": [c.name for c in checks if c.status != "ok"]}
        )

    return ReadinessStatus(
        status="ready" if ready else "not_ready",
        version=__version__,
        checks=checks,
    )
