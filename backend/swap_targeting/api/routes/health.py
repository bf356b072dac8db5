"""Health Probes — liveness and readiness for the swap targeting API.

Invariants:
    - GET /api/v1/health/ answers 200 whenever the process can serve requests
    - GET /api/v1/health/ready answers 503 until the database answers SELECT 1
    - Probes carry no identity and are never rate limited

Design Decisions:
    - database.db_manager looked up per call: lifespan assigns it after import
    - Readiness reports every check by name so new checks slot into the same shape
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from swap_targeting.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE_NAME = "swap-targeting-api"
SERVICE_VERSION = "1.0.0"


async def _database_check() -> str:
    manager = database.db_manager
    if manager is None:
        return "not_initialized"
    return "healthy" if await manager.health_check() else "unavailable"


@router.get("/", status_code=status.HTTP_200_OK)
async def liveness():
    return {"status": "healthy", "service": SERVICE_NAME, "version": SERVICE_VERSION}


@router.get("/ready")
async def readiness():
    """Ready only when every dependency check reports healthy."""
    checks = {"database": await _database_check()}
    failing = [name for name, state in checks.items() if state != "healthy"]
    if failing:
        logger.warning(
            f"Readiness failing: {', '.join(failing)}",
            extra={"action": "readiness"},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
