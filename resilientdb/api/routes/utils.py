from fastapi import APIRouter
from fastapi.responses import JSONResponse

from resilientdb.api.deps import DatabaseDep
from resilientdb.core.health import liveness_check, readiness_check
from resilientdb.core.pool import HealthStatus

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/liveness/", response_model=None)
async def liveness() -> bool | JSONResponse:
    """
    Liveness probe: is the process alive and responsive?

    Lightweight: no database I/O.  If this fails the container should be
    restarted by the orchestrator.
    """
    ok, failures = liveness_check()
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Process unhealthy", "data": failures},
        )
    return True


@router.get("/health-check/", response_model=None)
def health_check(database: DatabaseDep) -> bool | JSONResponse:
    """
    Readiness probe: can the service handle traffic?

    Returns 200 with true if the database is connected and healthy; 503 otherwise.
    """
    ok, failures = readiness_check(database)
    if not ok:
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "message": "Service Unavailable",
                "data": failures,
            },
        )
    return True


@router.get("/health-check/database/")
def database_health(database: DatabaseDep) -> HealthStatus:
    """Connection state, failure streak, query counters and latency."""
    return database.get_health_status()
