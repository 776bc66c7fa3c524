"""Health check endpoints"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(prefix="/health", tags=["health"])

SERVICE_VERSION = "1.0.0"

# Track startup time
STARTUP_TIME = time.time()


@router.get("")
def health_check(request: Request) -> Dict[str, Any]:
    """
    Basic health check endpoint

    Reports process uptime plus database and event publisher configuration
    """
    return {
        "status": "OK",
        "service": "policy-service",
        "version": SERVICE_VERSION,
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "database": request.app.state.database.status(),
        "events": request.app.state.events.get_config(),
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/ready")
def readiness_check(request: Request):
    """
    Readiness check - verifies the database answers a round-trip

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks = {
        "database": False,
        "database_latency_ms": None
    }

    try:
        start = time.time()
        request.app.state.database.ping()
        checks["database"] = True
        checks["database_latency_ms"] = round((time.time() - start) * 1000, 2)
    except SQLAlchemyError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": f"Database check failed: {str(e)}"
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by Kubernetes liveness probe
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": datetime.utcnow().isoformat()
    }
