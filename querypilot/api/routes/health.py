"""
Health Check Routes

FastAPI endpoints for service health checks.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, status

from querypilot import __version__
from querypilot.models.api import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health() -> HealthResponse:
    """
    Basic liveness check.

    Returns 200 OK if the service is running.
    """
    from querypilot.api.main import app_state

    return HealthResponse(
        status="healthy" if app_state["runtime"] is not None else "starting",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
    )
