"""Health check — liveness plus origin and analytics state."""

from fastapi import APIRouter

from mediagate import __version__
from mediagate.schemas.system import HealthResponse
from mediagate.services import get_origin_monitor, get_view_recorder

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Lightweight check — also reports origin state when services are up."""
    response = HealthResponse(version=__version__)
    try:
        response.origin_state = get_origin_monitor().state.value
        response.analytics_backlog = get_view_recorder().backlog
    except RuntimeError:
        pass  # Services not initialized
    return response


@router.get("/ping")
async def ping():
    """Ultra-lightweight ping."""
    return {"status": "ok"}
