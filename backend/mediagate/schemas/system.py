"""System status schemas."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    service: str = "mediagate"
    origin_state: str = "unknown"
    analytics_backlog: int = 0
