"""API route registration."""

from fastapi import APIRouter

from mediagate.api.routes import files, health, stream

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(stream.router, prefix="/stream", tags=["stream"])
