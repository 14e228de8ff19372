"""Stream URL issuing route — consumed by the client-side resolver."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from mediagate.api.deps import authorize_file
from mediagate.database import get_db
from mediagate.schemas.media import StreamUrlBundle, StreamUrlRequest
from mediagate.services import get_stream_issuer
from mediagate.services.stream_issuer import StreamIssueError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/url", response_model=StreamUrlBundle)
async def issue_stream_url(body: StreamUrlRequest, db: AsyncSession = Depends(get_db)):
    """Primary / fallback / adaptive URLs plus origin liveness for one file."""
    file = await authorize_file(db, body.identity, body.storage_path)
    try:
        return await get_stream_issuer().issue(body.identity, file, action=body.action)
    except StreamIssueError as exc:
        logger.info("Stream URL refused for %s: %s", file.id, exc.detail.code)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail.model_dump())
