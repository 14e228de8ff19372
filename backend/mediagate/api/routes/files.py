"""File delivery routes — authorized byte-range proxy (GET / HEAD)."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from mediagate.api.deps import api_error, authorize_file, client_ip
from mediagate.database import get_db
from mediagate.services import get_range_proxy
from mediagate.services.fallback_store import FallbackUnavailable
from mediagate.utils.http_range import RangeNotSatisfiable

logger = logging.getLogger(__name__)
router = APIRouter()


@router.api_route("", methods=["GET", "HEAD"])
async def serve_file(
    request: Request,
    identity: Optional[str] = Query(None, alias="id"),
    path: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Serve a stored object to a guest or user, honouring ``Range``."""
    file = await authorize_file(db, identity, path)
    proxy = get_range_proxy()

    if request.method == "HEAD":
        return proxy.head(file)

    try:
        return await proxy.serve(
            file,
            viewer_id=identity,
            range_header=request.headers.get("range"),
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            download=action == "download",
        )
    except RangeNotSatisfiable as exc:
        return Response(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            headers={"Content-Range": exc.content_range, "Accept-Ranges": "bytes"},
        )
    except FallbackUnavailable:
        raise api_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "origin_unavailable",
            "Storage server unavailable",
            retryable=True,
        )
