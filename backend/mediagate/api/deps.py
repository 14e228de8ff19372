"""Request-level helpers shared by the delivery routes — identity & access."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from mediagate.schemas.media import ErrorDetail, FileDescriptor
from mediagate.services import get_access_gate
from mediagate.services.access_gate import IdentityBanned, IdentityNotFound, resolve_identity

logger = logging.getLogger(__name__)


def api_error(
    status_code: int, code: str, message: str, retryable: bool = False, **extra
) -> HTTPException:
    """HTTPException whose ``detail`` is a structured ErrorDetail."""
    detail = ErrorDetail(code=code, message=message, retryable=retryable, **extra)
    return HTTPException(status_code=status_code, detail=detail.model_dump())


async def authorize_file(
    db: AsyncSession, identity: Optional[str], storage_path: Optional[str]
) -> FileDescriptor:
    """Validate identity, then one AccessGate round trip.

    Identity problems are reported before any file lookup so an invalid
    identity learns nothing about which paths exist.
    """
    if not identity or not storage_path:
        raise api_error(status.HTTP_400_BAD_REQUEST, "bad_request", "Identity and storage path are required")

    try:
        principal = await resolve_identity(db, identity)
    except IdentityNotFound:
        raise api_error(status.HTTP_404_NOT_FOUND, "identity_not_found", "Identity not found")
    except IdentityBanned:
        logger.info("Rejected banned identity %s", identity)
        raise api_error(status.HTTP_403_FORBIDDEN, "identity_banned", "Account is banned")

    result = await get_access_gate().check(db, principal.id, storage_path)
    if not result.has_access:
        if result.exists:
            raise api_error(status.HTTP_403_FORBIDDEN, "access_denied", "Access denied")
        raise api_error(status.HTTP_404_NOT_FOUND, "file_not_found", "File not found")
    return result.metadata


def client_ip(request: Request) -> Optional[str]:
    """First proxy hop, then CDN / reverse-proxy headers, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("cf-connecting-ip", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    return request.client.host if request.client else None
