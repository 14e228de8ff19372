"""Stream URL issuing — the URL bundle the client-side resolver starts from."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from mediagate.config import settings
from mediagate.media_types import classify_mode, is_streamable
from mediagate.schemas.media import ErrorDetail, FileDescriptor, StreamUrlBundle
from mediagate.schemas.stream import PlaybackMode
from mediagate.services.fallback_store import FallbackStore, FallbackUnavailable
from mediagate.services.origin_state_machine import OriginState
from mediagate.services.origin_store import OriginStore
from mediagate.utils.signing import build_stream_url, create_stream_token

if TYPE_CHECKING:
    from mediagate.services.origin_monitor import OriginMonitor

logger = logging.getLogger(__name__)


class StreamIssueError(Exception):
    """Issuing failed; ``detail`` tells the client whether to retry."""

    def __init__(self, status_code: int, detail: ErrorDetail):
        super().__init__(detail.message)
        self.status_code = status_code
        self.detail = detail


class StreamUrlIssuer:
    def __init__(
        self,
        origin: OriginStore,
        fallback: FallbackStore,
        monitor: OriginMonitor | None = None,
        max_preview_bytes: int | None = None,
    ):
        self._origin = origin
        self._fallback = fallback
        self._monitor = monitor
        self._max_preview_bytes = max_preview_bytes or settings.max_preview_bytes

    async def issue(
        self, identity: str, file: FileDescriptor, action: str | None = None
    ) -> StreamUrlBundle:
        """Build ``{primary_url, fallback_url?, adaptive_url?, origin_online}``.

        Raises StreamIssueError (413 too large to preview, 503 no store reachable).
        """
        if (
            action != "download"
            and file.size_bytes > self._max_preview_bytes
            and not is_streamable(file.mime_type, file.original_name)
        ):
            raise StreamIssueError(
                413,
                ErrorDetail(
                    code="file_too_large",
                    message="File too large for preview",
                    suggest_download=True,
                ),
            )

        online = await self._origin_online()
        fallback_url = await self._signed_fallback(file.storage_path)

        if not online:
            if fallback_url is None:
                raise StreamIssueError(
                    503,
                    ErrorDetail(
                        code="origin_unavailable",
                        message="Storage server unavailable",
                        retryable=True,
                    ),
                )
            logger.info("Origin offline — issuing fallback URL for %s", file.id)
            return StreamUrlBundle(
                primary_url=fallback_url,
                origin_online=False,
                source="fallback",
                file=file,
            )

        adaptive_url = None
        if classify_mode(file.mime_type, file.original_name) == PlaybackMode.DIRECT:
            adaptive_url = await self._adaptive_url(identity, file.storage_path)

        return StreamUrlBundle(
            primary_url=build_stream_url(settings.stream_base_url, file.storage_path, identity),
            fallback_url=fallback_url,
            adaptive_url=adaptive_url,
            origin_online=True,
            source="origin",
            file=file,
        )

    async def _origin_online(self) -> bool:
        if self._monitor is None:
            return await self._origin.health()
        if self._monitor.state == OriginState.UNKNOWN:
            return await self._monitor.check_now()
        return self._monitor.state == OriginState.ONLINE

    async def _signed_fallback(self, storage_path: str) -> str | None:
        if not self._fallback.configured:
            return None
        try:
            return await self._fallback.create_signed_url(storage_path)
        except FallbackUnavailable as exc:
            logger.warning("Fallback URL unavailable for %s: %s", storage_path, exc)
            return None

    async def _adaptive_url(self, identity: str, storage_path: str) -> str | None:
        """HLS rendition lives at ``hls/{owner}/{basename}/index.m3u8``."""
        parts = storage_path.strip("/").split("/")
        if len(parts) < 2:
            return None
        playlist = f"hls/{parts[0]}/{PurePosixPath(parts[-1]).stem}/index.m3u8"
        if not await self._origin.exists(playlist):
            return None
        token = create_stream_token(storage_path, identity)
        return f"{settings.stream_base_url}/{playlist}?token={token}"
