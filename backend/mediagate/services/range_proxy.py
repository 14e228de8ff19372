"""Range-serving proxy — streams origin bytes to the client honouring Range.

One call per inbound request, no shared mutable state. The origin body is
relayed chunk by chunk; when the client goes away the relay is cancelled
and the origin response closed with it.
"""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator
from urllib.parse import quote

import httpx
from fastapi.responses import RedirectResponse, Response, StreamingResponse

from mediagate.config import settings
from mediagate.schemas.media import FileDescriptor, ViewRecord, ViewType
from mediagate.services.fallback_store import FallbackStore, FallbackUnavailable
from mediagate.services.origin_store import OriginError, OriginStore
from mediagate.services.view_analytics import ViewAnalyticsRecorder
from mediagate.utils.http_range import (
    ByteRange,
    parse_content_range,
    parse_range_header,
    resolve_range,
)

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 200
_PASSTHROUGH_HEADERS = ("content-encoding", "etag", "last-modified")


def content_disposition(disposition: str, filename: str) -> str:
    """``inline; filename="..."`` with an RFC 5987 copy for non-ASCII names."""
    safe = filename.replace("\\", "_").replace('"', "'")
    try:
        safe.encode("latin-1")
        return f'{disposition}; filename="{safe}"'
    except UnicodeEncodeError:
        ascii_name = safe.encode("ascii", "replace").decode().replace("?", "_")
        return f"{disposition}; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


class RangeProxy:
    """Serves one authorized file request against the origin store."""

    def __init__(
        self,
        origin: OriginStore,
        fallback: FallbackStore,
        recorder: ViewAnalyticsRecorder,
        cache_control: str | None = None,
    ):
        self._origin = origin
        self._fallback = fallback
        self._recorder = recorder
        self._cache_control = cache_control or settings.cache_control

    def head(self, file: FileDescriptor) -> Response:
        """Seekability probe: full-size headers, no body, no origin traffic."""
        return Response(
            status_code=200,
            headers={
                "Content-Type": file.mime_type or "application/octet-stream",
                "Content-Length": str(file.size_bytes),
                "Accept-Ranges": "bytes",
                "Cache-Control": self._cache_control,
            },
        )

    async def serve(
        self,
        file: FileDescriptor,
        viewer_id: str,
        range_header: str | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
        download: bool = False,
    ) -> Response:
        """GET handling. Raises RangeNotSatisfiable or FallbackUnavailable."""
        started = time.perf_counter()
        requested = parse_range_header(range_header)
        window = resolve_range(requested, file.size_bytes) if requested else None

        try:
            upstream = await self._origin.open(
                file.storage_path, range_header if requested else None
            )
        except OriginError as exc:
            logger.warning("Origin fetch failed for %s: %s — trying fallback", file.id, exc)
            return await self._redirect_to_fallback(
                file, viewer_id, window, client_ip, user_agent, download
            )

        headers, served_bytes = self._build_headers(file, upstream, window, download)
        if download:
            view_type = ViewType.DOWNLOAD
        elif upstream.status_code == 206:
            view_type = ViewType.STREAM
        else:
            view_type = ViewType.PREVIEW

        self._hand_off(
            ViewRecord(
                file_id=file.id,
                viewer_id=viewer_id,
                ip=client_ip,
                user_agent=user_agent,
                view_type=view_type,
                bytes_transferred=served_bytes,
            )
        )

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow origin response for %s: %.0fms", file.id, elapsed_ms)
        logger.debug(
            "Streaming %s via origin: status=%d bytes=%d", file.id, upstream.status_code, served_bytes
        )

        return StreamingResponse(
            _relay(upstream),
            status_code=upstream.status_code,
            headers=headers,
        )

    def _build_headers(
        self,
        file: FileDescriptor,
        upstream: httpx.Response,
        window: ByteRange | None,
        download: bool,
    ) -> tuple[dict[str, str], int]:
        """Response headers plus the byte count this response delivers."""
        headers = {
            "Content-Type": upstream.headers.get("content-type")
            or file.mime_type
            or "application/octet-stream",
            "Accept-Ranges": "bytes",
            "Cache-Control": self._cache_control,
        }
        for name in _PASSTHROUGH_HEADERS:
            if name in upstream.headers:
                headers[name.title()] = upstream.headers[name]

        upstream_length = upstream.headers.get("content-length")

        if upstream.status_code == 206:
            served = parse_content_range(upstream.headers.get("content-range")) or window
            if served is None:
                # 206 without a usable Content-Range and no request window
                served = ByteRange(0, max(file.size_bytes - 1, 0), file.size_bytes)
            headers["Content-Range"] = upstream.headers.get("content-range") or served.content_range
            headers["Content-Length"] = upstream_length or str(served.length)
            return headers, served.length

        length = int(upstream_length) if upstream_length else file.size_bytes
        headers["Content-Length"] = str(length)
        headers["Content-Disposition"] = content_disposition(
            "attachment" if download else "inline", file.original_name
        )
        return headers, length

    async def _redirect_to_fallback(
        self,
        file: FileDescriptor,
        viewer_id: str,
        window: ByteRange | None,
        client_ip: str | None,
        user_agent: str | None,
        download: bool,
    ) -> Response:
        try:
            signed_url = await self._fallback.create_signed_url(file.storage_path)
        except FallbackUnavailable:
            logger.error("Origin and fallback both unavailable for %s", file.id)
            raise

        logger.info("Redirecting %s to fallback store", file.id)
        if download:
            view_type = ViewType.DOWNLOAD
        else:
            view_type = ViewType.STREAM if window else ViewType.PREVIEW
        self._hand_off(
            ViewRecord(
                file_id=file.id,
                viewer_id=viewer_id,
                ip=client_ip,
                user_agent=user_agent,
                view_type=view_type,
                bytes_transferred=window.length if window else file.size_bytes,
            )
        )
        return RedirectResponse(signed_url, status_code=302, headers={"Cache-Control": "no-store"})

    def _hand_off(self, view: ViewRecord) -> None:
        try:
            self._recorder.record(view)
        except Exception:
            logger.exception("View hand-off failed for file=%s", view.file_id)


async def _relay(upstream: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await upstream.aclose()
