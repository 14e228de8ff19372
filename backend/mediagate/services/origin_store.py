"""Origin store client — ranged object fetches over a bounded connection pool."""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import quote

import httpx

from mediagate.config import settings

logger = logging.getLogger(__name__)


class OriginError(Exception):
    """Origin unreachable, timed out, or answered with a non-200/206 status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OriginStore:
    """Talks to the primary storage server (``/files/{path}``, ``/health``)."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = (base_url or settings.origin_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.origin_api_key
        self._timeout = timeout or settings.origin_timeout_seconds
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            limits=httpx.Limits(
                max_connections=settings.origin_max_connections,
                max_keepalive_connections=settings.origin_max_keepalive,
            ),
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    def object_url(self, storage_path: str) -> str:
        return f"{self._base_url}/files/{quote(storage_path, safe='/')}"

    async def open(self, storage_path: str, range_header: str | None = None) -> httpx.Response:
        """Start a streamed GET for an object. Caller must ``aclose()`` the response.

        The wait for response headers is cancelled after the configured
        timeout; a timeout is reported like any transport failure.
        """
        headers = self._headers()
        if range_header:
            headers["Range"] = range_header
        request = self._client.build_request("GET", self.object_url(storage_path), headers=headers)

        try:
            response = await asyncio.wait_for(
                self._client.send(request, stream=True), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise OriginError(f"origin timed out after {self._timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise OriginError(f"origin transport error: {exc}") from exc

        if response.status_code not in (200, 206):
            await response.aclose()
            raise OriginError(
                f"origin returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def exists(self, resource_path: str, timeout: float | None = None) -> bool:
        """HEAD probe for an arbitrary origin resource (e.g. an HLS playlist)."""
        try:
            resp = await self._client.head(
                f"{self._base_url}/{resource_path.lstrip('/')}",
                headers=self._headers(),
                timeout=timeout or settings.hls_probe_timeout_seconds,
            )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def health(self) -> bool:
        """Check origin /health. Returns True if reachable."""
        try:
            resp = await self._client.get(
                f"{self._base_url}/health",
                headers=self._headers(),
                timeout=settings.origin_health_timeout_seconds,
            )
            return resp.status_code == 200
        except (httpx.HTTPError, OSError):
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
