"""Secondary object store — issues time-limited signed URLs."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from mediagate.config import settings

logger = logging.getLogger(__name__)


class FallbackUnavailable(Exception):
    """The secondary store could not produce a signed URL."""


class FallbackStore:
    """Storage REST API client: ``POST /object/sign/{bucket}/{path}``."""

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        bucket: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = (base_url if base_url is not None else settings.fallback_url).rstrip("/")
        self._service_key = service_key if service_key is not None else settings.fallback_service_key
        self._bucket = bucket or settings.fallback_bucket
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    async def create_signed_url(self, storage_path: str, expires_in: int | None = None) -> str:
        if not self.configured:
            raise FallbackUnavailable("fallback store not configured")

        ttl = expires_in or settings.fallback_signed_url_ttl_seconds
        url = f"{self._base_url}/object/sign/{self._bucket}/{quote(storage_path, safe='/')}"
        headers = {}
        if self._service_key:
            headers = {
                "Authorization": f"Bearer {self._service_key}",
                "apikey": self._service_key,
            }

        try:
            resp = await self._client.post(url, json={"expiresIn": ttl}, headers=headers)
            resp.raise_for_status()
            signed = resp.json().get("signedURL")
        except (httpx.HTTPError, ValueError) as exc:
            raise FallbackUnavailable(f"signing failed: {exc}") from exc

        if not signed:
            raise FallbackUnavailable("signing response carried no URL")
        if signed.startswith(("http://", "https://")):
            return signed
        return f"{self._base_url}/{signed.lstrip('/')}"

    async def aclose(self) -> None:
        await self._client.aclose()
