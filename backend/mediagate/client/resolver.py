"""Client-side stream resolution.

Turns a FileDescriptor into one committed StreamDescriptor: classify the
base mode, fetch the URL bundle from the issuing endpoint, reroute video
away from unstable tunnel origins, retry transient failures with linear
backoff. Players mount only against what this module commits.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

import httpx

from mediagate.client.errors import FailureKind, ResolutionError
from mediagate.client.origin_policy import UnstableOriginPolicy
from mediagate.client.state import (
    AttemptFailed,
    Phase,
    ResolverState,
    Start,
    Succeeded,
    transition,
)
from mediagate.config import settings
from mediagate.media_types import classify_mode
from mediagate.schemas.media import FileDescriptor, StreamUrlBundle
from mediagate.schemas.stream import PlaybackMode, StreamDescriptor

logger = logging.getLogger(__name__)

_STATUS_KINDS = {
    401: FailureKind.FORBIDDEN,
    403: FailureKind.FORBIDDEN,
    404: FailureKind.NOT_FOUND,
    413: FailureKind.UNSUPPORTED,
}
_UNAVAILABLE_STATUSES = {502, 503, 504}


class IssuingClient:
    """HTTP client for ``POST {api}/stream/url``."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.origin_timeout_seconds
        )

    async def issue(
        self, identity: str, storage_path: str, action: Optional[str] = None
    ) -> StreamUrlBundle:
        """Raises ResolutionError classified by status and ``detail``."""
        payload = {"identity": identity, "storage_path": storage_path, "action": action}
        try:
            resp = await self._client.post(f"{self.base_url}/stream/url", json=payload)
        except httpx.TransportError as exc:
            raise ResolutionError(
                FailureKind.NETWORK_ERROR, f"Network error: {exc}", retryable=True
            ) from exc
        except httpx.HTTPError as exc:
            # Redirect loops, undecodable bodies
            raise ResolutionError(FailureKind.NETWORK_ERROR, f"HTTP error: {exc}") from exc

        if resp.status_code != 200:
            raise _error_from_response(resp)

        try:
            return StreamUrlBundle.model_validate(resp.json())
        except ValueError as exc:
            raise ResolutionError(
                FailureKind.ORIGIN_UNAVAILABLE, "Malformed stream URL response"
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_from_response(resp: httpx.Response) -> ResolutionError:
    detail: dict[str, Any] = {}
    try:
        body = resp.json()
        if isinstance(body, dict) and isinstance(body.get("detail"), dict):
            detail = body["detail"]
    except ValueError:
        pass  # Non-JSON error page from a proxy in between

    status = resp.status_code
    kind = _STATUS_KINDS.get(status, FailureKind.ORIGIN_UNAVAILABLE)
    retryable = status in _UNAVAILABLE_STATUSES
    if kind == FailureKind.ORIGIN_UNAVAILABLE and "retryable" in detail:
        retryable = bool(detail["retryable"])

    return ResolutionError(
        kind,
        detail.get("message") or f"Stream URL request failed ({status})",
        retryable=retryable,
        suggest_download=bool(detail.get("suggest_download", kind == FailureKind.UNSUPPORTED)),
    )


class StreamResolver:
    """Resolves one preview; ``run`` drives the state machine to a terminal phase."""

    def __init__(
        self,
        issuer: IssuingClient,
        identity: str,
        proxy_base_url: str,
        is_unstable_origin: Optional[Callable[[str], bool]] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        prefer_adaptive: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.issuer = issuer
        self.identity = identity
        self.proxy_base_url = proxy_base_url.rstrip("/")
        self.is_unstable_origin = is_unstable_origin or UnstableOriginPolicy()
        self.max_retries = settings.resolver_max_retries if max_retries is None else max_retries
        self.retry_delay = (
            settings.resolver_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self.prefer_adaptive = (
            settings.resolver_prefer_adaptive if prefer_adaptive is None else prefer_adaptive
        )
        self._sleep = sleep

    async def resolve(self, file: FileDescriptor) -> StreamDescriptor:
        """One full resolution. Raises ResolutionError once the budget is spent."""
        state = await self.run(file, transition(ResolverState(), Start()))
        if state.phase == Phase.FAILED:
            raise state.error
        return state.descriptor

    async def run(self, file: FileDescriptor, state: ResolverState) -> ResolverState:
        """Advance a RESOLVING state until it is RESOLVED or FAILED."""
        while state.phase == Phase.RESOLVING:
            try:
                descriptor = await self._attempt(file)
            except ResolutionError as exc:
                failed_attempt = state.attempt
                state = transition(state, AttemptFailed(exc), self.max_retries)
                if state.phase == Phase.RESOLVING:
                    delay = self.retry_delay * failed_attempt
                    logger.info(
                        "Resolve attempt %d for %s failed (%s), retrying in %.1fs",
                        failed_attempt, file.id, exc.kind.value, delay,
                    )
                    await self._sleep(delay)
                else:
                    logger.warning(
                        "Resolution failed for %s after %d attempt(s): %s",
                        file.id, failed_attempt, exc.kind.value,
                    )
                continue
            state = transition(state, Succeeded(descriptor))
        return state

    async def _attempt(self, file: FileDescriptor) -> StreamDescriptor:
        mode = classify_mode(file.mime_type, file.original_name)
        if mode == PlaybackMode.UNSUPPORTED:
            return StreamDescriptor(mode=mode)

        bundle = await self.issuer.issue(self.identity, file.storage_path)
        return self._decide(mode, bundle, file)

    def _decide(
        self, mode: PlaybackMode, bundle: StreamUrlBundle, file: FileDescriptor
    ) -> StreamDescriptor:
        primary = bundle.primary_url
        fallback = bundle.fallback_url

        if mode == PlaybackMode.DIRECT and self.is_unstable_origin(primary):
            proxy_url = self.proxy_url(file.storage_path)
            if fallback:
                primary, fallback = fallback, proxy_url
            else:
                primary, fallback = proxy_url, None
            logger.info("Unstable origin for %s — rerouted video delivery", file.id)

        if (
            mode == PlaybackMode.DIRECT
            and self.prefer_adaptive
            and bundle.adaptive_url
            and not self.is_unstable_origin(bundle.adaptive_url)
        ):
            return StreamDescriptor(
                mode=PlaybackMode.ADAPTIVE,
                primary_url=bundle.adaptive_url,
                fallback_url=primary,
                origin_online=bundle.origin_online,
            )

        return StreamDescriptor(
            mode=mode,
            primary_url=primary,
            fallback_url=fallback,
            origin_online=bundle.origin_online,
        )

    def proxy_url(self, storage_path: str) -> str:
        return f"{self.proxy_base_url}/files?{urlencode({'id': self.identity, 'path': storage_path})}"
