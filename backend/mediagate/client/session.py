"""Preview session — owns one in-flight resolution, its blob and its player.

A session is opened per preview. Late results (after close, or after the
viewer switched files or pressed retry) are dropped and any blob they
fetched is released. A player is built only from a committed descriptor,
at most once per generation.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx

from mediagate.client.errors import FailureKind, ResolutionError
from mediagate.client.resolver import StreamResolver
from mediagate.client.state import (
    AttemptFailed,
    Phase,
    ResolverState,
    Reset,
    Retry,
    Start,
    transition,
)
from mediagate.config import settings
from mediagate.schemas.media import FileDescriptor
from mediagate.schemas.stream import PlaybackMode, StreamDescriptor

logger = logging.getLogger(__name__)


class Player(Protocol):
    def close(self) -> None: ...


PlayerFactory = Callable[[StreamDescriptor], Player]


class BlobTooLarge(Exception):
    pass


class LocalBlob:
    """A locally held copy of a remote object, released exactly once."""

    def __init__(self, path: Path):
        self.path = path
        self._released = False

    @property
    def uri(self) -> str:
        return self.path.as_uri()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.path.unlink(missing_ok=True)

    @classmethod
    async def fetch(cls, client: httpx.AsyncClient, url: str, max_bytes: int) -> "LocalBlob":
        """Download ``url`` into a temp file; nothing is left behind on failure."""
        fd, name = tempfile.mkstemp(prefix="mediagate-blob-")
        blob = cls(Path(name))
        try:
            with os.fdopen(fd, "wb") as fh:
                async with client.stream("GET", url) as resp:
                    resp.raise_for_status()
                    declared = resp.headers.get("content-length")
                    if declared and int(declared) > max_bytes:
                        raise BlobTooLarge(f"{declared} bytes exceeds {max_bytes}")
                    total = 0
                    async for chunk in resp.aiter_bytes():
                        total += len(chunk)
                        if total > max_bytes:
                            raise BlobTooLarge(f"more than {max_bytes} bytes")
                        fh.write(chunk)
        except BaseException:
            # Includes cancellation
            blob.release()
            raise
        return blob


class PreviewSession:
    def __init__(
        self,
        resolver: StreamResolver,
        player_factory: PlayerFactory,
        blob_client: Optional[httpx.AsyncClient] = None,
        blob_max_bytes: Optional[int] = None,
    ):
        self._resolver = resolver
        self._player_factory = player_factory
        self._blob_client = blob_client
        self._blob_max_bytes = blob_max_bytes or settings.blob_prefetch_max_bytes

        self.state = ResolverState()
        self._file: Optional[FileDescriptor] = None
        self._task: Optional[asyncio.Task] = None
        self._blob: Optional[LocalBlob] = None
        self._player: Optional[Player] = None
        self._player_generation: Optional[int] = None
        self._active = True

    @property
    def file(self) -> Optional[FileDescriptor]:
        return self._file

    @property
    def blob(self) -> Optional[LocalBlob]:
        return self._blob

    @property
    def player(self) -> Optional[Player]:
        return self._player

    async def open(self, file: FileDescriptor) -> ResolverState:
        """Start resolving ``file``, discarding whatever the session held before."""
        self._active = True
        await self._discard()
        self._file = file
        self.state = transition(self.state, Start())
        return await self._resolve()

    async def retry(self) -> ResolverState:
        """Manual "Try Again": full re-run under a new generation.

        Also restarts a file whose open was cancelled. Raises InvalidTransition
        while resolving or for non-retryable failures.
        """
        if self.state.phase == Phase.IDLE and self._file is not None:
            self.state = transition(self.state, Start())
        else:
            self.state = transition(self.state, Retry())
        self._drop_blob()
        self._teardown_player()
        return await self._resolve()

    async def close(self) -> None:
        """Viewer closed the preview; in-flight results are discarded."""
        self._active = False
        await self._discard()

    def mount(self) -> Optional[Player]:
        """Player for the committed descriptor; None until there is one."""
        if not self._active or self.state.phase != Phase.RESOLVED:
            return None
        if self.state.descriptor.mode == PlaybackMode.UNSUPPORTED:
            return None
        if self._player is not None and self._player_generation == self.state.generation:
            return self._player

        self._teardown_player()
        self._player = self._player_factory(self.state.descriptor)
        self._player_generation = self.state.generation
        return self._player

    async def _resolve(self) -> ResolverState:
        generation = self.state.generation
        file = self._file
        task = asyncio.create_task(self._run(file, self.state))
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # Caller went away: stop the run and drop whatever it produced
            task.cancel()
            await asyncio.wait({task})
            _release_abandoned(task)
            if self._task is task:
                self._task = None
            if self.state.generation == generation and self.state.phase == Phase.RESOLVING:
                self.state = transition(self.state, Reset())
            raise
        if self._task is task:
            self._task = None

        if task.cancelled():
            return self.state

        current = self._active and self.state.generation == generation and self._file is file
        error = task.exception()
        if error is not None:
            if not current:
                return self.state
            logger.error("Resolution of %s crashed: %r", file.id, error)
            failure = ResolutionError(FailureKind.ORIGIN_UNAVAILABLE, f"Unexpected error: {error}")
            self.state = transition(self.state, AttemptFailed(failure))
            return self.state

        result, blob = task.result()
        if not current:
            logger.debug("Discarding stale resolution for %s (generation %d)", file.id, generation)
            if blob is not None:
                blob.release()
            return self.state

        self.state = result
        self._blob = blob
        return self.state

    async def _run(
        self, file: FileDescriptor, state: ResolverState
    ) -> tuple[ResolverState, Optional[LocalBlob]]:
        result = await self._resolver.run(file, state)
        if (
            result.phase != Phase.RESOLVED
            or result.descriptor.mode != PlaybackMode.IMAGE
            or self._blob_client is None
        ):
            return result, None

        source_url = result.descriptor.primary_url
        try:
            blob = await LocalBlob.fetch(self._blob_client, source_url, self._blob_max_bytes)
        except (httpx.HTTPError, BlobTooLarge, OSError) as exc:
            logger.info("Image prefetch skipped for %s: %s", file.id, exc)
            return result, None

        descriptor = result.descriptor.model_copy(
            update={"primary_url": blob.uri, "fallback_url": source_url}
        )
        return replace(result, descriptor=descriptor), blob

    async def _discard(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            if not task.done():
                task.cancel()
                await asyncio.wait({task})
            _release_abandoned(task)
        self._drop_blob()
        self._teardown_player()
        if self.state.phase != Phase.IDLE:
            self.state = transition(self.state, Reset())
        self._file = None

    def _drop_blob(self) -> None:
        blob, self._blob = self._blob, None
        if blob is not None:
            blob.release()

    def _teardown_player(self) -> None:
        player, self._player = self._player, None
        self._player_generation = None
        if player is not None:
            player.close()


def _release_abandoned(task: asyncio.Task) -> None:
    """Release the blob of a finished run whose result nobody will commit."""
    if task.cancelled() or task.exception() is not None:
        return
    _, blob = task.result()
    if blob is not None:
        blob.release()
