"""Tests for PreviewSession — commit-before-mount, stale results, blob lifecycle."""

import asyncio
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import make_file
from mediagate.client.errors import FailureKind, ResolutionError
from mediagate.client.origin_policy import UnstableOriginPolicy
from mediagate.client.resolver import IssuingClient, StreamResolver
from mediagate.client.session import PreviewSession
from mediagate.client.state import InvalidTransition, Phase
from mediagate.schemas.media import StreamUrlBundle
from mediagate.schemas.stream import PlaybackMode

IMAGE_BYTES = b"\x89PNG" + b"\x00" * 60
TRANSIENT = ResolutionError(FailureKind.ORIGIN_UNAVAILABLE, "down", retryable=True)


def _bundle(file, primary="https://storage.example.com/stream?token=t"):
    return StreamUrlBundle(primary_url=primary, origin_online=True, source="origin", file=file)


class PlayerFactory:
    def __init__(self):
        self.players = []

    def __call__(self, descriptor):
        player = MagicMock()
        player.descriptor = descriptor
        self.players.append(player)
        return player


@pytest.fixture
def blob_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


def _leftover_blobs(directory: Path):
    return list(directory.glob("mediagate-blob-*"))


def _session(issue, factory=None, blob_client=None, blob_max_bytes=1024):
    issuer = MagicMock()
    issuer.issue = AsyncMock(side_effect=issue)
    resolver = StreamResolver(
        issuer,
        identity="guest-1",
        proxy_base_url="https://gate.example.com/api",
        is_unstable_origin=UnstableOriginPolicy([]),
        max_retries=2,
        retry_delay=0,
        sleep=AsyncMock(),
    )
    session = PreviewSession(
        resolver, factory or PlayerFactory(), blob_client=blob_client, blob_max_bytes=blob_max_bytes
    )
    return session, issuer


def _image_client(handler=None):
    def default(request):
        return httpx.Response(200, content=IMAGE_BYTES)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler or default))


class TestCommitBeforeMount:
    @pytest.mark.asyncio
    async def test_success_on_second_attempt_mounts_once(self):
        factory = PlayerFactory()
        video = make_file()
        attempts = []

        async def issue(identity, storage_path):
            attempts.append(storage_path)
            assert factory.players == []
            if len(attempts) == 1:
                raise TRANSIENT
            return _bundle(video)

        session, _ = _session(issue, factory)
        assert session.mount() is None

        state = await session.open(video)
        assert state.phase == Phase.RESOLVED
        assert len(attempts) == 2
        assert factory.players == []

        player = session.mount()
        assert session.mount() is player
        assert len(factory.players) == 1
        assert player.descriptor is state.descriptor

    @pytest.mark.asyncio
    async def test_no_mount_while_resolving(self):
        gate = asyncio.Event()
        video = make_file()

        async def issue(identity, storage_path):
            await gate.wait()
            return _bundle(video)

        session, _ = _session(issue)
        opening = asyncio.create_task(session.open(video))
        await asyncio.sleep(0)
        assert session.state.phase == Phase.RESOLVING
        assert session.mount() is None

        gate.set()
        await opening
        assert session.mount() is not None

    @pytest.mark.asyncio
    async def test_unsupported_has_no_player(self):
        factory = PlayerFactory()
        session, issuer = _session([], factory)
        state = await session.open(make_file(original_name="a.zip", mime_type="application/zip"))

        assert state.descriptor.mode == PlaybackMode.UNSUPPORTED
        assert session.mount() is None
        assert factory.players == []


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_rebuilds_player(self):
        video = make_file()
        factory = PlayerFactory()
        session, issuer = _session(lambda *args: _bundle(video), factory)

        first = await session.open(video)
        old_player = session.mount()
        second = await session.retry()

        assert second.generation == first.generation + 1
        assert second.descriptor is not first.descriptor
        old_player.close.assert_called_once()
        assert session.player is None

        new_player = session.mount()
        assert new_player is not old_player
        assert issuer.issue.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_after_exhausted_budget(self):
        video = make_file()
        outcomes = [TRANSIENT, TRANSIENT, TRANSIENT, _bundle(video)]
        session, issuer = _session(outcomes)

        failed = await session.open(video)
        assert failed.phase == Phase.FAILED
        assert failed.error.kind == FailureKind.ORIGIN_UNAVAILABLE
        assert issuer.issue.await_count == 3

        recovered = await session.retry()
        assert recovered.phase == Phase.RESOLVED

    @pytest.mark.asyncio
    async def test_forbidden_offers_no_retry(self):
        session, _ = _session([ResolutionError(FailureKind.FORBIDDEN, "no")])
        state = await session.open(make_file())

        assert state.phase == Phase.FAILED
        with pytest.raises(InvalidTransition):
            await session.retry()


class TestStaleResults:
    @pytest.mark.asyncio
    async def test_result_after_close_is_discarded(self):
        gate = asyncio.Event()
        video = make_file()
        factory = PlayerFactory()

        async def issue(identity, storage_path):
            await gate.wait()
            return _bundle(video)

        session, _ = _session(issue, factory)
        opening = asyncio.create_task(session.open(video))
        await asyncio.sleep(0)

        await session.close()
        gate.set()
        await opening

        assert session.state.phase == Phase.IDLE
        assert session.mount() is None
        assert factory.players == []

    @pytest.mark.asyncio
    async def test_switching_files_discards_previous(self):
        first_gate = asyncio.Event()
        video = make_file()
        song = make_file(id="file-song", original_name="song.mp3", mime_type="audio/mpeg",
                         storage_path="user-owner/song.mp3")

        async def issue(identity, storage_path):
            if storage_path == video.storage_path:
                await first_gate.wait()
                return _bundle(video, primary="https://storage.example.com/old")
            return _bundle(song, primary="https://storage.example.com/song")

        session, _ = _session(issue)
        opening_video = asyncio.create_task(session.open(video))
        await asyncio.sleep(0)

        state = await session.open(song)
        first_gate.set()
        await opening_video

        assert session.file is song
        assert state.descriptor.primary_url == "https://storage.example.com/song"
        assert session.state.descriptor.mode == PlaybackMode.AUDIO

    @pytest.mark.asyncio
    async def test_close_tears_down_player(self):
        video = make_file()
        session, _ = _session(lambda *args: _bundle(video))
        await session.open(video)
        player = session.mount()

        await session.close()
        player.close.assert_called_once()
        assert session.mount() is None


class TestImageBlobs:
    @pytest.mark.asyncio
    async def test_image_is_prefetched_and_released(self, blob_dir):
        image = make_file(id="file-img", original_name="p.png", mime_type="image/png",
                          storage_path="user-owner/p.png")
        session, _ = _session(lambda *args: _bundle(image), blob_client=_image_client())

        state = await session.open(image)
        descriptor = state.descriptor
        assert descriptor.mode == PlaybackMode.IMAGE
        assert descriptor.primary_url.startswith("file://")
        assert descriptor.fallback_url == "https://storage.example.com/stream?token=t"
        assert session.blob.path.read_bytes() == IMAGE_BYTES

        blob = session.blob
        await session.close()
        assert blob.released
        assert _leftover_blobs(blob_dir) == []

    @pytest.mark.asyncio
    async def test_retry_releases_previous_blob(self, blob_dir):
        image = make_file(id="file-img", original_name="p.png", mime_type="image/png",
                          storage_path="user-owner/p.png")
        session, _ = _session(lambda *args: _bundle(image), blob_client=_image_client())

        await session.open(image)
        first_blob = session.blob
        await session.retry()

        assert first_blob.released
        assert session.blob is not first_blob
        assert len(_leftover_blobs(blob_dir)) == 1
        await session.close()
        assert _leftover_blobs(blob_dir) == []

    @pytest.mark.asyncio
    async def test_oversized_image_is_not_prefetched(self, blob_dir):
        image = make_file(id="file-img", original_name="p.png", mime_type="image/png",
                          storage_path="user-owner/p.png")
        session, _ = _session(
            lambda *args: _bundle(image), blob_client=_image_client(), blob_max_bytes=10
        )

        state = await session.open(image)
        assert state.descriptor.primary_url.startswith("https://")
        assert session.blob is None
        assert _leftover_blobs(blob_dir) == []

    @pytest.mark.asyncio
    async def test_close_during_prefetch_leaves_nothing_behind(self, blob_dir):
        gate = asyncio.Event()
        started = asyncio.Event()
        image = make_file(id="file-img", original_name="p.png", mime_type="image/png",
                          storage_path="user-owner/p.png")

        async def slow_image(request):
            started.set()
            await gate.wait()
            return httpx.Response(200, content=IMAGE_BYTES)

        session, _ = _session(lambda *args: _bundle(image), blob_client=_image_client(slow_image))
        opening = asyncio.create_task(session.open(image))
        await started.wait()

        await session.close()
        await opening

        assert session.blob is None
        assert _leftover_blobs(blob_dir) == []

    @pytest.mark.asyncio
    async def test_cancelled_open_releases_prefetched_blob(self, blob_dir):
        gate = asyncio.Event()
        started = asyncio.Event()
        image = make_file(id="file-img", original_name="p.png", mime_type="image/png",
                          storage_path="user-owner/p.png")

        async def slow_image(request):
            started.set()
            await gate.wait()
            return httpx.Response(200, content=IMAGE_BYTES)

        session, _ = _session(lambda *args: _bundle(image), blob_client=_image_client(slow_image))
        opening = asyncio.create_task(session.open(image))
        await started.wait()

        opening.cancel()
        gate.set()
        with pytest.raises(asyncio.CancelledError):
            await opening
        await session.close()

        assert session.blob is None
        assert session.state.phase == Phase.IDLE
        assert _leftover_blobs(blob_dir) == []


class TestCancelledOpen:
    @pytest.mark.asyncio
    async def test_cancelled_open_returns_to_idle_and_can_restart(self):
        gate = asyncio.Event()
        video = make_file()
        calls = []

        async def issue(identity, storage_path):
            calls.append(storage_path)
            if len(calls) == 1:
                await gate.wait()
            return _bundle(video)

        session, _ = _session(issue)
        opening = asyncio.create_task(session.open(video))
        await asyncio.sleep(0)
        assert session.state.phase == Phase.RESOLVING

        opening.cancel()
        with pytest.raises(asyncio.CancelledError):
            await opening

        assert session.state.phase == Phase.IDLE
        assert session.mount() is None

        state = await session.retry()
        assert state.phase == Phase.RESOLVED
        assert session.mount() is not None

    @pytest.mark.asyncio
    async def test_cancelled_open_does_not_block_next_open(self):
        gate = asyncio.Event()
        first = make_file()
        second = make_file(id="file-2", storage_path="user-owner/other.mp4")

        async def issue(identity, storage_path):
            if storage_path == first.storage_path:
                await gate.wait()
            return _bundle(second)

        session, _ = _session(issue)
        opening = asyncio.create_task(session.open(first))
        await asyncio.sleep(0)
        opening.cancel()
        with pytest.raises(asyncio.CancelledError):
            await opening

        state = await session.open(second)
        assert state.phase == Phase.RESOLVED
        assert session.file is second


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_crash_in_resolution_fails_instead_of_hanging(self):
        session, _ = _session([RuntimeError("boom"), _bundle(make_file())])
        state = await session.open(make_file())

        assert state.phase == Phase.FAILED
        assert state.error.kind == FailureKind.ORIGIN_UNAVAILABLE
        assert "boom" in state.error.message
        assert state.can_retry
        assert session.mount() is None

        recovered = await session.retry()
        assert recovered.phase == Phase.RESOLVED

    @pytest.mark.asyncio
    async def test_malformed_bundle_from_server_fails(self):
        def handler(request):
            body = _bundle(make_file()).model_dump()
            body["primary_url"] = ""
            return httpx.Response(200, json=body)

        resolver = StreamResolver(
            IssuingClient(
                "https://gate.example.com/api",
                client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            ),
            identity="guest-1",
            proxy_base_url="https://gate.example.com/api",
            is_unstable_origin=UnstableOriginPolicy([]),
            retry_delay=0,
            sleep=AsyncMock(),
        )
        session = PreviewSession(resolver, PlayerFactory())
        state = await session.open(make_file())

        assert state.phase == Phase.FAILED
        assert state.error.kind == FailureKind.ORIGIN_UNAVAILABLE
        assert state.error.message == "Malformed stream URL response"
