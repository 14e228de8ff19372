"""Fire-and-forget view logging through a bounded in-process queue.

The request path only calls ``record()``, which never blocks and never
raises. Worker tasks drain the queue and write ``file_views`` rows; any
failure there is logged and the view is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from mediagate.config import settings
from mediagate.models.file_view import FileView
from mediagate.schemas.media import ViewRecord

logger = logging.getLogger(__name__)


class ViewAnalyticsRecorder:
    """Best-effort writer for the append-only view log."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] | None = None,
        queue_size: int | None = None,
        workers: int | None = None,
    ):
        if session_factory is None:
            from mediagate.database import async_session

            session_factory = async_session
        self._session_factory = session_factory
        self._queue: asyncio.Queue[ViewRecord] = asyncio.Queue(
            maxsize=queue_size or settings.analytics_queue_size
        )
        self._worker_count = workers or settings.analytics_workers
        self._tasks: list[asyncio.Task] = []
        self.dropped = 0
        self.failed = 0

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def record(self, view: ViewRecord) -> None:
        """Queue a view without waiting. Drops (and logs) when the queue is full."""
        try:
            self._queue.put_nowait(view)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "View queue full (%d) — dropped view file=%s viewer=%s",
                self._queue.maxsize, view.file_id, view.viewer_id,
            )

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(), name=f"view-analytics-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("View analytics started with %d worker(s)", self._worker_count)

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Give queued views a chance to land, then cancel the workers."""
        if self._tasks:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("View analytics stopped with %d view(s) unwritten", self.backlog)
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("View analytics stopped")

    async def _worker(self) -> None:
        while True:
            view = await self._queue.get()
            try:
                await self._write(view)
            except Exception:
                self.failed += 1
                logger.exception(
                    "Failed to record view file=%s viewer=%s", view.file_id, view.viewer_id
                )
            finally:
                self._queue.task_done()

    async def _write(self, view: ViewRecord) -> None:
        async with self._session_factory() as db:
            db.add(
                FileView(
                    file_id=view.file_id,
                    viewer_id=view.viewer_id,
                    ip_address=view.ip,
                    user_agent=view.user_agent,
                    view_type=view.view_type.value,
                    bytes_transferred=view.bytes_transferred,
                )
            )
            await db.commit()
        logger.debug(
            "Recorded view file=%s viewer=%s type=%s bytes=%d",
            view.file_id, view.viewer_id, view.view_type.value, view.bytes_transferred,
        )
