"""Origin heartbeat — polls /health and drives the origin state machine."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from mediagate.config import settings
from mediagate.services.origin_state_machine import OriginState, OriginStateMachine

if TYPE_CHECKING:
    from mediagate.services.origin_store import OriginStore

logger = logging.getLogger(__name__)


class OriginMonitor:
    """Periodically polls origin health and updates the state machine."""

    def __init__(
        self,
        origin: OriginStore,
        state_machine: OriginStateMachine | None = None,
        poll_interval: float | None = None,
        failure_threshold: int | None = None,
    ):
        self._origin = origin
        self._sm = state_machine or OriginStateMachine()
        self._poll_interval = poll_interval or settings.origin_poll_interval_seconds
        self._failure_threshold = failure_threshold or settings.origin_failure_threshold
        self._consecutive_failures = 0
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def state(self) -> OriginState:
        return self._sm.state

    @property
    def state_machine(self) -> OriginStateMachine:
        return self._sm

    def start(self) -> None:
        """Start the heartbeat background loop."""
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Origin monitor started (interval %ss)", self._poll_interval)

    async def stop(self) -> None:
        """Stop the heartbeat background loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Origin monitor stopped")

    async def check_now(self) -> bool:
        """Probe immediately; used when the state is still unknown."""
        ok = await self._origin.health()
        self._handle_result(ok)
        return ok

    def _handle_result(self, ok: bool) -> None:
        if ok:
            self._consecutive_failures = 0
            self._sm.transition(OriginState.ONLINE)
            return

        self._consecutive_failures += 1
        # An unknown origin that fails its first probe is offline right away.
        if (
            self._sm.state == OriginState.UNKNOWN
            or self._consecutive_failures >= self._failure_threshold
        ):
            self._sm.transition(OriginState.OFFLINE)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.check_now()
            except Exception as e:
                logger.error("Origin heartbeat error: %s", e)

            try:
                await asyncio.sleep(self._poll_interval)
            except asyncio.CancelledError:
                break
