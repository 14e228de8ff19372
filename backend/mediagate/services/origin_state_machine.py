"""Origin liveness state machine with transition validation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class OriginState(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


VALID_TRANSITIONS: dict[OriginState, set[OriginState]] = {
    OriginState.UNKNOWN: {OriginState.ONLINE, OriginState.OFFLINE},
    OriginState.ONLINE: {OriginState.OFFLINE},
    OriginState.OFFLINE: {OriginState.ONLINE},
}


class OriginStateMachine:
    """Tracks whether the origin store is reachable."""

    def __init__(self):
        self._state = OriginState.UNKNOWN
        self._since = datetime.now(timezone.utc)

    @property
    def state(self) -> OriginState:
        return self._state

    @property
    def since(self) -> datetime:
        return self._since

    def transition(self, new_state: OriginState) -> bool:
        """Transition to new state. Returns True if valid, False if rejected."""
        if new_state == self._state:
            return True  # No-op

        valid = VALID_TRANSITIONS.get(self._state, set())
        if new_state not in valid:
            logger.warning(
                "Invalid origin state transition: %s -> %s (valid: %s)",
                self._state, new_state, valid,
            )
            return False

        old_state = self._state
        self._state = new_state
        self._since = datetime.now(timezone.utc)
        logger.info("Origin state: %s -> %s", old_state.value, new_state.value)
        return True

    def to_dict(self) -> dict:
        return {
            "state": self._state.value,
            "since": self._since.isoformat(),
        }
