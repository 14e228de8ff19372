"""Resolution state machine — pure transition function, no I/O.

    IDLE --Start--> RESOLVING --Succeeded--> RESOLVED
                      |   ^                     |
          AttemptFailed   | AttemptFailed       | Retry / Start
          (exhausted /    | (retryable, budget  v
           fatal)         |  left: attempt+1)  RESOLVING (generation+1)
                      v   |
                    FAILED --Retry--> RESOLVING (generation+1)

Every state is a new frozen value; a retry never patches a descriptor.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from mediagate.client.errors import ResolutionError
from mediagate.schemas.stream import StreamDescriptor


class Phase(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolverState:
    phase: Phase = Phase.IDLE
    attempt: int = 0
    generation: int = 0
    descriptor: Optional[StreamDescriptor] = None
    error: Optional[ResolutionError] = None

    @property
    def can_retry(self) -> bool:
        return self.phase == Phase.FAILED and self.error is not None and self.error.kind.retry_allowed


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class AttemptFailed:
    error: ResolutionError


@dataclass(frozen=True)
class Succeeded:
    descriptor: StreamDescriptor


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[Start, AttemptFailed, Succeeded, Retry, Reset]

VALID_TRANSITIONS: dict[Phase, set[type]] = {
    Phase.IDLE: {Start, Reset},
    Phase.RESOLVING: {AttemptFailed, Succeeded, Reset},
    Phase.RESOLVED: {Start, Retry, Reset},
    Phase.FAILED: {Start, Retry, Reset},
}


class InvalidTransition(Exception):
    def __init__(self, state: ResolverState, event: Event):
        super().__init__(f"{type(event).__name__} not valid in phase {state.phase.value}")
        self.state = state
        self.event = event


def transition(state: ResolverState, event: Event, max_retries: int = 2) -> ResolverState:
    """Next state for ``event``; ``max_retries`` extra attempts after the first."""
    if type(event) not in VALID_TRANSITIONS[state.phase]:
        raise InvalidTransition(state, event)

    if isinstance(event, Reset):
        return ResolverState(generation=state.generation)

    if isinstance(event, (Start, Retry)):
        if isinstance(event, Retry) and state.phase == Phase.FAILED and not state.can_retry:
            raise InvalidTransition(state, event)
        # Fresh run: drop the old descriptor and force any mounted player to rebuild
        return ResolverState(phase=Phase.RESOLVING, attempt=1, generation=state.generation + 1)

    if isinstance(event, Succeeded):
        return replace(state, phase=Phase.RESOLVED, descriptor=event.descriptor, error=None)

    # AttemptFailed
    if event.error.retryable and state.attempt <= max_retries:
        return replace(state, attempt=state.attempt + 1, error=event.error)
    return replace(state, phase=Phase.FAILED, error=event.error)
