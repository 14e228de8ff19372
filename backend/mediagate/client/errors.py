"""User-facing failure classes of stream resolution."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    ORIGIN_UNAVAILABLE = "origin_unavailable"
    NETWORK_ERROR = "network_error"
    UNSUPPORTED = "unsupported"

    @property
    def retry_allowed(self) -> bool:
        """Whether the UI offers a "Try Again" action for this failure."""
        return self not in (FailureKind.FORBIDDEN, FailureKind.UNSUPPORTED)


class ResolutionError(Exception):
    """Resolution failed; ``retryable`` drives the automatic retry budget."""

    def __init__(
        self,
        kind: FailureKind,
        message: str = "",
        retryable: bool = False,
        suggest_download: bool = False,
    ):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.retryable = retryable
        self.suggest_download = suggest_download

    def __repr__(self) -> str:
        return f"ResolutionError({self.kind.value!r}, retryable={self.retryable})"
