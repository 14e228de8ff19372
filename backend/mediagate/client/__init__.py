"""Client-side stream resolution and preview session handling."""

from mediagate.client.errors import FailureKind, ResolutionError
from mediagate.client.origin_policy import UnstableOriginPolicy
from mediagate.client.resolver import IssuingClient, StreamResolver
from mediagate.client.session import LocalBlob, PreviewSession
from mediagate.client.state import Phase, ResolverState

__all__ = [
    "FailureKind",
    "IssuingClient",
    "LocalBlob",
    "Phase",
    "PreviewSession",
    "ResolutionError",
    "ResolverState",
    "StreamResolver",
    "UnstableOriginPolicy",
]
