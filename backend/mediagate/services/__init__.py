"""Business logic services — singleton registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mediagate.services.access_gate import AccessGate

if TYPE_CHECKING:
    from mediagate.services.fallback_store import FallbackStore
    from mediagate.services.origin_monitor import OriginMonitor
    from mediagate.services.origin_store import OriginStore
    from mediagate.services.range_proxy import RangeProxy
    from mediagate.services.stream_issuer import StreamUrlIssuer
    from mediagate.services.view_analytics import ViewAnalyticsRecorder

logger = logging.getLogger(__name__)

# Stateless, holds no connections
_access_gate = AccessGate()

_origin_store: OriginStore | None = None
_fallback_store: FallbackStore | None = None
_origin_monitor: OriginMonitor | None = None
_view_recorder: ViewAnalyticsRecorder | None = None
_range_proxy: RangeProxy | None = None
_stream_issuer: StreamUrlIssuer | None = None


async def init_services() -> None:
    """Create and wire up all service singletons."""
    global _origin_store, _fallback_store, _origin_monitor
    global _view_recorder, _range_proxy, _stream_issuer

    from mediagate.services.fallback_store import FallbackStore
    from mediagate.services.origin_monitor import OriginMonitor
    from mediagate.services.origin_store import OriginStore
    from mediagate.services.range_proxy import RangeProxy
    from mediagate.services.stream_issuer import StreamUrlIssuer
    from mediagate.services.view_analytics import ViewAnalyticsRecorder

    _origin_store = OriginStore()
    _fallback_store = FallbackStore()
    if not _fallback_store.configured:
        logger.warning(
            "Fallback store not configured (MEDIAGATE_FALLBACK_URL) — "
            "origin failures will return 503"
        )

    _view_recorder = ViewAnalyticsRecorder()
    _view_recorder.start()

    _origin_monitor = OriginMonitor(_origin_store)
    _origin_monitor.start()

    _range_proxy = RangeProxy(_origin_store, _fallback_store, _view_recorder)
    _stream_issuer = StreamUrlIssuer(_origin_store, _fallback_store, _origin_monitor)
    logger.info("Delivery services initialized (origin %s)", _origin_store.base_url)


async def shutdown_services() -> None:
    """Stop background loops and close outbound connection pools."""
    global _origin_monitor, _view_recorder, _origin_store, _fallback_store
    global _range_proxy, _stream_issuer
    _range_proxy = None
    _stream_issuer = None
    if _origin_monitor:
        await _origin_monitor.stop()
        _origin_monitor = None
    if _view_recorder:
        await _view_recorder.stop()
        _view_recorder = None
    if _origin_store:
        await _origin_store.aclose()
        _origin_store = None
    if _fallback_store:
        await _fallback_store.aclose()
        _fallback_store = None


def get_access_gate() -> AccessGate:
    return _access_gate


def get_origin_monitor() -> OriginMonitor:
    if _origin_monitor is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _origin_monitor


def get_view_recorder() -> ViewAnalyticsRecorder:
    if _view_recorder is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _view_recorder


def get_range_proxy() -> RangeProxy:
    if _range_proxy is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _range_proxy


def get_stream_issuer() -> StreamUrlIssuer:
    if _stream_issuer is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _stream_issuer
