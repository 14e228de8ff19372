"""Signed origin stream URLs — short-lived JWTs bound to one storage path."""

from __future__ import annotations

import time
from urllib.parse import urlencode

from jose import jwt

from mediagate.config import settings


def create_stream_token(
    storage_path: str,
    identity: str,
    expires_in: int | None = None,
    secret: str | None = None,
) -> str:
    """Token claims: ``sub`` (viewer), ``path`` (object), ``exp`` (unix time)."""
    ttl = expires_in if expires_in is not None else settings.stream_url_ttl_seconds
    claims = {
        "sub": identity,
        "path": storage_path,
        "exp": int(time.time()) + ttl,
    }
    return jwt.encode(
        claims,
        secret or settings.stream_signing_secret,
        algorithm=settings.stream_token_algorithm,
    )


def build_stream_url(base_url: str, storage_path: str, identity: str) -> str:
    """Client-facing origin URL the origin server validates on its own."""
    token = create_stream_token(storage_path, identity)
    query = urlencode({"path": storage_path, "token": token})
    return f"{base_url.rstrip('/')}/stream?{query}"
