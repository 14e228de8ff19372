"""Unstable-origin detection — hostname patterns for transient tunnels."""

from __future__ import annotations

from fnmatch import fnmatch
from typing import Iterable, Optional
from urllib.parse import urlsplit

from mediagate.config import settings


class UnstableOriginPolicy:
    """``is_unstable_origin(url)`` predicate over shell-style host patterns.

    ``*.trycloudflare.com`` matches any subdomain but not the bare apex.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        source = settings.unstable_origin_patterns if patterns is None else patterns
        self.patterns = tuple(p.strip().lower() for p in source if p.strip())

    def is_unstable_origin(self, url: str) -> bool:
        try:
            host = urlsplit(url).hostname
        except ValueError:
            return False
        if not host:
            return False
        return any(fnmatch(host, pattern) for pattern in self.patterns)

    __call__ = is_unstable_origin
