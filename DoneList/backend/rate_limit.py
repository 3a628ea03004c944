"""
Coarse per-source request rate limiting for the completion proxy.

Each limiter owns its hit table, so independent apps (and tests) never share
counters.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request

logger = logging.getLogger(__name__)

LOCAL_SOURCES = {"local", "127.0.0.1", "::1", "::ffff:127.0.0.1"}


@dataclass
class _Window:
    count: int
    started: float


def client_source(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address, else ``local``"""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return "local"


class RateLimiter:
    """Fixed-window counter keyed by request source"""

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 100,
        enabled: bool = False,
        production: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.enabled = enabled
        self.production = production
        self.clock = clock
        self._hits: dict[str, _Window] = {}

    def check(self, source: str) -> int | None:
        """Count one hit; return Retry-After seconds when over the limit"""
        if not self.enabled:
            return None
        if not self.production and source in LOCAL_SOURCES:
            return None

        now = self.clock()
        window = self._hits.get(source)
        if window is None or now - window.started > self.window_seconds:
            window = _Window(count=0, started=now)
            self._hits[source] = window
        window.count += 1

        if window.count > self.max_requests:
            retry_after = max(1, math.ceil(window.started + self.window_seconds - now))
            logger.warning(f"Rate limit exceeded for {source}, retry after {retry_after}s")
            return retry_after
        return None
