"""
Retry/backoff policy for calls to the completion proxy
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import ProxyHTTPError, QuotaExceeded, TransientRateLimit

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Retries rate-limited requests a bounded number of times.

    Only ``TransientRateLimit`` is retried. Quota exhaustion and every other
    proxy error are raised on first sight.
    """

    max_retries: int = 2
    default_delay: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def delay_for(self, error: ProxyHTTPError, attempt: int) -> float | None:
        """Seconds to wait before the next attempt, or None to give up"""
        if isinstance(error, QuotaExceeded):
            return None
        if not isinstance(error, TransientRateLimit):
            return None
        if attempt >= self.max_retries:
            return None
        if error.retry_after is None or error.retry_after < 0:
            return self.default_delay
        return error.retry_after

    async def run(
        self,
        send: Callable[[], Awaitable[T]],
        on_retry: Callable[[float], None] | None = None,
    ) -> T:
        """Call ``send`` until it succeeds or the error is not retryable"""
        attempt = 0
        while True:
            try:
                return await send()
            except ProxyHTTPError as e:
                delay = self.delay_for(e, attempt)
                if delay is None:
                    raise
                attempt += 1
                logger.warning(
                    f"Rate limited by proxy, retry {attempt}/{self.max_retries} in {delay:g}s"
                )
                if on_retry:
                    on_retry(delay)
                await self.sleep(delay)


NO_RETRY = RetryPolicy(max_retries=0)
