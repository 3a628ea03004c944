"""
HTTP transport from the analysis client to the completion proxy
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from DoneList.shared.models import AnalyzeRequest

from .decoder import (
    EVENT_STREAM_TYPE,
    AtomicResponse,
    ProxyResponse,
    StreamingResponse,
    TransportMode,
)
from .errors import AnalysisError, DecodeError, ProxyHTTPError, classify_http_error

logger = logging.getLogger(__name__)

ANALYZE_PATH = "/api/ai/analyze-task"


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def error_from_response(response: httpx.Response) -> ProxyHTTPError:
    """Build the typed error for a non-2xx proxy answer"""
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    details = data.get("details") or data.get("error") or f"Request failed ({response.status_code})"
    return classify_http_error(response.status_code, str(details), _retry_after(response))


class CompletionClient:
    """Async client for ``POST /api/ai/analyze-task``"""

    def __init__(
        self,
        api_base: str,
        mode: TransportMode = TransportMode.STREAMING,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.mode = mode
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    @asynccontextmanager
    async def open(self, request: AnalyzeRequest) -> AsyncIterator[ProxyResponse]:
        """
        Post one analysis request and yield the response as a tagged union.

        Streaming bodies stay open for the duration of the ``async with``
        block.

        Raises:
            ProxyHTTPError: for any non-2xx status (typed by cause).
            AnalysisError: when the proxy cannot be reached.
        """
        accept = EVENT_STREAM_TYPE if self.mode is TransportMode.STREAMING else "application/json"
        try:
            async with self.http.stream(
                "POST",
                f"{self.api_base}{ANALYZE_PATH}",
                json=request.model_dump(exclude_none=True),
                headers={"Accept": accept},
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise error_from_response(response)

                mode = TransportMode.from_content_type(response.headers.get("content-type"))
                if mode is TransportMode.STREAMING:
                    yield StreamingResponse(response.aiter_text())
                    return

                await response.aread()
                try:
                    body = response.json()
                except ValueError as e:
                    raise DecodeError("Failed to parse AI response") from e
                yield AtomicResponse(body)
        except httpx.TransportError as e:
            logger.error(f"AI service unreachable at {self.api_base}: {e}")
            raise AnalysisError(f"AI service unreachable: {e}") from e

    async def aclose(self) -> None:
        await self.http.aclose()
