"""
Response decoding for the completion proxy.

The proxy answers either with one JSON document (atomic mode) or with a feed
of ``data: <json>`` event frames (streaming mode). Both end up as a single
validated DecompositionResult.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from DoneList.shared.models import DecompositionResult

from .errors import DecodeError
from .schema import MAX_STEPS, validate

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
EVENT_STREAM_TYPE = "text/event-stream"

ChunkCallback = Callable[[str, str], None]


class TransportMode(str, Enum):
    ATOMIC = "atomic"
    STREAMING = "streaming"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            # Normalize to lowercase before lookup
            value = value.lower()
            for member in cls:
                if member.value == value:
                    return member
        return None

    @classmethod
    def from_content_type(cls, content_type: str | None) -> "TransportMode":
        """Pick the decode mode for a response from its Content-Type header"""
        media_type = (content_type or "").split(";", 1)[0].strip().lower()
        if media_type == EVENT_STREAM_TYPE:
            return cls.STREAMING
        return cls.ATOMIC


@dataclass
class AtomicResponse:
    """Complete JSON body, already read"""

    body: Any


@dataclass
class StreamingResponse:
    """Event-stream body as an async iterator of text fragments"""

    chunks: AsyncIterator[str]


ProxyResponse = Union[AtomicResponse, StreamingResponse]


def extract_trailing_json(text: str) -> dict | None:
    """
    Find a JSON object that closes at the very end of ``text``.

    Candidate start positions are tried left to right so an outer object wins
    over the objects nested inside it.
    """
    stripped = (text or "").rstrip()
    if not stripped.endswith("}"):
        return None
    start = stripped.find("{")
    while start != -1:
        try:
            value = json.loads(stripped[start:])
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = stripped.find("{", start + 1)
    return None


def parse_frame(line: str) -> dict | None:
    """Parse one event-stream line; None for blank, foreign or malformed lines"""
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None
    raw = line[len(DATA_PREFIX):]
    if raw.startswith(" "):
        raw = raw[1:]
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed frame: {raw[:80]!r}")
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def decode_atomic(body: Any, max_steps: int = MAX_STEPS) -> DecompositionResult:
    """Decode a buffered ``{ok, model, result}`` body"""
    if not isinstance(body, dict):
        raise DecodeError("Failed to parse AI response")
    return validate(body.get("result"), max_steps=max_steps)


class _FrameReader:
    """Accumulates chunk text and reacts to frames for one decode call"""

    def __init__(self, on_chunk: ChunkCallback | None, max_steps: int):
        self.on_chunk = on_chunk
        self.max_steps = max_steps
        self.text = ""
        self.result: DecompositionResult | None = None

    def feed(self, line: str) -> bool:
        """Handle one line; True once a terminal ``complete`` frame was seen"""
        payload = parse_frame(line)
        if payload is None:
            return False

        kind = payload.get("type")
        if kind == "chunk":
            content = payload.get("content")
            if isinstance(content, str):
                self.text += content
                if self.on_chunk:
                    self.on_chunk(content, self.text)
            return False
        if kind == "complete":
            self.result = validate(payload.get("result"), max_steps=self.max_steps)
            return True
        if kind == "error":
            raise DecodeError(str(payload.get("error") or "AI analysis failed"))
        return False


async def decode_stream(
    chunks: AsyncIterator[str],
    on_chunk: ChunkCallback | None = None,
    max_steps: int = MAX_STEPS,
) -> DecompositionResult:
    """
    Decode an event-stream body.

    A frame may be split across reads, so text is buffered until a newline
    arrives. Stops at the first ``complete`` or ``error`` frame. When the feed
    ends without a ``complete`` frame the accumulated chunk text is searched
    for a trailing JSON object.
    """
    reader = _FrameReader(on_chunk, max_steps)
    buffer = ""

    async for piece in chunks:
        buffer += piece
        *lines, buffer = buffer.split("\n")
        for line in lines:
            if reader.feed(line):
                return reader.result

    if buffer and reader.feed(buffer):
        return reader.result

    recovered = extract_trailing_json(reader.text)
    if recovered is None:
        raise DecodeError("Failed to parse AI response")
    logger.info("Stream ended without a complete frame, recovered result from chunks")
    return validate(recovered, max_steps=max_steps)


async def decode(
    response: ProxyResponse,
    on_chunk: ChunkCallback | None = None,
    max_steps: int = MAX_STEPS,
) -> DecompositionResult:
    """Decode either response shape into a validated result"""
    if isinstance(response, StreamingResponse):
        return await decode_stream(response.chunks, on_chunk, max_steps)
    return decode_atomic(response.body, max_steps)
