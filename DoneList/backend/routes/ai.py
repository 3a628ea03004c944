"""
Completion proxy: forwards one task to the language model and answers with a
buffered JSON body or an event stream of chunk/complete/error frames.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from DoneList.agents.base import LlmWrapper
from DoneList.agents.config import ProxyConfig
from DoneList.agents.prompt_builder import PromptBuilder
from DoneList.analysis.decoder import EVENT_STREAM_TYPE, extract_trailing_json
from DoneList.analysis.errors import SchemaError
from DoneList.analysis.schema import validate
from DoneList.backend.rate_limit import RateLimiter, client_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai")

TIMEOUT_MESSAGE = "Request took too long"


class ModelOutputError(ValueError):
    """Model reply is not a usable decomposition"""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


def parse_model_output(text: str, max_steps: int) -> Dict[str, Any]:
    """Parse the raw model reply into a validated, truncated result dict"""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = extract_trailing_json(text)
        if data is None:
            raise ModelOutputError("Invalid JSON from model", raw=text[:500])
    try:
        return validate(data, max_steps=max_steps).model_dump()
    except SchemaError as e:
        raise ModelOutputError("Model response missing steps[]", raw=data) from e


def _frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _upstream_status(err: Exception) -> int:
    code = getattr(err, "status_code", None) or getattr(err, "status", None)
    if isinstance(code, int) and 400 <= code <= 599:
        return code
    return 500


async def stream_events(
    llm: LlmWrapper, messages: list, config: ProxyConfig
) -> AsyncIterator[str]:
    """
    Relay model output as ``chunk`` frames, then one ``complete`` or ``error``
    frame. The deadline covers the whole exchange, not each chunk.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + config.timeout_seconds
    full_text = ""
    stream = llm.stream_chat(messages)
    try:
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            try:
                content = await asyncio.wait_for(anext(stream), remaining)
            except StopAsyncIteration:
                break
            full_text += content
            yield _frame({"type": "chunk", "content": content})
    except asyncio.TimeoutError:
        logger.error(f"[AI] Stream exceeded {config.timeout_seconds}s deadline")
        yield _frame({"type": "error", "error": TIMEOUT_MESSAGE})
        return
    except Exception as e:
        logger.error(f"[AI] Streaming analysis failed: {e}")
        yield _frame({"type": "error", "error": str(e) or "AI analysis failed"})
        return
    finally:
        await stream.aclose()

    try:
        result = parse_model_output(full_text, config.max_steps)
    except ModelOutputError as e:
        yield _frame({"type": "error", "error": str(e), "raw": e.raw})
        return
    yield _frame({"type": "complete", "ok": True, "model": llm.model, "result": result})


@router.post("/analyze-task")
async def analyze_task(request: Request):
    """Decompose one task description"""
    config: ProxyConfig = request.app.state.proxy_config
    limiter: RateLimiter = request.app.state.rate_limiter
    llm: LlmWrapper = request.app.state.llm

    retry_after = limiter.check(client_source(request))
    if retry_after is not None:
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests. Please slow down."},
            headers={"Retry-After": str(retry_after)},
        )

    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    task_text = body.get("taskText")
    if not isinstance(task_text, str) or not task_text.strip():
        return JSONResponse(
            status_code=400,
            content={"error": "taskText is required and must be a non-empty string"},
        )

    safe_task_text = task_text[: config.max_task_chars]
    regenerate = bool(body.get("regenerate"))
    messages = PromptBuilder().build_messages(safe_task_text, regenerate)

    wants_stream = EVENT_STREAM_TYPE in request.headers.get("accept", "")
    if config.streaming_enabled and wants_stream:
        return StreamingResponse(
            stream_events(llm, messages, config),
            media_type=EVENT_STREAM_TYPE,
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    try:
        text = await asyncio.wait_for(llm.chat(messages), config.timeout_seconds)
    except asyncio.TimeoutError:
        return JSONResponse(
            status_code=504,
            content={
                "error": TIMEOUT_MESSAGE,
                "details": f"AI response exceeded {config.timeout_seconds:g} second timeout",
            },
        )
    except Exception as e:
        code = _upstream_status(e)
        logger.error(f"[AI] Analysis failed: code={code} details={e}")
        return JSONResponse(
            status_code=code,
            content={"error": "AI analysis failed", "details": str(e) or "unknown"},
        )

    try:
        result = parse_model_output(text or "", config.max_steps)
    except ModelOutputError as e:
        return JSONResponse(status_code=502, content={"error": str(e), "raw": e.raw})

    return {"ok": True, "model": llm.model, "result": result}
