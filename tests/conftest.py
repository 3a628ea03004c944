# Test configuration and fixtures
import asyncio
import json
import os
from typing import Any, Dict, List, Optional

import httpx
import pytest

# Set test environment variables
os.environ["OLLAMA_BASE_URL"] = "http://localhost:11434"
os.environ["DONELIST_STORAGE"] = "memory"
os.environ["TESTING"] = "1"  # Signal that we're in test mode

from DoneList.agents.config import AnalysisConfig, ProxyConfig  # noqa: E402
from DoneList.analysis.observer import StatusObserver  # noqa: E402
from DoneList.shared.task_store import InMemoryTaskStore  # noqa: E402


class FakeLlm:
    """Stands in for LlmWrapper; replies with canned text or chunks"""

    def __init__(
        self,
        reply: str = "",
        chunks: Optional[List[str]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        model: str = "test-model",
    ):
        self.reply = reply
        self.chunks = chunks or []
        self.delay = delay
        self.error = error
        self.model = model
        self.calls: List[list] = []

    async def chat(self, messages: list) -> str:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply

    async def stream_chat(self, messages: list):
        self.calls.append(messages)
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
        if self.error:
            raise self.error


class FakeRedis:
    """Dict-backed subset of redis.asyncio.Redis used by RedisTaskStore"""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.closed = False

    async def ping(self):
        return True

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value):
        self.values[key] = value
        return True

    async def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0

    async def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start : end + 1]

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        before = len(items)
        self.lists[key] = [item for item in items if item != value]
        return before - len(self.lists[key])

    async def aclose(self):
        self.closed = True


class RecordingObserver(StatusObserver):
    """Keeps every callback so tests can assert on the sequence"""

    def __init__(self):
        self.statuses: List[str] = []
        self.steps: List[list] = []
        self.tasks: List[Any] = []

    def on_status_change(self, status: str) -> None:
        self.statuses.append(status)

    def on_steps_change(self, steps) -> None:
        self.steps.append(list(steps))

    def on_task_updated(self, task) -> None:
        self.tasks.append(task)


def make_decomposition(step_count: int = 2, title: str = "Plan") -> Dict[str, Any]:
    return {
        "title": title,
        "assumptions": ["Repo builds locally"],
        "steps": [
            {
                "title": f"Step title {i + 1}",
                "why": f"why {i + 1}",
                "how": f"how {i + 1}",
                "filesToTouch": [f"file{i + 1}.py"],
            }
            for i in range(step_count)
        ],
        "risks": ["Scope creep"],
        "testPlan": ["Run the suite"],
    }


def sse(*payloads: Dict[str, Any]) -> bytes:
    """Encode payloads as event-stream frames"""
    return "".join(f"data: {json.dumps(p)}\n\n" for p in payloads).encode()


def parse_sse(text: str) -> List[Dict[str, Any]]:
    frames = []
    for block in text.split("\n\n"):
        block = block.strip()
        if block.startswith("data:"):
            frames.append(json.loads(block[len("data:"):].strip()))
    return frames


@pytest.fixture
def decomposition():
    """Factory for well-formed decomposition payloads"""
    return make_decomposition


@pytest.fixture
def fake_llm():
    """Factory for fake LLM wrappers"""
    return FakeLlm


@pytest.fixture
def fake_redis():
    """In-memory stand-in for an async Redis connection"""
    return FakeRedis()


@pytest.fixture
def observer():
    """Observer that records status, step and task callbacks"""
    return RecordingObserver()


@pytest.fixture
def task_store():
    """Fresh in-process task store"""
    return InMemoryTaskStore()


@pytest.fixture
def proxy_config():
    """Proxy settings with a generous deadline and limiter off"""
    return ProxyConfig(model="test-model", timeout_seconds=1.0)


@pytest.fixture
def analysis_config():
    """Client settings; status messages stay put unless a test shortens the delay"""
    return AnalysisConfig(api_base="http://proxy.test", status_clear_delay=60.0)


@pytest.fixture
def sse_body():
    """Encoder for event-stream response bodies"""
    return sse


@pytest.fixture
def sse_frames():
    """Decoder for event-stream response bodies"""
    return parse_sse


@pytest.fixture
def mock_transport():
    """Build an httpx.AsyncClient whose requests go to ``handler``"""

    def build(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build
