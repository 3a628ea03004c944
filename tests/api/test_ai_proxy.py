# API tests for the completion proxy
import json

import ollama
import pytest
from fastapi.testclient import TestClient

from DoneList.agents.config import ProxyConfig
from DoneList.backend.main import create_app
from DoneList.backend.rate_limit import RateLimiter
from DoneList.backend.routes.ai import ModelOutputError, parse_model_output

ANALYZE = "/api/ai/analyze-task"
STREAM = {"Accept": "text/event-stream"}


@pytest.fixture
def make_client(proxy_config, task_store):
    """TestClient factory around an app with a fake LLM"""

    def build(llm, config: ProxyConfig = None, limiter: RateLimiter = None) -> TestClient:
        app = create_app(
            proxy_config=config or proxy_config,
            task_store=task_store,
            llm=llm,
            rate_limiter=limiter,
        )
        return TestClient(app)

    return build


@pytest.mark.api
class TestParseModelOutput:
    """Test parsing of raw model replies."""

    def test_plain_json(self, decomposition):
        result = parse_model_output(json.dumps(decomposition(step_count=6)), max_steps=4)
        assert len(result["steps"]) == 4

    def test_prose_around_json(self):
        result = parse_model_output('Here you go:\n{"steps": [{"title": "A"}]}', max_steps=4)
        assert result["steps"][0]["title"] == "A"

    def test_invalid_json(self):
        with pytest.raises(ModelOutputError, match="Invalid JSON from model"):
            parse_model_output("I'd rather not.", max_steps=4)

    def test_missing_steps(self):
        with pytest.raises(ModelOutputError, match="missing steps"):
            parse_model_output('{"title": "No steps"}', max_steps=4)


@pytest.mark.api
class TestAnalyzeAtomic:
    """Test the buffered JSON answer."""

    def test_success(self, make_client, fake_llm, decomposition):
        llm = fake_llm(reply=json.dumps(decomposition(step_count=7)))
        client = make_client(llm)

        response = client.post(ANALYZE, json={"taskText": "Migrate the database"})

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["model"] == "test-model"
        assert len(data["result"]["steps"]) == 4
        assert llm.calls[0][1] == {"role": "user", "content": "Task: Migrate the database"}

    def test_regenerate_prompt(self, make_client, fake_llm):
        llm = fake_llm(reply='{"steps": []}')
        make_client(llm).post(
            ANALYZE,
            json={"taskText": "Migrate", "regenerate": True, "context": {"previousAnalysis": True}},
        )
        assert llm.calls[0][1]["content"] == "Better version: Migrate"

    def test_task_text_is_truncated(self, make_client, fake_llm):
        llm = fake_llm(reply='{"steps": []}')
        make_client(llm).post(ANALYZE, json={"taskText": "x" * 5000})
        assert llm.calls[0][1]["content"] == "Task: " + "x" * 4000

    @pytest.mark.parametrize("body", [{}, {"taskText": ""}, {"taskText": "   "}, {"taskText": 7}, []])
    def test_invalid_task_text(self, make_client, fake_llm, body):
        llm = fake_llm()
        response = make_client(llm).post(ANALYZE, json=body)

        assert response.status_code == 400
        assert "taskText" in response.json()["error"]
        assert llm.calls == []

    def test_timeout(self, make_client, fake_llm):
        config = ProxyConfig(model="test-model", timeout_seconds=0.05)
        response = make_client(fake_llm(reply='{"steps": []}', delay=0.5), config).post(
            ANALYZE, json={"taskText": "slow"}
        )

        assert response.status_code == 504
        assert response.json()["error"] == "Request took too long"
        assert "timeout" in response.json()["details"]

    def test_invalid_model_output(self, make_client, fake_llm):
        response = make_client(fake_llm(reply="not json at all")).post(
            ANALYZE, json={"taskText": "t"}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "Invalid JSON from model"

    def test_missing_steps(self, make_client, fake_llm):
        response = make_client(fake_llm(reply='{"title": "x"}')).post(
            ANALYZE, json={"taskText": "t"}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "Model response missing steps[]"

    def test_upstream_status_is_forwarded(self, make_client, fake_llm):
        error = ollama.ResponseError("model 'missing' not found", 404)
        response = make_client(fake_llm(error=error)).post(ANALYZE, json={"taskText": "t"})

        assert response.status_code == 404
        assert response.json()["error"] == "AI analysis failed"
        assert "not found" in response.json()["details"]

    def test_unknown_upstream_failure(self, make_client, fake_llm):
        response = make_client(fake_llm(error=RuntimeError("socket closed"))).post(
            ANALYZE, json={"taskText": "t"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "AI analysis failed", "details": "socket closed"}

    def test_streaming_disabled_answers_json(self, make_client, fake_llm):
        config = ProxyConfig(model="test-model", streaming_enabled=False)
        response = make_client(fake_llm(reply='{"steps": []}'), config).post(
            ANALYZE, json={"taskText": "t"}, headers=STREAM
        )

        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["ok"] is True


@pytest.mark.api
class TestAnalyzeStreaming:
    """Test the event-stream answer."""

    def test_chunks_then_complete(self, make_client, fake_llm, sse_frames):
        llm = fake_llm(chunks=['{"steps": [', '{"title": "A"}', "]}"])
        response = make_client(llm).post(ANALYZE, json={"taskText": "t"}, headers=STREAM)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = sse_frames(response.text)
        assert [f["type"] for f in frames] == ["chunk", "chunk", "chunk", "complete"]
        assert frames[1]["content"] == '{"title": "A"}'
        assert frames[-1]["ok"] is True
        assert frames[-1]["model"] == "test-model"
        assert frames[-1]["result"]["steps"][0]["title"] == "A"

    def test_unparseable_stream(self, make_client, fake_llm, sse_frames):
        llm = fake_llm(chunks=["no", " json"])
        frames = sse_frames(
            make_client(llm).post(ANALYZE, json={"taskText": "t"}, headers=STREAM).text
        )

        assert frames[-1]["type"] == "error"
        assert frames[-1]["error"] == "Invalid JSON from model"

    def test_deadline_covers_whole_stream(self, make_client, fake_llm, sse_frames):
        config = ProxyConfig(model="test-model", timeout_seconds=0.1)
        llm = fake_llm(chunks=["{", "}", "}", "}", "}"], delay=0.04)
        frames = sse_frames(
            make_client(llm, config).post(ANALYZE, json={"taskText": "t"}, headers=STREAM).text
        )

        assert frames[-1] == {"type": "error", "error": "Request took too long"}
        assert sum(1 for f in frames if f["type"] == "chunk") < 5

    def test_upstream_failure_mid_stream(self, make_client, fake_llm, sse_frames):
        llm = fake_llm(chunks=["{"], error=RuntimeError("upstream hung up"))
        frames = sse_frames(
            make_client(llm).post(ANALYZE, json={"taskText": "t"}, headers=STREAM).text
        )

        assert frames[0]["type"] == "chunk"
        assert frames[-1] == {"type": "error", "error": "upstream hung up"}


@pytest.mark.api
class TestRateLimiting:
    """Test per-source limits on the proxy."""

    def test_rejects_over_limit(self, make_client, fake_llm):
        limiter = RateLimiter(window_seconds=60, max_requests=2, enabled=True)
        client = make_client(fake_llm(reply='{"steps": []}'), limiter=limiter)
        headers = {"X-Forwarded-For": "203.0.113.7"}

        for _ in range(2):
            assert client.post(ANALYZE, json={"taskText": "t"}, headers=headers).status_code == 200

        response = client.post(ANALYZE, json={"taskText": "t"}, headers=headers)
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert "error" in response.json()

        other = client.post(ANALYZE, json={"taskText": "t"}, headers={"X-Forwarded-For": "198.51.100.4"})
        assert other.status_code == 200

    def test_localhost_bypass(self, make_client, fake_llm):
        limiter = RateLimiter(max_requests=1, enabled=True)
        client = make_client(fake_llm(reply='{"steps": []}'), limiter=limiter)
        headers = {"X-Forwarded-For": "127.0.0.1"}

        for _ in range(3):
            assert client.post(ANALYZE, json={"taskText": "t"}, headers=headers).status_code == 200
