import os
from collections.abc import AsyncIterator

import ollama


def _content_of(response) -> str:
    """
    Pull the text out of an Ollama chat response or stream part.

    Depending on the client version this is a ChatResponse object
    (``response.message.content``) or a plain dict.
    """
    if hasattr(response, "message"):
        message = response.message
        return getattr(message, "content", None) or ""
    if isinstance(response, dict) and "message" in response:
        message = response["message"]
        if isinstance(message, dict):
            return message.get("content") or ""
        if hasattr(message, "content"):
            return message.content or ""
    if isinstance(response, dict) and "content" in response:
        return response["content"] or ""
    raise ValueError(
        f"Unable to extract content from response. Type: {type(response)}"
    )


class LlmWrapper:
    def __init__(
        self,
        model: str = "gemma3:27b",
        temperature: float = 0.1,
        max_tokens: int = 400,
        host: str = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        # Prefer an explicit host; fall back to env var; then a safe default.
        self.host = host or os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        self.client = ollama.AsyncClient(host=self.host)

    @property
    def options(self) -> dict:
        return {"temperature": self.temperature, "num_predict": self.max_tokens}

    async def chat(self, messages: list[dict]) -> str:
        """Send chat messages to the LLM and return the whole reply"""
        response = await self.client.chat(
            model=self.model,
            messages=messages,
            options=self.options,
        )
        return _content_of(response)

    async def stream_chat(self, messages: list[dict]) -> AsyncIterator[str]:
        """Yield the reply as it is generated, skipping empty parts"""
        stream = await self.client.chat(
            model=self.model,
            messages=messages,
            stream=True,
            options=self.options,
        )
        async for part in stream:
            content = _content_of(part)
            if content:
                yield content
