"""LLM-facing helpers and configuration.

Lazy imports keep ``import DoneList.agents.config`` from pulling in the
ollama client.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "LlmWrapper",
    "PromptBuilder",
    "ProxyConfig",
    "AnalysisConfig",
    "StorageConfig",
    "get_proxy_config",
    "get_analysis_config",
    "get_storage_config",
]


def __getattr__(name: str) -> Any:
    if name == "LlmWrapper":
        from .base import LlmWrapper

        return LlmWrapper

    if name == "PromptBuilder":
        from .prompt_builder import PromptBuilder

        return PromptBuilder

    if name in {
        "ProxyConfig",
        "AnalysisConfig",
        "StorageConfig",
        "get_proxy_config",
        "get_analysis_config",
        "get_storage_config",
    }:
        from . import config

        return getattr(config, name)

    raise AttributeError(f"module 'DoneList.agents' has no attribute {name!r}")
