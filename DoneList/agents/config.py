"""
Configuration settings for the DoneList completion proxy, the analysis client
and task storage
"""

import os
from dataclasses import dataclass

from DoneList.analysis.decoder import TransportMode
from DoneList.analysis.schema import MAX_STEPS

# Default configuration values
DEFAULT_MODEL = "gemma3:27b"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_API_BASE = "http://localhost:8000"
DEFAULT_BILLING_URL = "https://ollama.com/settings"
TIMEOUT_SECONDS = 2.0
MAX_TOKENS = 400
MAX_TASK_CHARS = 4000
RATE_LIMIT_WINDOW_MS = 60_000
RATE_LIMIT_MAX = 100


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class ProxyConfig:
    """Configuration for the server-side completion proxy"""

    model: str = DEFAULT_MODEL
    ollama_host: str = DEFAULT_OLLAMA_HOST
    streaming_enabled: bool = True
    timeout_seconds: float = TIMEOUT_SECONDS
    max_tokens: int = MAX_TOKENS
    temperature: float = 0.1
    max_task_chars: int = MAX_TASK_CHARS
    max_steps: int = MAX_STEPS
    rate_limit_enabled: bool = False
    rate_limit_window_seconds: float = RATE_LIMIT_WINDOW_MS / 1000
    rate_limit_max: int = RATE_LIMIT_MAX
    production: bool = False


@dataclass
class AnalysisConfig:
    """Configuration for the client-side decomposition orchestrator"""

    api_base: str = DEFAULT_API_BASE
    transport_mode: TransportMode = TransportMode.STREAMING
    max_retries: int = 2
    default_retry_after: float = 1.0
    status_clear_delay: float = 1.5
    request_timeout: float = 30.0
    billing_url: str = DEFAULT_BILLING_URL


@dataclass
class StorageConfig:
    """Where tasks are persisted"""

    backend: str = "memory"
    redis_url: str = "redis://localhost:6379"


def get_proxy_config() -> ProxyConfig:
    """Get proxy configuration with environment overrides"""
    return ProxyConfig(
        model=os.getenv("DONELIST_MODEL", DEFAULT_MODEL),
        ollama_host=os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_HOST),
        streaming_enabled=_env_bool("AI_STREAMING", True),
        timeout_seconds=_env_float("AI_TIMEOUT_SECONDS", TIMEOUT_SECONDS),
        max_tokens=_env_int("AI_MAX_TOKENS", MAX_TOKENS),
        rate_limit_enabled=_env_bool("AI_RATELIMIT_ENABLED", False),
        rate_limit_window_seconds=_env_int("AI_RATELIMIT_WINDOW_MS", RATE_LIMIT_WINDOW_MS)
        / 1000,
        rate_limit_max=_env_int("AI_RATELIMIT_MAX", RATE_LIMIT_MAX),
        production=os.getenv("ENVIRONMENT", "development").lower() == "production",
    )


def get_analysis_config() -> AnalysisConfig:
    """Get analysis client configuration with environment overrides"""
    mode = os.getenv("DONELIST_TRANSPORT", TransportMode.STREAMING.value)
    try:
        transport_mode = TransportMode(mode)
    except ValueError:
        transport_mode = TransportMode.STREAMING
    return AnalysisConfig(
        api_base=os.getenv("DONELIST_API_BASE", DEFAULT_API_BASE),
        transport_mode=transport_mode,
        billing_url=os.getenv("AI_BILLING_URL", DEFAULT_BILLING_URL),
    )


def get_storage_config() -> StorageConfig:
    """Get storage configuration"""
    return StorageConfig(
        backend=os.getenv("DONELIST_STORAGE", "memory").lower(),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
    )
