"""
DoneList FastAPI Backend
Task list API with an AI task-decomposition proxy
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from DoneList.agents.base import LlmWrapper
from DoneList.agents.config import (
    ProxyConfig,
    StorageConfig,
    get_proxy_config,
    get_storage_config,
)
from DoneList.backend.rate_limit import RateLimiter
from DoneList.backend.routes import ai, tasks
from DoneList.shared.task_store import InMemoryTaskStore, TaskStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def build_task_store(config: StorageConfig) -> TaskStore:
    """Pick the storage backend named by the configuration"""
    if config.backend == "redis":
        from DoneList.shared.redis_utils import RedisConfig, RedisTaskStore

        return RedisTaskStore(RedisConfig(url=config.redis_url))
    return InMemoryTaskStore()


async def connect_storage(app: FastAPI) -> None:
    """Connect remote storage, falling back to memory when it is down"""
    connect = getattr(app.state.task_store, "connect", None)
    if connect is None:
        return
    try:
        await connect()
        logger.info("Task storage connected")
    except Exception as e:
        logger.error(f"Failed to connect task storage: {e}")
        logger.warning("Running without Redis - using in-memory storage only")
        app.state.task_store = InMemoryTaskStore()


async def disconnect_storage(app: FastAPI) -> None:
    disconnect = getattr(app.state.task_store, "disconnect", None)
    if disconnect is not None:
        await disconnect()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_storage(app)
    yield
    # Clean up resources
    await disconnect_storage(app)
    logger.info("DoneList API shutdown complete")


def create_app(
    proxy_config: Optional[ProxyConfig] = None,
    task_store: Optional[TaskStore] = None,
    llm: Optional[LlmWrapper] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Build the API; every collaborator can be injected for tests"""
    proxy_config = proxy_config or get_proxy_config()

    app = FastAPI(
        title="DoneList API",
        description="Task list API with AI-assisted task decomposition",
        version=VERSION,
        lifespan=lifespan,
    )

    # Basic CORS setup; tighten origins per environment as needed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.proxy_config = proxy_config
    app.state.task_store = task_store or build_task_store(get_storage_config())
    app.state.llm = llm or LlmWrapper(
        model=proxy_config.model,
        temperature=proxy_config.temperature,
        max_tokens=proxy_config.max_tokens,
        host=proxy_config.ollama_host,
    )
    app.state.rate_limiter = rate_limiter or RateLimiter(
        window_seconds=proxy_config.rate_limit_window_seconds,
        max_requests=proxy_config.rate_limit_max,
        enabled=proxy_config.rate_limit_enabled,
        production=proxy_config.production,
    )

    app.include_router(ai.router)
    app.include_router(tasks.router)

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {"status": "healthy", "service": "DoneList API", "version": VERSION}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    logger.info(
        f"DoneList API configured: model={proxy_config.model} "
        f"streaming={proxy_config.streaming_enabled} timeout={proxy_config.timeout_seconds}s"
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
