"""
Redis-backed task storage for DoneList
Each task is one JSON document; a per-user list keeps ids newest first
"""

from __future__ import annotations

import logging

try:
    import redis.asyncio as async_redis
    from redis.asyncio import ConnectionPool as AsyncConnectionPool
except ImportError:
    raise ImportError("Redis is required. Install with: pip install redis")

from .models import Task
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class RedisConfig:
    """Redis configuration"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        url: str | None = None,
    ):
        self.host = host
        self.port = port
        self.db = db
        self.url = url or f"redis://{host}:{port}/{db}"


class RedisKeys:
    """Redis key patterns"""

    TASK_STATE = "donelist:{user_id}:task:{task_id}"
    ALL_TASKS = "donelist:{user_id}:tasks"


class RedisTaskStore(TaskStore):
    """Task store over ``redis.asyncio``; user views share one connection"""

    def __init__(
        self,
        config: RedisConfig,
        user_id: str | None = None,
        redis: async_redis.Redis | None = None,
    ):
        super().__init__(user_id)
        self.config = config
        self.pool: AsyncConnectionPool | None = None
        self.redis = redis

    async def connect(self):
        """Initialize async Redis connection"""
        try:
            self.pool = AsyncConnectionPool.from_url(
                self.config.url, decode_responses=True
            )
            self.redis = async_redis.Redis(connection_pool=self.pool)
            await self.redis.ping()
            logger.info("Async Redis connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect to async Redis: {e}")
            raise

    async def disconnect(self):
        """Close async Redis connection"""
        if self.redis:
            await self.redis.aclose()
        if self.pool:
            await self.pool.disconnect()

    def get_redis(self) -> async_redis.Redis:
        if not self.redis:
            raise RuntimeError("Redis not connected")
        return self.redis

    def for_user(self, user_id: str | None) -> "RedisTaskStore":
        view = RedisTaskStore(self.config, user_id, self.redis)
        view.pool = self.pool
        return view

    def _task_key(self, task_id: str) -> str:
        return RedisKeys.TASK_STATE.format(user_id=self.user_id, task_id=task_id)

    def _index_key(self) -> str:
        return RedisKeys.ALL_TASKS.format(user_id=self.user_id)

    async def list_tasks(self) -> list[Task]:
        r = self.get_redis()
        task_ids = await r.lrange(self._index_key(), 0, -1)
        tasks = []
        for task_id in task_ids:
            task = await self.get_task(task_id)
            if task:
                tasks.append(task)
        return tasks

    async def get_task(self, task_id: str) -> Task | None:
        r = self.get_redis()
        raw = await r.get(self._task_key(task_id))
        if not raw:
            return None
        return Task.model_validate_json(raw)

    async def save_task(self, task: Task, is_new: bool = False) -> Task:
        r = self.get_redis()
        await r.set(self._task_key(task.id), task.model_dump_json())
        if is_new:
            await r.lpush(self._index_key(), task.id)
            logger.info(f"Task {task.id} saved to Redis for user {self.user_id}")
        return task

    async def delete_task(self, task_id: str) -> bool:
        r = self.get_redis()
        deleted = await r.delete(self._task_key(task_id))
        await r.lrem(self._index_key(), 0, task_id)
        return bool(deleted)
