"""
Task storage interface and the in-process implementation.

High-level operations (toggle, sub-item updates, analysis) are written once on
top of four primitives each backend provides.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

from .models import DecompositionResult, SubItem, Task

logger = logging.getLogger(__name__)

DEFAULT_USER = "local"
UPDATABLE_FIELDS = {"title", "completed", "isEveryday", "assignedDate"}


def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


class TaskStore(ABC):
    """Async task persistence scoped to one user namespace"""

    def __init__(self, user_id: str | None = None):
        self.user_id = user_id or DEFAULT_USER

    @abstractmethod
    def for_user(self, user_id: str | None) -> "TaskStore":
        """Same backing storage, different user namespace"""

    @abstractmethod
    async def list_tasks(self) -> list[Task]:
        """All tasks, newest first"""

    @abstractmethod
    async def get_task(self, task_id: str) -> Task | None:
        pass

    @abstractmethod
    async def save_task(self, task: Task, is_new: bool = False) -> Task:
        pass

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        pass

    async def _touch(self, task: Task) -> Task:
        task.updatedAt = _now_ms()
        return await self.save_task(task)

    async def create_task(self, title: str, assigned_date: date | None = None) -> Task | None:
        clean = (title or "").strip()
        if not clean:
            return None
        task = Task(title=clean, assignedDate=assigned_date)
        return await self.save_task(task, is_new=True)

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> Task | None:
        task = await self.get_task(task_id)
        if task is None:
            return None
        updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        # Re-validate so assignedDate strings become dates
        task = Task.model_validate({**task.model_dump(), **updates})
        return await self._touch(task)

    async def toggle_task(self, task_id: str) -> Task | None:
        task = await self.get_task(task_id)
        if task is None:
            return None
        task.completed = not task.completed
        return await self._touch(task)

    async def toggle_everyday(self, task_id: str) -> Task | None:
        task = await self.get_task(task_id)
        if task is None:
            return None
        task.isEveryday = not task.isEveryday
        return await self._touch(task)

    async def clear_completed(self) -> int:
        removed = 0
        for task in await self.list_tasks():
            if task.completed and await self.delete_task(task.id):
                removed += 1
        return removed

    async def add_sub_items(self, task_id: str, sub_items: list[SubItem]) -> Task | None:
        task = await self.get_task(task_id)
        if task is None:
            return None
        task.subItems.extend(sub_items)
        return await self._touch(task)

    async def replace_sub_items(self, task_id: str, sub_items: list[SubItem]) -> Task | None:
        task = await self.get_task(task_id)
        if task is None:
            return None
        task.subItems = list(sub_items or [])
        return await self._touch(task)

    async def toggle_sub_item(self, task_id: str, sub_item_id: str) -> Task | None:
        """
        Flip one sub-item. When that leaves every sub-item done, the parent is
        marked completed as well.
        """
        task = await self.get_task(task_id)
        if task is None:
            return None
        for item in task.subItems:
            if item.id == sub_item_id:
                item.completed = not item.completed
                break
        else:
            return None
        if task.subItems and all(item.completed for item in task.subItems):
            task.completed = True
        return await self._touch(task)

    async def update_analysis(self, task_id: str, analysis: DecompositionResult) -> Task | None:
        task = await self.get_task(task_id)
        if task is None:
            return None
        task.lastAnalysis = analysis
        return await self._touch(task)


class InMemoryTaskStore(TaskStore):
    """Process-local store; tables are shared between user views"""

    def __init__(self, user_id: str | None = None, tables: dict[str, dict[str, Task]] | None = None):
        super().__init__(user_id)
        self._tables = tables if tables is not None else {}

    @property
    def _table(self) -> dict[str, Task]:
        return self._tables.setdefault(self.user_id, {})

    def for_user(self, user_id: str | None) -> "InMemoryTaskStore":
        return InMemoryTaskStore(user_id, self._tables)

    async def list_tasks(self) -> list[Task]:
        # newest insertions live at the end of the dict
        return [t.model_copy(deep=True) for t in reversed(self._table.values())]

    async def get_task(self, task_id: str) -> Task | None:
        task = self._table.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def save_task(self, task: Task, is_new: bool = False) -> Task:
        self._table[task.id] = task.model_copy(deep=True)
        if is_new:
            logger.info(f"Task {task.id} created")
        return task

    async def delete_task(self, task_id: str) -> bool:
        return self._table.pop(task_id, None) is not None
