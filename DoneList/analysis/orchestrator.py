"""
Decomposition orchestrator: sends a task to the completion proxy, decodes the
answer and turns the steps into persisted sub-items.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from DoneList.agents.config import AnalysisConfig, get_analysis_config
from DoneList.shared.models import AnalyzeRequest, DecompositionResult, Step, SubItem, Task
from DoneList.shared.task_store import TaskStore

from .decoder import TransportMode, decode
from .errors import is_quota_message
from .guard import RequestState, SingleFlightGuard
from .observer import (
    STATUS_ANALYZING,
    STATUS_CREATED,
    STATUS_QUOTA,
    STATUS_REGENERATED,
    STATUS_REGENERATING,
    STATUS_RETRYING,
    STATUS_STREAMING,
    STATUS_UNAVAILABLE,
    ExpansionState,
    StatusObserver,
)
from .retry import NO_RETRY, RetryPolicy
from .transport import CompletionClient

logger = logging.getLogger(__name__)


def make_sub_items(task_id: str, steps: list[Step]) -> list[SubItem]:
    """Project decomposition steps onto fresh, unchecked sub-items"""
    stamp = time.time_ns()
    return [
        SubItem(
            id=f"sub-{task_id}-{idx}-{stamp}",
            title=step.title or f"Step {idx + 1}",
            completed=False,
        )
        for idx, step in enumerate(steps)
    ]


def error_steps(message: str, billing_url: str | None = None) -> list[Step]:
    """Single synthetic step so a failure renders like any other step list"""
    how = ""
    if billing_url and is_quota_message(message):
        how = f"Add credits to your AI provider account: {billing_url}"
    return [Step(title="Error", why=message, how=how)]


class DecompositionOrchestrator:
    """
    Client-side driver for one task list.

    One instance owns one single-flight guard, so only one analysis runs at a
    time no matter which task it is for. Calls made while one is running are
    dropped.
    """

    def __init__(
        self,
        client: CompletionClient,
        store: TaskStore,
        observer: StatusObserver | None = None,
        config: AnalysisConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        expansion: ExpansionState | None = None,
    ):
        self.client = client
        self.store = store
        self.observer = observer or StatusObserver()
        self.config = config or AnalysisConfig()
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.max_retries,
            default_delay=self.config.default_retry_after,
        )
        self.expansion = expansion or ExpansionState()
        self.state = RequestState()
        self.guard = SingleFlightGuard(self.state)
        self._clear_handle: asyncio.TimerHandle | None = None

    @classmethod
    def from_config(
        cls,
        store: TaskStore,
        observer: StatusObserver | None = None,
        config: AnalysisConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "DecompositionOrchestrator":
        """Build the orchestrator and its proxy client from one configuration"""
        config = config or get_analysis_config()
        client = CompletionClient(
            config.api_base,
            mode=config.transport_mode,
            timeout=config.request_timeout,
            http_client=http_client,
        )
        return cls(client, store, observer, config)

    @property
    def in_flight(self) -> bool:
        return self.guard.locked

    @property
    def can_regenerate(self) -> bool:
        """True once the last analysis produced steps and nothing failed since"""
        return self.state.can_regenerate and bool(self.state.last_task_id)

    def _set_status(self, status: str) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
        self.observer.on_status_change(status)

    def _set_status_briefly(self, status: str) -> None:
        self._set_status(status)
        loop = asyncio.get_running_loop()
        self._clear_handle = loop.call_later(
            self.config.status_clear_delay, self.observer.on_status_change, ""
        )

    async def analyze(self, task_text: str, task_id: str, is_regenerate: bool = False) -> None:
        """
        Decompose ``task_text`` into sub-items of ``task_id``.

        Never raises: failures end up as a status string and a one-step error
        list on the observer.
        """
        trimmed = str(task_text or "").strip()
        if not trimmed or not task_id:
            return

        with self.guard.hold() as acquired:
            if not acquired:
                logger.warning(f"Analysis already in flight, dropping request for task {task_id}")
                return

            if not is_regenerate:
                self.state.last_task_text = trimmed
                self.state.last_task_id = task_id

            self._set_status(STATUS_REGENERATING if is_regenerate else STATUS_ANALYZING)
            self.observer.on_steps_change([])

            try:
                result = await self._request(trimmed, is_regenerate)
                await self._persist(task_id, result, is_regenerate)
                self.observer.on_steps_change(result.steps)
                if result.steps or not is_regenerate:
                    self.state.can_regenerate = bool(result.steps)
                self._set_status_briefly(STATUS_REGENERATED if is_regenerate else STATUS_CREATED)
            except Exception as e:
                message = str(e) or "AI analysis failed"
                logger.error(f"Analysis failed for task {task_id}: {message}")
                self.state.can_regenerate = False
                self._set_status(STATUS_QUOTA if is_quota_message(message) else STATUS_UNAVAILABLE)
                self.observer.on_steps_change(error_steps(message, self.config.billing_url))

    async def load_tasks(self) -> list[Task]:
        """Fetch the task list and fold tasks the user has not opened"""
        tasks = await self.store.list_tasks()
        self.expansion.sync(tasks)
        return tasks

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task and drop its expand/collapse state"""
        deleted = await self.store.delete_task(task_id)
        self.expansion.forget(task_id)
        if task_id == self.state.last_task_id:
            self.state.can_regenerate = False
        return deleted

    async def regenerate(self) -> None:
        """Re-run the last analyzed task asking for a better version"""
        if not self.can_regenerate or not self.state.last_task_text:
            return
        await self.analyze(self.state.last_task_text, self.state.last_task_id, is_regenerate=True)

    async def _request(self, task_text: str, is_regenerate: bool) -> DecompositionResult:
        request = AnalyzeRequest(
            taskText=task_text,
            regenerate=is_regenerate,
            context={"previousAnalysis": True} if is_regenerate else None,
        )
        # a broken stream is final for the call, only buffered requests retry
        policy = self.retry_policy if self.client.mode is TransportMode.ATOMIC else NO_RETRY

        def on_chunk(_content: str, _text: str) -> None:
            self.observer.on_status_change(STATUS_STREAMING)

        def on_retry(delay: float) -> None:
            self._set_status(STATUS_RETRYING.format(delay=delay))

        async def attempt() -> DecompositionResult:
            async with self.client.open(request) as response:
                return await decode(response, on_chunk)

        return await policy.run(attempt, on_retry)

    async def _persist(self, task_id: str, result: DecompositionResult, is_regenerate: bool) -> None:
        await self.store.update_analysis(task_id, result)
        if not result.steps:
            return

        sub_items = make_sub_items(task_id, result.steps)
        if is_regenerate:
            await self.store.replace_sub_items(task_id, sub_items)
        else:
            await self.store.add_sub_items(task_id, sub_items)
        logger.info(
            f"{'Replaced' if is_regenerate else 'Added'} {len(sub_items)} sub-items on task {task_id}"
        )

        self.expansion.expand(task_id)
        task = await self.store.get_task(task_id)
        if task is not None:
            self.observer.on_task_updated(task)
