"""
Hooks the orchestrator calls into so any UI can follow an analysis, plus the
expand/collapse bookkeeping for tasks that own sub-items.
"""

from __future__ import annotations

from collections.abc import Iterable

from DoneList.shared.models import Step, Task

STATUS_ANALYZING = "Analyzing…"
STATUS_REGENERATING = "Generating better version…"
STATUS_STREAMING = "Generating suggestions…"
STATUS_RETRYING = "Rate limited, retrying in {delay:g}s…"
STATUS_CREATED = "Sub-tasks created"
STATUS_REGENERATED = "Better version generated"
STATUS_QUOTA = "AI quota exceeded"
STATUS_UNAVAILABLE = "AI unavailable"


class StatusObserver:
    """No-op base; override what the view needs"""

    def on_status_change(self, status: str) -> None:
        pass

    def on_steps_change(self, steps: list[Step]) -> None:
        pass

    def on_task_updated(self, task: Task) -> None:
        pass


class ExpansionState:
    """
    Which tasks show their sub-items.

    Tasks with sub-items start collapsed unless the user expanded them by hand.
    Expansion triggered by an analysis lifts the collapse for now but is not
    remembered as a manual choice, so the next ``sync`` folds the task again.
    """

    def __init__(self):
        self.collapsed: set[str] = set()
        self.manually_expanded: set[str] = set()

    def sync(self, tasks: Iterable[Task]) -> None:
        for task in tasks:
            if task.subItems and task.id not in self.manually_expanded:
                self.collapsed.add(task.id)

    def toggle(self, task_id: str) -> bool:
        """User click; returns True when the task is now collapsed"""
        if task_id in self.collapsed:
            self.collapsed.discard(task_id)
            self.manually_expanded.add(task_id)
            return False
        self.collapsed.add(task_id)
        self.manually_expanded.discard(task_id)
        return True

    def expand(self, task_id: str) -> None:
        self.collapsed.discard(task_id)

    def forget(self, task_id: str) -> None:
        self.collapsed.discard(task_id)
        self.manually_expanded.discard(task_id)

    def is_collapsed(self, task_id: str) -> bool:
        return task_id in self.collapsed
