from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class RequestState:
    """Per-orchestrator request bookkeeping, never persisted"""

    in_flight: bool = False
    last_task_text: str | None = None
    last_task_id: str | None = None
    can_regenerate: bool = False


class SingleFlightGuard:
    """At most one decomposition request in flight; extra callers are dropped"""

    def __init__(self, state: RequestState | None = None):
        self.state = state or RequestState()

    @property
    def locked(self) -> bool:
        return self.state.in_flight

    def try_acquire(self) -> bool:
        if self.state.in_flight:
            return False
        self.state.in_flight = True
        return True

    def release(self) -> None:
        self.state.in_flight = False

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Yield whether the slot was taken; release it on every exit path"""
        acquired = self.try_acquire()
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
