"""AI task-decomposition client.

Lazy imports keep ``DoneList.analysis.decoder`` importable from the config
module without dragging in the orchestrator.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "DecompositionOrchestrator",
    "CompletionClient",
    "StatusObserver",
    "ExpansionState",
    "RetryPolicy",
    "SingleFlightGuard",
    "validate",
]


def __getattr__(name: str) -> Any:
    if name == "DecompositionOrchestrator":
        from .orchestrator import DecompositionOrchestrator

        return DecompositionOrchestrator

    if name == "CompletionClient":
        from .transport import CompletionClient

        return CompletionClient

    if name in {"StatusObserver", "ExpansionState"}:
        from .observer import ExpansionState, StatusObserver

        mapping = {
            "StatusObserver": StatusObserver,
            "ExpansionState": ExpansionState,
        }
        return mapping[name]

    if name == "RetryPolicy":
        from .retry import RetryPolicy

        return RetryPolicy

    if name == "SingleFlightGuard":
        from .guard import SingleFlightGuard

        return SingleFlightGuard

    if name == "validate":
        from .schema import validate

        return validate

    raise AttributeError(f"module 'DoneList.analysis' has no attribute {name!r}")
