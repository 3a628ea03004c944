"""
Schema validation for decoded decomposition payloads
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from DoneList.shared.models import DecompositionResult, Step

from .errors import SchemaError

MAX_STEPS = 4


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_as_text(item) for item in value if item is not None]


def _as_step(entry: Any) -> Step:
    if not isinstance(entry, Mapping):
        return Step(title=_as_text(entry))
    return Step(
        title=_as_text(entry.get("title")),
        why=_as_text(entry.get("why")),
        how=_as_text(entry.get("how")),
        filesToTouch=_as_text_list(entry.get("filesToTouch")),
    )


def validate(candidate: Any, max_steps: int = MAX_STEPS) -> DecompositionResult:
    """
    Validate a decoded value against the decomposition schema.

    Only ``steps`` is required and it must be a list; everything else is
    optional and defaults to empty. Steps beyond ``max_steps`` are dropped,
    keeping their order.

    Raises:
        SchemaError: when the candidate is not a mapping or has no steps list.
    """
    if not isinstance(candidate, Mapping):
        raise SchemaError(
            f"Model response missing steps[] (got {type(candidate).__name__})"
        )
    steps = candidate.get("steps")
    if not isinstance(steps, list):
        raise SchemaError("Model response missing steps[]")

    return DecompositionResult(
        title=_as_text(candidate.get("title")),
        assumptions=_as_text_list(candidate.get("assumptions")),
        steps=[_as_step(entry) for entry in steps[:max_steps]],
        risks=_as_text_list(candidate.get("risks")),
        testPlan=_as_text_list(candidate.get("testPlan")),
    )
