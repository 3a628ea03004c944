from datetime import date, datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field


def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


class Step(BaseModel):
    title: str = ""
    why: str = ""
    how: str = ""
    filesToTouch: List[str] = Field(default_factory=list)


class DecompositionResult(BaseModel):
    title: str = ""
    assumptions: List[str] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    testPlan: List[str] = Field(default_factory=list)


class SubItem(BaseModel):
    id: str
    title: str
    completed: bool = False


class Task(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    title: str
    completed: bool = False
    isEveryday: bool = False
    assignedDate: Optional[date] = None
    subItems: List[SubItem] = Field(default_factory=list)
    lastAnalysis: Optional[DecompositionResult] = None
    createdAt: int = Field(default_factory=_now_ms)
    updatedAt: int = Field(default_factory=_now_ms)


class AnalyzeRequest(BaseModel):
    """Body posted to the completion proxy"""

    taskText: str
    regenerate: bool = False
    context: Optional[dict] = None
