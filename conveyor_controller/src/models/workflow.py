"""
Workflow definition models.

Built once by the workflow loader and never mutated afterwards.
"""

from pydantic import BaseModel
from typing import Dict, FrozenSet, Optional, Tuple
from enum import Enum

class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"

class TriggerRule(BaseModel):
    events: FrozenSet[EventKind]
    branches: FrozenSet[str] = frozenset()
    branches_ignore: FrozenSet[str] = frozenset()
    tags: FrozenSet[str] = frozenset()
    tags_ignore: FrozenSet[str] = frozenset()
    paths: FrozenSet[str] = frozenset()
    paths_ignore: FrozenSet[str] = frozenset()

    class Config:
        frozen = True

class StepDefinition(BaseModel):
    name: Optional[str] = None
    uses: Optional[str] = None
    with_: Dict[str, str] = {}
    run: Optional[str] = None
    env: Dict[str, str] = {}
    timeout_minutes: Optional[float] = None

    class Config:
        frozen = True

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.run is not None:
            lines = self.run.strip().splitlines()
            return f"Run {lines[0] if lines else ''}".strip()
        return self.uses or "step"

class JobDefinition(BaseModel):
    id: str
    name: str
    runs_on: str
    steps: Tuple[StepDefinition, ...]
    env: Dict[str, str] = {}
    timeout_minutes: Optional[float] = None

    class Config:
        frozen = True

class PipelineDefinition(BaseModel):
    name: str
    source: str = ""
    triggers: Tuple[TriggerRule, ...]
    jobs: Tuple[JobDefinition, ...]
    env: Dict[str, str] = {}

    class Config:
        frozen = True
