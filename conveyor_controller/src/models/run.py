"""
Run execution models.
"""

import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, PrivateAttr

from conveyor_controller.src.models.event import Event
from conveyor_controller.src.models.workflow import PipelineDefinition

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset(
    {RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.CANCELLED}
)

class CancellationToken:
    """
    Cooperative cancellation signal, checked between steps.

    A child token reports cancelled when it or any ancestor is cancelled.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._parent = parent
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Signal cancellation. Returns False if already cancelled."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        if self._parent is not None:
            return self._parent.reason
        return None

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

class StepResult(BaseModel):
    index: int
    name: str
    status: RunStatus
    error: Optional[str] = None
    logs: Optional[str] = None
    exit_code: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class JobResult(BaseModel):
    job_id: str
    name: str
    status: RunStatus = RunStatus.PENDING
    steps: List[StepResult] = []
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class Run(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    pipeline: PipelineDefinition
    event: Event
    trigger_key: str
    status: RunStatus = RunStatus.PENDING
    jobs: List[JobResult] = []
    deadline: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    _token: CancellationToken = PrivateAttr(default_factory=CancellationToken)
    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def start(self) -> bool:
        """Move pending -> running. Returns False if the run already moved on."""
        with self._lock:
            if self.status != RunStatus.PENDING:
                return False
            self.status = RunStatus.RUNNING
            self.started_at = utcnow()
            return True

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Mark the run cancelled and signal its token.
        No-op (returns False) once the run is terminal.
        """
        with self._lock:
            if self.is_terminal:
                return False
            self.status = RunStatus.CANCELLED
            self.cancel_reason = reason
            self.finished_at = utcnow()
        self._token.cancel(reason)
        return True

    def finish(self, status: RunStatus) -> RunStatus:
        """
        Record the final status unless the run is already terminal.
        A cancelled run stays cancelled.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {status}")
        with self._lock:
            if not self.is_terminal:
                self.status = status
                self.finished_at = utcnow()
            return self.status

    def deadline_passed(self, now: Optional[datetime] = None) -> bool:
        if self.deadline is None:
            return False
        return (now or utcnow()) >= self.deadline

    def step_results(self) -> List[StepResult]:
        """Flattened per-step results in job then step order."""
        return [step for job in self.jobs for step in job.steps]
