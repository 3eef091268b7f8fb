"""
Run supervisor - one active run per trigger key.
"""

import logging
import threading
from typing import Dict, List, Optional

from conveyor_controller.src.models.run import Run, RunStatus

logger = logging.getLogger(__name__)

class SupervisorInvariantError(Exception):
    """Raised when the active-run table would become inconsistent."""
    pass

class RunSupervisor:
    """
    Tracks the active run per trigger key.

    Registering a run for a key cancels the run it supersedes. All table
    mutations happen under one lock, so two registrations for the same key
    can never leave two runs active.
    """

    def __init__(self):
        self._active: Dict[str, Run] = {}
        self._lock = threading.Lock()

    def register(self, trigger_key: str, run: Run) -> Optional[Run]:
        """
        Make `run` the active run for `trigger_key`.
        Returns the superseded run, if there was one.
        """
        with self._lock:
            if run.trigger_key != trigger_key:
                raise SupervisorInvariantError(
                    f"Run {run.id} has trigger key '{run.trigger_key}', not '{trigger_key}'"
                )
            if run.status != RunStatus.PENDING:
                raise SupervisorInvariantError(
                    f"Run {run.id} must be pending to register, found {run.status.value}"
                )

            previous = self._active.get(trigger_key)
            if previous is run:
                raise SupervisorInvariantError(f"Run {run.id} is already registered")

            if previous is not None:
                if previous.cancel(f"superseded by run {run.id}"):
                    logger.info(f"Cancelled run {previous.id} ({trigger_key}), superseded by {run.id}")

            self._active[trigger_key] = run
            return previous

    def complete(self, run: Run, final_status: RunStatus) -> RunStatus:
        """
        Record the run's final status and drop it from the active table.
        A run that was cancelled stays cancelled.
        """
        with self._lock:
            status = run.finish(final_status)
            if self._active.get(run.trigger_key) is run:
                del self._active[run.trigger_key]
            return status

    def cancel(self, trigger_key: str, reason: str = "cancelled") -> bool:
        """Cancel the active run for a key. Idempotent."""
        with self._lock:
            run = self._active.get(trigger_key)
            if run is None:
                return False
            cancelled = run.cancel(reason)
            if cancelled:
                logger.info(f"Cancelled run {run.id} ({trigger_key}): {reason}")
            return cancelled

    def active(self, trigger_key: str) -> Optional[Run]:
        with self._lock:
            return self._active.get(trigger_key)

    def active_runs(self) -> List[Run]:
        with self._lock:
            return list(self._active.values())
