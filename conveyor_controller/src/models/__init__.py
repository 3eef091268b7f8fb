from conveyor_controller.src.models.workflow import (
    EventKind,
    TriggerRule,
    StepDefinition,
    JobDefinition,
    PipelineDefinition,
)
from conveyor_controller.src.models.event import Event, normalize_ref
from conveyor_controller.src.models.run import (
    RunStatus,
    TERMINAL_STATUSES,
    CancellationToken,
    StepResult,
    JobResult,
    Run,
)

__all__ = [
    "EventKind",
    "TriggerRule",
    "StepDefinition",
    "JobDefinition",
    "PipelineDefinition",
    "Event",
    "normalize_ref",
    "RunStatus",
    "TERMINAL_STATUSES",
    "CancellationToken",
    "StepResult",
    "JobResult",
    "Run",
]
