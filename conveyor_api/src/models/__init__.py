from conveyor_api.src.models.pipeline import WorkflowRun, JobRun, StepRun
from conveyor_api.src.models.run import (
    WorkflowRunResponse,
    JobResponse,
    StepResponse,
    QueuedEvent,
)

__all__ = [
    "WorkflowRun",
    "JobRun",
    "StepRun",
    "WorkflowRunResponse",
    "JobResponse",
    "StepResponse",
    "QueuedEvent",
]
