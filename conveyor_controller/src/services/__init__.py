from conveyor_controller.src.services.workflow_loader import (
    load_workflows,
    parse_workflow_config,
    parse_workflow_dict,
    WorkflowConfigError,
)
from conveyor_controller.src.services.trigger_matcher import (
    matches,
    rule_matches,
    trigger_key,
)
from conveyor_controller.src.services.supervisor import (
    RunSupervisor,
    SupervisorInvariantError,
)
from conveyor_controller.src.services.executor import StepExecutor
from conveyor_controller.src.services.pipeline_controller import (
    PipelineController,
    aggregate_status,
)
from conveyor_controller.src.services.reporting import RunReporter, exit_code_for

__all__ = [
    "load_workflows",
    "parse_workflow_config",
    "parse_workflow_dict",
    "WorkflowConfigError",
    "matches",
    "rule_matches",
    "trigger_key",
    "RunSupervisor",
    "SupervisorInvariantError",
    "StepExecutor",
    "PipelineController",
    "aggregate_status",
    "RunReporter",
    "exit_code_for",
]
