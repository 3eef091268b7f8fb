"""
Workflow YAML parser and validator.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from conveyor_controller.src.models.workflow import (
    EventKind,
    JobDefinition,
    PipelineDefinition,
    StepDefinition,
    TriggerRule,
)
from conveyor_controller.src.services.actions import (
    find_invalid_expressions,
    is_known_action,
    known_actions,
)

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".yml", ".yaml")

# YAML key -> TriggerRule field
FILTER_FIELDS = {
    "branches": "branches",
    "branches-ignore": "branches_ignore",
    "tags": "tags",
    "tags-ignore": "tags_ignore",
    "paths": "paths",
    "paths-ignore": "paths_ignore",
}

EXCLUSIVE_FILTERS = [
    ("branches", "branches-ignore"),
    ("tags", "tags-ignore"),
    ("paths", "paths-ignore"),
]

# Job orchestration features the runner does not implement
UNSUPPORTED_JOB_KEYS = ("needs", "strategy", "if", "uses", "services", "container")
UNSUPPORTED_STEP_KEYS = ("if", "continue-on-error", "shell", "working-directory")

class WorkflowConfigError(Exception):
    """Raised when workflow configuration is invalid."""
    pass

def parse_workflow_config(yaml_content: str, source: str = "") -> PipelineDefinition:
    """Parse workflow YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise WorkflowConfigError(f"Invalid YAML in {source or 'workflow'}: {e}")

    return validate_config(config, source)

def parse_workflow_dict(config: Dict[str, Any], source: str = "") -> PipelineDefinition:
    """Validate workflow configuration from dict."""
    return validate_config(config, source)

def load_workflows(directory: str) -> List[PipelineDefinition]:
    """
    Load every workflow file in a directory.
    Any invalid file aborts the whole load.
    """
    path = Path(directory)
    if not path.is_dir():
        raise WorkflowConfigError(f"Workflow directory '{directory}' not found")

    files = sorted(p for p in path.iterdir() if p.suffix in WORKFLOW_SUFFIXES)
    if not files:
        logger.warning(f"No workflow files found in {directory}")

    pipelines = []
    seen: Dict[str, str] = {}
    for file in files:
        pipeline = parse_workflow_config(file.read_text(), source=str(file))
        if pipeline.name in seen:
            raise WorkflowConfigError(
                f"Duplicate workflow name '{pipeline.name}' in {file} and {seen[pipeline.name]}"
            )
        seen[pipeline.name] = str(file)
        pipelines.append(pipeline)
        logger.info(f"Loaded workflow '{pipeline.name}' from {file}")

    return pipelines

def validate_config(config: Optional[Dict[str, Any]], source: str = "") -> PipelineDefinition:
    """Validate workflow configuration structure."""
    if not config:
        raise WorkflowConfigError("Empty workflow configuration")

    if not isinstance(config, dict):
        raise WorkflowConfigError("Workflow configuration must be a dictionary")

    name = config.get("name") or (Path(source).stem if source else "Unnamed Workflow")
    if not isinstance(name, str):
        raise WorkflowConfigError("Workflow 'name' must be a string")

    # PyYAML reads a bare `on` key as boolean True
    if "on" in config:
        on_value = config["on"]
    elif True in config:
        on_value = config[True]
    else:
        raise WorkflowConfigError(f"Workflow '{name}' must have 'on' defined")

    if "jobs" not in config:
        raise WorkflowConfigError(f"Workflow '{name}' must have 'jobs' defined")

    return PipelineDefinition(
        name=name,
        source=source,
        triggers=validate_triggers(on_value, name),
        jobs=validate_jobs(config["jobs"], name),
        env=validate_env(config.get("env"), f"Workflow '{name}'"),
    )

def validate_triggers(on_value: Any, workflow: str) -> Tuple[TriggerRule, ...]:
    """Turn the `on:` section into one trigger rule per event kind."""
    if isinstance(on_value, str):
        on_value = [on_value]

    if isinstance(on_value, list):
        for kind in on_value:
            if not isinstance(kind, str):
                raise WorkflowConfigError(f"Workflow '{workflow}' 'on' entries must be strings")
        events = {kind: None for kind in on_value}
    elif isinstance(on_value, dict):
        events = on_value
    else:
        raise WorkflowConfigError(f"Workflow '{workflow}' 'on' must be a string, list or mapping")

    if not events:
        raise WorkflowConfigError(f"Workflow '{workflow}' must trigger on at least one event")

    return tuple(validate_trigger(kind, filters, workflow) for kind, filters in events.items())

def validate_trigger(kind: str, filters: Any, workflow: str) -> TriggerRule:
    """Validate the filters of a single trigger event."""
    supported = [e.value for e in EventKind]
    if kind not in supported:
        raise WorkflowConfigError(
            f"Workflow '{workflow}' uses unsupported event '{kind}' (supported: {', '.join(supported)})"
        )

    if filters is None:
        filters = {}
    if not isinstance(filters, dict):
        raise WorkflowConfigError(f"Workflow '{workflow}' '{kind}' filters must be a dictionary")

    for key in filters:
        if key not in FILTER_FIELDS:
            raise WorkflowConfigError(f"Workflow '{workflow}' '{kind}' has unknown filter '{key}'")

    for include, exclude in EXCLUSIVE_FILTERS:
        if include in filters and exclude in filters:
            raise WorkflowConfigError(
                f"Workflow '{workflow}' '{kind}' cannot use both '{include}' and '{exclude}'"
            )

    if kind == EventKind.PULL_REQUEST.value:
        for key in ("tags", "tags-ignore"):
            if key in filters:
                raise WorkflowConfigError(
                    f"Workflow '{workflow}' '{key}' filters are only valid for push events"
                )

    values = {
        FILTER_FIELDS[key]: frozenset(validate_patterns(value, f"Workflow '{workflow}' '{kind}.{key}'"))
        for key, value in filters.items()
    }
    return TriggerRule(events=frozenset({EventKind(kind)}), **values)

def validate_patterns(value: Any, where: str) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not value:
        raise WorkflowConfigError(f"{where} must be a non-empty list of patterns")
    for pattern in value:
        if not isinstance(pattern, str) or not pattern:
            raise WorkflowConfigError(f"{where} patterns must be non-empty strings")
        if pattern.startswith("!"):
            raise WorkflowConfigError(f"{where} negated pattern '{pattern}' is not supported")
    return value

def validate_jobs(jobs: Any, workflow: str) -> Tuple[JobDefinition, ...]:
    if not isinstance(jobs, dict):
        raise WorkflowConfigError(f"Workflow '{workflow}' 'jobs' must be a dictionary")

    if len(jobs) == 0:
        raise WorkflowConfigError(f"Workflow '{workflow}' must have at least one job")

    return tuple(validate_job(job_id, job) for job_id, job in jobs.items())

def validate_job(job_id: str, job: Any) -> JobDefinition:
    """Validate a single job."""
    if not isinstance(job, dict):
        raise WorkflowConfigError(f"Job '{job_id}' must be a dictionary")

    for key in UNSUPPORTED_JOB_KEYS:
        if key in job:
            raise WorkflowConfigError(f"Job '{job_id}' uses unsupported key '{key}'")

    if "runs-on" not in job:
        raise WorkflowConfigError(f"Job '{job_id}' missing 'runs-on'")

    if "steps" not in job:
        raise WorkflowConfigError(f"Job '{job_id}' missing 'steps'")

    if not isinstance(job["runs-on"], str):
        raise WorkflowConfigError(f"Job '{job_id}' 'runs-on' must be a string")

    steps = job["steps"]
    if not isinstance(steps, list):
        raise WorkflowConfigError(f"Job '{job_id}' 'steps' must be a list")

    if len(steps) == 0:
        raise WorkflowConfigError(f"Job '{job_id}' must have at least one step")

    name = job.get("name", job_id)
    if not isinstance(name, str):
        raise WorkflowConfigError(f"Job '{job_id}' 'name' must be a string")

    return JobDefinition(
        id=job_id,
        name=name,
        runs_on=job["runs-on"],
        steps=tuple(validate_step(step, job_id, i) for i, step in enumerate(steps)),
        env=validate_env(job.get("env"), f"Job '{job_id}'"),
        timeout_minutes=validate_timeout(job.get("timeout-minutes"), f"Job '{job_id}'"),
    )

def validate_step(step: Any, job_id: str, index: int) -> StepDefinition:
    """Validate a single job step."""
    where = f"Job '{job_id}' step {index}"

    if not isinstance(step, dict):
        raise WorkflowConfigError(f"{where} must be a dictionary")

    for key in UNSUPPORTED_STEP_KEYS:
        if key in step:
            raise WorkflowConfigError(f"{where} uses unsupported key '{key}'")

    if "uses" in step and "run" in step:
        raise WorkflowConfigError(f"{where} cannot have both 'uses' and 'run'")

    if "uses" not in step and "run" not in step:
        raise WorkflowConfigError(f"{where} missing 'uses' or 'run'")

    name = step.get("name")
    if name is not None and not isinstance(name, str):
        raise WorkflowConfigError(f"{where} 'name' must be a string")

    run = step.get("run")
    if run is not None:
        if not isinstance(run, str):
            raise WorkflowConfigError(f"{where} 'run' must be a string")
        check_expressions(run, where)

    uses = step.get("uses")
    if uses is not None:
        if not isinstance(uses, str):
            raise WorkflowConfigError(f"{where} 'uses' must be a string")
        if not is_known_action(uses):
            raise WorkflowConfigError(
                f"{where} uses unsupported action '{uses}' (supported: {', '.join(known_actions())})"
            )

    if "with" in step and uses is None:
        raise WorkflowConfigError(f"{where} 'with' is only valid for 'uses' steps")

    inputs = validate_env(step.get("with"), f"{where} 'with'")
    for value in inputs.values():
        check_expressions(value, where)

    return StepDefinition(
        name=name,
        uses=uses,
        with_=inputs,
        run=run,
        env=validate_env(step.get("env"), where),
        timeout_minutes=validate_timeout(step.get("timeout-minutes"), where),
    )

def validate_env(values: Any, where: str) -> Dict[str, str]:
    """Validate a string mapping (env, with). Scalars are coerced to strings."""
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise WorkflowConfigError(f"{where} must be a dictionary")

    result = {}
    for key, value in values.items():
        if isinstance(value, (dict, list)):
            raise WorkflowConfigError(f"{where} value for '{key}' must be a scalar")
        if isinstance(value, bool):
            value = "true" if value else "false"
        result[str(key)] = "" if value is None else str(value)
    return result

def validate_timeout(value: Any, where: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise WorkflowConfigError(f"{where} 'timeout-minutes' must be a positive number")
    return float(value)

def check_expressions(text: str, where: str):
    invalid = find_invalid_expressions(text)
    if invalid:
        raise WorkflowConfigError(
            f"{where} uses unsupported expression '{invalid[0]}' (only context lookups are supported)"
        )
