"""Command line interface for running workflows locally."""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Sequence

import typer

from conveyor_controller.src.config import get_settings
from conveyor_controller.src.main import configure_logging
from conveyor_controller.src.models.event import Event
from conveyor_controller.src.models.run import Run, RunStatus, utcnow
from conveyor_controller.src.models.workflow import EventKind
from conveyor_controller.src.services.environments import create_environment
from conveyor_controller.src.services.executor import StepExecutor
from conveyor_controller.src.services.pipeline_controller import PipelineController
from conveyor_controller.src.services.reporting import exit_code_for
from conveyor_controller.src.services.supervisor import RunSupervisor
from conveyor_controller.src.services.workflow_loader import WorkflowConfigError, load_workflows

app = typer.Typer(
    help="conveyor - run GitHub-style workflows locally",
    no_args_is_help=True,
)

STATUS_COLORS = {
    RunStatus.SUCCEEDED: typer.colors.GREEN,
    RunStatus.FAILED: typer.colors.RED,
    RunStatus.CANCELLED: typer.colors.YELLOW,
}

def overall_status(runs: Sequence[Run]) -> RunStatus:
    """Failed beats cancelled beats succeeded."""
    statuses = {run.status for run in runs}
    if RunStatus.FAILED in statuses:
        return RunStatus.FAILED
    if RunStatus.CANCELLED in statuses:
        return RunStatus.CANCELLED
    return RunStatus.SUCCEEDED

def print_run(run: Run):
    typer.secho(
        f"{run.pipeline.name} [{run.trigger_key}]: {run.status.value}",
        fg=STATUS_COLORS.get(run.status),
        bold=True,
    )
    for job in run.jobs:
        typer.echo(f"  job {job.name}: {job.status.value}")
        for step in job.steps:
            line = f"    {step.index}. {step.name}: {step.status.value}"
            if step.error:
                line += f" ({step.error})"
            typer.echo(line)

def _load(workflows_dir: Path):
    try:
        return load_workflows(str(workflows_dir))
    except WorkflowConfigError as e:
        typer.secho(f"Invalid workflow configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

@app.command()
def check(workflows_dir: Path = typer.Argument(..., help="Directory of workflow YAML files")):
    """Validate workflow files and list what they trigger on."""
    for pipeline in _load(workflows_dir):
        events = sorted({kind.value for rule in pipeline.triggers for kind in rule.events})
        typer.echo(f"{pipeline.name} ({pipeline.source}): on {', '.join(events)}")
        for job in pipeline.jobs:
            typer.echo(f"  {job.id}: {len(job.steps)} steps on {job.runs_on}")

@app.command()
def run(
    workflows_dir: Path = typer.Argument(..., help="Directory of workflow YAML files"),
    event: EventKind = typer.Option(EventKind.PUSH, "--event", help="Event kind"),
    ref: str = typer.Option("refs/heads/main", "--ref", help="Branch, tag or full ref"),
    paths: Optional[List[str]] = typer.Option(None, "--path", help="Changed path (repeatable)"),
    base_ref: Optional[str] = typer.Option(None, "--base-ref", help="Pull request target branch"),
    sha: str = typer.Option("", "--sha", help="Commit SHA to check out"),
    clone_url: str = typer.Option("", "--clone-url", help="Repository clone URL"),
    repository: str = typer.Option("", "--repository", help="owner/name"),
    backend: Optional[str] = typer.Option(None, "--backend", help="local or kubernetes"),
    policy: Optional[str] = typer.Option(None, "--job-failure-policy", help="continue or cancel_siblings"),
    deadline_minutes: Optional[float] = typer.Option(None, "--deadline-minutes", help="Cancel the run after this long"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run every workflow the given event triggers and exit with the outcome."""
    settings = get_settings()
    if backend:
        settings = settings.model_copy(update={"environment_backend": backend})
    configure_logging("DEBUG" if verbose else "WARNING")

    pipelines = _load(workflows_dir)
    executor = StepExecutor(
        environment_factory=lambda r, job: create_environment(r, job, settings),
        step_timeout=settings.step_timeout,
        github_token=settings.github_token,
    )
    try:
        controller = PipelineController(
            pipelines,
            supervisor=RunSupervisor(),
            executor=executor,
            job_failure_policy=policy or settings.job_failure_policy,
        )
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(2)

    repo_event = Event(
        kind=event,
        ref=ref,
        changed_paths=frozenset(paths or []),
        base_ref=base_ref,
        sha=sha,
        clone_url=clone_url,
        repository=repository,
    )
    deadline = utcnow() + timedelta(minutes=deadline_minutes) if deadline_minutes else None

    runs = asyncio.run(controller.handle(repo_event, deadline=deadline))
    if not runs:
        typer.echo(f"No workflow triggered by {event.value} on {repo_event.ref}")
        raise typer.Exit(0)

    for finished in runs:
        print_run(finished)
    raise typer.Exit(exit_code_for(overall_status(runs)))

if __name__ == "__main__":
    app()
