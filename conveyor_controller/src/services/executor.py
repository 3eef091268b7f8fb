"""
Step executor - runs a job's steps in order in one environment.
"""

import logging
from typing import Callable, Dict, Optional

from conveyor_controller.src.models.run import (
    CancellationToken,
    JobResult,
    Run,
    RunStatus,
    StepResult,
    utcnow,
)
from conveyor_controller.src.models.workflow import JobDefinition, StepDefinition
from conveyor_controller.src.services.actions import render_expressions, resolve_step_commands
from conveyor_controller.src.services.environments import Environment, create_environment
from conveyor_controller.src.services.reporting import RunReporter

logger = logging.getLogger(__name__)

EnvironmentFactory = Callable[[Run, JobDefinition], Environment]

class StepExecutor:
    """
    Executes one job at a time for a run.

    Steps run strictly in declared order. The cancellation token is checked
    before each step; a step that is already running is never interrupted.
    The first failing step ends the job. Failed steps are not retried.
    """

    def __init__(
        self,
        environment_factory: Optional[EnvironmentFactory] = None,
        reporter: Optional[RunReporter] = None,
        step_timeout: int = 600,
        github_token: str = "",
    ):
        self.environment_factory = environment_factory or create_environment
        self.reporter = reporter or RunReporter()
        self.step_timeout = step_timeout
        self.github_token = github_token

    async def execute(
        self,
        run: Run,
        job: JobDefinition,
        token: CancellationToken,
        result: Optional[JobResult] = None,
    ) -> JobResult:
        """
        Execute a job's steps.
        Returns the job result; steps that never started have no entry.
        """
        if result is None:
            result = JobResult(job_id=job.id, name=job.name)
        result.status = RunStatus.RUNNING
        result.started_at = utcnow()
        self.reporter.job_started(run, result)

        if token.cancelled:
            return self._finish(run, result, RunStatus.CANCELLED)

        try:
            environment = self.environment_factory(run, job)
        except Exception as e:
            logger.exception(f"Failed to create environment for job '{job.name}'")
            result.error = f"Environment setup failed: {e}"
            return self._finish(run, result, RunStatus.FAILED)

        try:
            try:
                await environment.setup()
            except Exception as e:
                logger.exception(f"Failed to provision environment for job '{job.name}'")
                result.error = f"Environment setup failed: {e}"
                status = RunStatus.FAILED
            else:
                status = await self.run_steps(run, job, result, token, environment)
        finally:
            try:
                await environment.teardown()
            except Exception:
                logger.exception(f"Failed to tear down {environment.describe()}")

        return self._finish(run, result, status)

    async def run_steps(
        self,
        run: Run,
        job: JobDefinition,
        result: JobResult,
        token: CancellationToken,
        environment: Environment,
    ) -> RunStatus:
        """Run the job's steps in a provisioned environment and return the job status."""
        context = run.event.context(self.github_token)
        for index, step in enumerate(job.steps):
            if run.deadline_passed():
                run.cancel("deadline exceeded")

            if token.cancelled:
                logger.info(
                    f"Job '{job.name}' of run {run.id} stopped before step {index}: {token.reason}"
                )
                return RunStatus.CANCELLED

            step_result = await self.execute_step(
                run, job, result, index, step, environment, context
            )
            if step_result.status == RunStatus.FAILED:
                return RunStatus.FAILED

        return RunStatus.SUCCEEDED

    async def execute_step(
        self,
        run: Run,
        job: JobDefinition,
        result: JobResult,
        index: int,
        step: StepDefinition,
        environment: Environment,
        context: Dict,
    ) -> StepResult:
        """Execute a single step and record its result on the job."""
        step_result = StepResult(
            index=index,
            name=step.display_name,
            status=RunStatus.RUNNING,
            started_at=utcnow(),
        )
        result.steps.append(step_result)
        self.reporter.step_started(run, result, step_result)

        try:
            commands = resolve_step_commands(step, context)
            if commands:
                env = {
                    key: render_expressions(value, context)
                    for key, value in {**run.pipeline.env, **job.env, **step.env}.items()
                }
                env["CONVEYOR_STEP_NAME"] = step_result.name

                outcome = await environment.run(
                    " && ".join(commands), env, self.timeout_for(job, step)
                )
                step_result.exit_code = outcome.exit_code
                step_result.logs = outcome.logs

                if outcome.exit_code == 0:
                    step_result.status = RunStatus.SUCCEEDED
                else:
                    step_result.status = RunStatus.FAILED
                    step_result.error = f"Process completed with exit code {outcome.exit_code}"
            else:
                step_result.status = RunStatus.SUCCEEDED
        except Exception as e:
            logger.exception(f"Step {index} ({step_result.name}) failed with exception")
            step_result.status = RunStatus.FAILED
            step_result.error = str(e)

        step_result.finished_at = utcnow()
        self.reporter.step_finished(run, result, step_result)
        return step_result

    def timeout_for(self, job: JobDefinition, step: StepDefinition) -> float:
        """Step timeout in seconds."""
        minutes = step.timeout_minutes or job.timeout_minutes
        if minutes:
            return minutes * 60
        return float(self.step_timeout)

    def _finish(self, run: Run, result: JobResult, status: RunStatus) -> JobResult:
        result.status = status
        result.finished_at = utcnow()
        self.reporter.job_finished(run, result)
        return result
