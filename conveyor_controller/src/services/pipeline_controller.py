"""
Pipeline controller - turns matched events into supervised runs.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from conveyor_controller.src.models.event import Event
from conveyor_controller.src.models.run import (
    CancellationToken,
    JobResult,
    Run,
    RunStatus,
)
from conveyor_controller.src.models.workflow import JobDefinition, PipelineDefinition
from conveyor_controller.src.services.executor import StepExecutor
from conveyor_controller.src.services.reporting import RunReporter
from conveyor_controller.src.services.supervisor import RunSupervisor
from conveyor_controller.src.services.trigger_matcher import matches, trigger_key

logger = logging.getLogger(__name__)

POLICY_CONTINUE = "continue"
POLICY_CANCEL_SIBLINGS = "cancel_siblings"
JOB_FAILURE_POLICIES = (POLICY_CONTINUE, POLICY_CANCEL_SIBLINGS)

def aggregate_status(jobs: Sequence[JobResult]) -> RunStatus:
    """
    Combine job results into a run status.
    Any failed job fails the run; the run succeeds only if every job did.
    """
    statuses = [job.status for job in jobs]
    if RunStatus.FAILED in statuses:
        return RunStatus.FAILED
    if all(status == RunStatus.SUCCEEDED for status in statuses):
        return RunStatus.SUCCEEDED
    return RunStatus.CANCELLED

class PipelineController:
    def __init__(
        self,
        pipelines: Sequence[PipelineDefinition],
        supervisor: RunSupervisor,
        executor: StepExecutor,
        reporter: Optional[RunReporter] = None,
        job_failure_policy: str = POLICY_CONTINUE,
    ):
        if job_failure_policy not in JOB_FAILURE_POLICIES:
            raise ValueError(
                f"Unknown job failure policy '{job_failure_policy}' "
                f"(expected one of: {', '.join(JOB_FAILURE_POLICIES)})"
            )
        self.pipelines = list(pipelines)
        self.supervisor = supervisor
        self.executor = executor
        self.reporter = reporter or executor.reporter
        self.job_failure_policy = job_failure_policy

    def match(self, event: Event) -> List[PipelineDefinition]:
        """Pipelines whose triggers match the event, in load order."""
        return [p for p in self.pipelines if matches(event, p.triggers)]

    def supersede(self, event: Event) -> int:
        """
        Cancel the active runs this event would replace, without starting
        anything. Returns how many runs were cancelled.
        """
        cancelled = 0
        for pipeline in self.match(event):
            key = trigger_key(pipeline, event)
            if self.supervisor.cancel(key, f"superseded by {event.kind.value} {event.sha or event.ref}"):
                cancelled += 1
        return cancelled

    async def handle(self, event: Event, deadline: Optional[datetime] = None) -> List[Run]:
        """
        Start a run for every pipeline the event triggers.
        An empty list means no pipeline matched.
        """
        matched = self.match(event)
        if not matched:
            logger.debug(f"No workflow matched {event.kind.value} on {event.ref}")
            return []

        logger.info(
            f"{event.kind.value} on {event.ref} matched: {', '.join(p.name for p in matched)}"
        )
        runs = await asyncio.gather(
            *(self.dispatch(pipeline, event, deadline) for pipeline in matched)
        )
        return list(runs)

    async def dispatch(
        self,
        pipeline: PipelineDefinition,
        event: Event,
        deadline: Optional[datetime] = None,
    ) -> Run:
        """Register, execute and complete one run of a pipeline."""
        run = Run(
            pipeline=pipeline,
            event=event,
            trigger_key=trigger_key(pipeline, event),
            deadline=deadline,
            jobs=[JobResult(job_id=job.id, name=job.name) for job in pipeline.jobs],
        )

        previous = self.supervisor.register(run.trigger_key, run)
        if previous is not None and previous.status == RunStatus.CANCELLED:
            self.reporter.run_cancelled(previous)

        final_status = RunStatus.FAILED
        try:
            if run.start():
                self.reporter.run_started(run)
                await self._execute_jobs(run)
                final_status = aggregate_status(run.jobs)
            else:
                final_status = RunStatus.CANCELLED
        finally:
            self.supervisor.complete(run, final_status)
            self.reporter.run_finished(run)

        return run

    async def _execute_jobs(self, run: Run):
        """Run all jobs of a run concurrently."""
        tokens: Dict[str, CancellationToken] = {
            job.id: run.token.child() for job in run.pipeline.jobs
        }

        async def execute_job(job: JobDefinition, result: JobResult) -> JobResult:
            await self.executor.execute(run, job, tokens[job.id], result)
            if result.status == RunStatus.FAILED and self.job_failure_policy == POLICY_CANCEL_SIBLINGS:
                for job_id, token in tokens.items():
                    if job_id != job.id and token.cancel(f"job '{job.name}' failed"):
                        logger.info(f"Cancelling job '{job_id}' of run {run.id}: job '{job.name}' failed")
            return result

        await asyncio.gather(
            *(execute_job(job, result) for job, result in zip(run.pipeline.jobs, run.jobs))
        )
