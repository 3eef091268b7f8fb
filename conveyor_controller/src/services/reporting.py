"""
Run outcome reporting.
"""

import logging

from conveyor_controller.src.models.run import JobResult, Run, RunStatus, StepResult

logger = logging.getLogger(__name__)

EXIT_SUCCEEDED = 0
EXIT_FAILED = 1
# Same code a shell reports for an interrupted (SIGINT) process
EXIT_CANCELLED = 130

def exit_code_for(status: RunStatus) -> int:
    """Map a final run status to a process exit code."""
    if status == RunStatus.SUCCEEDED:
        return EXIT_SUCCEEDED
    if status == RunStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILED

class RunReporter:
    """
    Receives run, job and step transitions from the pipeline controller.
    The base reporter only logs.
    """

    def run_started(self, run: Run):
        logger.info(f"Run {run.id} of '{run.pipeline.name}' started ({run.trigger_key})")

    def run_cancelled(self, run: Run):
        logger.info(f"Run {run.id} of '{run.pipeline.name}' cancelled: {run.cancel_reason}")

    def run_finished(self, run: Run):
        log = logger.info if run.status != RunStatus.FAILED else logger.error
        log(f"Run {run.id} of '{run.pipeline.name}' finished with status: {run.status.value}")

    def job_started(self, run: Run, job: JobResult):
        logger.info(f"Run {run.id}: job '{job.name}' started")

    def job_finished(self, run: Run, job: JobResult):
        logger.info(f"Run {run.id}: job '{job.name}' finished with status: {job.status.value}")

    def step_started(self, run: Run, job: JobResult, step: StepResult):
        logger.info(f"Run {run.id}: executing step {step.index} ({step.name}) of job '{job.name}'")

    def step_finished(self, run: Run, job: JobResult, step: StepResult):
        if step.status == RunStatus.SUCCEEDED:
            logger.info(f"Step {step.index} ({step.name}) succeeded")
        else:
            logger.error(f"Step {step.index} ({step.name}) failed: {step.error}")
