"""
Report workflow run, job and step status to database.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from conveyor_controller.src.models.db import Base, JobRun, StepRun, WorkflowRun
from conveyor_controller.src.models.run import JobResult, Run, StepResult
from conveyor_controller.src.services.reporting import RunReporter

logger = logging.getLogger(__name__)

def create_session_factory(database_url: str, create_tables: bool = True) -> sessionmaker:
    """Sync database connection for controller."""
    engine = create_engine(database_url)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)

class DatabaseReporter(RunReporter):
    """Persists every transition, in addition to logging it."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def run_started(self, run: Run):
        super().run_started(run)
        with self.session_factory() as session:
            self._save_run(session, run)
            for order, job in enumerate(run.jobs):
                self._save_job(session, run, job, order)
            session.commit()

    def run_cancelled(self, run: Run):
        super().run_cancelled(run)
        self._update_run(run)

    def run_finished(self, run: Run):
        super().run_finished(run)
        self._update_run(run)

    def job_started(self, run: Run, job: JobResult):
        super().job_started(run, job)
        self._update_job(run, job)

    def job_finished(self, run: Run, job: JobResult):
        super().job_finished(run, job)
        self._update_job(run, job)

    def step_started(self, run: Run, job: JobResult, step: StepResult):
        super().step_started(run, job, step)
        self._update_step(run, job, step)

    def step_finished(self, run: Run, job: JobResult, step: StepResult):
        super().step_finished(run, job, step)
        self._update_step(run, job, step)

    def _update_run(self, run: Run):
        with self.session_factory() as session:
            self._save_run(session, run)
            session.commit()
        logger.debug(f"Updated run {run.id} status to {run.status.value}")

    def _update_job(self, run: Run, job: JobResult):
        order = next(
            (i for i, candidate in enumerate(run.jobs) if candidate.job_id == job.job_id),
            len(run.jobs),
        )
        with self.session_factory() as session:
            self._save_job(session, run, job, order)
            session.commit()

    def _update_step(self, run: Run, job: JobResult, step: StepResult):
        with self.session_factory() as session:
            row = session.execute(
                select(StepRun)
                .where(StepRun.run_id == run.id)
                .where(StepRun.job_id == job.job_id)
                .where(StepRun.step_order == step.index)
            ).scalar_one_or_none()

            if row is None:
                row = StepRun(run_id=run.id, job_id=job.job_id, step_order=step.index)
                session.add(row)

            row.name = step.name
            row.status = step.status.value
            row.exit_code = step.exit_code
            row.error = step.error
            row.logs = step.logs
            row.started_at = step.started_at
            row.finished_at = step.finished_at
            session.commit()
        logger.debug(f"Updated step {step.index} of job '{job.job_id}' in run {run.id} to {step.status.value}")

    def _save_run(self, session: Session, run: Run):
        session.merge(
            WorkflowRun(
                id=run.id,
                workflow=run.pipeline.name,
                trigger_key=run.trigger_key,
                event=run.event.kind.value,
                ref=run.event.ref,
                commit_sha=run.event.sha or None,
                repository=run.event.repository or None,
                triggered_by=run.event.actor or None,
                status=run.status.value,
                cancel_reason=run.cancel_reason,
                config=pipeline_summary(run),
                started_at=run.started_at,
                finished_at=run.finished_at,
            )
        )

    def _save_job(self, session: Session, run: Run, job: JobResult, order: int):
        row = session.execute(
            select(JobRun)
            .where(JobRun.run_id == run.id)
            .where(JobRun.job_id == job.job_id)
        ).scalar_one_or_none()

        if row is None:
            row = JobRun(run_id=run.id, job_id=job.job_id, job_order=order)
            session.add(row)

        row.name = job.name
        row.status = job.status.value
        row.error = job.error
        row.started_at = job.started_at
        row.finished_at = job.finished_at

def pipeline_summary(run: Run) -> Dict[str, Any]:
    """JSON-friendly description of the workflow a run executes."""
    jobs: List[Dict[str, Any]] = []
    for job in run.pipeline.jobs:
        jobs.append({
            "id": job.id,
            "name": job.name,
            "runs_on": job.runs_on,
            "steps": [step.display_name for step in job.steps],
        })
    return {"name": run.pipeline.name, "source": run.pipeline.source, "jobs": jobs}
