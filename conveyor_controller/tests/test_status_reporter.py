"""Tests for database status reporting."""

import asyncio

import pytest
from sqlalchemy import select

from conveyor_controller.src.models.db import JobRun, StepRun, WorkflowRun
from conveyor_controller.src.models.run import RunStatus
from conveyor_controller.src.services.executor import StepExecutor
from conveyor_controller.src.services.pipeline_controller import PipelineController
from conveyor_controller.src.services.status_reporter import (
    create_session_factory,
    DatabaseReporter,
    pipeline_summary,
)
from conveyor_controller.src.services.supervisor import RunSupervisor

@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'conveyor.db'}")

def run_pipeline(session_factory, pipeline, event, env):
    reporter = DatabaseReporter(session_factory)
    controller = PipelineController(
        [pipeline],
        supervisor=RunSupervisor(),
        executor=StepExecutor(environment_factory=lambda r, j: env, reporter=reporter),
        reporter=reporter,
    )
    [run] = asyncio.run(controller.handle(event))
    return run

def test_persists_run_jobs_and_steps(session_factory, make_pipeline, push_event, scripted_env):
    pipeline = make_pipeline(["A", "B", "C"])
    run = run_pipeline(
        session_factory, pipeline, push_event(sha="deadbeef", actor="octocat"), scripted_env(exit_codes={"B": 3})
    )

    with session_factory() as session:
        row = session.get(WorkflowRun, run.id)
        assert row.workflow == "Cargo test"
        assert row.trigger_key == "Cargo test@refs/heads/main"
        assert row.event == "push"
        assert row.commit_sha == "deadbeef"
        assert row.triggered_by == "octocat"
        assert row.status == "failed"
        assert row.config["jobs"][0]["steps"] == ["A", "B", "C"]
        assert row.finished_at is not None

        [job] = session.execute(select(JobRun).where(JobRun.run_id == run.id)).scalars().all()
        assert (job.job_id, job.status, job.job_order) == ("test", "failed", 0)

        steps = session.execute(
            select(StepRun).where(StepRun.run_id == run.id).order_by(StepRun.step_order)
        ).scalars().all()
        assert [(s.name, s.status, s.exit_code) for s in steps] == [
            ("A", "succeeded", 0),
            ("B", "failed", 3),
        ]
        assert steps[0].logs == "ran A\n"
        assert "exit code 3" in steps[1].error

def test_superseded_run_recorded_as_cancelled(session_factory, make_pipeline, make_run):
    reporter = DatabaseReporter(session_factory)
    run = make_run(make_pipeline(["A"]))
    run.start()
    reporter.run_started(run)

    run.cancel("superseded by run 42")
    reporter.run_cancelled(run)

    with session_factory() as session:
        row = session.get(WorkflowRun, run.id)
        assert row.status == RunStatus.CANCELLED.value
        assert row.cancel_reason == "superseded by run 42"

def test_pipeline_summary(make_pipeline, make_run):
    pipeline = make_pipeline([], jobs={"lint": ["clippy"], "test": ["cargo test", "cargo doc"]})
    summary = pipeline_summary(make_run(pipeline))

    assert summary["name"] == "Cargo test"
    assert [job["id"] for job in summary["jobs"]] == ["lint", "test"]
    assert summary["jobs"][1]["steps"] == ["cargo test", "cargo doc"]
    assert summary["jobs"][0]["runs_on"] == "ubuntu-latest"
