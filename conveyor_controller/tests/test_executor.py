"""Tests for the step executor."""

import asyncio
from datetime import timedelta

from conveyor_controller.src.models.run import RunStatus, utcnow
from conveyor_controller.src.models.workflow import JobDefinition, StepDefinition
from conveyor_controller.src.services.environments import Environment
from conveyor_controller.src.services.executor import StepExecutor
from conveyor_controller.src.services.reporting import RunReporter

def execute(executor, run, job=None):
    job = job or run.pipeline.jobs[0]
    return asyncio.run(executor.execute(run, job, run.token))

def test_stops_at_first_failure(make_pipeline, make_run, scripted_env):
    env = scripted_env(exit_codes={"B": 1})
    executor = StepExecutor(environment_factory=lambda run, job: env)
    run = make_run(make_pipeline(["A", "B", "C"]))

    result = execute(executor, run)

    assert [(s.name, s.status) for s in result.steps] == [
        ("A", RunStatus.SUCCEEDED),
        ("B", RunStatus.FAILED),
    ]
    assert result.status == RunStatus.FAILED
    assert result.steps[1].exit_code == 1
    assert "exit code 1" in result.steps[1].error
    assert env.commands == ["A", "B"]
    assert env.torn_down

def test_all_steps_succeed_in_order(make_pipeline, make_run, scripted_env):
    env = scripted_env()
    executor = StepExecutor(environment_factory=lambda run, job: env)
    run = make_run(make_pipeline(["A", "B"]))

    result = execute(executor, run)

    assert result.status == RunStatus.SUCCEEDED
    assert [(s.index, s.name, s.status) for s in result.steps] == [
        (0, "A", RunStatus.SUCCEEDED),
        (1, "B", RunStatus.SUCCEEDED),
    ]
    assert result.steps[0].logs == "ran A\n"

def test_cancel_between_steps(make_pipeline, make_run, scripted_env):
    run = make_run(make_pipeline(["A", "B"]))
    run.start()
    env = scripted_env(hooks={"A": lambda: run.cancel("superseded")})
    executor = StepExecutor(environment_factory=lambda r, job: env)

    result = execute(executor, run)

    assert result.status == RunStatus.CANCELLED
    assert [(s.name, s.status) for s in result.steps] == [("A", RunStatus.SUCCEEDED)]
    assert env.commands == ["A"]
    assert run.status == RunStatus.CANCELLED

    # Cancelling again changes nothing
    assert run.cancel("again") is False
    assert run.status == RunStatus.CANCELLED
    assert run.cancel_reason == "superseded"

def test_cancelled_before_start_runs_nothing(make_pipeline, make_run, scripted_env):
    run = make_run(make_pipeline(["A"]))
    run.cancel()
    env = scripted_env()
    executor = StepExecutor(environment_factory=lambda r, job: env)

    result = execute(executor, run)

    assert result.status == RunStatus.CANCELLED
    assert result.steps == []
    assert not env.set_up

def test_deadline_cancels_at_step_boundary(make_pipeline, make_run, scripted_env):
    run = make_run(make_pipeline(["A", "B"]))
    run.start()
    env = scripted_env(hooks={"A": lambda: setattr(run, "deadline", utcnow() - timedelta(seconds=1))})
    executor = StepExecutor(environment_factory=lambda r, job: env)

    result = execute(executor, run)

    assert result.status == RunStatus.CANCELLED
    assert run.status == RunStatus.CANCELLED
    assert run.cancel_reason == "deadline exceeded"
    assert env.commands == ["A"]

def test_environment_error_fails_step(make_pipeline, make_run):
    class BrokenEnvironment(Environment):
        async def run(self, command, env, timeout):
            raise RuntimeError("container vanished")

    executor = StepExecutor(environment_factory=lambda r, job: BrokenEnvironment())
    run = make_run(make_pipeline(["A", "B"]))

    result = execute(executor, run)

    assert result.status == RunStatus.FAILED
    assert len(result.steps) == 1
    assert result.steps[0].error == "container vanished"

def test_setup_failure_fails_job(make_pipeline, make_run):
    order = []

    class HalfProvisionedEnvironment(Environment):
        torn_down = False

        async def setup(self):
            raise TimeoutError("pod never became ready")

        async def teardown(self):
            self.torn_down = True
            order.append("teardown")

    class OrderReporter(RunReporter):
        def job_finished(self, run, job):
            order.append("job_finished")

    env = HalfProvisionedEnvironment()
    executor = StepExecutor(environment_factory=lambda r, job: env, reporter=OrderReporter())
    run = make_run(make_pipeline(["A"]))

    result = execute(executor, run)

    assert result.status == RunStatus.FAILED
    assert result.steps == []
    assert "pod never became ready" in result.error
    # Whatever setup created before failing is cleaned up before the job is reported
    assert env.torn_down
    assert order == ["teardown", "job_finished"]

def test_environment_factory_error_fails_job(make_pipeline, make_run):
    def factory(run, job):
        raise ValueError("Unknown environment backend 'dockr'")

    executor = StepExecutor(environment_factory=factory)
    run = make_run(make_pipeline(["A"]))

    result = execute(executor, run)

    assert result.status == RunStatus.FAILED
    assert result.finished_at is not None
    assert result.steps == []
    assert "Unknown environment backend 'dockr'" in result.error

def test_noop_action_succeeds_without_running(make_pipeline, make_run, scripted_env):
    env = scripted_env()
    executor = StepExecutor(environment_factory=lambda r, job: env)
    job = JobDefinition(
        id="cargo-deny",
        name="cargo-deny",
        runs_on="ubuntu-latest",
        steps=(
            StepDefinition(name="Cancel Previous Runs", uses="styfle/cancel-workflow-action@0.4.1"),
            StepDefinition(run="echo ${{ github.ref_name }}"),
        ),
    )
    run = make_run(make_pipeline(["unused"]), ref="refs/tags/v1.2.0")

    result = execute(executor, run, job)

    assert result.status == RunStatus.SUCCEEDED
    assert [s.name for s in result.steps] == ["Cancel Previous Runs", "Run echo ${{ github.ref_name }}"]
    assert env.commands == ["echo v1.2.0"]

def test_unresolvable_action_fails_step(make_pipeline, make_run, scripted_env):
    env = scripted_env()
    executor = StepExecutor(environment_factory=lambda r, job: env)
    job = JobDefinition(
        id="test",
        name="test",
        runs_on="ubuntu-latest",
        steps=(StepDefinition(uses="actions-rs/cargo@v1"),),
    )
    run = make_run(make_pipeline(["unused"]))

    result = execute(executor, run, job)

    assert result.status == RunStatus.FAILED
    assert "requires the 'command' input" in result.steps[0].error
    assert env.commands == []

def test_timeout_resolution():
    executor = StepExecutor(step_timeout=42)
    job = JobDefinition(id="j", name="j", runs_on="x", steps=(StepDefinition(run="a"),), timeout_minutes=2)

    assert executor.timeout_for(job, StepDefinition(run="a")) == 120
    assert executor.timeout_for(job, StepDefinition(run="a", timeout_minutes=0.5)) == 30
    bare_job = JobDefinition(id="j", name="j", runs_on="x", steps=(StepDefinition(run="a"),))
    assert executor.timeout_for(bare_job, StepDefinition(run="a")) == 42
