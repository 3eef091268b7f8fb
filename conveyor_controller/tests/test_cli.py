"""Tests for the conveyor command line."""

from pathlib import Path

from typer.testing import CliRunner

from conveyor_controller.src.cli import app, overall_status
from conveyor_controller.src.models.run import RunStatus

runner = CliRunner()

FIXTURES = Path(__file__).parent / "fixtures" / "workflows"

WORKFLOW = """
name: Smoke
on:
  push:
    branches: [main]
    paths-ignore: [README.md]
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - name: Write
        run: echo ok > result.txt
      - name: Check
        run: test "$(cat result.txt)" = ok && echo ${{ github.ref_name }}
"""

def write_workflow(directory: Path, content: str) -> Path:
    directory.mkdir(exist_ok=True)
    (directory / "smoke.yml").write_text(content)
    return directory

def test_check_lists_workflows():
    result = runner.invoke(app, ["check", str(FIXTURES)])

    assert result.exit_code == 0
    assert "Cargo deny" in result.output
    assert "Cargo test" in result.output
    assert "on pull_request, push" in result.output

def test_check_rejects_invalid_workflow(tmp_path):
    workflows = write_workflow(tmp_path / "wf", "on: push\njobs:\n  a:\n    steps: []\n")

    result = runner.invoke(app, ["check", str(workflows)])

    assert result.exit_code == 1

def test_run_succeeds(tmp_path):
    workflows = write_workflow(tmp_path / "wf", WORKFLOW)

    result = runner.invoke(app, ["run", str(workflows), "--path", "src/lib.rs"])

    assert result.exit_code == 0
    assert "Smoke [Smoke@refs/heads/main]: succeeded" in result.output
    assert "1. Check: succeeded" in result.output

def test_run_failure_exits_nonzero(tmp_path):
    workflows = write_workflow(tmp_path / "wf", WORKFLOW.replace("echo ok", "echo broken"))

    result = runner.invoke(app, ["run", str(workflows)])

    assert result.exit_code == 1
    assert "1. Check: failed (Process completed with exit code 1)" in result.output

def test_run_without_match_exits_zero(tmp_path):
    workflows = write_workflow(tmp_path / "wf", WORKFLOW)

    result = runner.invoke(app, ["run", str(workflows), "--path", "README.md"])

    assert result.exit_code == 0
    assert "No workflow triggered by push on refs/heads/main" in result.output

def test_run_rejects_unknown_policy(tmp_path):
    workflows = write_workflow(tmp_path / "wf", WORKFLOW)

    result = runner.invoke(app, ["run", str(workflows), "--job-failure-policy", "retry"])

    assert result.exit_code == 2

def test_run_with_unknown_backend_fails_run(tmp_path):
    workflows = write_workflow(tmp_path / "wf", WORKFLOW)

    result = runner.invoke(app, ["run", str(workflows), "--backend", "dockr"])

    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Smoke [Smoke@refs/heads/main]: failed" in result.output
    assert "job build: failed" in result.output

def test_overall_status(make_pipeline, make_run):
    pipeline = make_pipeline(["A"])
    ok, failed, cancelled = (make_run(pipeline) for _ in range(3))
    ok.start()
    ok.finish(RunStatus.SUCCEEDED)
    failed.start()
    failed.finish(RunStatus.FAILED)
    cancelled.cancel()

    assert overall_status([ok]) == RunStatus.SUCCEEDED
    assert overall_status([ok, cancelled]) == RunStatus.CANCELLED
    assert overall_status([ok, cancelled, failed]) == RunStatus.FAILED
