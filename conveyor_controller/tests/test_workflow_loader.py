"""Tests for workflow parsing and validation."""

from pathlib import Path

import pytest

from conveyor_controller.src.models.workflow import EventKind
from conveyor_controller.src.services.workflow_loader import (
    load_workflows,
    parse_workflow_config,
    parse_workflow_dict,
    WorkflowConfigError,
)

FIXTURES = Path(__file__).parent / "fixtures" / "workflows"

def test_valid_workflow():
    config = """
name: Test Pipeline
on:
  push:
    branches: [main]
    tags: [v*]
    paths-ignore: [README.md]
  pull_request:
jobs:
  build:
    runs-on: ubuntu-latest
    timeout-minutes: 30
    steps:
      - uses: actions/checkout@v2
      - name: Build
        run: cargo build
        env:
          RUSTFLAGS: -D warnings
"""
    result = parse_workflow_config(config)
    assert result.name == "Test Pipeline"
    assert len(result.triggers) == 2

    push_rule, pr_rule = result.triggers
    assert push_rule.events == frozenset({EventKind.PUSH})
    assert push_rule.branches == frozenset({"main"})
    assert push_rule.tags == frozenset({"v*"})
    assert push_rule.paths_ignore == frozenset({"README.md"})
    assert pr_rule.events == frozenset({EventKind.PULL_REQUEST})

    [job] = result.jobs
    assert job.id == "build"
    assert job.name == "build"
    assert job.timeout_minutes == 30
    assert [s.display_name for s in job.steps] == ["actions/checkout@v2", "Build"]
    assert job.steps[1].env == {"RUSTFLAGS": "-D warnings"}

def test_step_order_preserved():
    config = {
        "on": "push",
        "jobs": {
            "test": {
                "runs-on": "ubuntu-latest",
                "steps": [{"run": f"echo {i}"} for i in range(10)],
            }
        },
    }
    result = parse_workflow_dict(config, source="ci.yml")
    assert result.name == "ci"
    assert [s.run for s in result.jobs[0].steps] == [f"echo {i}" for i in range(10)]

def test_with_values_are_strings():
    config = {
        "on": ["push"],
        "jobs": {
            "test": {
                "runs-on": "ubuntu-latest",
                "steps": [{
                    "uses": "actions-rs/toolchain@v1",
                    "with": {"override": True, "toolchain": "stable", "fetch": 1},
                }],
            }
        },
    }
    step = parse_workflow_dict(config).jobs[0].steps[0]
    assert step.with_ == {"override": "true", "toolchain": "stable", "fetch": "1"}

def test_missing_jobs():
    config = """
name: Bad Pipeline
on: push
"""
    with pytest.raises(WorkflowConfigError, match="must have 'jobs'"):
        parse_workflow_config(config)

def test_missing_on():
    config = """
name: Bad Pipeline
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: cargo test
"""
    with pytest.raises(WorkflowConfigError, match="must have 'on'"):
        parse_workflow_config(config)

def test_missing_runs_on():
    config = """
on: push
jobs:
  test:
    steps:
      - run: cargo test
"""
    with pytest.raises(WorkflowConfigError, match="missing 'runs-on'"):
        parse_workflow_config(config)

def test_step_needs_uses_or_run():
    config = """
on: push
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - name: Nothing to do
"""
    with pytest.raises(WorkflowConfigError, match="missing 'uses' or 'run'"):
        parse_workflow_config(config)

def test_step_cannot_have_uses_and_run():
    config = """
on: push
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v2
        run: make
"""
    with pytest.raises(WorkflowConfigError, match="both 'uses' and 'run'"):
        parse_workflow_config(config)

def test_unknown_action():
    config = """
on: push
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - uses: someone/unknown-action@v3
"""
    with pytest.raises(WorkflowConfigError, match="unsupported action .*actions-rs/cargo"):
        parse_workflow_config(config)

def test_unsupported_event():
    config = """
on: [push, schedule]
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: cargo test
"""
    with pytest.raises(WorkflowConfigError, match="unsupported event 'schedule'"):
        parse_workflow_config(config)

def test_contradictory_branch_filters():
    config = """
on:
  push:
    branches: [main]
    branches-ignore: [wip/*]
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: cargo test
"""
    with pytest.raises(WorkflowConfigError, match="both 'branches' and 'branches-ignore'"):
        parse_workflow_config(config)

def test_tag_filters_rejected_for_pull_requests():
    config = """
on:
  pull_request:
    tags: [v*]
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: cargo test
"""
    with pytest.raises(WorkflowConfigError, match="only valid for push"):
        parse_workflow_config(config)

def test_negated_patterns_rejected():
    config = """
on:
  push:
    branches: ['!main']
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: cargo test
"""
    with pytest.raises(WorkflowConfigError, match="negated pattern"):
        parse_workflow_config(config)

@pytest.mark.parametrize("key,value", [("needs", "build"), ("if", "always()"), ("strategy", {"matrix": {}})])
def test_unsupported_job_keys(key, value):
    config = {
        "on": "push",
        "jobs": {"test": {"runs-on": "ubuntu-latest", key: value, "steps": [{"run": "true"}]}},
    }
    with pytest.raises(WorkflowConfigError, match=f"unsupported key '{key}'"):
        parse_workflow_dict(config)

def test_unsupported_step_keys():
    config = {
        "on": "push",
        "jobs": {"test": {"runs-on": "ubuntu-latest", "steps": [{"run": "true", "if": "failure()"}]}},
    }
    with pytest.raises(WorkflowConfigError, match="step 0 uses unsupported key 'if'"):
        parse_workflow_dict(config)

def test_expression_must_be_lookup():
    config = """
on: push
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: echo ${{ github.ref == 'refs/heads/main' }}
"""
    with pytest.raises(WorkflowConfigError, match="unsupported expression"):
        parse_workflow_config(config)

def test_empty_config():
    with pytest.raises(WorkflowConfigError, match="Empty"):
        parse_workflow_config("")

def test_invalid_yaml():
    with pytest.raises(WorkflowConfigError, match="Invalid YAML"):
        parse_workflow_config("on: [push\njobs: {")

def test_load_directory():
    pipelines = load_workflows(str(FIXTURES))

    assert [p.name for p in pipelines] == ["Cargo deny", "Cargo test"]
    deny, test = pipelines
    assert [s.display_name for s in deny.jobs[0].steps] == [
        "Cancel Previous Runs",
        "Checkout sources & submodules",
        "Cargo deny",
    ]
    assert deny.jobs[0].steps[0].with_ == {"access_token": "${{ github.token }}"}
    assert test.jobs[0].name == "Test"
    assert test.jobs[0].steps[2].with_["override"] == "true"

def test_duplicate_names_rejected(tmp_path):
    workflow = "name: CI\non: push\njobs:\n  a:\n    runs-on: x\n    steps:\n      - run: 'true'\n"
    (tmp_path / "one.yml").write_text(workflow)
    (tmp_path / "two.yaml").write_text(workflow)

    with pytest.raises(WorkflowConfigError, match="Duplicate workflow name 'CI'"):
        load_workflows(str(tmp_path))

def test_missing_directory(tmp_path):
    with pytest.raises(WorkflowConfigError, match="not found"):
        load_workflows(str(tmp_path / "nope"))
