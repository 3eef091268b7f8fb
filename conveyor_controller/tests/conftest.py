"""Shared fixtures for controller tests."""

import pytest
from typing import Callable, Dict, List, Optional

from conveyor_controller.src.models.event import Event
from conveyor_controller.src.models.run import Run
from conveyor_controller.src.models.workflow import (
    EventKind,
    JobDefinition,
    PipelineDefinition,
    StepDefinition,
    TriggerRule,
)
from conveyor_controller.src.services.environments import CommandResult, Environment

class ScriptedEnvironment(Environment):
    """
    Stand-in environment. Commands listed in `exit_codes` return that code,
    everything else succeeds. `hooks` run after a command completes.
    """

    def __init__(
        self,
        exit_codes: Optional[Dict[str, int]] = None,
        hooks: Optional[Dict[str, Callable[[], None]]] = None,
    ):
        self.exit_codes = exit_codes or {}
        self.hooks = hooks or {}
        self.commands: List[str] = []
        self.set_up = False
        self.torn_down = False

    async def setup(self):
        self.set_up = True

    async def run(self, command, env, timeout):
        self.commands.append(command)
        if command in self.hooks:
            self.hooks[command]()
        return CommandResult(self.exit_codes.get(command, 0), f"ran {command}\n")

    async def teardown(self):
        self.torn_down = True

@pytest.fixture
def scripted_env():
    return ScriptedEnvironment

@pytest.fixture
def make_pipeline():
    def factory(
        steps: List[str],
        name: str = "Cargo test",
        jobs: Optional[Dict[str, List[str]]] = None,
        triggers=None,
    ) -> PipelineDefinition:
        jobs = jobs or {"test": steps}
        return PipelineDefinition(
            name=name,
            triggers=triggers or (
                TriggerRule(events=frozenset({EventKind.PULL_REQUEST})),
                TriggerRule(
                    events=frozenset({EventKind.PUSH}),
                    branches=frozenset({"main"}),
                    tags=frozenset({"v*"}),
                    paths_ignore=frozenset({"README.md"}),
                ),
            ),
            jobs=tuple(
                JobDefinition(
                    id=job_id,
                    name=job_id,
                    runs_on="ubuntu-latest",
                    steps=tuple(StepDefinition(name=cmd, run=cmd) for cmd in job_steps),
                )
                for job_id, job_steps in jobs.items()
            ),
        )
    return factory

@pytest.fixture
def push_event():
    def factory(ref: str = "refs/heads/main", paths=("src/main.rs",), **kwargs) -> Event:
        return Event(kind=EventKind.PUSH, ref=ref, changed_paths=frozenset(paths), **kwargs)
    return factory

@pytest.fixture
def make_run(push_event):
    def factory(pipeline: PipelineDefinition, ref: str = "refs/heads/main") -> Run:
        return Run(
            pipeline=pipeline,
            event=push_event(ref),
            trigger_key=f"{pipeline.name}@{ref}",
        )
    return factory
