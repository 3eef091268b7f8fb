"""
Provisioned environments that a job's steps run in.

Steps of one job share a single environment, so later steps see the
workspace left behind by earlier ones.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from typing import Dict, NamedTuple, Optional

from conveyor_controller.src.config import Settings, get_settings
from conveyor_controller.src.models.run import Run
from conveyor_controller.src.models.workflow import JobDefinition

logger = logging.getLogger(__name__)

MAX_LOG_CHARS = 200_000

class StepTimeoutError(Exception):
    """Raised when a step exceeds its timeout."""
    pass

class CommandResult(NamedTuple):
    exit_code: int
    logs: str

class Environment:
    """Base class for job environments."""

    async def setup(self):
        pass

    async def run(self, command: str, env: Dict[str, str], timeout: float) -> CommandResult:
        raise NotImplementedError

    async def teardown(self):
        pass

    def describe(self) -> str:
        return self.__class__.__name__

class LocalEnvironment(Environment):
    """Runs steps as shell commands in a temporary workspace directory."""

    def __init__(self, base_env: Optional[Dict[str, str]] = None, workspace_root: str = ""):
        self.base_env = base_env or {}
        self.workspace_root = workspace_root or None
        self.workspace: Optional[str] = None

    async def setup(self):
        self.workspace = tempfile.mkdtemp(prefix="conveyor_", dir=self.workspace_root)
        logger.debug(f"Created workspace {self.workspace}")

    async def run(self, command: str, env: Dict[str, str], timeout: float) -> CommandResult:
        process_env = {**os.environ, **self.base_env, **env}
        process_env["CONVEYOR_WORKSPACE"] = self.workspace or ""

        process = await asyncio.create_subprocess_exec(
            "/bin/sh", "-e", "-c", command,
            cwd=self.workspace,
            env=process_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise StepTimeoutError(f"Step timed out after {timeout:g}s")

        logs = output.decode("utf-8", errors="replace")[-MAX_LOG_CHARS:]
        return CommandResult(process.returncode, logs)

    async def teardown(self):
        if self.workspace and os.path.exists(self.workspace):
            shutil.rmtree(self.workspace)
            logger.debug(f"Removed workspace {self.workspace}")

    def describe(self) -> str:
        return f"local workspace {self.workspace}"

class KubernetesEnvironment(Environment):
    """Runs steps by exec'ing into one pod per job."""

    def __init__(
        self,
        run_id: str,
        job_id: str,
        image: str,
        base_env: Optional[Dict[str, str]] = None,
        ready_timeout: int = 300,
    ):
        self.run_id = run_id
        self.job_id = job_id
        self.image = image
        self.base_env = base_env or {}
        self.ready_timeout = ready_timeout
        self.pod_name: Optional[str] = None

    async def setup(self):
        from conveyor_controller.src.k8s import build_pod, create_pod, wait_for_pod_running

        pod = build_pod(self.run_id, self.job_id, self.image, self.base_env)
        self.pod_name = pod.metadata.name
        await asyncio.to_thread(create_pod, pod)
        await asyncio.to_thread(wait_for_pod_running, self.pod_name, self.ready_timeout)

    async def run(self, command: str, env: Dict[str, str], timeout: float) -> CommandResult:
        from conveyor_controller.src.k8s import exec_in_pod

        try:
            exit_code, logs = await asyncio.to_thread(
                exec_in_pod, self.pod_name, command, env, int(timeout)
            )
        except TimeoutError as e:
            raise StepTimeoutError(str(e))
        return CommandResult(exit_code, logs)

    async def teardown(self):
        from conveyor_controller.src.k8s import delete_pod

        if self.pod_name:
            await asyncio.to_thread(delete_pod, self.pod_name)

    def describe(self) -> str:
        return f"pod {self.pod_name} ({self.image})"

def resolve_image(runs_on: str, settings: Settings) -> str:
    """Map a runs-on label to a container image. Unknown labels are used as images."""
    return settings.runner_images.get(runs_on, runs_on)

def base_environment(run: Run, job: JobDefinition) -> Dict[str, str]:
    event = run.event
    return {
        "CI": "true",
        "CONVEYOR_RUN_ID": run.id,
        "CONVEYOR_JOB_ID": job.id,
        "CONVEYOR_WORKFLOW": run.pipeline.name,
        "GITHUB_EVENT_NAME": event.kind.value,
        "GITHUB_REF": event.ref,
        "GITHUB_REF_NAME": event.ref_name,
        "GITHUB_SHA": event.sha,
        "GITHUB_REPOSITORY": event.repository,
    }

def create_environment(run: Run, job: JobDefinition, settings: Optional[Settings] = None) -> Environment:
    """Build the environment for a job according to the configured backend."""
    settings = settings or get_settings()
    env = base_environment(run, job)

    if settings.environment_backend == "kubernetes":
        return KubernetesEnvironment(
            run_id=run.id,
            job_id=job.id,
            image=resolve_image(job.runs_on, settings),
            base_env=env,
            ready_timeout=settings.pod_ready_timeout,
        )

    if settings.environment_backend != "local":
        raise ValueError(f"Unknown environment backend '{settings.environment_backend}'")

    return LocalEnvironment(base_env=env, workspace_root=settings.workspace_root)
