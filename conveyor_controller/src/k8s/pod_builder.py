"""
Kubernetes Pod builder for job environments.
"""

from kubernetes import client
from typing import Dict, Optional
import hashlib

from conveyor_controller.src.config import get_settings

settings = get_settings()

WORKSPACE_PATH = "/workspace"

# Keeps the container alive while steps are exec'd into it
IDLE_COMMAND = "trap 'exit 0' TERM; while true; do sleep 5; done"

def safe_label(value: str, limit: int = 63) -> str:
    """K8s names/labels must be lowercase alphanumerics and dashes."""
    safe = value.lower().replace(" ", "-").replace("_", "-")
    safe = "".join(c for c in safe if c.isalnum() or c == "-")
    return safe[:limit].strip("-")

def build_pod_name(run_id: str, job_id: str) -> str:
    """Generate a unique pod name."""
    # Use short hash of run_id for uniqueness
    run_hash = hashlib.md5(run_id.encode()).hexdigest()[:8]
    return f"cv-{run_hash}-{safe_label(job_id, 40)}"

def build_pod(
    run_id: str,
    job_id: str,
    image: str,
    env_vars: Optional[Dict[str, str]] = None,
    timeout: Optional[int] = None,
) -> client.V1Pod:
    """
    Build the Pod that hosts one job. Steps are exec'd into it in order,
    sharing the workspace volume.
    """
    pod_name = build_pod_name(run_id, job_id)

    env = [
        client.V1EnvVar(name="CONVEYOR_RUN_ID", value=run_id),
        client.V1EnvVar(name="CONVEYOR_JOB_ID", value=job_id),
        client.V1EnvVar(name="CI", value="true"),
    ]

    if env_vars:
        for key, value in env_vars.items():
            env.append(client.V1EnvVar(name=key, value=value))

    labels = {
        "app": "conveyor",
        "run-id": run_id,
        "job-id": safe_label(job_id),
    }

    container = client.V1Container(
        name="runner",
        image=image,
        command=["/bin/sh", "-c"],
        args=[IDLE_COMMAND],
        env=env,
        working_dir=WORKSPACE_PATH,
        volume_mounts=[
            client.V1VolumeMount(name="workspace", mount_path=WORKSPACE_PATH),
        ],
        resources=client.V1ResourceRequirements(
            requests={"cpu": "250m", "memory": "512Mi"},
            limits={"cpu": "2", "memory": "4Gi"},
        ),
    )

    pod_spec = client.V1PodSpec(
        containers=[container],
        restart_policy="Never",
        active_deadline_seconds=timeout,
        volumes=[
            client.V1Volume(
                name="workspace",
                empty_dir=client.V1EmptyDirVolumeSource(),
            ),
        ],
    )

    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(
            name=pod_name,
            namespace=settings.k8s_namespace,
            labels=labels,
        ),
        spec=pod_spec,
    )

def get_pod_phase(pod: client.V1Pod) -> str:
    """
    Determine pod state from a Kubernetes Pod object.
    Returns: 'pending', 'running', 'succeeded', 'failed'
    """
    if pod.status is None or not pod.status.phase:
        return "pending"

    phase = pod.status.phase.lower()
    if phase in ("running", "succeeded", "failed"):
        return phase

    return "pending"
