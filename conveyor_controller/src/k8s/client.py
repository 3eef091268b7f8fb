"""
Kubernetes client initialization and pod operations.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from typing import Dict, Optional, Tuple
import logging
import shlex
import time

from conveyor_controller.src.config import get_settings
from conveyor_controller.src.k8s.pod_builder import WORKSPACE_PATH, get_pod_phase

logger = logging.getLogger(__name__)
settings = get_settings()

_api_client = None
_core_v1 = None

MAX_LOG_CHARS = 200_000

def init_k8s_client():
    """Initialize Kubernetes client."""
    global _api_client, _core_v1

    try:
        if settings.k8s_in_cluster:
            # Running inside Kubernetes
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        else:
            # Running locally (Docker Desktop, minikube, etc.)
            config.load_kube_config()
            logger.info("Loaded local Kubernetes config")

        _api_client = client.ApiClient()
        _core_v1 = client.CoreV1Api(_api_client)

        # Test connection
        _core_v1.list_namespace(limit=1)
        logger.info("Kubernetes client initialized successfully")

        return True
    except Exception as e:
        logger.error(f"Failed to initialize Kubernetes client: {e}")
        return False

def get_core_api() -> client.CoreV1Api:
    """Get CoreV1 API client for Pod operations."""
    global _core_v1
    if _core_v1 is None:
        init_k8s_client()
    return _core_v1

def ensure_namespace():
    """Ensure the conveyor namespace exists."""
    core_v1 = get_core_api()

    try:
        core_v1.read_namespace(name=settings.k8s_namespace)
        logger.info(f"Namespace '{settings.k8s_namespace}' exists")
    except ApiException as e:
        if e.status == 404:
            namespace = client.V1Namespace(
                metadata=client.V1ObjectMeta(name=settings.k8s_namespace)
            )
            core_v1.create_namespace(body=namespace)
            logger.info(f"Created namespace '{settings.k8s_namespace}'")
        else:
            raise

def create_pod(pod: client.V1Pod):
    """Create a pod, replacing a leftover pod with the same name."""
    core_v1 = get_core_api()
    pod_name = pod.metadata.name

    try:
        core_v1.create_namespaced_pod(namespace=settings.k8s_namespace, body=pod)
    except ApiException as e:
        if e.status != 409:
            raise
        logger.warning(f"Pod {pod_name} already exists, deleting...")
        delete_pod(pod_name)
        time.sleep(2)
        core_v1.create_namespaced_pod(namespace=settings.k8s_namespace, body=pod)

    logger.info(f"Created pod {pod_name}")

def wait_for_pod_running(pod_name: str, timeout: int):
    """Block until the pod is running. Raises on failure or timeout."""
    core_v1 = get_core_api()
    start_time = time.time()

    while True:
        if time.time() - start_time > timeout:
            raise TimeoutError(f"Pod {pod_name} not running after {timeout}s")

        try:
            pod = core_v1.read_namespaced_pod(
                name=pod_name,
                namespace=settings.k8s_namespace,
            )
            phase = get_pod_phase(pod)

            if phase == "running":
                return
            if phase in ("succeeded", "failed"):
                raise RuntimeError(f"Pod {pod_name} exited before running steps ({phase})")

            time.sleep(2)
        except ApiException as e:
            logger.error(f"Error checking pod status: {e}")
            time.sleep(5)

def exec_in_pod(
    pod_name: str,
    command: str,
    env: Optional[Dict[str, str]] = None,
    timeout: int = 600,
) -> Tuple[int, str]:
    """
    Run a shell command inside the pod's workspace.
    Returns (exit_code, combined output). Raises TimeoutError on timeout.
    """
    core_v1 = get_core_api()

    exports = "".join(
        f"export {key}={shlex.quote(value)}; " for key, value in (env or {}).items()
    )
    script = f"cd {WORKSPACE_PATH} && {exports}{command}"

    resp = stream(
        core_v1.connect_get_namespaced_pod_exec,
        pod_name,
        settings.k8s_namespace,
        container="runner",
        command=["/bin/sh", "-e", "-c", script],
        stderr=True,
        stdin=False,
        stdout=True,
        tty=False,
        _preload_content=False,
    )

    output = []
    start_time = time.time()
    try:
        while resp.is_open():
            if time.time() - start_time > timeout:
                raise TimeoutError(f"Command timed out after {timeout}s")
            resp.update(timeout=1)
            if resp.peek_stdout():
                output.append(resp.read_stdout())
            if resp.peek_stderr():
                output.append(resp.read_stderr())
        exit_code = resp.returncode
    finally:
        resp.close()

    logs = "".join(output)[-MAX_LOG_CHARS:]
    return (exit_code if exit_code is not None else 1), logs

def delete_pod(pod_name: str):
    """Delete a pod, ignoring pods that are already gone."""
    core_v1 = get_core_api()

    try:
        core_v1.delete_namespaced_pod(
            name=pod_name,
            namespace=settings.k8s_namespace,
            body=client.V1DeleteOptions(grace_period_seconds=0),
        )
        logger.info(f"Deleted pod {pod_name}")
    except ApiException as e:
        if e.status != 404:
            logger.error(f"Failed to delete pod {pod_name}: {e}")
