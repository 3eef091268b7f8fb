from conveyor_controller.src.k8s.client import (
    init_k8s_client,
    get_core_api,
    ensure_namespace,
    create_pod,
    wait_for_pod_running,
    exec_in_pod,
    delete_pod,
)
from conveyor_controller.src.k8s.pod_builder import (
    build_pod,
    build_pod_name,
    get_pod_phase,
)

__all__ = [
    "init_k8s_client",
    "get_core_api",
    "ensure_namespace",
    "create_pod",
    "wait_for_pod_running",
    "exec_in_pod",
    "delete_pod",
    "build_pod",
    "build_pod_name",
    "get_pod_phase",
]
