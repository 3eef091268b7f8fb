"""
Conveyor Controller - Main entry point.
"""

import logging
import sys

from conveyor_controller.src.config import get_settings
from conveyor_controller.src.services.workflow_loader import WorkflowConfigError
from conveyor_controller.src.worker import build_controller, run_worker

def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

logger = logging.getLogger(__name__)

def main():
    """Main entry point."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting Conveyor Controller")
    logger.info(f"Workflows directory: {settings.workflows_dir}")
    logger.info(f"Environment backend: {settings.environment_backend}")
    logger.info(f"Redis URL: {settings.redis_url}")

    # Workflows are validated before any run can start
    try:
        controller = build_controller(settings)
    except WorkflowConfigError as e:
        logger.error(f"Invalid workflow configuration: {e}")
        sys.exit(1)

    if settings.environment_backend == "kubernetes":
        from conveyor_controller.src.k8s import init_k8s_client, ensure_namespace

        logger.info(f"Kubernetes namespace: {settings.k8s_namespace}")
        if not init_k8s_client():
            logger.error("Failed to initialize Kubernetes client")
            sys.exit(1)

        try:
            ensure_namespace()
        except Exception as e:
            logger.error(f"Failed to ensure namespace: {e}")
            sys.exit(1)

    logger.info("Starting worker...")
    run_worker(controller, settings)

if __name__ == "__main__":
    main()
