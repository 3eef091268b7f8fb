"""
Queue worker - pulls events from Redis and hands them to the pipeline controller.
"""

import asyncio
import logging
import redis.asyncio as redis
from typing import List, Optional, Set

from pydantic import ValidationError

from conveyor_controller.src.config import Settings, get_settings
from conveyor_controller.src.models.event import Event
from conveyor_controller.src.services.executor import StepExecutor
from conveyor_controller.src.services.pipeline_controller import PipelineController
from conveyor_controller.src.services.status_reporter import (
    DatabaseReporter,
    create_session_factory,
)
from conveyor_controller.src.services.supervisor import (
    RunSupervisor,
    SupervisorInvariantError,
)
from conveyor_controller.src.services.workflow_loader import load_workflows

logger = logging.getLogger(__name__)

EVENT_QUEUE = "conveyor:events"

def build_controller(settings: Settings) -> PipelineController:
    """
    Load workflows and wire up the execution core.
    Raises WorkflowConfigError before anything runs if a workflow is invalid.
    """
    pipelines = load_workflows(settings.workflows_dir)
    reporter = DatabaseReporter(create_session_factory(settings.database_url))
    executor = StepExecutor(
        reporter=reporter,
        step_timeout=settings.step_timeout,
        github_token=settings.github_token,
    )
    return PipelineController(
        pipelines,
        supervisor=RunSupervisor(),
        executor=executor,
        reporter=reporter,
        job_failure_policy=settings.job_failure_policy,
    )

def parse_event(data: str) -> Event:
    return Event.model_validate_json(data)

async def get_next_event(client: redis.Redis, timeout: int = 5) -> Optional[Event]:
    """Pull next event from Redis queue."""
    result = await client.brpop(EVENT_QUEUE, timeout=timeout)
    if result:
        _, event_data = result
        return parse_event(event_data)
    return None

async def handle_event(controller: PipelineController, event: Event):
    try:
        runs = await controller.handle(event)
    except SupervisorInvariantError:
        logger.critical(f"Run supervisor invariant violated while handling {event.ref}")
        raise
    except Exception as e:
        logger.exception(f"Failed to handle {event.kind.value} event on {event.ref}: {e}")
        return

    if not runs:
        logger.info(f"No workflow triggered by {event.kind.value} on {event.ref}")
    for run in runs:
        logger.info(f"Run {run.id} ({run.pipeline.name}) finished: {run.status.value}")

async def worker_loop(controller: PipelineController, settings: Settings):
    """
    Main worker loop. Events are handled concurrently, up to
    `max_concurrent_runs`, so a newer event can supersede a running one.
    """
    logger.info("Worker started, waiting for events...")

    client = redis.from_url(settings.redis_url, decode_responses=True)
    slots = asyncio.Semaphore(settings.max_concurrent_runs)
    tasks: Set[asyncio.Task] = set()
    fatal: List[BaseException] = []

    def on_done(task: asyncio.Task):
        tasks.discard(task)
        slots.release()
        if not task.cancelled() and isinstance(task.exception(), SupervisorInvariantError):
            fatal.append(task.exception())

    try:
        while not fatal:
            try:
                event = await get_next_event(client)
            except ValidationError as e:
                logger.error(f"Discarding malformed event: {e}")
                continue
            except Exception as e:
                logger.exception(f"Worker error: {e}")
                await asyncio.sleep(5)
                continue

            if event is None:
                continue

            logger.info(f"Received {event.kind.value} event for {event.ref}")

            # Runs this event replaces stop at their next step boundary,
            # even while it waits for a free slot
            if controller.supersede(event):
                logger.info(f"Cancelled runs superseded by {event.ref}")

            await slots.acquire()
            task = asyncio.create_task(handle_event(controller, event))
            tasks.add(task)
            task.add_done_callback(on_done)

        raise fatal[0]
    finally:
        for task in list(tasks):
            task.cancel()
        await client.aclose()

def run_worker(controller: PipelineController, settings: Optional[Settings] = None):
    """Entry point for worker."""
    settings = settings or get_settings()
    try:
        asyncio.run(worker_loop(controller, settings))
    except KeyboardInterrupt:
        logger.info("Worker shutting down...")
