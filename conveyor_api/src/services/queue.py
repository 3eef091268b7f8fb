"""
Redis queue service for repository events.
"""

import redis.asyncio as redis

from conveyor_api.src.config import get_settings
from conveyor_api.src.models.run import QueuedEvent

settings = get_settings()

EVENT_QUEUE = "conveyor:events"

async def get_redis_client() -> redis.Redis:
    """Get async Redis client."""
    return redis.from_url(settings.redis_url, decode_responses=True)

async def enqueue_event(event: QueuedEvent):
    """Hand an event to the controller."""
    client = await get_redis_client()

    try:
        await client.lpush(EVENT_QUEUE, event.model_dump_json())
    finally:
        await client.aclose()

async def get_queue_length() -> int:
    """Get number of events waiting in queue."""
    client = await get_redis_client()

    try:
        return await client.llen(EVENT_QUEUE)
    finally:
        await client.aclose()
