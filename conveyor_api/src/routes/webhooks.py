"""
GitHub webhook endpoints.
"""

from fastapi import APIRouter, Request, HTTPException, Header
from typing import Optional
import logging

from conveyor_api.src.services.github import (
    verify_signature,
    parse_push_payload,
    parse_pull_request_payload,
)
from conveyor_api.src.services.queue import enqueue_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

EVENT_PARSERS = {
    "push": parse_push_payload,
    "pull_request": parse_pull_request_payload,
}

@router.post("/github")
async def github_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Receive GitHub webhook events.
    """
    # Get raw body for signature verification
    body = await request.body()

    if not verify_signature(body, x_hub_signature_256):
        raise HTTPException(status_code=401, detail="Invalid signature")

    # Parse JSON payload
    try:
        payload = await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if x_github_event == "ping":
        return {"status": "pong", "message": "Webhook configured successfully"}

    parser = EVENT_PARSERS.get(x_github_event)
    if parser is None:
        return {
            "status": "ignored",
            "event": x_github_event,
            "message": f"Event type '{x_github_event}' not handled"
        }

    event = parser(payload)
    if event is None:
        logger.info(f"Skipping {x_github_event} webhook that cannot start a run")
        return {"status": "skipped", "event": x_github_event}

    if event.kind == "push" and not event.sha:
        logger.warning("No commit SHA in webhook payload")
        return {"status": "skipped", "reason": "No commit SHA"}

    await enqueue_event(event)
    logger.info(f"Queued {event.kind} event for {event.repository} on {event.ref}")

    return {
        "status": "queued",
        "event": event.kind,
        "ref": event.ref,
        "changed_paths": len(event.changed_paths),
    }
