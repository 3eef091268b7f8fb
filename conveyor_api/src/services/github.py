"""
GitHub service for webhook validation and payload normalization.
"""

import hmac
import hashlib
from typing import Optional, Dict, Any, Set

from conveyor_api.src.config import get_settings
from conveyor_api.src.models.run import QueuedEvent

settings = get_settings()

# Pull request actions that change the code under test
PULL_REQUEST_ACTIONS = {"opened", "synchronize", "reopened"}

def verify_signature(payload: bytes, signature: Optional[str]) -> bool:
    """Verify GitHub webhook signature."""
    if not settings.github_webhook_secret:
        # Skip verification if no secret configured (development)
        return True

    if not signature:
        return False

    expected = "sha256=" + hmac.new(
        settings.github_webhook_secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)

def changed_paths(payload: Dict[str, Any]) -> Set[str]:
    """Collect added, modified and removed files across pushed commits."""
    paths: Set[str] = set()
    for commit in payload.get("commits") or []:
        for key in ("added", "modified", "removed"):
            paths.update(commit.get(key) or [])
    return paths

def parse_push_payload(payload: Dict[str, Any]) -> Optional[QueuedEvent]:
    """
    Extract the event from a push webhook payload.
    Returns None for ref deletions, which never start runs.
    """
    if payload.get("deleted"):
        return None

    repo = payload.get("repository") or {}
    head_commit = payload.get("head_commit") or {}

    return QueuedEvent(
        kind="push",
        ref=payload.get("ref", ""),
        changed_paths=sorted(changed_paths(payload)),
        sha=head_commit.get("id") or payload.get("after", ""),
        repository=repo.get("full_name", ""),
        clone_url=repo.get("clone_url", ""),
        actor=(payload.get("pusher") or {}).get("name", ""),
    )

def parse_pull_request_payload(payload: Dict[str, Any]) -> Optional[QueuedEvent]:
    """
    Extract the event from a pull_request webhook payload.
    Returns None for actions that do not change the code (labels, close...).
    """
    if payload.get("action") not in PULL_REQUEST_ACTIONS:
        return None

    pull_request = payload.get("pull_request") or {}
    head = pull_request.get("head") or {}
    base = pull_request.get("base") or {}
    repo = payload.get("repository") or {}
    number = payload.get("number") or pull_request.get("number")

    # Changed files are not part of the payload
    return QueuedEvent(
        kind="pull_request",
        ref=f"refs/pull/{number}/merge",
        base_ref=f"refs/heads/{base.get('ref', '')}",
        sha=head.get("sha", ""),
        repository=repo.get("full_name", ""),
        clone_url=(head.get("repo") or {}).get("clone_url") or repo.get("clone_url", ""),
        actor=(payload.get("sender") or {}).get("login", ""),
    )
