from conveyor_api.src.services.github import (
    verify_signature,
    changed_paths,
    parse_push_payload,
    parse_pull_request_payload,
)
from conveyor_api.src.services.queue import (
    enqueue_event,
    get_queue_length,
)

__all__ = [
    "verify_signature",
    "changed_paths",
    "parse_push_payload",
    "parse_pull_request_payload",
    "enqueue_event",
    "get_queue_length",
]
