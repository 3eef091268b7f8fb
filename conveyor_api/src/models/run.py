from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class StepResponse(BaseModel):
    job_id: str
    step_order: int
    name: str
    status: str
    exit_code: Optional[int] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class JobResponse(BaseModel):
    job_id: str
    name: str
    status: str
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class WorkflowRunResponse(BaseModel):
    id: str
    workflow: str
    trigger_key: str
    event: str
    ref: str
    status: str
    commit_sha: Optional[str] = None
    repository: Optional[str] = None
    triggered_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    jobs: List[JobResponse] = []
    steps: List[StepResponse] = []

    class Config:
        from_attributes = True

class QueuedEvent(BaseModel):
    """Event as handed to the controller over the queue."""
    kind: str
    ref: str
    changed_paths: List[str] = []
    sha: str = ""
    base_ref: Optional[str] = None
    repository: str = ""
    clone_url: str = ""
    actor: str = ""
