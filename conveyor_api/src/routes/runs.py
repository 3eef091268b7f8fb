from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from typing import List, Optional

from conveyor_api.src.db.database import get_db
from conveyor_api.src.models.pipeline import WorkflowRun, StepRun
from conveyor_api.src.models.run import WorkflowRunResponse

router = APIRouter(tags=["runs"])

def run_query():
    return select(WorkflowRun).options(
        selectinload(WorkflowRun.jobs),
        selectinload(WorkflowRun.steps),
    )

@router.get("/runs", response_model=List[WorkflowRunResponse])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    status: Optional[str] = None,
    workflow: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List workflow runs, newest first."""
    query = run_query().order_by(WorkflowRun.created_at.desc())

    if status:
        query = query.where(WorkflowRun.status == status)
    if workflow:
        query = query.where(WorkflowRun.workflow == workflow)

    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    return result.scalars().all()

@router.get("/runs/{run_id}", response_model=WorkflowRunResponse)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get a specific workflow run."""
    result = await db.execute(run_query().where(WorkflowRun.id == run_id))
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Workflow run not found")

    return run

@router.get("/runs/{run_id}/logs")
async def get_run_logs(run_id: str, db: AsyncSession = Depends(get_db)):
    """Get logs for all steps in a workflow run."""
    query = (
        select(StepRun)
        .where(StepRun.run_id == run_id)
        .order_by(StepRun.job_id, StepRun.step_order)
    )
    result = await db.execute(query)
    steps = result.scalars().all()

    if not steps:
        raise HTTPException(status_code=404, detail="Workflow run not found")

    return {
        "run_id": run_id,
        "steps": [
            {
                "job_id": step.job_id,
                "name": step.name,
                "status": step.status,
                "exit_code": step.exit_code,
                "logs": step.logs,
                "started_at": step.started_at,
                "finished_at": step.finished_at,
            }
            for step in steps
        ]
    }

@router.get("/stats")
async def get_run_stats(db: AsyncSession = Depends(get_db)):
    """Get run statistics."""
    status_query = (
        select(WorkflowRun.status, func.count(WorkflowRun.id))
        .group_by(WorkflowRun.status)
    )
    result = await db.execute(status_query)
    status_counts = {row[0]: row[1] for row in result.all()}

    workflow_query = (
        select(WorkflowRun.workflow, func.count(WorkflowRun.id))
        .group_by(WorkflowRun.workflow)
    )
    result = await db.execute(workflow_query)
    workflow_counts = {row[0]: row[1] for row in result.all()}

    return {
        "runs": status_counts,
        "workflows": workflow_counts,
        "total_runs": sum(status_counts.values()),
    }
