from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from conveyor_api.src.db.database import Base

# Tables are written by the controller; the API only reads them.

class WorkflowRun(Base):
    __tablename__ = "workflow_runs"

    id = Column(String(36), primary_key=True)
    workflow = Column(String(255), nullable=False)
    trigger_key = Column(String(500), nullable=False, index=True)
    event = Column(String(50), nullable=False)
    ref = Column(String(255), nullable=False)
    commit_sha = Column(String(40))
    repository = Column(String(255))
    triggered_by = Column(String(255))
    status = Column(String(50), default="pending")
    cancel_reason = Column(Text)
    config = Column(JSON)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    jobs = relationship("JobRun", back_populates="run", order_by="JobRun.job_order")
    steps = relationship("StepRun", back_populates="run", order_by="StepRun.step_order")

class JobRun(Base):
    __tablename__ = "job_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("workflow_runs.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    job_order = Column(Integer, nullable=False)
    status = Column(String(50), default="pending")
    error = Column(Text)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    run = relationship("WorkflowRun", back_populates="jobs")

class StepRun(Base):
    __tablename__ = "step_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("workflow_runs.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(String(255), nullable=False)
    step_order = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    status = Column(String(50), default="pending")
    exit_code = Column(Integer)
    error = Column(Text)
    logs = Column(Text)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    run = relationship("WorkflowRun", back_populates="steps")
