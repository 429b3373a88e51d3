"""Proposal job and job file models."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, LargeBinary, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from proposal_service.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class ProposalJob(Base):
    """One end-to-end run of the proposal pipeline."""

    __tablename__ = "proposal_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    owner_id = Column(Text, nullable=False)
    organization_id = Column(Text)
    status = Column(Text, nullable=False, default="pending")  # 'pending', 'running', 'completed', 'failed'
    current_step = Column(Text)
    steps = Column(JSONType, nullable=False)
    input_snapshot = Column(JSONType, nullable=False)
    artifacts = Column(JSONType, nullable=False, default=dict)
    errors = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)
    worker_id = Column(Text)  # store instance that claimed the job
    heartbeat_at = Column(DateTime)
    version = Column(Integer, nullable=False)

    files = relationship("JobFile", back_populates="job", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_proposal_jobs_status", "status"),
        Index("idx_proposal_jobs_owner", "owner_id"),
    )
    # Concurrent writers are detected by a version check on every UPDATE
    __mapper_args__ = {"version_id_col": version}


class JobFile(Base):
    """Uploaded input, rendered output or stored image belonging to a job."""

    __tablename__ = "job_files"

    id = Column(String(36), primary_key=True, default=_new_id)
    job_id = Column(String(36), ForeignKey("proposal_jobs.id", ondelete="CASCADE"), nullable=False)
    role = Column(Text, nullable=False)  # 'input', 'output', 'asset'
    kind = Column(Text)  # 'dual_pricing', 'interchange_plus', 'proposal', 'logo', image variant
    filename = Column(Text, nullable=False)
    content_type = Column(Text, nullable=False)
    size = Column(Integer, nullable=False)
    content = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    job = relationship("ProposalJob", back_populates="files")

    __table_args__ = (Index("idx_job_files_job_role", "job_id", "role"),)
