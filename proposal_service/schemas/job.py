"""Job API Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from proposal_service.pipeline.state import JobState, Status


class JobCreateResponse(BaseModel):
    """Response after creating a job."""

    job_id: str
    status: Status


class StepStatusResponse(BaseModel):
    step: str
    status: Status
    message: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class JobStatusResponse(BaseModel):
    """Job status response polled by clients until the job is terminal."""

    job_id: str
    owner_id: str
    organization_id: Optional[str] = None
    status: Status
    current_step: Optional[str] = None
    steps: List[StepStatusResponse]
    progress_percent: float
    input_snapshot: Dict[str, Any]
    artifacts: Dict[str, Any]
    errors: List[str]
    document_ready: bool
    created_at: datetime
    started_at: Optional[datetime] = None
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_state(cls, state: JobState) -> "JobStatusResponse":
        done = sum(1 for s in state.steps if s.status in (Status.COMPLETED, Status.FAILED))
        return cls(
            job_id=state.id,
            owner_id=state.owner_id,
            organization_id=state.organization_id,
            status=state.status,
            current_step=state.current_step,
            steps=[StepStatusResponse(**s.model_dump()) for s in state.steps],
            progress_percent=round(done / len(state.steps) * 100, 1),
            input_snapshot=state.input_snapshot,
            artifacts=state.artifacts,
            errors=state.errors,
            document_ready=state.status is Status.COMPLETED and bool(state.artifacts.get("rendered_document")),
            created_at=state.created_at,
            started_at=state.started_at,
            updated_at=state.updated_at,
            completed_at=state.completed_at,
        )
