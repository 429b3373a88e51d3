"""Typed job aggregate and the pure reducer that advances it.

Every change to a persisted job goes through :func:`apply_event`. The
reducer never mutates its input; it validates the event against the state
machine and returns a new :class:`JobState` with ``status``,
``current_step`` and the timestamps recomputed.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from proposal_service.errors import InvalidTransitionError
from proposal_service.pipeline.steps import STEP_TABLE, final_step, get_step, is_hard_fail, owner_of


class Status(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL = (Status.COMPLETED, Status.FAILED)


class StepStatus(BaseModel):
    """Progress of one step within a job."""

    step: str
    status: Status = Status.PENDING
    message: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class JobState(BaseModel):
    """Full state of a proposal job."""

    id: str
    owner_id: str
    organization_id: Optional[str] = None
    status: Status = Status.PENDING
    current_step: Optional[str] = None
    steps: List[StepStatus]
    input_snapshot: Dict[str, Any] = Field(default_factory=dict)
    artifacts: Dict[str, Any] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)
    created_at: datetime
    started_at: Optional[datetime] = None
    updated_at: datetime
    completed_at: Optional[datetime] = None

    def step(self, name: str) -> StepStatus:
        for step_status in self.steps:
            if step_status.step == name:
                return step_status
        raise KeyError(name)

    def running_step(self) -> Optional[StepStatus]:
        for step_status in self.steps:
            if step_status.status is Status.RUNNING:
                return step_status
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL


# Events


class JobStarted(BaseModel):
    kind: Literal["job_started"] = "job_started"


class StepStarted(BaseModel):
    kind: Literal["step_started"] = "step_started"
    step: str
    message: Optional[str] = None


class StepCompleted(BaseModel):
    kind: Literal["step_completed"] = "step_completed"
    step: str
    message: Optional[str] = None


class StepFailed(BaseModel):
    kind: Literal["step_failed"] = "step_failed"
    step: str
    error: str
    message: Optional[str] = None


class ArtifactSet(BaseModel):
    kind: Literal["artifact_set"] = "artifact_set"
    name: str
    value: Any = None


JobEvent = Union[JobStarted, StepStarted, StepCompleted, StepFailed, ArtifactSet]


def initial_steps() -> List[StepStatus]:
    """Fresh step list built from the step table, all pending."""
    return [StepStatus(step=d.name.value, message=d.description) for d in STEP_TABLE]


def new_job(
    job_id: str,
    owner_id: str,
    input_snapshot: Dict[str, Any],
    now: datetime,
    organization_id: Optional[str] = None,
) -> JobState:
    return JobState(
        id=job_id,
        owner_id=owner_id,
        organization_id=organization_id,
        steps=initial_steps(),
        input_snapshot=input_snapshot,
        created_at=now,
        updated_at=now,
    )


def derive_status(job: JobState) -> Status:
    """Compute the job status from its steps.

    failed    iff a hard-fail step has failed
    completed iff the final step has completed
    running   once the job was started or any step left pending
    """
    for step_status in job.steps:
        if step_status.status is Status.FAILED and is_hard_fail(step_status.step):
            return Status.FAILED
    if job.step(final_step().name.value).status is Status.COMPLETED:
        return Status.COMPLETED
    if job.started_at is not None or any(s.status is not Status.PENDING for s in job.steps):
        return Status.RUNNING
    return Status.PENDING


def apply_event(job: JobState, event: JobEvent, now: datetime) -> JobState:
    """Apply one event to a job and return the new state.

    Args:
        job: Current state (left untouched)
        event: Event to apply
        now: Timestamp recorded for this transition

    Returns:
        New JobState

    Raises:
        InvalidTransitionError: If the event is not allowed in the current state
    """
    if job.is_terminal:
        raise InvalidTransitionError(f"Job {job.id} is {job.status.value}; no further transitions allowed")

    new = job.model_copy(deep=True)

    if isinstance(event, JobStarted):
        if job.status is not Status.PENDING:
            raise InvalidTransitionError(f"Job {job.id} cannot start from {job.status.value}")
        new.started_at = now

    elif isinstance(event, ArtifactSet):
        owner = owner_of(event.name)
        if owner is None:
            raise InvalidTransitionError(f"Unknown artifact '{event.name}'")
        if event.name in new.artifacts:
            return job
        new.artifacts[event.name] = event.value
        new.updated_at = now
        return new

    elif isinstance(event, StepStarted):
        _check_can_start(new, event.step)
        target = new.step(event.step)
        target.status = Status.RUNNING
        target.started_at = now
        if event.message:
            target.message = event.message
        new.current_step = event.step

    elif isinstance(event, StepCompleted):
        target = _running(new, event.step, "complete")
        target.status = Status.COMPLETED
        target.completed_at = now
        if event.message:
            target.message = event.message
        new.current_step = event.step

    elif isinstance(event, StepFailed):
        if not is_hard_fail(event.step):
            raise InvalidTransitionError(f"Soft-fail step '{event.step}' cannot be marked failed")
        target = _running(new, event.step, "fail")
        target.status = Status.FAILED
        target.completed_at = now
        target.error = event.error
        if event.message:
            target.message = event.message
        new.current_step = event.step
        new.errors.append(event.error)

    else:
        raise InvalidTransitionError(f"Unsupported event {event!r}")

    new.status = derive_status(new)
    new.updated_at = now
    if new.status is Status.COMPLETED:
        new.completed_at = now
    return new


def _check_can_start(job: JobState, name: str) -> None:
    get_step(name)
    if job.status is not Status.RUNNING:
        raise InvalidTransitionError(f"Job {job.id} must be running to start '{name}'")

    running = job.running_step()
    if running is not None:
        raise InvalidTransitionError(f"Cannot start '{name}' while '{running.step}' is running")

    for step_status in job.steps:
        if step_status.step == name:
            if step_status.status is not Status.PENDING:
                raise InvalidTransitionError(f"Step '{name}' is {step_status.status.value}, expected pending")
            return
        if step_status.status is not Status.COMPLETED:
            raise InvalidTransitionError(f"Cannot start '{name}' before '{step_status.step}' completes")


def _running(job: JobState, name: str, verb: str) -> StepStatus:
    get_step(name)
    target = job.step(name)
    if target.status is not Status.RUNNING:
        raise InvalidTransitionError(f"Cannot {verb} step '{name}' from {target.status.value}")
    return target
