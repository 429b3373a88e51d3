"""Tests for the job reducer and state machine."""

from datetime import datetime, timedelta

import pytest

from proposal_service.errors import InvalidTransitionError
from proposal_service.pipeline.state import (
    ArtifactSet,
    JobStarted,
    Status,
    StepCompleted,
    StepFailed,
    StepStarted,
    apply_event,
    derive_status,
    new_job,
)
from proposal_service.pipeline.steps import step_names

T0 = datetime(2025, 3, 15, 12, 0, 0)


def tick(n: int) -> datetime:
    return T0 + timedelta(seconds=n)


@pytest.fixture
def job():
    return new_job("job-1", "user-1", {"output_format": "html"}, T0)


@pytest.fixture
def started(job):
    return apply_event(job, JobStarted(), tick(1))


def run_through(state, steps, start=2):
    """Start and complete each named step in turn."""
    for i, name in enumerate(steps):
        state = apply_event(state, StepStarted(step=name), tick(start + 2 * i))
        state = apply_event(state, StepCompleted(step=name), tick(start + 2 * i + 1))
    return state


def test_new_job(job):
    """Test a new job is pending with every step pending."""
    assert job.status is Status.PENDING
    assert [s.step for s in job.steps] == step_names()
    assert all(s.status is Status.PENDING for s in job.steps)
    assert job.step("scraping_website").message == "Fetching merchant logo and business info"


def test_start_job(started):
    assert started.status is Status.RUNNING
    assert started.started_at == tick(1)


def test_reducer_does_not_mutate_input(started):
    """Test the input state is left untouched."""
    after = apply_event(started, StepStarted(step="parsing_documents", message="Parsing..."), tick(2))
    assert started.step("parsing_documents").status is Status.PENDING
    assert after.step("parsing_documents").status is Status.RUNNING
    assert after.step("parsing_documents").message == "Parsing..."
    assert after.current_step == "parsing_documents"


def test_cannot_start_step_of_pending_job(job):
    with pytest.raises(InvalidTransitionError):
        apply_event(job, StepStarted(step="parsing_documents"), tick(1))


def test_steps_start_in_order(started):
    """Test a step cannot start before earlier steps complete."""
    with pytest.raises(InvalidTransitionError):
        apply_event(started, StepStarted(step="scraping_website"), tick(2))


def test_one_running_step(started):
    """Test at most one step runs at a time."""
    state = apply_event(started, StepStarted(step="parsing_documents"), tick(2))
    with pytest.raises(InvalidTransitionError):
        apply_event(state, StepStarted(step="parsing_documents"), tick(3))


def test_complete_requires_running(started):
    with pytest.raises(InvalidTransitionError):
        apply_event(started, StepCompleted(step="parsing_documents"), tick(2))


def test_no_backward_transition(started):
    """Test a completed step cannot be started again."""
    state = run_through(started, ["parsing_documents"])
    with pytest.raises(InvalidTransitionError):
        apply_event(state, StepStarted(step="parsing_documents"), tick(10))


def test_hard_fail_fails_job(started):
    """Test a failed hard step fails the job and records the error."""
    state = apply_event(started, StepStarted(step="parsing_documents"), tick(2))
    state = apply_event(state, StepFailed(step="parsing_documents", error="bad pdf"), tick(3))

    assert state.status is Status.FAILED
    assert state.errors == ["bad pdf"]
    assert state.step("parsing_documents").error == "bad pdf"
    assert state.step("parsing_documents").completed_at == tick(3)
    assert state.completed_at is None


def test_soft_step_cannot_fail(started):
    """Test soft-fail steps are never marked failed."""
    state = run_through(started, ["parsing_documents"])
    state = apply_event(state, StepStarted(step="scraping_website"), tick(10))
    with pytest.raises(InvalidTransitionError):
        apply_event(state, StepFailed(step="scraping_website", error="timeout"), tick(11))


def test_completed_when_final_step_completes(started):
    """Test the job completes only with the final step."""
    state = run_through(started, step_names()[:-1])
    assert state.status is Status.RUNNING
    assert state.completed_at is None

    state = run_through(state, ["finalizing"], start=50)
    assert state.status is Status.COMPLETED
    assert state.completed_at == tick(51)


def test_derive_status_uses_final_step(started):
    """Test completion is keyed to the finalizing step, not list position."""
    state = run_through(started, step_names())
    state = state.model_copy(update={"steps": list(reversed(state.steps))})
    assert derive_status(state) is Status.COMPLETED

    partial = run_through(started, step_names()[:-1])
    partial = partial.model_copy(update={"steps": [partial.step("finalizing")] + partial.steps[:-1]})
    assert derive_status(partial) is Status.RUNNING


def test_terminal_job_rejects_events(started):
    """Test terminal jobs accept no further transitions."""
    state = apply_event(started, StepStarted(step="parsing_documents"), tick(2))
    state = apply_event(state, StepFailed(step="parsing_documents", error="bad"), tick(3))

    with pytest.raises(InvalidTransitionError):
        apply_event(state, StepStarted(step="scraping_website"), tick(4))
    with pytest.raises(InvalidTransitionError):
        apply_event(state, ArtifactSet(name="merchant_data", value={}), tick(4))


def test_artifact_set_once(started):
    """Test artifacts are written once and never overwritten."""
    state = apply_event(started, ArtifactSet(name="narrative", value={"headline": "A"}), tick(2))
    again = apply_event(state, ArtifactSet(name="narrative", value={"headline": "B"}), tick(3))

    assert again is state
    assert again.artifacts["narrative"] == {"headline": "A"}


def test_unknown_artifact(started):
    with pytest.raises(InvalidTransitionError):
        apply_event(started, ArtifactSet(name="pdf_url", value="x"), tick(2))


def test_derive_status(job):
    assert derive_status(job) is Status.PENDING
