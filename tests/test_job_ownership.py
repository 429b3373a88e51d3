"""Tests for job ownership across store instances sharing one database."""

import threading
from datetime import datetime, timedelta

import pytest

from fakes import build_stages
from proposal_service.errors import JobConflictError
from proposal_service.models.job import ProposalJob
from proposal_service.pipeline.orchestrator import Orchestrator
from proposal_service.pipeline.state import Status
from proposal_service.pipeline.steps import StepName
from proposal_service.services.job_store import JobStore
from proposal_service.stages.base import BaseStage, StageResult


def gated_clock(barrier: threading.Barrier):
    """Clock whose first reading waits until every racer has read the job."""
    first = threading.Event()

    def clock():
        if not first.is_set():
            first.set()
            barrier.wait(timeout=5)
        return datetime.utcnow()

    return clock


def later():
    return datetime.utcnow() + timedelta(hours=1)


@pytest.fixture
def claimed_job(session_factory, create_job):
    """A job claimed by worker-a with its first step running."""
    owner = JobStore(session_factory=session_factory, worker_id="worker-a")
    job = create_job()
    owner.start(job.id)
    owner.apply_step_transition(job.id, "parsing_documents", Status.RUNNING)
    return owner, job


def stored_owner(session_factory, job_id):
    db = session_factory()
    try:
        return db.get(ProposalJob, job_id).worker_id
    finally:
        db.close()


def test_concurrent_claims_one_winner(session_factory, create_job):
    """Test two stores racing to claim a pending job produce exactly one claim."""
    job = create_job()
    barrier = threading.Barrier(2)
    stores = [
        JobStore(session_factory=session_factory, clock=gated_clock(barrier), worker_id=f"worker-{i}")
        for i in range(2)
    ]
    results = {}

    def claim(store):
        results[store.worker_id] = store.start(job.id)

    threads = [threading.Thread(target=claim, args=(store,)) for store in stores]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10)

    winners = [worker for worker, state in results.items() if state is not None]
    assert len(results) == 2
    assert len(winners) == 1
    assert stored_owner(session_factory, job.id) == winners[0]
    assert stores[0].get(job.id).status is Status.RUNNING


def test_claimed_job_not_claimed_again(session_factory, claimed_job):
    owner, job = claimed_job
    other = JobStore(session_factory=session_factory, worker_id="worker-b")
    assert other.start(job.id) is None
    assert stored_owner(session_factory, job.id) == "worker-a"


def test_live_owner_blocks_other_writers(session_factory, claimed_job):
    """Test a store that does not own a running job cannot change it."""
    owner, job = claimed_job
    other = JobStore(session_factory=session_factory, worker_id="worker-b")

    with pytest.raises(JobConflictError):
        other.apply_step_transition(job.id, "parsing_documents", Status.COMPLETED)
    with pytest.raises(JobConflictError):
        other.set_artifact(job.id, "parsed_documents", {})
    with pytest.raises(JobConflictError):
        other.save_output(job.id, "proposal.html", "text/html", b"<html></html>")

    state = owner.apply_step_transition(job.id, "parsing_documents", Status.COMPLETED)
    assert state.step("parsing_documents").status is Status.COMPLETED


def test_resume_leaves_live_job_alone(session_factory, claimed_job):
    """Test recovery in another worker does not take over a job its owner is still running."""
    owner, job = claimed_job
    other = JobStore(session_factory=session_factory, worker_id="worker-b")

    assert other.reclaim(job.id) is None
    state = Orchestrator(other, build_stages()).resume(job.id)

    assert state.status is Status.RUNNING
    assert state.step("parsing_documents").status is Status.RUNNING
    assert state.errors == []
    assert stored_owner(session_factory, job.id) == "worker-a"


def test_expired_lease_is_taken_over(session_factory, claimed_job):
    """Test a job whose owner stopped writing moves to the reclaiming store."""
    owner, job = claimed_job
    other = JobStore(session_factory=session_factory, clock=later, worker_id="worker-b")

    state = other.reclaim(job.id)

    assert state is not None
    assert state.step("parsing_documents").status is Status.RUNNING
    assert stored_owner(session_factory, job.id) == "worker-b"
    with pytest.raises(JobConflictError):
        owner.apply_step_transition(job.id, "parsing_documents", Status.COMPLETED)


def test_resume_after_expired_lease(session_factory, claimed_job):
    """Test the interrupted hard step fails once the job is taken over."""
    owner, job = claimed_job
    other = JobStore(session_factory=session_factory, clock=later, worker_id="worker-b")

    final = Orchestrator(other, build_stages()).resume(job.id)

    assert final.status is Status.FAILED
    assert final.step("parsing_documents").status is Status.FAILED
    assert "interrupted" in final.errors[0]


def test_reclaim_ignores_finished_jobs(session_factory, create_job):
    job = create_job()
    store = JobStore(session_factory=session_factory)
    Orchestrator(store, build_stages()).run(job.id)

    assert store.reclaim(job.id) is None


class TakeoverStage(BaseStage):
    """Parse stage during which another worker takes the job over."""

    step = StepName.PARSING_DOCUMENTS

    def __init__(self, other: JobStore):
        self.other = other

    def execute(self, context):
        self.other.reclaim(context.job_id)
        return StageResult(message="parsed", artifacts={"parsed_documents": {}})


def test_run_stops_when_job_taken_over(session_factory, create_job):
    """Test a worker that lost its job stops without marking the step failed."""
    job = create_job()
    owner = JobStore(session_factory=session_factory, worker_id="worker-a")
    other = JobStore(session_factory=session_factory, clock=later, worker_id="worker-b")
    stages = build_stages()
    stages["parsing_documents"] = TakeoverStage(other)

    with pytest.raises(JobConflictError):
        Orchestrator(owner, stages).run(job.id)

    state = other.get(job.id)
    assert state.status is Status.RUNNING
    assert state.step("parsing_documents").status is Status.RUNNING
    assert "parsed_documents" not in state.artifacts
