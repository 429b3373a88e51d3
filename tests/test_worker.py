"""Tests for the background worker."""

from fakes import build_stages
from proposal_service.pipeline.orchestrator import Orchestrator
from proposal_service.pipeline.state import Status
from proposal_service.worker import JobWorker


class ExplodingOrchestrator:
    def run(self, job_id):
        raise RuntimeError("database went away")

    def resume(self, job_id):
        raise RuntimeError("database went away")


def test_submit_runs_job(store, create_job):
    """Test a submitted job runs to completion off the calling thread."""
    job = create_job()
    worker = JobWorker(Orchestrator(store, build_stages()), max_workers=2)
    try:
        worker.submit(job.id).result(timeout=30)
    finally:
        worker.shutdown()

    assert store.get(job.id).status is Status.COMPLETED


def test_crashing_task_is_contained():
    """Test an exception escaping a job is logged, not raised to the submitter."""
    worker = JobWorker(ExplodingOrchestrator(), max_workers=1)
    try:
        future = worker.submit("job-1")
        assert future.result(timeout=5) is None
    finally:
        worker.shutdown()


def test_recover_unfinished_jobs(store, create_job):
    """Test startup recovery runs pending jobs and resumes running ones."""
    pending = create_job()
    running = create_job()
    store.start(running.id)
    store.apply_step_transition(running.id, "parsing_documents", Status.RUNNING)

    worker = JobWorker(Orchestrator(store, build_stages()), max_workers=2)
    recovered = worker.recover(store)
    worker.shutdown(wait=True)

    assert set(recovered) == {pending.id, running.id}
    assert store.get(pending.id).status is Status.COMPLETED
    assert store.get(running.id).status is Status.FAILED
    assert store.list_unfinished() == []
