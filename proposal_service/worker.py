"""Background worker that executes proposal jobs off the request path."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional

from proposal_service.config import settings
from proposal_service.errors import JobConflictError
from proposal_service.pipeline.orchestrator import Orchestrator
from proposal_service.pipeline.state import Status
from proposal_service.services.job_store import JobStore
from proposal_service.stages.registry import build_default_stages

logger = logging.getLogger(__name__)


class JobWorker:
    """Supervised thread pool running one orchestrator task per job.

    Exceptions escaping a task are logged here and never reach the caller
    that submitted the job.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        max_workers: int = settings.MAX_CONCURRENT_JOBS,
    ):
        self.orchestrator = orchestrator
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="proposal-job")
        self._active: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, job_id: str, resume: bool = False) -> Future:
        """Hand a job to the pool. Submitting a job that is already queued returns its future."""
        with self._lock:
            existing = self._active.get(job_id)
            if existing is not None and not existing.done():
                return existing
            future = self.executor.submit(self._run, job_id, resume)
            self._active[job_id] = future
        future.add_done_callback(lambda _: self._forget(job_id))
        logger.info(f"Job {job_id} handed to worker (resume={resume})")
        return future

    def _forget(self, job_id: str) -> None:
        with self._lock:
            future = self._active.get(job_id)
            if future is not None and future.done():
                self._active.pop(job_id, None)

    def _run(self, job_id: str, resume: bool) -> None:
        try:
            if resume:
                self.orchestrator.resume(job_id)
            else:
                self.orchestrator.run(job_id)
        except JobConflictError as e:
            logger.warning(f"Job {job_id} stopped: {e}")
        except Exception as e:
            logger.error(f"Job {job_id} crashed in worker: {e}", exc_info=True)

    def recover(self, store: JobStore) -> List[str]:
        """
        Re-dispatch jobs left unfinished by a previous process.

        Pending jobs are run from the start; running jobs are resumed.

        Returns:
            Ids of the recovered jobs
        """
        recovered = []
        for job in store.list_unfinished():
            self.submit(job.id, resume=job.status is Status.RUNNING)
            recovered.append(job.id)
        if recovered:
            logger.info(f"Recovered {len(recovered)} unfinished job(s)")
        return recovered

    def shutdown(self, wait: bool = True) -> None:
        logger.info("Worker shutting down")
        self.executor.shutdown(wait=wait)


def create_worker(store: Optional[JobStore] = None) -> JobWorker:
    """Worker wired with the default stages."""
    store = store or JobStore()
    return JobWorker(Orchestrator(store, build_default_stages()))
