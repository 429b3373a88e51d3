"""Durable job store with per-job single-writer semantics."""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from proposal_service.config import settings
from proposal_service.database import SessionLocal
from proposal_service.errors import InvalidTransitionError, JobConflictError, JobNotFoundError
from proposal_service.models.job import JobFile, ProposalJob
from proposal_service.pipeline.state import (
    ArtifactSet,
    JobEvent,
    JobStarted,
    JobState,
    Status,
    StepCompleted,
    StepFailed,
    StepStarted,
    StepStatus,
    apply_event,
    new_job,
)

logger = logging.getLogger(__name__)


@dataclass
class UploadedDocument:
    """An input document handed to :meth:`JobStore.create`."""

    kind: str
    filename: str
    content_type: str
    content: bytes


@dataclass
class StoredFile:
    """A file persisted for a job."""

    id: str
    job_id: str
    role: str
    kind: Optional[str]
    filename: str
    content_type: str
    size: int
    content: bytes


class JobStore:
    """Persists proposal jobs and serializes writes per job id.

    Writes for one job run under that job's lock: the row is loaded with
    SELECT ... FOR UPDATE, the reducer is applied, and the result is committed
    before the lock is released. Each UPDATE also checks the row version, so a
    write racing another process fails with JobConflictError instead of
    overwriting it. A running job belongs to the store that claimed it
    (``worker_id``); other stores may not write to it until its lease expires.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = datetime.utcnow,
        worker_id: Optional[str] = None,
        lease_seconds: float = settings.WORKER_LEASE_SECONDS,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.worker_id = worker_id or str(uuid.uuid4())
        self.lease_seconds = lease_seconds
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.Lock()
            return lock

    def _release_lock(self, job_id: str) -> None:
        with self._locks_guard:
            self._locks.pop(job_id, None)

    def create(
        self,
        owner_id: str,
        input_snapshot: Dict[str, Any],
        documents: List[UploadedDocument],
        organization_id: Optional[str] = None,
    ) -> JobState:
        """
        Insert a pending job together with its input documents.

        Args:
            owner_id: Requesting user
            input_snapshot: Merchant and salesperson metadata
            documents: Uploaded cost analysis documents
            organization_id: Optional organization attribution

        Returns:
            The new job, all steps pending
        """
        job_id = str(uuid.uuid4())
        now = self.clock()

        with self._session() as db:
            refs = []
            files = []
            for doc in documents:
                file_id = str(uuid.uuid4())
                files.append(
                    JobFile(
                        id=file_id,
                        job_id=job_id,
                        role="input",
                        kind=doc.kind,
                        filename=doc.filename,
                        content_type=doc.content_type,
                        size=len(doc.content),
                        content=doc.content,
                        created_at=now,
                    )
                )
                refs.append(
                    {
                        "file_id": file_id,
                        "kind": doc.kind,
                        "filename": doc.filename,
                        "content_type": doc.content_type,
                        "size": len(doc.content),
                    }
                )

            snapshot = dict(input_snapshot)
            snapshot["documents"] = refs
            state = new_job(job_id, owner_id, snapshot, now, organization_id=organization_id)

            row = ProposalJob(id=job_id)
            _write_row(row, state)
            db.add(row)
            db.flush()
            for job_file in files:
                db.add(job_file)
            db.commit()

        logger.info(f"Created job {job_id} with {len(refs)} document(s) for owner {owner_id}")
        return state

    # Reads

    def get(self, job_id: str) -> JobState:
        """Load a job.

        Raises:
            JobNotFoundError: If no job has this id
        """
        with self._session() as db:
            row = db.get(ProposalJob, job_id)
            if row is None:
                raise JobNotFoundError(job_id)
            return _read_row(row)

    def list_unfinished(self) -> List[JobState]:
        """Jobs still pending or running, oldest first."""
        with self._session() as db:
            rows = (
                db.query(ProposalJob)
                .filter(ProposalJob.status.in_([Status.PENDING.value, Status.RUNNING.value]))
                .order_by(ProposalJob.created_at)
                .all()
            )
            return [_read_row(row) for row in rows]

    def get_input_files(self, job_id: str) -> List[StoredFile]:
        with self._session() as db:
            rows = (
                db.query(JobFile)
                .filter(JobFile.job_id == job_id, JobFile.role == "input")
                .order_by(JobFile.created_at, JobFile.filename)
                .all()
            )
            return [_stored(row) for row in rows]

    def get_file(self, job_id: str, file_id: str) -> Optional[StoredFile]:
        with self._session() as db:
            row = db.get(JobFile, file_id)
            if row is None or row.job_id != job_id:
                return None
            return _stored(row)

    def get_output(self, job_id: str) -> Optional[StoredFile]:
        """The file referenced by the job's rendered_document artifact, if any."""
        ref = self.get(job_id).artifacts.get("rendered_document")
        if not ref:
            return None
        return self.get_file(job_id, ref["file_id"])

    # Writes

    def _locked_row(self, db: Session, job_id: str) -> ProposalJob:
        # SELECT ... FOR UPDATE where the database supports it; SQLite relies on the version check
        row = db.query(ProposalJob).filter(ProposalJob.id == job_id).with_for_update().one_or_none()
        if row is None:
            raise JobNotFoundError(job_id)
        return row

    def _lease_expired(self, row: ProposalJob) -> bool:
        if row.heartbeat_at is None:
            return True
        return row.heartbeat_at < self.clock() - timedelta(seconds=self.lease_seconds)

    def _check_owner(self, row: ProposalJob) -> None:
        if row.status == Status.RUNNING.value and row.worker_id not in (None, self.worker_id):
            raise JobConflictError(f"Job {row.id} is owned by worker {row.worker_id}")

    def _mutate(
        self,
        job_id: str,
        change: Callable[[JobState], JobState],
        take_ownership: bool = False,
    ) -> JobState:
        with self._lock_for(job_id):
            with self._session() as db:
                row = self._locked_row(db, job_id)
                if not take_ownership:
                    self._check_owner(row)
                current = _read_row(row)
                updated = change(current)
                if updated is not current:
                    _write_row(row, updated)
                    if take_ownership:
                        row.worker_id = self.worker_id
                    if row.worker_id == self.worker_id:
                        row.heartbeat_at = self.clock()
                    try:
                        db.commit()
                    except StaleDataError as e:
                        db.rollback()
                        raise JobConflictError(f"Job {job_id} was changed by another worker") from e
        if updated.is_terminal:
            self._release_lock(job_id)
        return updated

    def _apply(self, job_id: str, event: JobEvent) -> JobState:
        return self._mutate(job_id, lambda state: apply_event(state, event, self.clock()))

    def start(self, job_id: str) -> Optional[JobState]:
        """
        Claim a pending job for execution.

        The claim is a single versioned write, so when several workers race
        for the same job exactly one of them wins.

        Returns:
            The running job, or None if the job was not pending or another
            worker claimed it first
        """
        claimed = {"ok": False}

        def claim(state: JobState) -> JobState:
            if state.status is not Status.PENDING:
                return state
            claimed["ok"] = True
            return apply_event(state, JobStarted(), self.clock())

        try:
            state = self._mutate(job_id, claim, take_ownership=True)
        except JobConflictError as e:
            logger.info(f"Job {job_id} not claimed: {e}")
            return None
        if not claimed["ok"]:
            logger.info(f"Job {job_id} is {state.status.value}; not claiming")
            return None
        logger.info(f"Job {job_id} started by worker {self.worker_id}")
        return state

    def reclaim(self, job_id: str) -> Optional[JobState]:
        """
        Take over a running job whose owner stopped writing.

        A job is taken over when it was claimed by this store, has no owner,
        or its owner's lease (``lease_seconds`` since the last write) expired.

        Returns:
            The running job now owned by this store, or None if it is not
            running or a live worker still owns it
        """
        with self._lock_for(job_id):
            with self._session() as db:
                row = self._locked_row(db, job_id)
                if row.status != Status.RUNNING.value:
                    return None
                if row.worker_id not in (None, self.worker_id) and not self._lease_expired(row):
                    logger.info(f"Job {job_id} is owned by live worker {row.worker_id}; not resuming")
                    return None
                previous = row.worker_id
                row.worker_id = self.worker_id
                row.heartbeat_at = self.clock()
                try:
                    db.commit()
                except StaleDataError:
                    db.rollback()
                    logger.info(f"Job {job_id} was taken over by another worker")
                    return None
                state = _read_row(row)

        logger.warning(f"Job {job_id} taken over from worker {previous}")
        return state

    def apply_step_transition(
        self,
        job_id: str,
        step: str,
        new_status: Status,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> JobState:
        """
        Apply a single step transition and persist the recomputed job.

        Args:
            job_id: Job to update
            step: Step name from the step table
            new_status: running, completed or failed
            message: Optional message replacing the step's current one
            error: Error text, required when new_status is failed

        Returns:
            Updated job

        Raises:
            InvalidTransitionError: If the transition is not allowed
            JobNotFoundError: If the job does not exist
        """
        new_status = Status(new_status)
        if new_status is Status.RUNNING:
            event = StepStarted(step=step, message=message)
        elif new_status is Status.COMPLETED:
            event = StepCompleted(step=step, message=message)
        elif new_status is Status.FAILED:
            event = StepFailed(step=step, error=error or "Unknown error", message=message)
        else:
            raise InvalidTransitionError(f"Cannot move step '{step}' back to {new_status.value}")

        state = self._apply(job_id, event)
        logger.info(f"Job {job_id} step {step} -> {new_status.value} (job {state.status.value})")
        return state

    def set_artifact(self, job_id: str, name: str, value: Any) -> bool:
        """
        Write an artifact once.

        Returns:
            True if written, False if the artifact was already set
        """
        written = {"ok": True}

        def record(state: JobState) -> JobState:
            if name in state.artifacts:
                written["ok"] = False
                return state
            return apply_event(state, ArtifactSet(name=name, value=value), self.clock())

        self._mutate(job_id, record)
        if not written["ok"]:
            logger.warning(f"Job {job_id} artifact '{name}' already set; keeping existing value")
        return written["ok"]

    def _save_file(self, job_id: str, role: str, filename: str, content_type: str, content: bytes, kind: str) -> Dict[str, Any]:
        file_id = str(uuid.uuid4())
        with self._lock_for(job_id):
            with self._session() as db:
                row = db.get(ProposalJob, job_id)
                if row is None:
                    raise JobNotFoundError(job_id)
                self._check_owner(row)
                db.add(
                    JobFile(
                        id=file_id,
                        job_id=job_id,
                        role=role,
                        kind=kind,
                        filename=filename,
                        content_type=content_type,
                        size=len(content),
                        content=content,
                        created_at=self.clock(),
                    )
                )
                db.commit()

        logger.info(f"Stored {len(content)} bytes of {role} for job {job_id} as {filename}")
        return {
            "file_id": file_id,
            "filename": filename,
            "content_type": content_type,
            "size": len(content),
        }

    def save_output(
        self,
        job_id: str,
        filename: str,
        content_type: str,
        content: bytes,
        kind: str = "proposal",
    ) -> Dict[str, Any]:
        """
        Store rendered document bytes for a job.

        Returns:
            Reference dict suitable for the rendered_document artifact
        """
        return self._save_file(job_id, "output", filename, content_type, content, kind)

    def save_asset(self, job_id: str, filename: str, content_type: str, content: bytes, kind: str) -> Dict[str, Any]:
        """Store an image (logo or generated image) and return its reference."""
        return self._save_file(job_id, "asset", filename, content_type, content, kind)


def _read_row(row: ProposalJob) -> JobState:
    return JobState(
        id=row.id,
        owner_id=row.owner_id,
        organization_id=row.organization_id,
        status=Status(row.status),
        current_step=row.current_step,
        steps=[StepStatus.model_validate(s) for s in row.steps],
        input_snapshot=row.input_snapshot or {},
        artifacts=row.artifacts or {},
        errors=list(row.errors or []),
        created_at=row.created_at,
        started_at=row.started_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
    )


def _write_row(row: ProposalJob, state: JobState) -> None:
    data = state.model_dump(mode="json")
    row.owner_id = state.owner_id
    row.organization_id = state.organization_id
    row.status = state.status.value
    row.current_step = state.current_step
    row.steps = data["steps"]
    row.input_snapshot = data["input_snapshot"]
    row.artifacts = data["artifacts"]
    row.errors = data["errors"]
    row.created_at = state.created_at
    row.started_at = state.started_at
    row.updated_at = state.updated_at
    row.completed_at = state.completed_at


def _stored(row: JobFile) -> StoredFile:
    return StoredFile(
        id=row.id,
        job_id=row.job_id,
        role=row.role,
        kind=row.kind,
        filename=row.filename,
        content_type=row.content_type,
        size=row.size,
        content=row.content,
    )
