"""Pipeline orchestrator.

Runs a job's steps in table order against their stage executors. Every step
is wrapped the same way: mark running, execute, then either store the
artifacts and mark completed, or apply the step's failure class. A hard-fail
step that raises fails the job and stops execution. A soft-fail step that
raises records its fallback artifacts and completes with a fallback message.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from proposal_service.errors import InvalidTransitionError, JobConflictError, StageInterruptedError
from proposal_service.pipeline.state import JobState, Status
from proposal_service.pipeline.steps import FailureClass, get_step, step_names
from proposal_service.services.job_store import JobStore
from proposal_service.stages.base import BaseStage, StageContext

logger = logging.getLogger(__name__)


def _error_text(error: Exception) -> str:
    return str(error) or error.__class__.__name__


class Orchestrator:
    """Drives jobs through the fixed step sequence."""

    def __init__(self, store: JobStore, stages: Mapping[str, BaseStage]):
        missing = [name for name in step_names() if name not in stages]
        if missing:
            raise ValueError(f"No stage registered for steps: {missing}")
        self.store = store
        self.stages = stages

    def run(self, job_id: str) -> Optional[JobState]:
        """
        Claim a pending job and execute all of its steps.

        Args:
            job_id: Job to run

        Returns:
            Final job state, or None if the job was not pending
        """
        if self.store.start(job_id) is None:
            return None
        return self._drive(job_id)

    def resume(self, job_id: str) -> JobState:
        """
        Continue a job interrupted by a process restart.

        A pending job is simply run. A running job is first taken over from
        its previous owner; if that owner still holds a live lease the job is
        left alone. Otherwise the step left running is resolved as if its
        stage had raised StageInterruptedError, then the remaining steps
        execute normally.
        """
        state = self.store.get(job_id)
        if state.status is Status.PENDING:
            return self.run(job_id) or self.store.get(job_id)
        if state.is_terminal:
            return state

        reclaimed = self.store.reclaim(job_id)
        if reclaimed is None:
            return self.store.get(job_id)
        state = reclaimed

        interrupted = state.running_step()
        if interrupted is not None:
            logger.warning(f"Job {job_id}: step {interrupted.step} was interrupted; applying failure policy")
            stage = self.stages[interrupted.step]
            error = StageInterruptedError(f"Step {interrupted.step} was interrupted before completing")
            state = self._handle_failure(job_id, stage, self._context(state), error)
            if state.is_terminal:
                return state
        return self._drive(job_id)

    def _drive(self, job_id: str) -> JobState:
        state = self.store.get(job_id)
        for name in step_names():
            if state.is_terminal:
                break
            if state.step(name).status is not Status.PENDING:
                continue
            state = self._run_step(job_id, self.stages[name], state)

        if state.status is Status.COMPLETED:
            logger.info(f"Job {job_id} completed")
        elif state.status is Status.FAILED:
            logger.error(f"Job {job_id} failed: {state.errors}")
        return state

    def _context(self, state: JobState) -> StageContext:
        job_id = state.id
        return StageContext(
            job_id=job_id,
            input_snapshot=state.input_snapshot,
            artifacts=state.artifacts,
            load_inputs=lambda: self.store.get_input_files(job_id),
            save_output=lambda filename, content_type, content: self.store.save_output(
                job_id, filename, content_type, content
            ),
            save_asset=lambda filename, content_type, content, kind: self.store.save_asset(
                job_id, filename, content_type, content, kind
            ),
            load_file=lambda file_id: self.store.get_file(job_id, file_id),
        )

    def _run_step(self, job_id: str, stage: BaseStage, state: JobState) -> JobState:
        name = stage.step.value
        self.store.apply_step_transition(job_id, name, Status.RUNNING, message=stage.running_message)
        context = self._context(state)

        try:
            result = stage.execute(context)
            self._store_artifacts(job_id, name, result.artifacts)
        except JobConflictError:
            raise
        except Exception as e:
            logger.warning(f"Job {job_id}: step {name} raised {e.__class__.__name__}: {e}")
            return self._handle_failure(job_id, stage, context, e)

        return self.store.apply_step_transition(job_id, name, Status.COMPLETED, message=result.message)

    def _handle_failure(self, job_id: str, stage: BaseStage, context: StageContext, error: Exception) -> JobState:
        name = stage.step.value
        if stage.failure_class is FailureClass.HARD:
            return self.store.apply_step_transition(
                job_id,
                name,
                Status.FAILED,
                message=stage.failure_message,
                error=_error_text(error),
            )

        try:
            self._store_artifacts(job_id, name, stage.fallback(context, error))
        except Exception as fallback_error:
            logger.error(f"Job {job_id}: fallback for {name} failed: {fallback_error}", exc_info=True)
        return self.store.apply_step_transition(job_id, name, Status.COMPLETED, message=stage.fallback_message)

    def _store_artifacts(self, job_id: str, step: str, artifacts: Dict[str, Any]) -> None:
        owned = get_step(step).artifacts
        foreign = [artifact for artifact in artifacts if artifact not in owned]
        if foreign:
            raise InvalidTransitionError(f"Step {step} may not write artifacts {foreign}")
        for artifact, value in artifacts.items():
            self.store.set_artifact(job_id, artifact, value)
