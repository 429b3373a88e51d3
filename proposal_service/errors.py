"""Exception hierarchy for the proposal pipeline."""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class DocumentParseError(PipelineError):
    """An input document is missing, unreadable or not a cost analysis."""


class CollaboratorError(PipelineError):
    """An external collaborator returned an error or an unusable response."""


class CollaboratorTimeoutError(CollaboratorError):
    """An external collaborator did not answer within its timeout."""


class RenderError(PipelineError):
    """The final document could not be produced."""


class StageInterruptedError(PipelineError):
    """A stage was running when the process stopped."""


class InvalidTransitionError(PipelineError):
    """A step or job transition violates the job state machine."""


class JobNotFoundError(PipelineError):
    """No job exists with the requested id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobNotReadyError(PipelineError):
    """The job has not produced its document yet."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is {status}, document not available")
        self.job_id = job_id
        self.status = status


class JobConflictError(InvalidTransitionError):
    """Another worker owns the job or changed it first."""
