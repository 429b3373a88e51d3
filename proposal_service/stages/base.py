"""Base stage executor and the context passed between stages."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from proposal_service.pipeline.steps import FailureClass, StepName, get_step
from proposal_service.services.assets import extension_for, parse_data_url, to_data_url
from proposal_service.services.job_store import StoredFile


@dataclass
class StageContext:
    """Read-only view of a job handed to a stage.

    ``load_inputs`` returns the job's uploaded documents; ``save_output``
    stores rendered bytes and ``save_asset`` stores an image, each returning
    a file reference. ``load_file`` reads a stored file back by id.
    """

    job_id: str
    input_snapshot: Dict[str, Any]
    artifacts: Dict[str, Any]
    load_inputs: Callable[[], List[StoredFile]]
    save_output: Callable[[str, str, bytes], Dict[str, Any]]
    save_asset: Callable[[str, str, bytes, str], Dict[str, Any]]
    load_file: Callable[[str], Optional[StoredFile]]

    def artifact(self, name: str, default: Any = None) -> Any:
        value = self.artifacts.get(name)
        return default if value is None else value

    def save_data_url(self, name: str, data_url: str, kind: str) -> Dict[str, Any]:
        """Store a base64 data URL as a job file.

        Raises:
            ValueError: If ``data_url`` is not a base64 data URL
        """
        content_type, content = parse_data_url(data_url)
        return self.save_asset(f"{name}.{extension_for(content_type)}", content_type, content, kind)

    def data_url(self, ref: Optional[Dict[str, Any]]) -> Optional[str]:
        """Load a stored file as a data URL; None when the reference is empty or dangling."""
        if not ref or not ref.get("file_id"):
            return None
        stored = self.load_file(ref["file_id"])
        if stored is None:
            return None
        return to_data_url(stored.content_type, stored.content)


@dataclass
class StageResult:
    message: str
    artifacts: Dict[str, Any] = field(default_factory=dict)


class BaseStage:
    """Base class for pipeline stages.

    Subclasses set ``step`` and implement :meth:`execute`. Soft-fail stages
    also override :meth:`fallback` and ``fallback_message``.
    """

    step: StepName
    running_message: Optional[str] = None
    failure_message: Optional[str] = None
    fallback_message: str = "Proceeding without this step"

    @property
    def failure_class(self) -> FailureClass:
        return get_step(self.step).failure_class

    def execute(self, context: StageContext) -> StageResult:
        """
        Run the stage.

        Args:
            context: Job inputs and artifacts produced so far

        Returns:
            StageResult with a progress message and the artifacts this stage owns

        Raises:
            Exception: Any failure; the orchestrator applies the step's failure policy
        """
        raise NotImplementedError

    def fallback(self, context: StageContext, error: Exception) -> Dict[str, Any]:
        """Artifacts recorded when a soft-fail stage raises."""
        return {name: None for name in get_step(self.step).artifacts}
