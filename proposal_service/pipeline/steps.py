"""Fixed, ordered table of proposal pipeline steps."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class StepName(str, Enum):
    PARSING_DOCUMENTS = "parsing_documents"
    SCRAPING_WEBSITE = "scraping_website"
    EXTRACTING_PRICING = "extracting_pricing"
    GENERATING_NARRATIVE = "generating_narrative"
    GENERATING_IMAGES = "generating_images"
    BUILDING_DOCUMENT = "building_document"
    FINALIZING = "finalizing"


class FailureClass(str, Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass(frozen=True)
class StepDescriptor:
    name: StepName
    description: str
    failure_class: FailureClass
    artifacts: Tuple[str, ...] = ()


STEP_TABLE: Tuple[StepDescriptor, ...] = (
    StepDescriptor(
        StepName.PARSING_DOCUMENTS,
        "Parsing uploaded cost analysis documents",
        FailureClass.HARD,
        ("parsed_documents",),
    ),
    StepDescriptor(
        StepName.SCRAPING_WEBSITE,
        "Fetching merchant logo and business info",
        FailureClass.SOFT,
        ("merchant_data",),
    ),
    StepDescriptor(
        StepName.EXTRACTING_PRICING,
        "Extracting pricing data for comparison",
        FailureClass.HARD,
        ("pricing_comparison",),
    ),
    StepDescriptor(
        StepName.GENERATING_NARRATIVE,
        "Writing proposal narrative",
        FailureClass.SOFT,
        ("narrative",),
    ),
    StepDescriptor(
        StepName.GENERATING_IMAGES,
        "Creating custom proposal images",
        FailureClass.SOFT,
        ("generated_images",),
    ),
    StepDescriptor(
        StepName.BUILDING_DOCUMENT,
        "Building professional proposal document",
        FailureClass.HARD,
        ("rendered_document",),
    ),
    StepDescriptor(
        StepName.FINALIZING,
        "Finalizing and saving proposal",
        FailureClass.HARD,
    ),
)

_BY_NAME: Dict[str, StepDescriptor] = {d.name.value: d for d in STEP_TABLE}
_ARTIFACT_OWNERS: Dict[str, StepName] = {
    artifact: d.name for d in STEP_TABLE for artifact in d.artifacts
}


def step_names() -> List[str]:
    """Step names in execution order."""
    return [d.name.value for d in STEP_TABLE]


def get_step(name) -> StepDescriptor:
    """Look up a descriptor by name.

    Raises:
        ValueError: If the name is not in the table
    """
    return _BY_NAME[StepName(name).value]


def is_hard_fail(name) -> bool:
    return get_step(name).failure_class is FailureClass.HARD


def owner_of(artifact: str) -> Optional[StepName]:
    """Return the step allowed to write ``artifact``, or None if unknown."""
    return _ARTIFACT_OWNERS.get(artifact)


def final_step() -> StepDescriptor:
    """The step whose completion completes the job."""
    return STEP_TABLE[-1]
