"""Document parsing stage."""

import logging
from typing import Optional

from proposal_service.errors import DocumentParseError
from proposal_service.pipeline.steps import StepName
from proposal_service.services.statement_parser import StatementParser
from proposal_service.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

DOCUMENT_KINDS = ("dual_pricing", "interchange_plus")


class ParseDocumentsStage(BaseStage):
    """Parse every uploaded cost analysis into structured pricing data."""

    step = StepName.PARSING_DOCUMENTS
    running_message = "Parsing cost analysis documents..."
    failure_message = "Document parsing failed"

    def __init__(self, parser: Optional[StatementParser] = None):
        self.parser = parser or StatementParser()

    def execute(self, context: StageContext) -> StageResult:
        files = context.load_inputs()
        if not files:
            raise DocumentParseError("No cost analysis documents were uploaded")

        parsed = {}
        for stored in files:
            if stored.kind not in DOCUMENT_KINDS:
                raise DocumentParseError(f"Unknown document kind '{stored.kind}' for {stored.filename}")
            if stored.kind in parsed:
                raise DocumentParseError(f"More than one {stored.kind} document uploaded")
            statement = self.parser.parse(stored.filename, stored.content, kind=stored.kind)
            parsed[stored.kind] = statement.model_dump(mode="json")

        logger.info(f"Job {context.job_id}: parsed {len(parsed)} document(s)")
        return StageResult(
            message="Documents parsed successfully",
            artifacts={"parsed_documents": parsed},
        )
