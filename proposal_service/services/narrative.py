"""Proposal narrative generation through the LLM client."""

import json
import logging
import re
from typing import Any, Dict

from pydantic import ValidationError

from proposal_service.config import settings
from proposal_service.errors import CollaboratorError
from proposal_service.schemas.proposal import ProposalNarrative
from proposal_service.services.llm_client import LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You write concise, persuasive payment processing proposals for small businesses. "
    "Use only the figures you are given. Never invent savings numbers."
)


def _strip_fences(text: str) -> str:
    match = re.search(r"```(?:json)?\s*(.*?)```", text, re.S)
    return match.group(1) if match else text


class NarrativeGenerator:
    """Narrative collaborator: structured proposal context to prose."""

    def __init__(self, llm_client: LLMClient, model: str = settings.NARRATIVE_MODEL):
        self.llm = llm_client
        self.model = model

    def build_prompt(self, context: Dict[str, Any]) -> str:
        return f"""Write the narrative sections of a payment processing proposal.

Merchant:
{json.dumps(context.get("merchant", {}), indent=2)}

Pricing comparison (monthly figures in USD):
{json.dumps(context.get("pricing", {}), indent=2)}

Salesperson:
{json.dumps(context.get("salesperson", {}), indent=2)}

Return JSON with exactly these keys:
{{"headline": "...", "executive_summary": "...", "recommendation": "...",
  "talking_points": ["...", "..."], "call_to_action": "..."}}
"""

    def generate(self, context: Dict[str, Any]) -> ProposalNarrative:
        """
        Generate proposal narrative for a merchant.

        Args:
            context: Dict with 'merchant', 'pricing' and 'salesperson' sections

        Returns:
            ProposalNarrative

        Raises:
            CollaboratorError: If the model call fails or returns malformed JSON
        """
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self.build_prompt(context)},
        ]
        response = self.llm.chat_completion(
            model=self.model,
            messages=messages,
            temperature=0.5,
            max_tokens=1500,
            json_mode=True,
        )

        try:
            data = json.loads(_strip_fences(response))
            narrative = ProposalNarrative.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Narrative response was not valid JSON: {e}")
            raise CollaboratorError(f"Narrative response malformed: {e}") from e

        logger.info(f"Generated narrative with {len(narrative.talking_points)} talking points")
        return narrative
