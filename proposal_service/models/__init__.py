"""SQLAlchemy ORM models."""

from proposal_service.models.job import JobFile, ProposalJob

__all__ = [
    "ProposalJob",
    "JobFile",
]
