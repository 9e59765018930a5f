"""Schemas for document intake decisions."""

from typing import List
from uuid import UUID

from pydantic import BaseModel, Field

from adjudicator.schemas.enums import IntakeStatus


class IntakeDecision(BaseModel):
    """Outcome of one intake transition for a document."""

    status: IntakeStatus
    confidence: float
    reupload_attempts: int = 0
    manual_verification_required: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status is not IntakeStatus.REUPLOAD_REQUIRED

    @property
    def is_accepted(self) -> bool:
        return self.status.persisted is IntakeStatus.ACCEPTED


class BatchResolution(BaseModel):
    """Claim-level gate over every document's intake decision."""

    blocked: bool
    accepted_ids: List[UUID] = Field(default_factory=list)
    rejected_ids: List[UUID] = Field(default_factory=list)
    reupload_ids: List[UUID] = Field(default_factory=list)
