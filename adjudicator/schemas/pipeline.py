"""Schemas describing a pipeline run and its API surface."""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from adjudicator.schemas.enums import ProcessingStatus, SettlementDecision


class ReuploadNotice(BaseModel):
    """A document the claimant must upload again."""

    document_id: UUID
    file_name: str
    confidence: float
    reupload_attempts: int
    issues: List[str] = Field(default_factory=list)


class PipelineRunResult(BaseModel):
    """Outcome of one pipeline run for a claim."""

    success: bool
    status: ProcessingStatus
    claim_id: UUID
    reference_number: str
    message: str
    documents_processed: int = 0
    documents_accepted: int = 0
    documents_rejected: int = 0
    documents_needing_reupload: List[ReuploadNotice] = Field(default_factory=list)
    decision: Optional[SettlementDecision] = None
    insurer_payment: Optional[Decimal] = None
    validation_score: Optional[float] = None
    fraud_score: Optional[float] = None
    anomaly_score: Optional[float] = None
    degraded_stages: List[str] = Field(default_factory=list)


class AsyncProcessingAccepted(BaseModel):
    workflow_id: str
    claim_id: UUID
    task_queue: str
