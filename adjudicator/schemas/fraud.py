"""Schemas for fraud and anomaly detection."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from adjudicator.schemas.claims import ClaimSnapshot, ResolvedExtraction
from adjudicator.schemas.enums import FraudStatus, RiskLevel, WorkflowAction


class HistoricalClaim(BaseModel):
    """A previously submitted claim used for duplicate comparison."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_amount: Decimal
    diagnosis: Optional[str] = None
    hospital_name: Optional[str] = None
    created_at: Optional[datetime] = None


class FraudInput(BaseModel):
    claim: ClaimSnapshot
    documents: List[ResolvedExtraction] = Field(default_factory=list)
    recent_policy_claims: List[HistoricalClaim] = Field(default_factory=list)
    provider_claim_count: int = 0
    baseline_amounts: List[Decimal] = Field(default_factory=list)
    hash_matched_claim_ids: List[UUID] = Field(default_factory=list)
    validation_score: float = 0.0


class FraudOutcome(BaseModel):
    duplicate_hash_match: bool = False
    duplicate_content_match: bool = False
    similarity_score: float = 0.0
    duplicate_claim_ids: List[UUID] = Field(default_factory=list)
    anomaly_score: float
    fraud_score: float
    amount_deviation_percentage: Optional[float] = None
    z_score: Optional[float] = None
    provider_claim_frequency: int = 0
    historical_mean: Optional[float] = None
    historical_std: Optional[float] = None
    baseline_sample_size: int = 0
    alerts: List[str] = Field(default_factory=list)
    risk_level: RiskLevel
    fraud_status: FraudStatus
    workflow_action: WorkflowAction
    degraded: bool = False

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_hash_match or self.duplicate_content_match
