"""Read models for persisted pipeline results."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ClaimStatusView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference_number: str
    claim_type: str
    claim_amount: Decimal
    processing_status: str
    status: str
    approved_amount: Optional[Decimal] = None
    settled_amount: Optional[Decimal] = None
    risk_score: Optional[int] = None
    risk_level: Optional[str] = None
    fraud_status: Optional[str] = None
    ai_summary: Optional[str] = None
    processed_at: Optional[datetime] = None


class ExtractionResultView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_id: UUID
    document_type: str
    confidence: float
    language: Optional[str] = None
    is_handwritten: bool
    status: str
    reupload_attempts: int
    manual_verification_required: bool
    is_fallback: bool
    keywords_found: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    entities: Dict[str, Any] = Field(default_factory=dict)


class ValidationResultView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    detected_claim_type: str
    prescription_diagnosis_score: float
    prescription_bill_score: float
    diagnosis_treatment_score: float
    billing_policy_score: float
    overall_score: float
    checklist: Dict[str, Any] = Field(default_factory=dict)
    missing_documents: List[str] = Field(default_factory=list)
    exclusions_found: List[str] = Field(default_factory=list)
    mismatched_items: List[str] = Field(default_factory=list)
    policy_verified: bool
    member_verified: bool
    previous_claims_total: Decimal
    remaining_coverage: Decimal
    max_payable: Decimal
    co_payment_amount: Decimal
    workflow_action: str
    issues: List[str] = Field(default_factory=list)
    degraded: bool


class FraudResultView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    duplicate_hash_match: bool
    duplicate_content_match: bool
    similarity_score: float
    duplicate_claim_ids: List[str] = Field(default_factory=list)
    anomaly_score: float
    fraud_score: float
    amount_deviation_percentage: Optional[float] = None
    z_score: Optional[float] = None
    provider_claim_frequency: int
    baseline_sample_size: int
    alerts: List[str] = Field(default_factory=list)
    risk_level: str
    fraud_status: str
    workflow_action: str
    degraded: bool


class SettlementResultView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_billed: Decimal
    covered_items: List[Dict[str, Any]] = Field(default_factory=list)
    non_covered_items: List[Dict[str, Any]] = Field(default_factory=list)
    policy_limit: Decimal
    previous_claims_total: Decimal
    remaining_coverage: Decimal
    max_payable: Decimal
    co_payment_percentage: Decimal
    co_payment_amount: Decimal
    deductible_amount: Decimal
    insurer_payment: Decimal
    decision: str
    decision_reason: str
    summary: Optional[str] = None


class HistoryEntryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    notes: Optional[str] = None
    performed_by: Optional[UUID] = None
    created_at: Optional[datetime] = None


class ClaimResults(BaseModel):
    """Latest persisted output of every pipeline stage for a claim."""

    claim: ClaimStatusView
    extractions: List[ExtractionResultView] = Field(default_factory=list)
    validation: Optional[ValidationResultView] = None
    fraud: Optional[FraudResultView] = None
    settlement: Optional[SettlementResultView] = None
    history: List[HistoryEntryView] = Field(default_factory=list)
