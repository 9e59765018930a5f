"""Schemas for cross-document claim validation."""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from adjudicator.schemas.claims import ClaimSnapshot, MemberSnapshot, PolicySnapshot, ResolvedExtraction
from adjudicator.schemas.enums import ClaimType, DocumentType, WorkflowAction


class MedicineReference(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    brand_name: str
    generic_name: str
    is_vitamin: bool = False
    is_cosmetic: bool = False
    is_covered: bool = True


class DiseaseMapping(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    disease_name: str
    disease_keywords: List[str] = Field(default_factory=list)
    recommended_medicines: List[str] = Field(default_factory=list)
    excluded_medicines: List[str] = Field(default_factory=list)


class ValidationInput(BaseModel):
    """Everything the validator reads; assembled by the pipeline stage."""

    claim: ClaimSnapshot
    policy: Optional[PolicySnapshot] = None
    member: Optional[MemberSnapshot] = None
    documents: List[ResolvedExtraction] = Field(default_factory=list)
    rejected_document_types: List[DocumentType] = Field(default_factory=list)
    previous_approved_total: Decimal = Decimal("0")
    medicine_catalog: List[MedicineReference] = Field(default_factory=list)
    disease_mappings: List[DiseaseMapping] = Field(default_factory=list)
    submission_date: date


class CheckResult(BaseModel):
    """Result of a single compliance check."""

    name: str
    passed: bool
    score: float = Field(..., ge=0.0, le=1.0)
    detail: str = ""


class ValidationOutcome(BaseModel):
    detected_claim_type: ClaimType
    prescription_diagnosis_score: float
    prescription_bill_score: float
    diagnosis_treatment_score: float
    billing_policy_score: float
    overall_score: float
    checks: List[CheckResult]
    missing_documents: List[str] = Field(default_factory=list)
    exclusions_found: List[str] = Field(default_factory=list)
    mismatched_items: List[str] = Field(default_factory=list)
    policy_verified: bool = False
    member_verified: bool = False
    previous_claims_total: Decimal
    remaining_coverage: Decimal
    max_payable: Decimal
    co_payment_amount: Decimal
    workflow_action: WorkflowAction
    issues: List[str] = Field(default_factory=list)
    degraded: bool = False

    @property
    def checklist(self) -> Dict[str, bool]:
        return {check.name: check.passed for check in self.checks}
