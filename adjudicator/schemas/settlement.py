"""Schemas for settlement calculation."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from adjudicator.schemas.claims import ClaimSnapshot, PolicySnapshot, ResolvedExtraction
from adjudicator.schemas.enums import SettlementDecision


class LineItem(BaseModel):
    description: str
    amount: Decimal
    category: Optional[str] = None
    reason: Optional[str] = None


class SettlementInput(BaseModel):
    claim: ClaimSnapshot
    policy: Optional[PolicySnapshot] = None
    previous_approved_total: Decimal = Decimal("0")
    documents: List[ResolvedExtraction] = Field(default_factory=list)
    validation_score: float
    fraud_score: float
    anomaly_score: float


class SettlementOutcome(BaseModel):
    total_billed: Decimal
    covered_items: List[LineItem] = Field(default_factory=list)
    non_covered_items: List[LineItem] = Field(default_factory=list)
    policy_limit: Decimal
    previous_claims_total: Decimal
    remaining_coverage: Decimal
    max_payable: Decimal
    co_payment_percentage: Decimal
    co_payment_amount: Decimal
    deductible_amount: Decimal
    insurer_payment: Decimal
    decision: SettlementDecision
    decision_reason: str
    summary: Optional[str] = None
