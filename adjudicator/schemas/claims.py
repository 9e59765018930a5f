"""Read-only snapshots of the claim aggregate handed to pipeline stages."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from adjudicator.schemas.enums import ClaimType
from adjudicator.schemas.extraction import ExtractionOutput


class ClaimSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference_number: str
    user_id: UUID
    policy_id: Optional[UUID] = None
    member_id: Optional[UUID] = None
    claim_type: ClaimType = ClaimType.OPD
    claim_amount: Decimal
    diagnosis: Optional[str] = None
    date_of_treatment: Optional[date] = None
    hospital_name: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_registration_number: Optional[str] = None
    status: Optional[str] = None
    processing_status: Optional[str] = None
    created_at: Optional[datetime] = None


class PolicySnapshot(BaseModel):
    """Coverage terms of the policy a claim is made against."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    policy_number: str
    holder_name: str
    opd_limit: Decimal
    co_payment_percentage: Decimal = Decimal("0")
    deductible_amount: Decimal = Decimal("0")
    warranty_period_days: int = 30
    exclusions: List[str] = Field(default_factory=list)
    special_covers: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    def has_special_cover(self, name: str) -> bool:
        """Whether a sub-cover (e.g. dental) is part of the policy."""
        cover = self.special_covers.get(name)
        if isinstance(cover, dict):
            return cover.get("enabled", True) is not False
        return bool(cover)

    def category_limit(self, claim_type: ClaimType) -> Decimal:
        """Coverage limit applicable to a claim category.

        Dental and spectacle claims use the sub-cover limit when the policy
        defines one, otherwise every category draws on the OPD limit.
        """
        if claim_type in (ClaimType.DENTAL, ClaimType.SPECTACLES):
            cover = self.special_covers.get(claim_type.value)
            if isinstance(cover, dict) and cover.get("limit") is not None:
                return Decimal(str(cover["limit"]))
        return Decimal(str(self.opd_limit))


class MemberSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    member_name: str
    nic: Optional[str] = None
    relationship_type: str = "self"
    date_of_birth: Optional[date] = None


class ResolvedExtraction(BaseModel):
    """Extraction output of a document that cleared intake."""

    document_id: UUID
    output: ExtractionOutput
    content_hash: Optional[str] = None
