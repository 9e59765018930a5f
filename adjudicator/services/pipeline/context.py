"""State carried between pipeline stages within a single run."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from adjudicator.schemas.claims import ClaimSnapshot, ResolvedExtraction
from adjudicator.schemas.enums import DocumentType
from adjudicator.schemas.extraction import DocumentRef
from adjudicator.schemas.fraud import FraudOutcome
from adjudicator.schemas.pipeline import ReuploadNotice
from adjudicator.schemas.settlement import SettlementOutcome
from adjudicator.schemas.validation import ValidationOutcome


@dataclass
class ClaimRun:
    """Per-run view of a claim.

    Holds plain snapshots rather than ORM instances so stages can keep
    working after a stage rollback expires the session's identity map.
    """

    claim: ClaimSnapshot
    documents: List[DocumentRef]
    performed_by: Optional[UUID] = None

    accepted: List[ResolvedExtraction] = field(default_factory=list)
    rejected_types: List[DocumentType] = field(default_factory=list)
    rejected_count: int = 0
    reupload: List[ReuploadNotice] = field(default_factory=list)
    previous_approved_total: Decimal = Decimal("0")

    validation: Optional[ValidationOutcome] = None
    fraud: Optional[FraudOutcome] = None
    settlement: Optional[SettlementOutcome] = None
    degraded_stages: List[str] = field(default_factory=list)

    @property
    def claim_id(self) -> UUID:
        return self.claim.id

    @property
    def validation_score(self) -> float:
        return self.validation.overall_score if self.validation else 0.0
