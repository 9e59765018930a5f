"""Read access to a claim's persisted pipeline results."""

from typing import Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.core.exceptions import ClaimNotFoundError
from adjudicator.database.models import Claim
from adjudicator.repositories.claim_repository import ClaimRepository
from adjudicator.repositories.extraction_repository import ExtractionResultRepository
from adjudicator.repositories.history_repository import ClaimHistoryRepository
from adjudicator.repositories.result_repository import (
    FraudResultRepository,
    SettlementResultRepository,
    ValidationResultRepository,
)
from adjudicator.schemas.auth import CurrentUser
from adjudicator.schemas.results import (
    ClaimResults,
    ClaimStatusView,
    ExtractionResultView,
    FraudResultView,
    HistoryEntryView,
    SettlementResultView,
    ValidationResultView,
)
from adjudicator.services.base_service import BaseService


class ClaimResultsService(BaseService):
    """Assembles the latest extraction, validation, fraud and settlement results."""

    def __init__(self, session: AsyncSession):
        super().__init__()
        self.claims = ClaimRepository(session)
        self.extractions = ExtractionResultRepository(session)
        self.validations = ValidationResultRepository(session)
        self.frauds = FraudResultRepository(session)
        self.settlements = SettlementResultRepository(session)
        self.history = ClaimHistoryRepository(session)

    def validate(self, claim_id: Union[str, UUID], caller: Optional[CurrentUser] = None):
        self.parse_claim_id(claim_id)

    async def authorize(self, claim_id: Union[str, UUID], caller: Optional[CurrentUser]) -> Claim:
        """Load a claim the caller is allowed to see.

        Raises:
            InvalidClaimIdError: If the id is malformed
            ClaimNotFoundError: If the claim does not exist
            ClaimAccessDeniedError: If the caller neither owns the claim nor holds an elevated role
        """
        claim = await self.claims.get_by_id(self.parse_claim_id(claim_id))
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        self.ensure_access(claim.user_id, caller)
        return claim

    async def run(self, claim_id: Union[str, UUID], caller: Optional[CurrentUser] = None) -> ClaimResults:
        claim = await self.authorize(claim_id, caller)

        extractions = await self.extractions.get_for_claim(claim.id)
        validation = await self.validations.get_for_claim(claim.id)
        fraud = await self.frauds.get_for_claim(claim.id)
        settlement = await self.settlements.get_for_claim(claim.id)
        history = await self.history.list_for_claim(claim.id)

        return ClaimResults(
            claim=ClaimStatusView.model_validate(claim),
            extractions=[ExtractionResultView.model_validate(row) for row in extractions],
            validation=ValidationResultView.model_validate(validation) if validation else None,
            fraud=FraudResultView.model_validate(fraud) if fraud else None,
            settlement=SettlementResultView.model_validate(settlement) if settlement else None,
            history=[HistoryEntryView.model_validate(entry) for entry in history],
        )
