"""Repositories for the latest-wins per-claim stage results."""

from typing import Optional, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.database.models import FraudResult, SettlementResult, ValidationResult
from adjudicator.repositories.base_repository import BaseRepository, ModelType


class ClaimResultRepository(BaseRepository[ModelType]):
    """Repository for a stage result keyed uniquely by claim id."""

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        super().__init__(session, model)

    async def get_for_claim(self, claim_id: UUID) -> Optional[ModelType]:
        return await self.get_one_by(claim_id=claim_id)

    async def upsert_for_claim(self, claim_id: UUID, **values) -> ModelType:
        """Replace the claim's stored result with new values."""
        return await self.upsert_by({"claim_id": claim_id}, **values)


class ValidationResultRepository(ClaimResultRepository[ValidationResult]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, ValidationResult)


class FraudResultRepository(ClaimResultRepository[FraudResult]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, FraudResult)


class SettlementResultRepository(ClaimResultRepository[SettlementResult]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, SettlementResult)
