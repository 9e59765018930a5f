"""Repository for the claim audit trail."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.database.models import ClaimHistory
from adjudicator.repositories.base_repository import BaseRepository
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClaimHistoryRepository(BaseRepository[ClaimHistory]):
    """Append-only access to ClaimHistory rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ClaimHistory)

    async def append(
        self,
        claim_id: UUID,
        action: str,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        notes: Optional[str] = None,
        performed_by: Optional[UUID] = None,
    ) -> ClaimHistory:
        """Record one audit entry for a claim."""
        return await self.create(
            claim_id=claim_id,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            notes=notes,
            performed_by=performed_by,
        )

    async def list_for_claim(self, claim_id: UUID) -> List[ClaimHistory]:
        try:
            query = (
                select(ClaimHistory)
                .where(ClaimHistory.claim_id == claim_id)
                .order_by(ClaimHistory.created_at)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error loading claim history: {e}",
                extra={"claim_id": str(claim_id)},
                exc_info=True
            )
            raise
