"""Repository for per-document extraction results."""

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.database.models import ExtractionResult
from adjudicator.repositories.base_repository import BaseRepository
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractionResultRepository(BaseRepository[ExtractionResult]):
    """Repository for ExtractionResult model.

    At most one live row exists per document; retries overwrite it.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ExtractionResult)

    async def get_by_document(self, document_id: UUID) -> Optional[ExtractionResult]:
        return await self.get_one_by(document_id=document_id)

    async def get_for_claim(self, claim_id: UUID) -> List[ExtractionResult]:
        """Get all extraction results recorded for a claim's documents."""
        try:
            query = (
                select(ExtractionResult)
                .where(ExtractionResult.claim_id == claim_id)
                .order_by(ExtractionResult.processed_at)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error loading extraction results: {e}",
                extra={"claim_id": str(claim_id)},
                exc_info=True
            )
            raise

    async def get_map_for_claim(self, claim_id: UUID) -> Dict[UUID, ExtractionResult]:
        return {row.document_id: row for row in await self.get_for_claim(claim_id)}

    async def upsert_for_document(self, document_id: UUID, **values) -> ExtractionResult:
        """Create or overwrite the extraction result of a document."""
        return await self.upsert_by({"document_id": document_id}, **values)
