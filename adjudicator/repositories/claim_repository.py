"""Repository for claim data access and historical claim queries."""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from adjudicator.database.models import Claim, ClaimDocument
from adjudicator.repositories.base_repository import BaseRepository
from adjudicator.schemas.enums import ClaimStatus
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClaimRepository(BaseRepository[Claim]):
    """Repository for Claim model.

    Besides plain lookups this repository serves the historical
    populations the fraud detector compares a claim against and the
    single-row status writes the pipeline orchestrator performs.
    """

    def __init__(self, session: AsyncSession):
        """Initialize the claim repository.

        Args:
            session: SQLAlchemy async session
        """
        super().__init__(session, Claim)

    async def get_with_documents(self, claim_id: UUID) -> Optional[Claim]:
        """Get a claim with its documents eagerly loaded.

        Args:
            claim_id: Claim UUID

        Returns:
            Claim if found, None otherwise
        """
        try:
            query = (
                select(Claim)
                .options(selectinload(Claim.documents))
                .where(Claim.id == claim_id)
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error loading claim with documents: {e}",
                extra={"claim_id": str(claim_id)},
                exc_info=True
            )
            raise

    async def set_processing_status(self, claim_id: UUID, processing_status: str) -> None:
        """Write the pipeline position of a claim as one UPDATE keyed by id."""
        try:
            await self.session.execute(
                update(Claim)
                .where(Claim.id == claim_id)
                .values(processing_status=processing_status, updated_at=func.now())
            )
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error updating processing status: {e}",
                extra={"claim_id": str(claim_id), "processing_status": processing_status},
                exc_info=True
            )
            raise

    async def apply_fields(self, claim_id: UUID, **values) -> None:
        """Write a set of claim columns in one UPDATE keyed by id."""
        try:
            await self.session.execute(
                update(Claim).where(Claim.id == claim_id).values(updated_at=func.now(), **values)
            )
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error updating claim fields: {e}",
                extra={"claim_id": str(claim_id), "fields": sorted(values)},
                exc_info=True
            )
            raise

    async def get_previous_approved_total(self, policy_id: UUID, exclude_claim_id: UUID) -> Decimal:
        """Sum approved amounts of other approved claims on the same policy.

        Args:
            policy_id: Policy UUID
            exclude_claim_id: The claim being adjudicated

        Returns:
            Total previously approved amount (0 when none)
        """
        try:
            query = select(func.coalesce(func.sum(Claim.approved_amount), 0)).where(
                and_(
                    Claim.policy_id == policy_id,
                    Claim.id != exclude_claim_id,
                    Claim.status == ClaimStatus.APPROVED.value,
                )
            )
            result = await self.session.execute(query)
            return Decimal(str(result.scalar_one()))
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error summing previous approved claims: {e}",
                extra={"policy_id": str(policy_id)},
                exc_info=True
            )
            raise

    async def get_recent_policy_claims(
        self, policy_id: UUID, since: datetime, exclude_claim_id: UUID
    ) -> List[Claim]:
        """Get other claims on the same policy created since a point in time."""
        try:
            query = (
                select(Claim)
                .where(
                    and_(
                        Claim.policy_id == policy_id,
                        Claim.id != exclude_claim_id,
                        Claim.created_at >= since,
                    )
                )
                .order_by(Claim.created_at.desc())
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error loading recent policy claims: {e}",
                extra={"policy_id": str(policy_id)},
                exc_info=True
            )
            raise

    async def count_provider_claims(
        self, hospital_name: str, since: datetime, exclude_claim_id: UUID
    ) -> int:
        """Count other claims from the same provider created since a point in time."""
        try:
            query = select(func.count()).select_from(Claim).where(
                and_(
                    func.lower(Claim.hospital_name) == hospital_name.strip().lower(),
                    Claim.id != exclude_claim_id,
                    Claim.created_at >= since,
                )
            )
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error counting provider claims: {e}",
                extra={"hospital_name": hospital_name},
                exc_info=True
            )
            raise

    async def get_baseline_amounts(
        self, exclude_claim_id: UUID, limit: int = 100, claim_type: Optional[str] = None
    ) -> List[Decimal]:
        """Get claim amounts of the most recent other claims."""
        try:
            query = select(Claim.claim_amount).where(Claim.id != exclude_claim_id)
            if claim_type:
                query = query.where(Claim.claim_type == claim_type)
            query = query.order_by(Claim.created_at.desc()).limit(limit)
            result = await self.session.execute(query)
            return [amount for amount in result.scalars().all() if amount is not None]
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading baseline amounts: {e}", exc_info=True)
            raise

    async def find_claims_sharing_hashes(
        self, content_hashes: Iterable[str], exclude_claim_id: UUID
    ) -> List[UUID]:
        """Get ids of other claims holding a document with any of the given hashes."""
        hashes = [h for h in content_hashes if h]
        if not hashes:
            return []
        try:
            query = (
                select(ClaimDocument.claim_id)
                .where(
                    and_(
                        ClaimDocument.content_hash.in_(hashes),
                        ClaimDocument.claim_id != exclude_claim_id,
                    )
                )
                .distinct()
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error matching document hashes: {e}", exc_info=True)
            raise
