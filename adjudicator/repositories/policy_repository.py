"""Repositories for policy and member reference data."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.database.models import Policy, PolicyMember
from adjudicator.repositories.base_repository import BaseRepository


class PolicyRepository(BaseRepository[Policy]):
    """Repository for Policy model."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Policy)


class PolicyMemberRepository(BaseRepository[PolicyMember]):
    """Repository for PolicyMember model."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PolicyMember)

    async def get_for_policy(self, member_id: UUID, policy_id: UUID) -> Optional[PolicyMember]:
        """Get a member only if it belongs to the given policy."""
        return await self.get_one_by(id=member_id, policy_id=policy_id)
