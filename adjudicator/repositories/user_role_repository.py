"""Repository for caller role lookups."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.database.models import UserRole
from adjudicator.repositories.base_repository import BaseRepository
from adjudicator.schemas.enums import UserRoleType
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Highest privilege first
_ROLE_PRECEDENCE = (UserRoleType.ADMIN, UserRoleType.BRANCH, UserRoleType.CUSTOMER)


class UserRoleRepository(BaseRepository[UserRole]):
    """Repository for UserRole model."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UserRole)

    async def get_effective_role(self, user_id: UUID) -> UserRoleType:
        """Resolve the most privileged role held by a user.

        Users without any role row are treated as customers.

        Args:
            user_id: Authenticated user id

        Returns:
            The highest-precedence role assigned to the user
        """
        try:
            result = await self.session.execute(
                select(UserRole.role).where(UserRole.user_id == user_id)
            )
            held = {row for row in result.scalars().all()}
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error resolving role: {e}",
                extra={"user_id": str(user_id)},
                exc_info=True
            )
            raise

        for role in _ROLE_PRECEDENCE:
            if role.value in held:
                return role
        return UserRoleType.CUSTOMER
