"""Authentication schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from adjudicator.schemas.enums import UserRoleType


class CurrentUser(BaseModel):
    """Authenticated caller resolved from a bearer token."""

    id: UUID = Field(..., description="User id taken from the token subject")
    email: Optional[str] = None
    role: UserRoleType = UserRoleType.CUSTOMER

    @property
    def is_elevated(self) -> bool:
        return self.role in (UserRoleType.ADMIN, UserRoleType.BRANCH)
