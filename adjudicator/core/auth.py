"""Authentication dependencies for FastAPI routes.

This module provides FastAPI dependency injection functions for
bearer token verification and caller role resolution.
"""

from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.core.database import get_async_session
from adjudicator.core.jwt import jwt_verifier
from adjudicator.repositories.user_role_repository import UserRoleRepository
from adjudicator.schemas.auth import CurrentUser
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_async_session),
) -> CurrentUser:
    """Get the current authenticated user from JWT token.

    This dependency:
    - Extracts Bearer token from Authorization header
    - Verifies JWT signature and claims
    - Resolves the caller's role from the user_roles table

    Args:
        credentials: HTTP Authorization credentials (automatically injected)
        session: Database session used for the role lookup

    Returns:
        CurrentUser: Authenticated user information

    Raises:
        HTTPException: If token is missing, invalid, or expired
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = jwt_verifier.verify_token(credentials.credentials)
        user_id = UUID(claims.sub)
    except (jwt.InvalidTokenError, ValueError) as e:
        LOGGER.warning(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    role = await UserRoleRepository(session).get_effective_role(user_id)
    user = CurrentUser(id=user_id, email=claims.email, role=role)

    LOGGER.debug(f"Authenticated user: {user.id} ({user.role.value})")
    return user
