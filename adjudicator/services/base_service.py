from typing import Any, Optional, Union
from uuid import UUID
from abc import ABC, abstractmethod

from sqlalchemy.exc import SQLAlchemyError

from adjudicator.core.exceptions import (
    AppError,
    ClaimAccessDeniedError,
    DatabaseError,
    InvalidClaimIdError,
)
from adjudicator.schemas.auth import CurrentUser
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for claim services.

    Provides a standardized execution flow: input validation, the core
    logic, and translation of unexpected failures into ``AppError``.
    Database failures surface as ``DatabaseError`` so API handlers and
    Temporal retry policies can tell them apart.
    """

    def __init__(self):
        self.logger = LOGGER

    async def execute(self, *args, **kwargs) -> Any:
        """Execute the service logic.

        Returns:
            Result of the service execution

        Raises:
            AppError: If execution fails
        """
        try:
            self.validate(*args, **kwargs)
            return await self.run(*args, **kwargs)

        except AppError:
            raise

        except SQLAlchemyError as e:
            self.logger.error(
                f"Database failure: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__}
            )
            raise DatabaseError(f"Database operation failed: {str(e)}", original_error=e)

        except Exception as e:
            self.logger.error(
                f"Service execution failed: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__}
            )
            raise AppError(f"Service execution failed: {str(e)}", original_error=e)

    def validate(self, *args, **kwargs):
        """Validate service input.

        Raises:
            ValidationError: If input is invalid
        """
        pass

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Run the core service logic."""
        pass

    @staticmethod
    def parse_claim_id(claim_id: Union[str, UUID]) -> UUID:
        if isinstance(claim_id, UUID):
            return claim_id
        try:
            return UUID(str(claim_id))
        except (TypeError, ValueError) as e:
            raise InvalidClaimIdError(f"Invalid claim id: {claim_id!r}", original_error=e)

    @staticmethod
    def ensure_access(owner_id: UUID, caller: Optional[CurrentUser]) -> None:
        """Allow the claim owner and elevated roles; ``None`` is a system caller."""
        if caller is None or caller.is_elevated or caller.id == owner_id:
            return
        raise ClaimAccessDeniedError("You do not have access to this claim")
