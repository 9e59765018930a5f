"""Base stage interface for all claim pipeline stages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID


class StageStatus(Enum):
    COMPLETED = "completed"
    DEGRADED = "degraded"
    BLOCKED = "blocked"


@dataclass
class StageResult:
    """Standard result from stage execution."""
    status: StageStatus
    data: dict[str, Any]
    error: Optional[str] = None


class BaseStage(ABC):
    """Base class for claim pipeline stages."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stage name (intake, validation, etc.)."""
        pass

    @property
    @abstractmethod
    def dependencies(self) -> list[str]:
        """Stages that must complete before this one."""
        pass

    @abstractmethod
    async def is_complete(self, claim_id: UUID) -> bool:
        """Check if the stage has a persisted result for the claim."""
        pass

    @abstractmethod
    async def execute(self, claim_id: UUID, *args, **kwargs) -> StageResult:
        """Execute the stage."""
        pass

    async def apply_default(self, claim_id: UUID, *args, **kwargs) -> StageResult:
        """Persist a conservative result after a recoverable failure.

        Stages that cannot degrade leave this unimplemented and their
        failures stop the pipeline.
        """
        raise NotImplementedError(f"Stage {self.name} has no degraded result")
