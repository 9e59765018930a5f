"""Temporal client connection management.

The API submits ``ClaimPipelineWorkflow`` runs through a single lazily
created client shared by all requests.
"""

from typing import Optional

from temporalio.client import Client as TemporalClient

from adjudicator.core.config import settings
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemporalClientManager:
    """Lazily creates a Temporal client and keeps it around for reuse."""

    _client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        if self._client is None:
            LOGGER.info(f"Connecting to Temporal at {settings.temporal_address}")
            self._client = await TemporalClient.connect(
                settings.temporal_address,
                namespace=settings.temporal.namespace,
            )
        return self._client

    def reset(self) -> None:
        """Drop the cached client; the next call reconnects."""
        self._client = None


_temporal_manager = TemporalClientManager()


async def get_temporal_client() -> TemporalClient:
    """FastAPI dependency returning the shared Temporal client."""
    return await _temporal_manager.get_client()


def close_temporal_client() -> None:
    _temporal_manager.reset()
