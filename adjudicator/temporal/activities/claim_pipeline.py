"""Temporal activity running the in-process claim pipeline."""

from typing import Dict

from temporalio import activity
from temporalio.exceptions import ApplicationError

from adjudicator.core.config import settings
from adjudicator.core.database import async_session_maker
from adjudicator.core.exceptions import (
    ClaimAccessDeniedError,
    ClaimNotFoundError,
    InvalidClaimIdError,
    PolicyDataMissingError,
)
from adjudicator.core.llm_client import create_llm_client
from adjudicator.services.pipeline.claim_pipeline import ClaimPipeline

NON_RETRYABLE = (InvalidClaimIdError, ClaimNotFoundError, ClaimAccessDeniedError, PolicyDataMissingError)


@activity.defn(name="process_claim")
async def process_claim(claim_id: str) -> Dict:
    """Run every pipeline stage for a claim in a fresh session."""
    activity.logger.info(
        f"Processing claim {claim_id} (attempt {activity.info().attempt})",
        extra={"claim_id": claim_id},
    )

    async with async_session_maker() as session:
        pipeline = ClaimPipeline(session, create_llm_client(settings.llm), settings.pipeline)
        try:
            result = await pipeline.execute(claim_id)
        except NON_RETRYABLE as e:
            activity.logger.warning(f"Claim {claim_id} cannot be processed: {e.message}")
            raise ApplicationError(e.message, type=type(e).__name__, non_retryable=True)

    activity.logger.info(
        f"Claim {claim_id} finished with status {result.status.value}",
        extra={"claim_id": claim_id, "status": result.status.value},
    )
    return result.model_dump(mode="json")
