"""Temporal worker for claim pipeline runs.

Connects to the Temporal server configured in ``TemporalSettings`` and
polls the claims task queue.
"""

import asyncio

from temporalio.client import Client
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from adjudicator.core.config import settings
from adjudicator.temporal.activities.claim_pipeline import process_claim
from adjudicator.temporal.constants import CLAIMS_TASK_QUEUE
from adjudicator.temporal.workflows.claim_pipeline import ClaimPipelineWorkflow
from adjudicator.utils.logging import get_logger

logger = get_logger(__name__)


async def connect(max_retries: int = 5, retry_delay: int = 5) -> Client:
    """Connect to Temporal, retrying while the server starts up."""
    for attempt in range(max_retries):
        try:
            logger.info(
                f"Connecting to Temporal server at {settings.temporal_address} "
                f"(Attempt {attempt + 1}/{max_retries})"
            )
            return await Client.connect(settings.temporal_address, namespace=settings.temporal.namespace)
        except RuntimeError as e:
            if attempt < max_retries - 1:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Failed to connect to Temporal server after {max_retries} attempts: {e}")
                raise
    raise RuntimeError("Temporal connection retries exhausted")


def build_worker(client: Client) -> Worker:
    return Worker(
        client,
        task_queue=CLAIMS_TASK_QUEUE,
        workflows=[ClaimPipelineWorkflow],
        activities=[process_claim],
        max_concurrent_activities=settings.pipeline.extraction_concurrency * 2,
        workflow_runner=SandboxedWorkflowRunner(
            restrictions=SandboxRestrictions.default.with_passthrough_all_modules()
        ),
    )


async def main():
    client = await connect()
    worker = build_worker(client)
    logger.info(f"Worker polling queue '{CLAIMS_TASK_QUEUE}' on {settings.temporal_address}")
    await worker.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
