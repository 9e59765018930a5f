"""Durable execution of the claim pipeline."""

from datetime import timedelta
from typing import Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from adjudicator.temporal.constants import (
        NON_RETRYABLE_ERRORS,
        PIPELINE_ACTIVITY_TIMEOUT_SECONDS,
        PIPELINE_MAX_ATTEMPTS,
    )


@workflow.defn
class ClaimPipelineWorkflow:
    """Runs the claim pipeline as a retried activity."""

    def __init__(self):
        self._status = "initialized"
        self._result: Optional[Dict] = None

    @workflow.query
    def get_status(self) -> dict:
        """Query handler for the current run state."""
        return {
            "status": self._status,
            "processing_status": (self._result or {}).get("status"),
            "decision": (self._result or {}).get("decision"),
        }

    @workflow.run
    async def run(self, payload: Dict) -> dict:
        claim_id = payload["claim_id"]
        self._status = "processing"

        self._result = await workflow.execute_activity(
            "process_claim",
            args=[claim_id],
            start_to_close_timeout=timedelta(seconds=PIPELINE_ACTIVITY_TIMEOUT_SECONDS),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(seconds=5),
                backoff_coefficient=2.0,
                maximum_attempts=PIPELINE_MAX_ATTEMPTS,
                non_retryable_error_types=NON_RETRYABLE_ERRORS,
            ),
        )

        self._status = "completed"
        return {"status": self._status, "claim_id": claim_id, "result": self._result}
