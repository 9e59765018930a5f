"""Shared constants for Temporal workflows."""

from adjudicator.core.config import settings

CLAIMS_TASK_QUEUE = settings.temporal.task_queue

# Timeouts
DEFAULT_WORKFLOW_TIMEOUT_SECONDS = 3600  # 1 hour
PIPELINE_ACTIVITY_TIMEOUT_SECONDS = 900  # 15 minutes

PIPELINE_MAX_ATTEMPTS = 3

# Errors a retry cannot fix
NON_RETRYABLE_ERRORS = [
    "InvalidClaimIdError",
    "ClaimNotFoundError",
    "ClaimAccessDeniedError",
    "PolicyDataMissingError",
]


def workflow_id_for(claim_id: str) -> str:
    return f"claim-pipeline-{claim_id}"
