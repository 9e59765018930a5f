"""Document intake state machine.

Each document moves ``uploading -> processing`` and then to one of
``accepted``, ``reupload_required`` or ``rejected`` based on extraction
confidence. Medium-confidence documents are retried a bounded number of
times; on the last allowed attempt they are accepted with a manual
verification flag (``accepted_via_override``) instead of looping forever.
"""

import math
from typing import Iterable, Tuple
from uuid import UUID

from adjudicator.core.config import PipelineSettings
from adjudicator.schemas.enums import IntakeStatus
from adjudicator.schemas.intake import BatchResolution, IntakeDecision
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentIntakeStateMachine:
    """Applies the confidence-based acceptance policy to documents."""

    def __init__(self, settings: PipelineSettings):
        self.accept_confidence = settings.accept_confidence
        self.reject_confidence = settings.reject_confidence
        self.max_attempts = settings.max_reupload_attempts

    def transition(
        self,
        confidence: float,
        previous_attempts: int = 0,
        manual_verification_required: bool = False,
    ) -> IntakeDecision:
        """Decide the next state of a document after an extraction attempt.

        Args:
            confidence: Extraction confidence in [0, 100]
            previous_attempts: Reupload attempts recorded before this extraction
            manual_verification_required: Flag carried over from the extractor

        Returns:
            IntakeDecision with the new state and attempt counter
        """
        confidence = float(confidence)
        confidence = max(0.0, min(100.0, confidence)) if math.isfinite(confidence) else 0.0

        if confidence >= self.accept_confidence:
            return IntakeDecision(
                status=IntakeStatus.ACCEPTED,
                confidence=confidence,
                reupload_attempts=previous_attempts,
                manual_verification_required=manual_verification_required,
            )

        if confidence < self.reject_confidence:
            return IntakeDecision(
                status=IntakeStatus.REJECTED,
                confidence=confidence,
                reupload_attempts=previous_attempts,
                manual_verification_required=manual_verification_required,
            )

        attempts = previous_attempts + 1
        if attempts >= self.max_attempts:
            LOGGER.info(
                "Reupload limit reached, accepting for manual verification",
                extra={"confidence": confidence, "attempts": attempts},
            )
            return IntakeDecision(
                status=IntakeStatus.ACCEPTED_VIA_OVERRIDE,
                confidence=confidence,
                reupload_attempts=attempts,
                manual_verification_required=True,
            )

        return IntakeDecision(
            status=IntakeStatus.REUPLOAD_REQUIRED,
            confidence=confidence,
            reupload_attempts=attempts,
            manual_verification_required=manual_verification_required,
        )

    @staticmethod
    def resolve_batch(decisions: Iterable[Tuple[UUID, IntakeDecision]]) -> BatchResolution:
        """Compute the claim-level gate from every document's decision.

        The claim is blocked while any document awaits reupload. Rejected
        documents do not block; they are reported so validation can treat
        them as missing.
        """
        accepted, rejected, reupload = [], [], []
        for document_id, decision in decisions:
            status = decision.status.persisted
            if status is IntakeStatus.ACCEPTED:
                accepted.append(document_id)
            elif status is IntakeStatus.REJECTED:
                rejected.append(document_id)
            else:
                reupload.append(document_id)

        return BatchResolution(
            blocked=bool(reupload),
            accepted_ids=accepted,
            rejected_ids=rejected,
            reupload_ids=reupload,
        )
