"""Narrative summaries for computed settlements."""

import json
from typing import Optional

from adjudicator.core.exceptions import AppError
from adjudicator.core.llm_client import LLMClient
from adjudicator.prompts.system_prompts import SETTLEMENT_SUMMARY_PROMPT
from adjudicator.schemas.claims import ClaimSnapshot
from adjudicator.schemas.enums import SettlementDecision
from adjudicator.schemas.settlement import SettlementOutcome
from adjudicator.utils.json_parser import parse_json_object
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)

_DECISION_PHRASES = {
    SettlementDecision.AUTO_APPROVE: "was automatically approved",
    SettlementDecision.REJECT: "was rejected",
    SettlementDecision.MANUAL_REVIEW: "was referred for manual review",
}


class SettlementSummaryGenerator:
    """Writes the audit narrative for a settlement.

    Uses the LLM when a client is configured and falls back to a
    deterministic template on any failure, so the numeric decision is never
    held back by the narrative.
    """

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client

    async def generate(self, claim: ClaimSnapshot, outcome: SettlementOutcome) -> str:
        if self.client is None:
            return self.template_summary(claim, outcome)

        figures = {
            "reference_number": claim.reference_number,
            "claim_type": claim.claim_type.value,
            "diagnosis": claim.diagnosis,
            "total_billed": str(outcome.total_billed),
            "policy_limit": str(outcome.policy_limit),
            "previous_claims_total": str(outcome.previous_claims_total),
            "remaining_coverage": str(outcome.remaining_coverage),
            "max_payable": str(outcome.max_payable),
            "co_payment_amount": str(outcome.co_payment_amount),
            "deductible_amount": str(outcome.deductible_amount),
            "insurer_payment": str(outcome.insurer_payment),
            "non_covered_items": [item.description for item in outcome.non_covered_items],
            "decision": outcome.decision.value,
            "decision_reason": outcome.decision_reason,
        }
        try:
            raw = await self.client.generate_content(
                contents=json.dumps(figures),
                system_instruction=SETTLEMENT_SUMMARY_PROMPT,
                generation_config={"temperature": 0.2, "response_mime_type": "application/json"},
            )
            payload = parse_json_object(raw)
        except AppError as e:
            LOGGER.warning(
                f"Summary generation failed, using template: {e}",
                extra={"claim_id": str(claim.id)},
            )
            return self.template_summary(claim, outcome)
        except Exception as e:
            LOGGER.error(
                f"Unexpected summary generation error, using template: {e}",
                exc_info=True,
                extra={"claim_id": str(claim.id), "error_type": type(e).__name__},
            )
            return self.template_summary(claim, outcome)

        summary = (payload or {}).get("summary")
        if not isinstance(summary, str) or not summary.strip():
            LOGGER.warning("Summary reply unusable, using template", extra={"claim_id": str(claim.id)})
            return self.template_summary(claim, outcome)
        return summary.strip()

    @staticmethod
    def template_summary(claim: ClaimSnapshot, outcome: SettlementOutcome) -> str:
        parts = [
            f"Claim {claim.reference_number} for LKR {outcome.total_billed} "
            f"{_DECISION_PHRASES[outcome.decision]}.",
            f"Remaining coverage was LKR {outcome.remaining_coverage} against a limit of "
            f"LKR {outcome.policy_limit}, giving a maximum payable of LKR {outcome.max_payable}.",
            f"After co-payment of LKR {outcome.co_payment_amount} and deductible of "
            f"LKR {outcome.deductible_amount}, the insurer payment is LKR {outcome.insurer_payment}.",
        ]
        if outcome.non_covered_items:
            parts.append(
                "Non-covered items: " + ", ".join(item.description for item in outcome.non_covered_items) + "."
            )
        parts.append(outcome.decision_reason + ".")
        return " ".join(parts)
