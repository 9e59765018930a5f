"""Settlement arithmetic and the final claim decision."""

from decimal import Decimal
from typing import List, Tuple

from adjudicator.core.config import PipelineSettings
from adjudicator.core.exceptions import PolicyDataMissingError
from adjudicator.schemas.enums import DocumentType, SettlementDecision
from adjudicator.schemas.extraction import ExtractionOutput
from adjudicator.schemas.settlement import LineItem, SettlementInput, SettlementOutcome
from adjudicator.utils.logging import get_logger
from adjudicator.utils.money import ZERO, clamp_score, to_money

LOGGER = get_logger(__name__)


class SettlementCalculator:
    """Computes the insurer payment and decides the claim.

    The payment is ``max(0, min(remaining, billed) - co_payment - deductible)``
    where ``remaining`` is the category limit minus previously approved
    claims on the policy.
    """

    def __init__(self, settings: PipelineSettings):
        self.settings = settings

    def calculate(self, data: SettlementInput) -> SettlementOutcome:
        """Calculate the settlement for a claim.

        Args:
            data: Claim, policy, accepted documents and upstream scores

        Returns:
            SettlementOutcome without a narrative summary

        Raises:
            PolicyDataMissingError: If the claim has no policy
        """
        if data.policy is None:
            raise PolicyDataMissingError(f"Policy not found for claim {data.claim.reference_number}")

        billed = to_money(data.claim.claim_amount)
        policy_limit = to_money(data.policy.category_limit(data.claim.claim_type))
        previous = to_money(data.previous_approved_total)

        remaining = policy_limit - previous
        max_payable = max(min(remaining, billed), ZERO)
        co_payment_pct = to_money(data.policy.co_payment_percentage)
        co_payment = to_money(max_payable * co_payment_pct / Decimal(100))
        deductible = to_money(data.policy.deductible_amount)
        insurer_payment = to_money(max(max_payable - co_payment - deductible, ZERO))

        decision, reason = self.decide(data.validation_score, data.fraud_score, data.anomaly_score)
        covered, non_covered = self.split_items([doc.output for doc in data.documents])

        LOGGER.info(
            "Settlement calculated",
            extra={
                "claim_id": str(data.claim.id),
                "billed": str(billed),
                "remaining_coverage": str(remaining),
                "insurer_payment": str(insurer_payment),
                "decision": decision.value,
            },
        )

        return SettlementOutcome(
            total_billed=billed,
            covered_items=covered,
            non_covered_items=non_covered,
            policy_limit=policy_limit,
            previous_claims_total=previous,
            remaining_coverage=to_money(remaining),
            max_payable=to_money(max_payable),
            co_payment_percentage=co_payment_pct,
            co_payment_amount=co_payment,
            deductible_amount=deductible,
            insurer_payment=insurer_payment,
            decision=decision,
            decision_reason=reason,
        )

    def decide(
        self, validation_score: float, fraud_score: float, anomaly_score: float
    ) -> Tuple[SettlementDecision, str]:
        """Apply the decision precedence: approve, then reject, then review."""
        validation = clamp_score(validation_score)
        fraud = clamp_score(fraud_score)
        anomaly = clamp_score(anomaly_score)

        if (
            anomaly >= self.settings.auto_approve_anomaly_score
            and fraud < self.settings.auto_approve_max_fraud_score
            and validation >= self.settings.auto_approve_validation_score
        ):
            return SettlementDecision.AUTO_APPROVE, (
                f"Validation {validation:.2f}, fraud {fraud:.2f} and anomaly {anomaly:.2f} "
                "meet the automatic approval thresholds"
            )
        if fraud >= self.settings.high_fraud_score:
            return SettlementDecision.REJECT, f"Fraud score {fraud:.2f} is in the high risk band"
        if validation < self.settings.reject_validation_score:
            return SettlementDecision.REJECT, f"Validation score {validation:.2f} is below the rejection threshold"
        return SettlementDecision.MANUAL_REVIEW, (
            f"Validation {validation:.2f}, fraud {fraud:.2f} and anomaly {anomaly:.2f} "
            "require manual review"
        )

    @staticmethod
    def split_items(outputs: List[ExtractionOutput]) -> Tuple[List[LineItem], List[LineItem]]:
        """Split billed lines into covered and non-covered items."""
        covered: List[LineItem] = []
        non_covered: List[LineItem] = []

        for output in outputs:
            if output.document_type not in (DocumentType.MEDICAL_BILL, DocumentType.CHANNELLING_BILL):
                continue
            flags = {m.name.lower(): m for m in output.entities.medicines}
            for item in output.entities.billing.items:
                medicine = flags.get(item.description.lower())
                reason = None
                if medicine is not None:
                    if medicine.is_vitamin:
                        reason = "Vitamin or supplement"
                    elif medicine.is_cosmetic:
                        reason = "Cosmetic product"
                    elif not medicine.is_covered:
                        reason = "Not covered by policy"
                line = LineItem(
                    description=item.description,
                    amount=to_money(item.amount),
                    category=item.category,
                    reason=reason,
                )
                (non_covered if reason else covered).append(line)

        return covered, non_covered
