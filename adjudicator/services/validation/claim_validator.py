"""Deterministic cross-document claim validation.

Runs the compliance checks in ``checks.py`` over the accepted extraction
results, folds them into four weighted sub-scores and an overall score, and
recommends a workflow action.
"""

from collections import defaultdict
from typing import Dict, List

from adjudicator.core.config import PipelineSettings
from adjudicator.core.exceptions import PolicyDataMissingError
from adjudicator.schemas.enums import DocumentType, WorkflowAction
from adjudicator.schemas.validation import CheckResult, ValidationInput, ValidationOutcome
from adjudicator.services.validation.checks import (
    CHECK_REGISTRY,
    DISEASE_CONSISTENCY_WEIGHT,
    PRESCRIPTION_DIAGNOSIS,
    SUBSCORE_WEIGHTS,
    ValidationContext,
    detect_claim_type,
    disease_medicine_consistency,
)
from adjudicator.utils.logging import get_logger
from adjudicator.utils.money import clamp_score, to_money

LOGGER = get_logger(__name__)

MANDATORY_DOCUMENTS = (DocumentType.PRESCRIPTION, DocumentType.MEDICAL_BILL)


class ClaimValidator:
    """Scores a claim against its policy and recommends a workflow action.

    Attributes:
        settings: Pipeline thresholds used by the checks and the action rules
    """

    def __init__(self, settings: PipelineSettings):
        self.settings = settings

    def validate(self, data: ValidationInput) -> ValidationOutcome:
        """Validate a claim.

        Args:
            data: Claim, policy, member, accepted documents and reference data

        Returns:
            ValidationOutcome with scores, checklist and recommended action

        Raises:
            PolicyDataMissingError: If the claim has no resolvable policy or member
        """
        if data.policy is None:
            raise PolicyDataMissingError(f"Policy not found for claim {data.claim.reference_number}")
        if data.member is None:
            raise PolicyDataMissingError(f"Policy member not found for claim {data.claim.reference_number}")

        outputs = [doc.output for doc in data.documents]
        ctx = ValidationContext(
            claim=data.claim,
            policy=data.policy,
            member=data.member,
            documents=outputs,
            previous_approved_total=to_money(data.previous_approved_total),
            submission_date=data.submission_date,
            settings=self.settings,
            medicine_catalog=data.medicine_catalog,
            disease_mappings=data.disease_mappings,
            detected_claim_type=detect_claim_type(data.claim, outputs),
        )

        checks: List[CheckResult] = []
        group_totals: Dict[str, float] = defaultdict(float)
        group_weights: Dict[str, float] = defaultdict(float)
        hard_failures: List[str] = []

        for check in CHECK_REGISTRY:
            result = check.fn(ctx)
            checks.append(result)
            group_totals[check.group] += check.weight * result.score
            group_weights[check.group] += check.weight
            if check.hard and not result.passed:
                hard_failures.append(check.name)

        consistency, consistency_detail = disease_medicine_consistency(ctx)
        group_totals[PRESCRIPTION_DIAGNOSIS] += DISEASE_CONSISTENCY_WEIGHT * consistency
        group_weights[PRESCRIPTION_DIAGNOSIS] += DISEASE_CONSISTENCY_WEIGHT

        sub_scores = {
            group: clamp_score(group_totals[group] / group_weights[group]) if group_weights[group] else 0.0
            for group in SUBSCORE_WEIGHTS
        }
        overall = clamp_score(sum(SUBSCORE_WEIGHTS[group] * score for group, score in sub_scores.items()))

        present = {doc.document_type for doc in outputs}
        missing = [doc_type.value for doc_type in MANDATORY_DOCUMENTS if doc_type not in present]

        issues = [check.detail for check in checks if not check.passed]
        if consistency < 1.0:
            issues.append(f"Disease-medicine consistency {consistency:.2f}: {consistency_detail}")
        if missing:
            issues.append("Missing mandatory documents: " + ", ".join(missing))

        degraded = self._is_degraded(data, issues)

        remaining = ctx.remaining_coverage
        max_payable = to_money(max(min(remaining, to_money(data.claim.claim_amount)), 0))
        co_payment = to_money(max_payable * to_money(data.policy.co_payment_percentage) / 100)

        action = self._decide(overall, hard_failures, missing, degraded)
        member_check = next(check for check in checks if check.name == "name_matches")

        LOGGER.info(
            "Claim validated",
            extra={
                "claim_id": str(data.claim.id),
                "overall_score": round(overall, 4),
                "workflow_action": action.value,
                "hard_failures": hard_failures,
                "degraded": degraded,
            },
        )

        return ValidationOutcome(
            detected_claim_type=ctx.detected_claim_type,
            prescription_diagnosis_score=sub_scores["prescription_diagnosis"],
            prescription_bill_score=sub_scores["prescription_bill"],
            diagnosis_treatment_score=sub_scores["diagnosis_treatment"],
            billing_policy_score=sub_scores["billing_policy"],
            overall_score=overall,
            checks=checks,
            missing_documents=missing,
            exclusions_found=list(dict.fromkeys(ctx.exclusions_found)),
            mismatched_items=list(dict.fromkeys(ctx.mismatched_items)),
            policy_verified=data.policy.is_active,
            member_verified=member_check.passed,
            previous_claims_total=ctx.previous_approved_total,
            remaining_coverage=to_money(remaining),
            max_payable=max_payable,
            co_payment_amount=co_payment,
            workflow_action=action,
            issues=issues,
            degraded=degraded,
        )

    def _decide(
        self,
        overall: float,
        hard_failures: List[str],
        missing: List[str],
        degraded: bool,
    ) -> WorkflowAction:
        if overall < self.settings.reject_validation_score:
            return WorkflowAction.REJECT
        if (
            overall >= self.settings.auto_approve_validation_score
            and not hard_failures
            and not missing
            and not degraded
        ):
            return WorkflowAction.AUTO_APPROVE
        return WorkflowAction.MANUAL_REVIEW

    @staticmethod
    def _is_degraded(data: ValidationInput, issues: List[str]) -> bool:
        degraded = False
        for doc in data.documents:
            if doc.output.is_fallback or doc.output.manual_verification_required:
                degraded = True
                issues.append(f"Document {doc.document_id} requires manual verification")
        if data.rejected_document_types:
            degraded = True
            issues.append(
                "Rejected documents: " + ", ".join(t.value for t in data.rejected_document_types)
            )
        return degraded
