"""Unit tests for settlement arithmetic, decisions and summaries."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from adjudicator.core.config import PipelineSettings
from adjudicator.core.exceptions import APIClientError, PolicyDataMissingError
from adjudicator.schemas.enums import ClaimType, SettlementDecision
from adjudicator.schemas.settlement import SettlementInput
from adjudicator.services.settlement.settlement_calculator import SettlementCalculator
from adjudicator.services.settlement.summary_generator import SettlementSummaryGenerator


@pytest.fixture
def calculator():
    return SettlementCalculator(PipelineSettings())


def settle(calculator, claim, policy, documents=None, **scores):
    values = {"validation_score": 0.85, "fraud_score": 0.1, "anomaly_score": 0.95}
    previous = scores.pop("previous_approved_total", Decimal("0"))
    values.update(scores)
    return calculator.calculate(
        SettlementInput(
            claim=claim,
            policy=policy,
            previous_approved_total=previous,
            documents=documents or [],
            **values,
        )
    )


class TestSettlementCalculator:
    def test_clean_claim_is_approved_with_co_payment(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy)

        assert outcome.decision is SettlementDecision.AUTO_APPROVE
        assert outcome.total_billed == Decimal("5000.00")
        assert outcome.remaining_coverage == Decimal("20000.00")
        assert outcome.max_payable == Decimal("5000.00")
        assert outcome.co_payment_amount == Decimal("500.00")
        assert outcome.insurer_payment == Decimal("4500.00")

    def test_high_fraud_is_rejected(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy, fraud_score=0.8)

        assert outcome.decision is SettlementDecision.REJECT
        assert "high risk band" in outcome.decision_reason

    def test_remaining_coverage_caps_payment(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy, previous_approved_total=Decimal("18000"))

        assert outcome.remaining_coverage == Decimal("2000.00")
        assert outcome.max_payable == Decimal("2000.00")
        assert outcome.co_payment_amount == Decimal("200.00")
        assert outcome.insurer_payment == Decimal("1800.00")

    def test_exhausted_coverage_never_goes_negative(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy, previous_approved_total=Decimal("21000"))

        assert outcome.remaining_coverage == Decimal("-1000.00")
        assert outcome.max_payable == Decimal("0.00")
        assert outcome.insurer_payment == Decimal("0.00")

    def test_deductible_is_subtracted(self, calculator, claim, policy):
        with_deductible = policy.model_copy(update={"deductible_amount": Decimal("750")})

        outcome = settle(calculator, claim, with_deductible)

        assert outcome.insurer_payment == Decimal("3750.00")

    def test_deductible_larger_than_payable(self, calculator, claim, policy):
        with_deductible = policy.model_copy(update={"deductible_amount": Decimal("9000")})

        outcome = settle(calculator, claim, with_deductible)

        assert outcome.insurer_payment == Decimal("0.00")

    def test_dental_sub_cover_limit(self, calculator, claim, policy):
        dental = claim.model_copy(update={"claim_type": ClaimType.DENTAL})
        covered = policy.model_copy(update={"special_covers": {"dental": {"limit": 3000}}})

        outcome = settle(calculator, dental, covered)

        assert outcome.policy_limit == Decimal("3000.00")
        assert outcome.max_payable == Decimal("3000.00")

    def test_missing_policy_raises(self, calculator, claim):
        with pytest.raises(PolicyDataMissingError):
            settle(calculator, claim, None)

    def test_split_items(self, calculator, claim, policy, bill_factory, resolve):
        bill = bill_factory()
        bill.entities.medicines.append(bill.entities.medicines[0].model_copy(
            update={"name": "Vitamin C", "generic_name": None, "is_vitamin": True}
        ))
        bill.entities.billing.items.append(
            bill.entities.billing.items[0].model_copy(update={"description": "Vitamin C", "amount": 800})
        )

        outcome = settle(calculator, claim, policy, documents=[resolve(bill)])

        assert [item.description for item in outcome.covered_items] == ["Amoxil", "Consultation"]
        assert len(outcome.non_covered_items) == 1
        assert outcome.non_covered_items[0].description == "Vitamin C"
        assert outcome.non_covered_items[0].amount == Decimal("800.00")
        assert outcome.non_covered_items[0].reason == "Vitamin or supplement"


class TestDecisionPrecedence:
    @pytest.mark.parametrize(
        "validation, fraud, anomaly, expected",
        [
            (0.85, 0.1, 0.95, SettlementDecision.AUTO_APPROVE),
            (0.8, 0.29, 0.9, SettlementDecision.AUTO_APPROVE),
            (0.85, 0.3, 0.95, SettlementDecision.MANUAL_REVIEW),
            (0.85, 0.1, 0.85, SettlementDecision.MANUAL_REVIEW),
            (0.85, 0.7, 0.95, SettlementDecision.REJECT),
            (0.45, 0.1, 0.95, SettlementDecision.REJECT),
            (0.6, 0.5, 0.5, SettlementDecision.MANUAL_REVIEW),
        ],
    )
    def test_decide(self, calculator, validation, fraud, anomaly, expected):
        decision, reason = calculator.decide(validation, fraud, anomaly)

        assert decision is expected
        assert reason

    def test_out_of_range_scores_are_clamped(self, calculator):
        decision, _ = calculator.decide(1.4, -0.2, 3.0)

        assert decision is SettlementDecision.AUTO_APPROVE


class TestSettlementSummaryGenerator:
    @pytest.mark.asyncio
    async def test_uses_llm_summary(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy)
        client = MagicMock()
        client.generate_content = AsyncMock(return_value=json.dumps({"summary": "  Approved for LKR 4500.00. "}))

        summary = await SettlementSummaryGenerator(client).generate(claim, outcome)

        assert summary == "Approved for LKR 4500.00."
        figures = json.loads(client.generate_content.call_args.kwargs["contents"])
        assert figures["insurer_payment"] == "4500.00"
        assert figures["decision"] == "auto_approve"

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_template(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy)
        client = MagicMock()
        client.generate_content = AsyncMock(side_effect=APIClientError("quota exceeded"))

        summary = await SettlementSummaryGenerator(client).generate(claim, outcome)

        assert summary == SettlementSummaryGenerator.template_summary(claim, outcome)

    @pytest.mark.asyncio
    async def test_unexpected_client_error_falls_back_to_template(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy)
        client = MagicMock()
        client.generate_content = AsyncMock(side_effect=KeyError("choices"))

        summary = await SettlementSummaryGenerator(client).generate(claim, outcome)

        assert summary == SettlementSummaryGenerator.template_summary(claim, outcome)

    @pytest.mark.asyncio
    async def test_unusable_reply_falls_back_to_template(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy)
        client = MagicMock()
        client.generate_content = AsyncMock(return_value='{"text": "missing summary key"}')

        summary = await SettlementSummaryGenerator(client).generate(claim, outcome)

        assert summary.startswith("Claim CLM-2025-0001")

    @pytest.mark.asyncio
    async def test_without_client_uses_template(self, calculator, claim, policy):
        outcome = settle(calculator, claim, policy)

        summary = await SettlementSummaryGenerator().generate(claim, outcome)

        assert "was automatically approved" in summary
        assert "insurer payment is LKR 4500.00" in summary

    def test_template_lists_non_covered_items(self, calculator, claim, policy, bill_factory, resolve):
        bill = bill_factory()
        bill.entities.medicines[0].is_cosmetic = True

        outcome = settle(calculator, claim, policy, documents=[resolve(bill)], fraud_score=0.8)
        summary = SettlementSummaryGenerator.template_summary(claim, outcome)

        assert "was rejected" in summary
        assert "Non-covered items: Amoxil." in summary
