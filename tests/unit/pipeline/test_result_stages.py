"""Unit tests for the validation, fraud and settlement stages' persistence."""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from adjudicator.core.base_stage import StageStatus
from adjudicator.core.config import PipelineSettings
from adjudicator.core.llm_client import OpenRouterClient
from adjudicator.database.models import ValidationResult
from adjudicator.repositories.result_repository import ValidationResultRepository
from adjudicator.schemas.enums import FraudStatus, RiskLevel, WorkflowAction
from adjudicator.schemas.fraud import FraudOutcome
from adjudicator.services.fraud.fraud_detector import FraudDetector
from adjudicator.services.pipeline.context import ClaimRun
from adjudicator.services.pipeline.stages import FraudStage, SettlementStage, ValidationStage
from adjudicator.services.settlement.settlement_calculator import SettlementCalculator
from adjudicator.services.settlement.summary_generator import SettlementSummaryGenerator
from adjudicator.services.validation.claim_validator import ClaimValidator


def fraud_outcome(fraud_score, anomaly_score, risk_level, fraud_status):
    return FraudOutcome(
        anomaly_score=anomaly_score,
        fraud_score=fraud_score,
        risk_level=risk_level,
        fraud_status=fraud_status,
        workflow_action=WorkflowAction.AUTO_APPROVE,
    )


@pytest.fixture
def run(claim, clean_documents):
    run = ClaimRun(claim=claim, documents=[], accepted=list(clean_documents))
    run.validation = SimpleNamespace(overall_score=0.92)
    return run


@pytest.fixture
def settlement_stage(policy):
    stage = SettlementStage(MagicMock(), SettlementCalculator(PipelineSettings()), SettlementSummaryGenerator())
    stage.policies = MagicMock(get_by_id=AsyncMock(return_value=policy))
    stage.claims = MagicMock(
        get_previous_approved_total=AsyncMock(return_value=Decimal("0")),
        apply_fields=AsyncMock(),
    )
    stage.results = MagicMock(upsert_for_claim=AsyncMock())
    stage.history = MagicMock(append=AsyncMock())
    return stage


class TestSettlementStage:
    @pytest.mark.asyncio
    async def test_approval_updates_claim_amounts(self, settlement_stage, run, claim):
        run.fraud = fraud_outcome(0.1, 0.95, RiskLevel.LOW, FraudStatus.CLEAN)

        result = await settlement_stage.execute(claim.id, run)

        assert result.status is StageStatus.COMPLETED
        assert result.data["decision"] == "auto_approve"
        fields = settlement_stage.claims.apply_fields.call_args.kwargs
        assert fields["status"] == "approved"
        assert fields["approved_amount"] == Decimal("4500.00")
        assert fields["settled_amount"] == Decimal("4500.00")
        assert fields["risk_score"] == 5
        assert fields["risk_level"] == "low"
        assert fields["fraud_flags"] == 1
        assert "was automatically approved" in fields["ai_summary"]
        stored = settlement_stage.results.upsert_for_claim.call_args.kwargs
        assert stored["insurer_payment"] == Decimal("4500.00")
        history = settlement_stage.history.append.call_args.kwargs
        assert history["action"] == "AI approved"
        assert history["previous_status"] == "pending"
        assert run.settlement.summary == fields["ai_summary"]

    @pytest.mark.asyncio
    async def test_rejection_zeroes_approved_amount(self, settlement_stage, run, claim):
        run.fraud = fraud_outcome(0.8, 0.95, RiskLevel.HIGH, FraudStatus.FLAGGED)

        await settlement_stage.execute(claim.id, run)

        fields = settlement_stage.claims.apply_fields.call_args.kwargs
        assert fields["status"] == "rejected"
        assert fields["approved_amount"] == Decimal("0.00")
        assert fields["fraud_status"] == "flagged"

    @pytest.mark.asyncio
    async def test_default_refers_claim_for_review(self, settlement_stage, run, claim):
        run.fraud = None

        result = await settlement_stage.apply_default(claim.id, run, "summary service down")

        assert result.status is StageStatus.DEGRADED
        fields = settlement_stage.claims.apply_fields.call_args.kwargs
        assert fields["status"] == "manual-review"
        assert "approved_amount" not in fields
        settlement_stage.results.upsert_for_claim.assert_not_awaited()


class TestDegradedDefaults:
    @pytest.mark.asyncio
    async def test_validation_default_is_neutral(self, run, claim):
        stage = ValidationStage(MagicMock(), ClaimValidator(PipelineSettings()))
        stage.results = MagicMock(upsert_for_claim=AsyncMock())
        stage.history = MagicMock(append=AsyncMock())

        result = await stage.apply_default(claim.id, run, "reference data unavailable")

        assert result.status is StageStatus.DEGRADED
        assert run.validation.overall_score == 0.5
        assert run.validation.workflow_action is WorkflowAction.MANUAL_REVIEW
        stored = stage.results.upsert_for_claim.call_args.kwargs
        assert stored["degraded"] is True
        assert stored["workflow_action"] == "manual_review"

    @pytest.mark.asyncio
    async def test_fraud_default_is_conservative(self, run, claim):
        settings = PipelineSettings()
        stage = FraudStage(MagicMock(), FraudDetector(settings), settings)
        stage.results = MagicMock(upsert_for_claim=AsyncMock())
        stage.history = MagicMock(append=AsyncMock())

        result = await stage.apply_default(claim.id, run, "baseline query timed out")

        assert result.status is StageStatus.DEGRADED
        assert run.fraud.anomaly_score == 0.8
        assert run.fraud.fraud_score == 0.3
        assert run.fraud.risk_level is RiskLevel.LOW
        assert run.fraud.workflow_action is WorkflowAction.MANUAL_REVIEW
        assert stage.history.append.call_args.kwargs["action"] == "fraud_check_completed"


class TestSettlementSummaryFailure:
    @pytest.mark.asyncio
    async def test_malformed_summary_reply_still_records_decision(self, settlement_stage, run, claim):
        client = OpenRouterClient(api_key="key", model="google/gemini-2.5-flash", base_url="https://openrouter.test/chat")
        settlement_stage.summaries = SettlementSummaryGenerator(client)
        run.fraud = fraud_outcome(0.1, 0.95, RiskLevel.LOW, FraudStatus.CLEAN)

        with patch.object(client.client, "call_api", new_callable=AsyncMock, return_value={"choices": [{"message": None}]}):
            result = await settlement_stage.execute(claim.id, run)

        assert result.status is StageStatus.COMPLETED
        settlement_stage.results.upsert_for_claim.assert_awaited_once()
        fields = settlement_stage.claims.apply_fields.call_args.kwargs
        assert fields["status"] == "approved"
        assert fields["ai_summary"] == SettlementSummaryGenerator.template_summary(claim, run.settlement)


def tracking_session():
    """Session double whose lookups return the first row added to it."""
    added = []

    async def execute(*args, **kwargs):
        result = MagicMock()
        result.scalar_one_or_none.return_value = added[0] if added else None
        return result

    session = MagicMock()
    session.add.side_effect = added.append
    session.execute = AsyncMock(side_effect=execute)
    session.flush = AsyncMock()
    return session, added


class TestValidationRerun:
    @pytest.mark.asyncio
    async def test_rerun_on_same_inputs_keeps_one_result(self, claim, policy, member, clean_documents):
        session, added = tracking_session()
        stage = ValidationStage(session, ClaimValidator(PipelineSettings()))
        stage.results = ValidationResultRepository(session)
        stage.policies = MagicMock(get_by_id=AsyncMock(return_value=policy))
        stage.members = MagicMock(get_for_policy=AsyncMock(return_value=member))
        stage.claims = MagicMock(get_previous_approved_total=AsyncMock(return_value=Decimal("0")))
        stage.catalog = MagicMock(get_all=AsyncMock(return_value=[]))
        stage.mappings = MagicMock(get_all=AsyncMock(return_value=[]))
        stage.history = MagicMock(append=AsyncMock())

        first_run = ClaimRun(claim=claim, documents=[], accepted=list(clean_documents))
        first = await stage.execute(claim.id, first_run)
        second_run = ClaimRun(claim=claim, documents=[], accepted=list(clean_documents))
        second = await stage.execute(claim.id, second_run)

        assert first.data["overall_score"] == second.data["overall_score"]
        assert first_run.validation.overall_score == second_run.validation.overall_score
        assert len(added) == 1
        assert isinstance(added[0], ValidationResult)
        assert added[0].claim_id == claim.id
        assert added[0].overall_score == second.data["overall_score"]
