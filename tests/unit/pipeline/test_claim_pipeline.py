"""Unit tests for the ClaimPipeline orchestrator with stubbed stages."""

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError

from adjudicator.core.base_stage import BaseStage, StageResult, StageStatus
from adjudicator.core.config import PipelineSettings
from adjudicator.core.exceptions import (
    APIClientError,
    ClaimAccessDeniedError,
    ClaimNotFoundError,
    DatabaseError,
    InvalidClaimIdError,
    PolicyDataMissingError,
    StageExecutionError,
    StatusTransitionError,
)
from adjudicator.schemas.auth import CurrentUser
from adjudicator.schemas.enums import ProcessingStatus, SettlementDecision, UserRoleType
from adjudicator.schemas.pipeline import ReuploadNotice
from adjudicator.schemas.settlement import SettlementInput
from adjudicator.services.pipeline.claim_pipeline import ClaimPipeline
from adjudicator.services.settlement.settlement_calculator import SettlementCalculator


class StubStage(BaseStage):
    """Stage double that records calls and replays a scripted outcome."""

    def __init__(self, name, dependencies=(), result=None, error=None, default=None, on_execute=None):
        self._name = name
        self._dependencies = list(dependencies)
        self.result = result or StageResult(status=StageStatus.COMPLETED, data={})
        self.error = error
        self.default = default
        self.on_execute = on_execute
        self.complete = True
        self.executed = 0
        self.defaulted = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def dependencies(self) -> list[str]:
        return self._dependencies

    async def is_complete(self, claim_id: UUID) -> bool:
        return self.complete

    async def execute(self, claim_id: UUID, run) -> StageResult:
        self.executed += 1
        if self.on_execute:
            self.on_execute(run)
        if self.error:
            raise self.error
        return self.result

    async def apply_default(self, claim_id: UUID, run, reason: str) -> StageResult:
        if self.default is None:
            raise NotImplementedError
        self.defaulted += 1
        return self.default


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def claim_row(owner_id):
    claim_id = uuid4()
    documents = [
        SimpleNamespace(
            id=uuid4(), claim_id=claim_id, file_path=f"claims/{name}", file_name=name,
            file_type="image/jpeg", content_hash=None,
        )
        for name in ("prescription.jpg", "bill.jpg")
    ]
    return SimpleNamespace(
        id=claim_id,
        reference_number="CLM-2025-0042",
        user_id=owner_id,
        policy_id=uuid4(),
        member_id=uuid4(),
        claim_type="opd",
        claim_amount=Decimal("5000.00"),
        diagnosis="Acute bronchitis",
        date_of_treatment=date(2025, 3, 1),
        hospital_name="Asiri Medical Centre",
        doctor_name="Dr. K. Silva",
        doctor_registration_number="SLMC 12345",
        status="pending",
        processing_status="uploaded",
        created_at=datetime(2025, 3, 5, tzinfo=timezone.utc),
        documents=documents,
    )


@pytest.fixture
def session():
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def pipeline(session, claim_row):
    pipeline = ClaimPipeline(session, MagicMock(), PipelineSettings())
    pipeline.claims = MagicMock()
    pipeline.claims.get_with_documents = AsyncMock(return_value=claim_row)
    pipeline.claims.set_processing_status = AsyncMock()
    return pipeline


@pytest.fixture
def owner(owner_id):
    return CurrentUser(id=owner_id, email="owner@example.com", role=UserRoleType.CUSTOMER)


def settlement_outcome(claim, policy, fraud_score=0.1):
    return SettlementCalculator(PipelineSettings()).calculate(
        SettlementInput(
            claim=claim, policy=policy, validation_score=0.85, fraud_score=fraud_score, anomaly_score=0.95
        )
    )


def install(pipeline, intake, validation, fraud, settlement):
    pipeline.intake = intake
    pipeline.validation = validation
    pipeline.fraud = fraud
    pipeline.settlement = settlement
    pipeline.stages = {stage.name: stage for stage in (intake, validation, fraud, settlement)}


def standard_stages(clean_documents, outcome):
    def accept(run):
        run.accepted = list(clean_documents)

    def settle(run):
        run.settlement = outcome

    intake = StubStage(
        "intake",
        result=StageResult(
            status=StageStatus.COMPLETED,
            data={"documents_processed": 2, "documents_accepted": 2, "documents_rejected": 0},
        ),
        on_execute=accept,
    )
    validation = StubStage(
        "validation", ["intake"],
        default=StageResult(status=StageStatus.DEGRADED, data={}),
    )
    fraud = StubStage(
        "fraud", ["validation"],
        default=StageResult(status=StageStatus.DEGRADED, data={}),
    )
    settlement = StubStage(
        "settlement", ["validation", "fraud"],
        result=StageResult(status=StageStatus.COMPLETED, data={"decision": outcome.decision.value}),
        on_execute=settle,
    )
    return intake, validation, fraud, settlement


def recorded_statuses(pipeline):
    return [call.args[1] for call in pipeline.claims.set_processing_status.call_args_list]


class TestClaimPipeline:
    @pytest.mark.asyncio
    async def test_full_run_advances_through_every_status(
        self, pipeline, session, claim_row, owner, claim, policy, clean_documents
    ):
        outcome = settlement_outcome(claim, policy)
        install(pipeline, *standard_stages(clean_documents, outcome))

        result = await pipeline.execute(str(claim_row.id), owner)

        assert result.success
        assert result.status is ProcessingStatus.AUTO_APPROVED
        assert result.decision is SettlementDecision.AUTO_APPROVE
        assert result.insurer_payment == Decimal("4500.00")
        assert result.documents_processed == 2
        assert result.degraded_stages == []
        assert recorded_statuses(pipeline) == [
            "ocr_processing", "ocr_complete",
            "validation_in_progress", "validation_complete",
            "fraud_check_in_progress", "fraud_check_complete",
            "settlement_pending", "auto_approved",
        ]
        assert session.commit.await_count == 8
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blocked_intake_stops_before_validation(
        self, pipeline, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        notice = ReuploadNotice(
            document_id=claim_row.documents[1].id, file_name="bill.jpg", confidence=65.0, reupload_attempts=1
        )

        def block(run):
            run.reupload = [notice]

        intake.result = StageResult(
            status=StageStatus.BLOCKED,
            data={"documents_processed": 2, "documents_accepted": 1, "documents_rejected": 0},
        )
        intake.on_execute = block
        install(pipeline, intake, validation, fraud, settlement)

        result = await pipeline.execute(claim_row.id, owner)

        assert not result.success
        assert result.status is ProcessingStatus.REUPLOAD_REQUIRED
        assert result.documents_needing_reupload == [notice]
        assert result.decision is None
        assert validation.executed == 0
        assert recorded_statuses(pipeline) == ["ocr_processing", "reupload_required"]

    @pytest.mark.asyncio
    async def test_no_accepted_documents_marks_ocr_failed(
        self, pipeline, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        intake.on_execute = None
        install(pipeline, intake, validation, fraud, settlement)

        await pipeline.execute(claim_row.id, owner)

        assert recorded_statuses(pipeline)[1] == "ocr_failed"

    @pytest.mark.asyncio
    async def test_recoverable_failure_uses_stage_default(
        self, pipeline, session, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        fraud.error = APIClientError("baseline service unavailable")
        install(pipeline, intake, validation, fraud, settlement)

        result = await pipeline.execute(claim_row.id, owner)

        assert result.success
        assert result.degraded_stages == ["fraud"]
        assert fraud.defaulted == 1
        assert settlement.executed == 1
        assert session.rollback.await_count == 1
        assert "fraud_check_complete" in recorded_statuses(pipeline)

    @pytest.mark.asyncio
    async def test_unexpected_stage_error_uses_stage_default(
        self, pipeline, session, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        fraud.error = KeyError("choices")
        install(pipeline, intake, validation, fraud, settlement)

        result = await pipeline.execute(claim_row.id, owner)

        assert result.success
        assert result.degraded_stages == ["fraud"]
        assert fraud.defaulted == 1
        assert settlement.executed == 1
        assert session.rollback.await_count == 1
        statuses = recorded_statuses(pipeline)
        assert "fraud_check_complete" in statuses
        assert statuses[-1] != "fraud_check_in_progress"

    @pytest.mark.asyncio
    async def test_unexpected_error_without_default_stops_pipeline(
        self, pipeline, session, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        intake.error = ValueError("bad document row")
        install(pipeline, intake, validation, fraud, settlement)

        with pytest.raises(StageExecutionError):
            await pipeline.execute(claim_row.id, owner)

        session.rollback.assert_awaited_once()
        assert validation.executed == 0

    @pytest.mark.asyncio
    async def test_fatal_failure_rolls_back_and_propagates(
        self, pipeline, session, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        validation.error = PolicyDataMissingError("Policy not found")
        install(pipeline, intake, validation, fraud, settlement)

        with pytest.raises(PolicyDataMissingError):
            await pipeline.execute(claim_row.id, owner)

        session.rollback.assert_awaited_once()
        assert validation.defaulted == 0
        assert fraud.executed == 0
        assert recorded_statuses(pipeline)[-1] == "validation_in_progress"

    @pytest.mark.asyncio
    async def test_database_failure_becomes_database_error(
        self, pipeline, session, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        settlement.error = OperationalError("UPDATE claims", {}, Exception("connection reset"))
        install(pipeline, intake, validation, fraud, settlement)

        with pytest.raises(DatabaseError):
            await pipeline.execute(claim_row.id, owner)

        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stage_without_default_stops_pipeline(
        self, pipeline, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        intake.error = APIClientError("storage unavailable")
        install(pipeline, intake, validation, fraud, settlement)

        with pytest.raises(StageExecutionError):
            await pipeline.execute(claim_row.id, owner)

    @pytest.mark.asyncio
    async def test_incomplete_dependency_blocks_stage(
        self, pipeline, claim_row, owner, claim, policy, clean_documents
    ):
        intake, validation, fraud, settlement = standard_stages(clean_documents, settlement_outcome(claim, policy))
        validation.complete = False
        install(pipeline, intake, validation, fraud, settlement)

        with pytest.raises(StageExecutionError):
            await pipeline.execute(claim_row.id, owner)

        assert fraud.executed == 0

    @pytest.mark.asyncio
    async def test_rejected_claim_reports_no_payment(
        self, pipeline, claim_row, owner, claim, policy, clean_documents
    ):
        outcome = settlement_outcome(claim, policy, fraud_score=0.8)
        install(pipeline, *standard_stages(clean_documents, outcome))

        result = await pipeline.execute(claim_row.id, owner)

        assert outcome.insurer_payment == Decimal("4500.00")
        assert result.decision is SettlementDecision.REJECT
        assert result.status is ProcessingStatus.AUTO_REJECTED
        assert result.insurer_payment == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_missing_claim(self, pipeline, owner):
        pipeline.claims.get_with_documents.return_value = None

        with pytest.raises(ClaimNotFoundError):
            await pipeline.execute(uuid4(), owner)

    @pytest.mark.asyncio
    async def test_other_customer_is_denied(self, pipeline, claim_row):
        stranger = CurrentUser(id=uuid4(), role=UserRoleType.CUSTOMER)

        with pytest.raises(ClaimAccessDeniedError):
            await pipeline.execute(claim_row.id, stranger)

    @pytest.mark.asyncio
    async def test_branch_user_may_process_any_claim(
        self, pipeline, claim_row, claim, policy, clean_documents
    ):
        install(pipeline, *standard_stages(clean_documents, settlement_outcome(claim, policy)))
        branch = CurrentUser(id=uuid4(), role=UserRoleType.BRANCH)

        result = await pipeline.execute(claim_row.id, branch)

        assert result.success

    @pytest.mark.asyncio
    async def test_invalid_claim_id(self, pipeline, owner):
        with pytest.raises(InvalidClaimIdError):
            await pipeline.execute("not-a-uuid", owner)

        pipeline.claims.get_with_documents.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_never_moves_backwards(self, pipeline, claim_row):
        await pipeline._advance(claim_row.id, ProcessingStatus.FRAUD_CHECK_COMPLETE)

        with pytest.raises(StatusTransitionError):
            await pipeline._advance(claim_row.id, ProcessingStatus.VALIDATION_IN_PROGRESS)
