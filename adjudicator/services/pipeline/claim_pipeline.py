"""Claim pipeline orchestrator.

Drives one claim through intake, validation, fraud detection and
settlement. Each stage's writes and the matching ``processing_status``
advance are committed together; a recoverable stage failure is replaced
by the stage's conservative default, a fatal one rolls the stage back and
propagates.
"""

from decimal import Decimal
from typing import Callable, Optional, Tuple, Type, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.core.base_stage import BaseStage, StageResult, StageStatus
from adjudicator.core.config import PipelineSettings, settings as app_settings
from adjudicator.core.exceptions import (
    AppError,
    ClaimNotFoundError,
    DatabaseError,
    PipelineError,
    PolicyDataMissingError,
    StageExecutionError,
    StatusTransitionError,
)
from adjudicator.core.llm_client import LLMClient
from adjudicator.repositories.claim_repository import ClaimRepository
from adjudicator.schemas.auth import CurrentUser
from adjudicator.schemas.claims import ClaimSnapshot
from adjudicator.schemas.enums import ProcessingStatus, SettlementDecision
from adjudicator.schemas.extraction import DocumentRef
from adjudicator.schemas.pipeline import PipelineRunResult
from adjudicator.services.base_service import BaseService
from adjudicator.services.extraction.document_extractor import DocumentExtractor
from adjudicator.services.fraud.fraud_detector import FraudDetector
from adjudicator.services.intake.state_machine import DocumentIntakeStateMachine
from adjudicator.services.pipeline.context import ClaimRun
from adjudicator.services.pipeline.stages import FraudStage, IntakeStage, SettlementStage, ValidationStage
from adjudicator.services.settlement.settlement_calculator import SettlementCalculator
from adjudicator.services.settlement.summary_generator import SettlementSummaryGenerator
from adjudicator.services.validation.claim_validator import ClaimValidator
from adjudicator.utils.logging import get_logger
from adjudicator.utils.money import ZERO

LOGGER = get_logger(__name__)

FATAL_ERRORS: Tuple[Type[AppError], ...] = (DatabaseError, PolicyDataMissingError, PipelineError)

TERMINAL_STATUS = {
    SettlementDecision.AUTO_APPROVE: ProcessingStatus.AUTO_APPROVED,
    SettlementDecision.REJECT: ProcessingStatus.AUTO_REJECTED,
    SettlementDecision.MANUAL_REVIEW: ProcessingStatus.MANUAL_REVIEW,
}


class ClaimPipeline(BaseService):
    """Runs the adjudication pipeline for a single claim.

    Attributes:
        session: Async session shared sequentially by every stage of the run
        settings: Pipeline thresholds
        stages: Stage instances keyed by name
    """

    def __init__(
        self,
        session: AsyncSession,
        llm_client: LLMClient,
        settings: Optional[PipelineSettings] = None,
        summary_client: Optional[LLMClient] = None,
    ):
        super().__init__()
        self.session = session
        self.settings = settings or app_settings.pipeline
        self.claims = ClaimRepository(session)

        self.intake = IntakeStage(
            session,
            DocumentExtractor(llm_client, self.settings),
            DocumentIntakeStateMachine(self.settings),
            self.settings,
        )
        self.validation = ValidationStage(session, ClaimValidator(self.settings))
        self.fraud = FraudStage(session, FraudDetector(self.settings), self.settings)
        self.settlement = SettlementStage(
            session,
            SettlementCalculator(self.settings),
            SettlementSummaryGenerator(summary_client or llm_client),
        )
        self.stages = {
            stage.name: stage for stage in (self.intake, self.validation, self.fraud, self.settlement)
        }
        self._last_status: Optional[ProcessingStatus] = None

    def validate(self, claim_id: Union[str, UUID], caller: Optional[CurrentUser] = None):
        self.parse_claim_id(claim_id)

    async def run(
        self, claim_id: Union[str, UUID], caller: Optional[CurrentUser] = None
    ) -> PipelineRunResult:
        """Process a claim end to end.

        Args:
            claim_id: Claim UUID
            caller: Authenticated caller, or None for system-initiated runs

        Returns:
            PipelineRunResult describing the outcome or the reupload gate

        Raises:
            ClaimNotFoundError: If the claim does not exist
            ClaimAccessDeniedError: If the caller may not process the claim
            DatabaseError, PolicyDataMissingError, PipelineError: On fatal stage failures
        """
        claim_uuid = self.parse_claim_id(claim_id)
        claim_row = await self.claims.get_with_documents(claim_uuid)
        if claim_row is None:
            raise ClaimNotFoundError(f"Claim {claim_uuid} not found")
        self.ensure_access(claim_row.user_id, caller)

        run = ClaimRun(
            claim=ClaimSnapshot.model_validate(claim_row),
            documents=[DocumentRef.model_validate(doc) for doc in claim_row.documents],
            performed_by=caller.id if caller else None,
        )
        self._last_status = None

        LOGGER.info(
            "Starting claim pipeline",
            extra={
                "claim_id": str(claim_uuid),
                "reference_number": run.claim.reference_number,
                "documents": len(run.documents),
            },
        )

        intake = await self._run_stage(
            self.intake,
            run,
            ProcessingStatus.OCR_PROCESSING,
            lambda result: self._intake_status(result, run),
        )
        if intake.status is StageStatus.BLOCKED:
            LOGGER.info(
                "Claim waiting on document reupload",
                extra={"claim_id": str(claim_uuid), "documents": [str(n.document_id) for n in run.reupload]},
            )
            return self._result(
                run,
                intake,
                success=False,
                status=ProcessingStatus.REUPLOAD_REQUIRED,
                message=f"{len(run.reupload)} document(s) need to be uploaded again",
            )

        await self._run_stage(
            self.validation, run,
            ProcessingStatus.VALIDATION_IN_PROGRESS,
            lambda _: ProcessingStatus.VALIDATION_COMPLETE,
        )
        await self._run_stage(
            self.fraud, run,
            ProcessingStatus.FRAUD_CHECK_IN_PROGRESS,
            lambda _: ProcessingStatus.FRAUD_CHECK_COMPLETE,
        )
        settlement = await self._run_stage(
            self.settlement, run,
            ProcessingStatus.SETTLEMENT_PENDING,
            lambda result: TERMINAL_STATUS[SettlementDecision(result.data["decision"])],
        )

        decision = SettlementDecision(settlement.data["decision"])
        LOGGER.info(
            "Claim pipeline completed",
            extra={
                "claim_id": str(claim_uuid),
                "decision": decision.value,
                "degraded_stages": run.degraded_stages,
            },
        )
        return self._result(
            run,
            intake,
            success=True,
            status=TERMINAL_STATUS[decision],
            message=f"Claim processed: {decision.value}",
        )

    async def _run_stage(
        self,
        stage: BaseStage,
        run: ClaimRun,
        start_status: ProcessingStatus,
        complete_status: Callable[[StageResult], ProcessingStatus],
    ) -> StageResult:
        claim_id = run.claim_id
        try:
            await self._check_dependencies(stage, claim_id)
            await self._advance(claim_id, start_status)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Could not start stage {stage.name}", original_error=e)

        try:
            result = await stage.execute(claim_id, run)
            await self._advance(claim_id, complete_status(result))
            await self.session.commit()
            return result

        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Stage {stage.name} failed on the database, rolled back",
                exc_info=True,
                extra={"claim_id": str(claim_id), "stage": stage.name},
            )
            raise DatabaseError(f"Stage {stage.name} failed: {e}", original_error=e)

        except FATAL_ERRORS:
            await self.session.rollback()
            LOGGER.error(
                f"Stage {stage.name} failed, rolled back",
                exc_info=True,
                extra={"claim_id": str(claim_id), "stage": stage.name},
            )
            raise

        except AppError as e:
            await self.session.rollback()
            LOGGER.warning(
                f"Stage {stage.name} degraded: {e.message}",
                extra={"claim_id": str(claim_id), "stage": stage.name, "error_type": type(e).__name__},
            )
            return await self._degrade(stage, run, e.message, e, complete_status)

        except Exception as e:
            await self.session.rollback()
            LOGGER.error(
                f"Stage {stage.name} raised unexpectedly, rolled back: {e}",
                exc_info=True,
                extra={"claim_id": str(claim_id), "stage": stage.name, "error_type": type(e).__name__},
            )
            return await self._degrade(stage, run, f"{type(e).__name__}: {e}", e, complete_status)

    async def _degrade(
        self,
        stage: BaseStage,
        run: ClaimRun,
        reason: str,
        error: Exception,
        complete_status: Callable[[StageResult], ProcessingStatus],
    ) -> StageResult:
        """Record the stage's conservative default so later stages can run."""
        try:
            result = await stage.apply_default(run.claim_id, run, reason)
        except NotImplementedError:
            raise StageExecutionError(f"Stage {stage.name} failed: {reason}", original_error=error)
        run.degraded_stages.append(stage.name)
        await self._advance(run.claim_id, complete_status(result))
        await self.session.commit()
        return result

    async def _check_dependencies(self, stage: BaseStage, claim_id: UUID) -> None:
        for dependency in stage.dependencies:
            if not await self.stages[dependency].is_complete(claim_id):
                raise StageExecutionError(
                    f"Stage {stage.name} cannot start before {dependency} completes"
                )

    async def _advance(self, claim_id: UUID, status: ProcessingStatus) -> None:
        """Move the claim forward; never backwards within a run."""
        if self._last_status is not None and status.rank < self._last_status.rank:
            raise StatusTransitionError(
                f"Cannot move claim from {self._last_status.value} back to {status.value}"
            )
        await self.claims.set_processing_status(claim_id, status.value)
        self._last_status = status

    @staticmethod
    def _intake_status(result: StageResult, run: ClaimRun) -> ProcessingStatus:
        if result.status is StageStatus.BLOCKED:
            return ProcessingStatus.REUPLOAD_REQUIRED
        if run.documents and not run.accepted:
            return ProcessingStatus.OCR_FAILED
        return ProcessingStatus.OCR_COMPLETE

    @staticmethod
    def _payable(run: ClaimRun) -> Optional[Decimal]:
        """Amount actually released to the claimant; a rejection pays nothing."""
        if run.settlement is None:
            return None
        if run.settlement.decision is SettlementDecision.REJECT:
            return ZERO
        return run.settlement.insurer_payment

    @staticmethod
    def _result(
        run: ClaimRun,
        intake: StageResult,
        success: bool,
        status: ProcessingStatus,
        message: str,
    ) -> PipelineRunResult:
        return PipelineRunResult(
            success=success,
            status=status,
            claim_id=run.claim_id,
            reference_number=run.claim.reference_number,
            message=message,
            documents_processed=intake.data.get("documents_processed", 0),
            documents_accepted=intake.data.get("documents_accepted", 0),
            documents_rejected=intake.data.get("documents_rejected", 0),
            documents_needing_reupload=run.reupload,
            decision=run.settlement.decision if run.settlement else (
                SettlementDecision.MANUAL_REVIEW if success else None
            ),
            insurer_payment=ClaimPipeline._payable(run),
            validation_score=run.validation.overall_score if run.validation else None,
            fraud_score=run.fraud.fraud_score if run.fraud else None,
            anomaly_score=run.fraud.anomaly_score if run.fraud else None,
            degraded_stages=run.degraded_stages,
        )
