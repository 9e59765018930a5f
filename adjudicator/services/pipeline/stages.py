"""Claim pipeline stages.

Each stage reads what it needs through repositories, runs its service,
and writes its result rows on the shared session without committing. The
orchestrator owns commits and the claim's ``processing_status``.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from adjudicator.core.base_stage import BaseStage, StageResult, StageStatus
from adjudicator.core.config import PipelineSettings
from adjudicator.database.models import ExtractionResult
from adjudicator.repositories.claim_repository import ClaimRepository
from adjudicator.repositories.extraction_repository import ExtractionResultRepository
from adjudicator.repositories.history_repository import ClaimHistoryRepository
from adjudicator.repositories.policy_repository import PolicyMemberRepository, PolicyRepository
from adjudicator.repositories.reference_repository import DiseaseMappingRepository, MedicineCatalogRepository
from adjudicator.repositories.result_repository import (
    FraudResultRepository,
    SettlementResultRepository,
    ValidationResultRepository,
)
from adjudicator.schemas.claims import MemberSnapshot, PolicySnapshot, ResolvedExtraction
from adjudicator.schemas.enums import (
    ClaimStatus,
    ClaimType,
    IntakeStatus,
    SettlementDecision,
    WorkflowAction,
)
from adjudicator.schemas.extraction import DocumentRef, ExtractionOutput
from adjudicator.schemas.fraud import FraudInput, FraudOutcome, HistoricalClaim
from adjudicator.schemas.intake import IntakeDecision
from adjudicator.schemas.pipeline import ReuploadNotice
from adjudicator.schemas.settlement import SettlementInput, SettlementOutcome
from adjudicator.schemas.validation import (
    DiseaseMapping,
    MedicineReference,
    ValidationInput,
    ValidationOutcome,
)
from adjudicator.services.extraction.document_extractor import DocumentExtractor
from adjudicator.services.fraud.fraud_detector import FraudDetector
from adjudicator.services.intake.state_machine import DocumentIntakeStateMachine
from adjudicator.services.pipeline.context import ClaimRun
from adjudicator.services.settlement.settlement_calculator import SettlementCalculator
from adjudicator.services.settlement.summary_generator import SettlementSummaryGenerator
from adjudicator.services.validation.claim_validator import ClaimValidator
from adjudicator.utils.logging import get_logger
from adjudicator.utils.money import ZERO, to_money

LOGGER = get_logger(__name__)

REFERENCE_ROW_LIMIT = 5000

TERMINAL_INTAKE = (IntakeStatus.ACCEPTED.value, IntakeStatus.REJECTED.value)

DECISION_STATUS = {
    SettlementDecision.AUTO_APPROVE: ClaimStatus.APPROVED,
    SettlementDecision.REJECT: ClaimStatus.REJECTED,
    SettlementDecision.MANUAL_REVIEW: ClaimStatus.MANUAL_REVIEW,
}


def output_from_row(row: ExtractionResult) -> ExtractionOutput:
    """Rebuild an extraction output from its persisted row."""
    return ExtractionOutput(
        document_type=row.document_type,
        confidence=row.confidence,
        language=row.language,
        is_handwritten=row.is_handwritten,
        keywords_found=row.keywords_found or [],
        entities=row.entities or {},
        issues=row.issues or [],
        manual_verification_required=row.manual_verification_required,
        is_fallback=row.is_fallback,
    )


class IntakeStage(BaseStage):
    """Extracts unresolved documents and applies the intake state machine.

    Documents already accepted or rejected in an earlier run are reused;
    new documents and documents awaiting reupload are extracted again.
    """

    def __init__(
        self,
        session: AsyncSession,
        extractor: DocumentExtractor,
        state_machine: DocumentIntakeStateMachine,
        settings: PipelineSettings,
    ):
        self.claims = ClaimRepository(session)
        self.extractions = ExtractionResultRepository(session)
        self.extractor = extractor
        self.state_machine = state_machine
        self.settings = settings

    @property
    def name(self) -> str:
        return "intake"

    @property
    def dependencies(self) -> list[str]:
        return []

    async def is_complete(self, claim_id: UUID) -> bool:
        """Every document of the claim has a terminal intake state."""
        claim = await self.claims.get_with_documents(claim_id)
        if claim is None:
            return False
        rows = await self.extractions.get_map_for_claim(claim_id)
        return all(
            doc.id in rows and rows[doc.id].status in TERMINAL_INTAKE
            for doc in claim.documents
        )

    async def execute(self, claim_id: UUID, run: ClaimRun) -> StageResult:
        existing = await self.extractions.get_map_for_claim(claim_id)

        records: List[Tuple[DocumentRef, ExtractionOutput, IntakeDecision]] = []
        pending: List[Tuple[DocumentRef, int]] = []
        for document in run.documents:
            row = existing.get(document.id)
            if row is not None and row.status in TERMINAL_INTAKE:
                decision = IntakeDecision(
                    status=IntakeStatus(row.status),
                    confidence=row.confidence,
                    reupload_attempts=row.reupload_attempts,
                    manual_verification_required=row.manual_verification_required,
                )
                records.append((document, output_from_row(row), decision))
            else:
                pending.append((document, row.reupload_attempts if row is not None else 0))

        outputs = await self._extract_all([doc for doc, _ in pending], run.claim.claim_type)

        # Writes stay sequential: the session is not safe for concurrent use
        for (document, attempts), output in zip(pending, outputs):
            decision = self.state_machine.transition(
                output.confidence, attempts, output.manual_verification_required
            )
            output = output.model_copy(
                update={"manual_verification_required": decision.manual_verification_required}
            )
            await self.extractions.upsert_for_document(
                document.id,
                claim_id=claim_id,
                document_type=output.document_type.value,
                confidence=output.confidence,
                language=output.language.value,
                is_handwritten=output.is_handwritten,
                keywords_found=output.keywords_found,
                entities=output.entities.model_dump(mode="json"),
                status=decision.status.persisted.value,
                reupload_attempts=decision.reupload_attempts,
                manual_verification_required=decision.manual_verification_required,
                issues=output.issues,
                is_fallback=output.is_fallback,
            )
            records.append((document, output, decision))

        resolution = self.state_machine.resolve_batch(
            (document.id, decision) for document, _, decision in records
        )

        run.accepted = []
        run.rejected_types = []
        run.reupload = []
        for document, output, decision in records:
            if decision.is_accepted:
                run.accepted.append(
                    ResolvedExtraction(
                        document_id=document.id,
                        output=output,
                        content_hash=document.content_hash,
                    )
                )
            elif decision.status is IntakeStatus.REJECTED:
                run.rejected_types.append(output.document_type)
            else:
                run.reupload.append(
                    ReuploadNotice(
                        document_id=document.id,
                        file_name=document.file_name,
                        confidence=decision.confidence,
                        reupload_attempts=decision.reupload_attempts,
                        issues=output.issues,
                    )
                )
        run.rejected_count = len(resolution.rejected_ids)

        LOGGER.info(
            "Intake stage finished",
            extra={
                "claim_id": str(claim_id),
                "extracted": len(pending),
                "reused": len(records) - len(pending),
                "accepted": len(resolution.accepted_ids),
                "rejected": len(resolution.rejected_ids),
                "reupload": len(resolution.reupload_ids),
            },
        )

        return StageResult(
            status=StageStatus.BLOCKED if resolution.blocked else StageStatus.COMPLETED,
            data={
                "documents_processed": len(pending),
                "documents_accepted": len(resolution.accepted_ids),
                "documents_rejected": len(resolution.rejected_ids),
                "documents_needing_reupload": len(resolution.reupload_ids),
                "blocked": resolution.blocked,
            },
        )

    async def _extract_all(
        self, documents: List[DocumentRef], claim_type: ClaimType
    ) -> List[ExtractionOutput]:
        semaphore = asyncio.Semaphore(max(1, self.settings.extraction_concurrency))

        async def _extract(document: DocumentRef) -> ExtractionOutput:
            async with semaphore:
                return await self.extractor.extract(document, claim_type)

        return list(await asyncio.gather(*(_extract(doc) for doc in documents)))


class ValidationStage(BaseStage):
    """Cross-document validation against policy terms."""

    def __init__(self, session: AsyncSession, validator: ClaimValidator):
        self.claims = ClaimRepository(session)
        self.policies = PolicyRepository(session)
        self.members = PolicyMemberRepository(session)
        self.catalog = MedicineCatalogRepository(session)
        self.mappings = DiseaseMappingRepository(session)
        self.results = ValidationResultRepository(session)
        self.history = ClaimHistoryRepository(session)
        self.validator = validator

    @property
    def name(self) -> str:
        return "validation"

    @property
    def dependencies(self) -> list[str]:
        return ["intake"]

    async def is_complete(self, claim_id: UUID) -> bool:
        return await self.results.get_for_claim(claim_id) is not None

    async def execute(self, claim_id: UUID, run: ClaimRun) -> StageResult:
        claim = run.claim
        policy = member = None
        if claim.policy_id:
            policy_row = await self.policies.get_by_id(claim.policy_id)
            policy = PolicySnapshot.model_validate(policy_row) if policy_row else None
            run.previous_approved_total = await self.claims.get_previous_approved_total(
                claim.policy_id, claim_id
            )
            if claim.member_id:
                member_row = await self.members.get_for_policy(claim.member_id, claim.policy_id)
                member = MemberSnapshot.model_validate(member_row) if member_row else None

        catalog = await self.catalog.get_all(limit=REFERENCE_ROW_LIMIT)
        mappings = await self.mappings.get_all(limit=REFERENCE_ROW_LIMIT)
        submitted = claim.created_at or datetime.now(timezone.utc)

        outcome = self.validator.validate(
            ValidationInput(
                claim=claim,
                policy=policy,
                member=member,
                documents=run.accepted,
                rejected_document_types=run.rejected_types,
                previous_approved_total=run.previous_approved_total,
                medicine_catalog=[MedicineReference.model_validate(row) for row in catalog],
                disease_mappings=[DiseaseMapping.model_validate(row) for row in mappings],
                submission_date=submitted.date(),
            )
        )
        await self._persist(claim_id, outcome, run)
        return StageResult(
            status=StageStatus.COMPLETED,
            data={"overall_score": outcome.overall_score, "workflow_action": outcome.workflow_action.value},
        )

    async def apply_default(self, claim_id: UUID, run: ClaimRun, reason: str) -> StageResult:
        outcome = ValidationOutcome(
            detected_claim_type=run.claim.claim_type,
            prescription_diagnosis_score=0.5,
            prescription_bill_score=0.5,
            diagnosis_treatment_score=0.5,
            billing_policy_score=0.5,
            overall_score=0.5,
            checks=[],
            previous_claims_total=to_money(run.previous_approved_total),
            remaining_coverage=ZERO,
            max_payable=ZERO,
            co_payment_amount=ZERO,
            workflow_action=WorkflowAction.MANUAL_REVIEW,
            issues=[f"Validation unavailable: {reason}"],
            degraded=True,
        )
        await self._persist(claim_id, outcome, run)
        return StageResult(status=StageStatus.DEGRADED, data={"overall_score": 0.5}, error=reason)

    async def _persist(self, claim_id: UUID, outcome: ValidationOutcome, run: ClaimRun) -> None:
        await self.results.upsert_for_claim(
            claim_id,
            detected_claim_type=outcome.detected_claim_type.value,
            prescription_diagnosis_score=outcome.prescription_diagnosis_score,
            prescription_bill_score=outcome.prescription_bill_score,
            diagnosis_treatment_score=outcome.diagnosis_treatment_score,
            billing_policy_score=outcome.billing_policy_score,
            overall_score=outcome.overall_score,
            checklist={check.name: check.model_dump() for check in outcome.checks},
            missing_documents=outcome.missing_documents,
            exclusions_found=outcome.exclusions_found,
            mismatched_items=outcome.mismatched_items,
            policy_verified=outcome.policy_verified,
            member_verified=outcome.member_verified,
            previous_claims_total=outcome.previous_claims_total,
            remaining_coverage=outcome.remaining_coverage,
            max_payable=outcome.max_payable,
            co_payment_amount=outcome.co_payment_amount,
            workflow_action=outcome.workflow_action.value,
            issues=outcome.issues,
            degraded=outcome.degraded,
        )
        await self.history.append(
            claim_id,
            action="validation_completed",
            notes=f"Overall score {outcome.overall_score:.2f}, recommended {outcome.workflow_action.value}",
            performed_by=run.performed_by,
        )
        run.validation = outcome


class FraudStage(BaseStage):
    """Duplicate, statistical and content-level fraud screening."""

    def __init__(self, session: AsyncSession, detector: FraudDetector, settings: PipelineSettings):
        self.claims = ClaimRepository(session)
        self.results = FraudResultRepository(session)
        self.history = ClaimHistoryRepository(session)
        self.detector = detector
        self.settings = settings

    @property
    def name(self) -> str:
        return "fraud"

    @property
    def dependencies(self) -> list[str]:
        return ["validation"]

    async def is_complete(self, claim_id: UUID) -> bool:
        return await self.results.get_for_claim(claim_id) is not None

    async def execute(self, claim_id: UUID, run: ClaimRun) -> StageResult:
        claim = run.claim
        now = datetime.now(timezone.utc)

        recent = []
        if claim.policy_id:
            recent = await self.claims.get_recent_policy_claims(
                claim.policy_id, now - timedelta(days=self.settings.duplicate_lookback_days), claim_id
            )
        provider_count = 0
        if claim.hospital_name:
            provider_count = await self.claims.count_provider_claims(
                claim.hospital_name, now - timedelta(days=self.settings.provider_lookback_days), claim_id
            )
        baseline = await self.claims.get_baseline_amounts(
            claim_id, limit=self.settings.baseline_sample_size, claim_type=ClaimType.OPD.value
        )
        hash_matches = await self.claims.find_claims_sharing_hashes(
            (doc.content_hash for doc in run.documents), claim_id
        )

        outcome = self.detector.detect(
            FraudInput(
                claim=claim,
                documents=run.accepted,
                recent_policy_claims=[HistoricalClaim.model_validate(row) for row in recent],
                provider_claim_count=provider_count,
                baseline_amounts=baseline,
                hash_matched_claim_ids=hash_matches,
                validation_score=run.validation_score,
            )
        )
        await self._persist(claim_id, outcome, run)
        return StageResult(
            status=StageStatus.COMPLETED,
            data={"fraud_score": outcome.fraud_score, "anomaly_score": outcome.anomaly_score},
        )

    async def apply_default(self, claim_id: UUID, run: ClaimRun, reason: str) -> StageResult:
        risk_level, fraud_status = self.detector.band(0.3)
        outcome = FraudOutcome(
            anomaly_score=0.8,
            fraud_score=0.3,
            alerts=[f"Fraud detection unavailable: {reason}"],
            risk_level=risk_level,
            fraud_status=fraud_status,
            workflow_action=WorkflowAction.MANUAL_REVIEW,
            degraded=True,
        )
        await self._persist(claim_id, outcome, run)
        return StageResult(
            status=StageStatus.DEGRADED,
            data={"fraud_score": outcome.fraud_score, "anomaly_score": outcome.anomaly_score},
            error=reason,
        )

    async def _persist(self, claim_id: UUID, outcome: FraudOutcome, run: ClaimRun) -> None:
        await self.results.upsert_for_claim(
            claim_id,
            duplicate_hash_match=outcome.duplicate_hash_match,
            duplicate_content_match=outcome.duplicate_content_match,
            similarity_score=outcome.similarity_score,
            duplicate_claim_ids=[str(other) for other in outcome.duplicate_claim_ids],
            anomaly_score=outcome.anomaly_score,
            fraud_score=outcome.fraud_score,
            amount_deviation_percentage=outcome.amount_deviation_percentage,
            z_score=outcome.z_score,
            provider_claim_frequency=outcome.provider_claim_frequency,
            historical_mean=outcome.historical_mean,
            historical_std=outcome.historical_std,
            baseline_sample_size=outcome.baseline_sample_size,
            alerts=outcome.alerts,
            risk_level=outcome.risk_level.value,
            fraud_status=outcome.fraud_status.value,
            workflow_action=outcome.workflow_action.value,
            degraded=outcome.degraded,
        )
        await self.history.append(
            claim_id,
            action="fraud_check_completed",
            notes=f"Fraud score {outcome.fraud_score:.2f}, risk {outcome.risk_level.value}",
            performed_by=run.performed_by,
        )
        run.fraud = outcome


class SettlementStage(BaseStage):
    """Settlement arithmetic, final decision and the claim's outward status."""

    def __init__(
        self,
        session: AsyncSession,
        calculator: SettlementCalculator,
        summaries: SettlementSummaryGenerator,
    ):
        self.claims = ClaimRepository(session)
        self.policies = PolicyRepository(session)
        self.results = SettlementResultRepository(session)
        self.history = ClaimHistoryRepository(session)
        self.calculator = calculator
        self.summaries = summaries

    @property
    def name(self) -> str:
        return "settlement"

    @property
    def dependencies(self) -> list[str]:
        return ["fraud"]

    async def is_complete(self, claim_id: UUID) -> bool:
        return await self.results.get_for_claim(claim_id) is not None

    async def execute(self, claim_id: UUID, run: ClaimRun) -> StageResult:
        claim = run.claim
        policy = None
        previous = Decimal("0")
        if claim.policy_id:
            policy_row = await self.policies.get_by_id(claim.policy_id)
            policy = PolicySnapshot.model_validate(policy_row) if policy_row else None
            previous = await self.claims.get_previous_approved_total(claim.policy_id, claim_id)

        outcome = self.calculator.calculate(
            SettlementInput(
                claim=claim,
                policy=policy,
                previous_approved_total=previous,
                documents=run.accepted,
                validation_score=run.validation_score,
                fraud_score=run.fraud.fraud_score,
                anomaly_score=run.fraud.anomaly_score,
            )
        )
        summary = await self.summaries.generate(claim, outcome)
        outcome = outcome.model_copy(update={"summary": summary})

        await self.results.upsert_for_claim(
            claim_id,
            total_billed=outcome.total_billed,
            covered_items=[item.model_dump(mode="json") for item in outcome.covered_items],
            non_covered_items=[item.model_dump(mode="json") for item in outcome.non_covered_items],
            policy_limit=outcome.policy_limit,
            previous_claims_total=outcome.previous_claims_total,
            remaining_coverage=outcome.remaining_coverage,
            max_payable=outcome.max_payable,
            co_payment_percentage=outcome.co_payment_percentage,
            co_payment_amount=outcome.co_payment_amount,
            deductible_amount=outcome.deductible_amount,
            insurer_payment=outcome.insurer_payment,
            decision=outcome.decision.value,
            decision_reason=outcome.decision_reason,
            summary=summary,
        )
        await self._apply_decision(claim_id, run, outcome.decision, outcome.insurer_payment, summary, outcome.decision_reason)
        run.settlement = outcome

        return StageResult(
            status=StageStatus.COMPLETED,
            data={"decision": outcome.decision.value, "insurer_payment": str(outcome.insurer_payment)},
        )

    async def apply_default(self, claim_id: UUID, run: ClaimRun, reason: str) -> StageResult:
        note = f"Settlement unavailable, referred for manual review: {reason}"
        await self._apply_decision(claim_id, run, SettlementDecision.MANUAL_REVIEW, None, note, note)
        return StageResult(
            status=StageStatus.DEGRADED,
            data={"decision": SettlementDecision.MANUAL_REVIEW.value},
            error=reason,
        )

    async def _apply_decision(
        self,
        claim_id: UUID,
        run: ClaimRun,
        decision: SettlementDecision,
        insurer_payment,
        summary: str,
        reason: str,
    ) -> None:
        """Write the outward status, amounts and risk fields in one UPDATE."""
        status = DECISION_STATUS[decision]
        values: Dict[str, object] = {"status": status.value, "ai_summary": summary}
        if decision is SettlementDecision.AUTO_APPROVE:
            values["approved_amount"] = insurer_payment
            values["settled_amount"] = insurer_payment
        elif decision is SettlementDecision.REJECT:
            values["approved_amount"] = ZERO
            values["settled_amount"] = ZERO

        if run.fraud is not None:
            values["risk_score"] = round((1.0 - run.fraud.anomaly_score) * 100)
            values["risk_level"] = run.fraud.risk_level.value
            values["fraud_status"] = run.fraud.fraud_status.value
            values["fraud_flags"] = round(run.fraud.fraud_score * 10)

        await self.claims.apply_fields(claim_id, processed_at=datetime.now(timezone.utc), **values)
        await self.history.append(
            claim_id,
            action=f"AI {status.value}",
            previous_status=run.claim.status,
            new_status=status.value,
            notes=reason,
            performed_by=run.performed_by,
        )
