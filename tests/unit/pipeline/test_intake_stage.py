"""Unit tests for the intake pipeline stage with mocked persistence."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from adjudicator.core.base_stage import StageStatus
from adjudicator.core.config import PipelineSettings
from adjudicator.schemas.enums import DocumentType
from adjudicator.schemas.extraction import DocumentRef, ExtractionOutput
from adjudicator.services.intake.state_machine import DocumentIntakeStateMachine
from adjudicator.services.pipeline.context import ClaimRun
from adjudicator.services.pipeline.stages import IntakeStage


@pytest.fixture
def documents(claim):
    return [
        DocumentRef(id=uuid4(), claim_id=claim.id, file_path=f"claims/{name}", file_name=name)
        for name in ("prescription.jpg", "bill.jpg")
    ]


@pytest.fixture
def extractor():
    return MagicMock(extract=AsyncMock())


@pytest.fixture
def stage(extractor):
    settings = PipelineSettings()
    stage = IntakeStage(MagicMock(), extractor, DocumentIntakeStateMachine(settings), settings)
    stage.extractions = MagicMock()
    stage.extractions.get_map_for_claim = AsyncMock(return_value={})
    stage.extractions.upsert_for_document = AsyncMock()
    return stage


def output(document_type, confidence):
    return ExtractionOutput(document_type=document_type, confidence=confidence)


def persisted_rows(stage):
    """Rows as the repository would hold them after the last run."""
    return {
        call.args[0]: SimpleNamespace(**call.kwargs)
        for call in stage.extractions.upsert_for_document.call_args_list
    }


class TestIntakeStage:
    @pytest.mark.asyncio
    async def test_all_documents_accepted(self, stage, extractor, claim, documents):
        extractor.extract.side_effect = [
            output(DocumentType.PRESCRIPTION, 96), output(DocumentType.MEDICAL_BILL, 91),
        ]
        run = ClaimRun(claim=claim, documents=documents)

        result = await stage.execute(claim.id, run)

        assert result.status is StageStatus.COMPLETED
        assert result.data["documents_processed"] == 2
        assert result.data["documents_accepted"] == 2
        assert [doc.document_id for doc in run.accepted] == [doc.id for doc in documents]
        assert stage.extractions.upsert_for_document.await_count == 2

    @pytest.mark.asyncio
    async def test_medium_confidence_blocks_claim(self, stage, extractor, claim, documents):
        extractor.extract.side_effect = [
            output(DocumentType.PRESCRIPTION, 96), output(DocumentType.MEDICAL_BILL, 65),
        ]
        run = ClaimRun(claim=claim, documents=documents)

        result = await stage.execute(claim.id, run)

        assert result.status is StageStatus.BLOCKED
        assert [notice.file_name for notice in run.reupload] == ["bill.jpg"]
        assert run.reupload[0].reupload_attempts == 1
        rows = persisted_rows(stage)
        assert rows[documents[1].id].status == "reupload_required"

    @pytest.mark.asyncio
    async def test_low_confidence_document_is_rejected_without_blocking(
        self, stage, extractor, claim, documents
    ):
        extractor.extract.side_effect = [
            output(DocumentType.PRESCRIPTION, 96), output(DocumentType.LAB_REPORT, 20),
        ]
        run = ClaimRun(claim=claim, documents=documents)

        result = await stage.execute(claim.id, run)

        assert result.status is StageStatus.COMPLETED
        assert result.data["documents_rejected"] == 1
        assert run.rejected_types == [DocumentType.LAB_REPORT]
        assert run.rejected_count == 1

    @pytest.mark.asyncio
    async def test_third_reupload_is_accepted_for_manual_verification(self, stage, extractor, claim, documents):
        bill = documents[1]
        run = ClaimRun(claim=claim, documents=[bill])
        statuses = []

        for confidence in (60, 65, 70):
            extractor.extract.side_effect = [output(DocumentType.MEDICAL_BILL, confidence)]
            stage.extractions.get_map_for_claim.return_value = persisted_rows(stage)
            stage.extractions.upsert_for_document.reset_mock()

            result = await stage.execute(claim.id, run)
            statuses.append(result.status)

        assert statuses == [StageStatus.BLOCKED, StageStatus.BLOCKED, StageStatus.COMPLETED]
        row = persisted_rows(stage)[bill.id]
        assert row.status == "accepted"
        assert row.reupload_attempts == 3
        assert row.manual_verification_required
        assert run.accepted[0].output.manual_verification_required
        assert run.reupload == []

    @pytest.mark.asyncio
    async def test_terminal_rows_are_reused(self, stage, extractor, claim, documents):
        prescription, bill = documents
        stage.extractions.get_map_for_claim.return_value = {
            prescription.id: SimpleNamespace(
                status="accepted",
                document_type="prescription",
                confidence=94.0,
                language="english",
                is_handwritten=False,
                keywords_found=["Rx"],
                entities={"diagnosis": "Acute bronchitis"},
                issues=[],
                reupload_attempts=0,
                manual_verification_required=False,
                is_fallback=False,
            )
        }
        extractor.extract.side_effect = [output(DocumentType.MEDICAL_BILL, 92)]
        run = ClaimRun(claim=claim, documents=documents)

        result = await stage.execute(claim.id, run)

        assert result.data["documents_processed"] == 1
        assert extractor.extract.await_count == 1
        assert extractor.extract.call_args.args[0] == bill
        reused = next(doc for doc in run.accepted if doc.document_id == prescription.id)
        assert reused.output.entities.diagnosis == "Acute bronchitis"
