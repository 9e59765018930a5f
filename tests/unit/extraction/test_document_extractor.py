"""Unit tests for DocumentExtractor."""

import json
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from adjudicator.core.config import PipelineSettings
from adjudicator.core.exceptions import APIClientError
from adjudicator.core.llm_client import OpenRouterClient
from adjudicator.schemas.enums import ClaimType, DocumentLanguage, DocumentType, IntakeStatus
from adjudicator.schemas.extraction import DocumentRef
from adjudicator.services.extraction.document_extractor import DocumentExtractor
from adjudicator.services.intake.state_machine import DocumentIntakeStateMachine


@pytest.fixture
def document():
    return DocumentRef(
        id=uuid4(),
        claim_id=uuid4(),
        file_path="claims/abc/prescription.jpg",
        file_name="prescription.jpg",
        file_type="image/jpeg",
    )


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.generate_content = AsyncMock()
    return client


@pytest.fixture
def prescription_reply():
    return json.dumps({
        "document_type": "Prescription",
        "ocr_confidence": "94",
        "language_detected": "english",
        "is_handwritten": True,
        "keywords_found": ["Rx", "Dr."],
        "entities": {
            "patient": {"name": "Nimal Perera", "age": "42 years"},
            "doctor": {"name": "Dr. Silva", "registration_number": "SLMC 12345"},
            "clinic": None,
            "diagnosis": "Acute bronchitis",
            "medicines": [
                {"name": "Amoxil", "generic_name": "amoxicillin", "quantity": "21 capsules"},
            ],
            "billing": None,
        },
        "status": "accepted",
    })


class TestDocumentExtractor:
    @pytest.mark.asyncio
    async def test_parses_reply_and_normalizes_fields(self, mock_client, document, prescription_reply):
        mock_client.generate_content.return_value = prescription_reply
        extractor = DocumentExtractor(mock_client, PipelineSettings())

        output = await extractor.extract(document, ClaimType.OPD)

        assert output.document_type is DocumentType.PRESCRIPTION
        assert output.confidence == 94.0
        assert output.language is DocumentLanguage.ENGLISH
        assert output.entities.patient.age == 42
        assert output.entities.medicines[0].quantity == 21.0
        assert output.entities.billing.items == []
        assert not output.is_fallback

    @pytest.mark.asyncio
    async def test_sends_file_reference_when_base_url_configured(self, mock_client, document, prescription_reply):
        mock_client.generate_content.return_value = prescription_reply
        settings = PipelineSettings(document_base_url="https://files.example.com/")
        extractor = DocumentExtractor(mock_client, settings)

        await extractor.extract(document, ClaimType.OPD)

        contents = mock_client.generate_content.call_args.kwargs["contents"]
        assert contents[1] == {
            "file_uri": "https://files.example.com/claims/abc/prescription.jpg",
            "mime_type": "image/jpeg",
        }

    @pytest.mark.asyncio
    async def test_provider_failure_returns_fallback(self, mock_client, document):
        mock_client.generate_content.side_effect = APIClientError("upstream unavailable")
        extractor = DocumentExtractor(mock_client, PipelineSettings(fallback_confidence=50.0))

        output = await extractor.extract(document, ClaimType.OPD)

        assert output.is_fallback
        assert output.manual_verification_required
        assert output.confidence == 50.0
        assert output.document_type is DocumentType.OTHER
        assert "upstream unavailable" in output.issues[0]

    @pytest.mark.asyncio
    async def test_unparseable_reply_returns_fallback(self, mock_client, document):
        mock_client.generate_content.return_value = "I could not read this document."
        extractor = DocumentExtractor(mock_client, PipelineSettings())

        output = await extractor.extract(document, ClaimType.OPD)

        assert output.is_fallback

    @pytest.mark.asyncio
    async def test_unknown_document_type_maps_to_other(self, mock_client, document):
        mock_client.generate_content.return_value = '{"document_type": "x-ray", "confidence": 180}'
        extractor = DocumentExtractor(mock_client, PipelineSettings())

        output = await extractor.extract(document, ClaimType.OPD)

        assert output.document_type is DocumentType.OTHER
        assert output.confidence == 100.0
        assert not output.is_fallback

    @pytest.mark.asyncio
    async def test_unexpected_client_error_returns_fallback(self, mock_client, document):
        mock_client.generate_content.side_effect = RuntimeError("connection pool closed")
        extractor = DocumentExtractor(mock_client, PipelineSettings())

        output = await extractor.extract(document, ClaimType.OPD)

        assert output.is_fallback
        assert output.manual_verification_required
        assert "connection pool closed" in output.issues[0]

    @pytest.mark.asyncio
    async def test_malformed_openrouter_choice_returns_fallback(self, document):
        client = OpenRouterClient(api_key="key", model="google/gemini-2.5-flash", base_url="https://openrouter.test/chat")
        extractor = DocumentExtractor(client, PipelineSettings(fallback_confidence=50.0))
        reply = {"choices": [{"message": None}]}

        with patch.object(client.client, "call_api", new_callable=AsyncMock, return_value=reply):
            output = await extractor.extract(document, ClaimType.OPD)

        assert output.is_fallback
        assert output.confidence == 50.0

    @pytest.mark.asyncio
    async def test_non_finite_confidence_is_zeroed(self, mock_client, document):
        mock_client.generate_content.return_value = '{"document_type": "prescription", "confidence": NaN}'
        extractor = DocumentExtractor(mock_client, PipelineSettings())

        output = await extractor.extract(document, ClaimType.OPD)

        assert output.confidence == 0.0
        assert DocumentIntakeStateMachine(PipelineSettings()).transition(output.confidence, 0).status is IntakeStatus.REJECTED
