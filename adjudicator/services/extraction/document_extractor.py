"""Document extractor adapter.

Calls the configured LLM provider to classify a claim document and pull
out OPD entities. The adapter never raises for provider or parsing
failures; it returns a low-confidence fallback instead so that the intake
state machine routes the document to reupload or manual review.
"""

import mimetypes
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from adjudicator.core.config import PipelineSettings
from adjudicator.core.exceptions import AppError, ExtractionError
from adjudicator.core.llm_client import LLMClient
from adjudicator.prompts.system_prompts import (
    DOCUMENT_EXTRACTION_PROMPT,
    DOCUMENT_EXTRACTION_USER_TEMPLATE,
    OPD_DOCUMENT_KEYWORDS,
)
from adjudicator.schemas.enums import ClaimType, DocumentType
from adjudicator.schemas.extraction import DocumentRef, ExtractionOutput
from adjudicator.utils.json_parser import parse_json_object
from adjudicator.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentExtractor:
    """Extracts a classification and entity tree from one document.

    Attributes:
        client: LLM client exposing ``generate_content``
        settings: Pipeline thresholds (fallback confidence, document base URL)
    """

    def __init__(self, client: LLMClient, settings: PipelineSettings):
        self.client = client
        self.settings = settings
        self._system_prompt = DOCUMENT_EXTRACTION_PROMPT.format(
            keywords=", ".join(kw for kws in OPD_DOCUMENT_KEYWORDS.values() for kw in kws)
        )

    async def extract(self, document: DocumentRef, claim_type: ClaimType) -> ExtractionOutput:
        """Extract classification and entities from a document.

        Args:
            document: The document to analyse
            claim_type: Declared claim category

        Returns:
            ExtractionOutput, or a fallback output when the provider fails
        """
        LOGGER.info(
            "Extracting document",
            extra={"document_id": str(document.id), "claim_id": str(document.claim_id)},
        )
        try:
            raw = await self.client.generate_content(
                contents=self._build_contents(document, claim_type),
                system_instruction=self._system_prompt,
                generation_config={"temperature": 0.0, "response_mime_type": "application/json"},
            )
            return self._parse(raw)
        except (AppError, PydanticValidationError) as e:
            LOGGER.warning(
                f"Extraction failed, using fallback: {e}",
                extra={"document_id": str(document.id), "error_type": type(e).__name__},
            )
            return self.fallback(str(e))
        except Exception as e:
            LOGGER.error(
                f"Unexpected extraction error, using fallback: {e}",
                exc_info=True,
                extra={"document_id": str(document.id), "error_type": type(e).__name__},
            )
            return self.fallback(str(e))

    def fallback(self, reason: str) -> ExtractionOutput:
        """Build the conservative result used when extraction cannot complete."""
        return ExtractionOutput(
            document_type=DocumentType.OTHER,
            confidence=self.settings.fallback_confidence,
            manual_verification_required=True,
            is_fallback=True,
            issues=[f"Automatic extraction unavailable: {reason[:200]}"],
        )

    def _parse(self, raw: str) -> ExtractionOutput:
        payload = parse_json_object(raw)
        if payload is None:
            raise ExtractionError("Extractor reply was not valid JSON")

        # Tolerate the older field names some models still emit
        if "confidence" not in payload and "ocr_confidence" in payload:
            payload["confidence"] = payload.pop("ocr_confidence")
        if "language" not in payload and "language_detected" in payload:
            payload["language"] = payload.pop("language_detected")
        for transient in ("status", "manual_verification_required", "is_fallback"):
            payload.pop(transient, None)

        return ExtractionOutput.model_validate(payload)

    def _build_contents(self, document: DocumentRef, claim_type: ClaimType) -> List[Any]:
        contents: List[Any] = [
            DOCUMENT_EXTRACTION_USER_TEMPLATE.format(
                file_name=document.file_name,
                file_type=document.file_type or "unknown",
                claim_type=claim_type.value,
            )
        ]
        location = self._resolve_location(document.file_path)
        if location:
            contents.append(self._file_part(location, document))
        return contents

    def _resolve_location(self, file_path: str) -> Optional[str]:
        if file_path.startswith(("http://", "https://", "gs://")):
            return file_path
        if self.settings.document_base_url:
            return f"{self.settings.document_base_url.rstrip('/')}/{file_path.lstrip('/')}"
        return None

    @staticmethod
    def _file_part(location: str, document: DocumentRef) -> Dict[str, str]:
        mime_type = document.file_type if document.file_type and "/" in document.file_type else None
        if mime_type is None:
            mime_type = mimetypes.guess_type(document.file_name)[0] or "application/octet-stream"
        return {"file_uri": location, "mime_type": mime_type}
