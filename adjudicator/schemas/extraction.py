"""Pydantic schemas for document extraction output."""

import math
import re
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from adjudicator.schemas.enums import DocumentLanguage, DocumentType

_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


def _leading_number(value: Any) -> Optional[float]:
    """Read a number from model output such as "2 tablets" or "1,250.00"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    match = _NUMBER_PATTERN.search(str(value).replace(",", ""))
    return float(match.group()) if match else None


class PatientInfo(BaseModel):
    name: Optional[str] = None
    age: Optional[int] = None
    sex: Optional[str] = None
    id_number: Optional[str] = None

    @field_validator("age", mode="before")
    @classmethod
    def _parse_age(cls, value: Any) -> Optional[int]:
        number = _leading_number(value)
        return int(number) if number is not None else None


class DoctorInfo(BaseModel):
    name: Optional[str] = None
    registration_number: Optional[str] = None


class ClinicInfo(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None


class MedicineEntry(BaseModel):
    """A medicine line read from a prescription or bill."""
    name: str
    generic_name: Optional[str] = None
    dosage: Optional[str] = None
    quantity: Optional[float] = None
    is_vitamin: bool = False
    is_cosmetic: bool = False
    is_covered: bool = True

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> Optional[float]:
        return _leading_number(value)


class BillingItem(BaseModel):
    description: str
    category: Optional[str] = Field(
        None, description="medicine | consultation | investigation | procedure | other"
    )
    quantity: Optional[float] = None
    amount: float = 0.0

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> Optional[float]:
        return _leading_number(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> float:
        return _leading_number(value) or 0.0


class BillingInfo(BaseModel):
    items: List[BillingItem] = Field(default_factory=list)
    total_amount: Optional[float] = None
    consultation_fee: Optional[float] = None

    @field_validator("total_amount", "consultation_fee", mode="before")
    @classmethod
    def _parse_amounts(cls, value: Any) -> Optional[float]:
        return _leading_number(value)

    @field_validator("items", mode="before")
    @classmethod
    def _wrap_plain_items(cls, value: Any) -> Any:
        # Some replies list bare descriptions instead of objects
        if isinstance(value, list):
            return [{"description": item} if isinstance(item, str) else item for item in value]
        return value or []


class ExtractedEntities(BaseModel):
    """Entity tree scoped to OPD semantics."""
    patient: PatientInfo = Field(default_factory=PatientInfo)
    doctor: DoctorInfo = Field(default_factory=DoctorInfo)
    clinic: ClinicInfo = Field(default_factory=ClinicInfo)
    diagnosis: Optional[str] = None
    bill_date: Optional[str] = None
    treatment_date: Optional[str] = None
    medicines: List[MedicineEntry] = Field(default_factory=list)
    billing: BillingInfo = Field(default_factory=BillingInfo)

    @field_validator("patient", "doctor", "clinic", "billing", mode="before")
    @classmethod
    def _empty_section(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("medicines", mode="before")
    @classmethod
    def _empty_medicines(cls, value: Any) -> Any:
        return [] if value is None else value


class DocumentRef(BaseModel):
    """Reference to an uploaded claim document handed to the extractor."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    claim_id: UUID
    file_path: str
    file_name: str
    file_type: Optional[str] = None
    content_hash: Optional[str] = None


class ExtractionOutput(BaseModel):
    """Classification and entities extracted from a single document."""

    document_type: DocumentType = DocumentType.OTHER
    confidence: float = Field(0.0, description="Extraction confidence on a 0-100 scale")
    language: DocumentLanguage = DocumentLanguage.UNKNOWN
    is_handwritten: bool = False
    keywords_found: List[str] = Field(default_factory=list)
    entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    issues: List[str] = Field(default_factory=list)
    manual_verification_required: bool = False
    is_fallback: bool = False

    @field_validator("document_type", mode="before")
    @classmethod
    def _coerce_document_type(cls, value: Any) -> Any:
        if isinstance(value, DocumentType):
            return value
        normalized = str(value or "").strip().lower().replace(" ", "_")
        try:
            return DocumentType(normalized)
        except ValueError:
            return DocumentType.OTHER

    @field_validator("language", mode="before")
    @classmethod
    def _coerce_language(cls, value: Any) -> Any:
        if isinstance(value, DocumentLanguage):
            return value
        try:
            return DocumentLanguage(str(value or "").strip().lower())
        except ValueError:
            return DocumentLanguage.UNKNOWN

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(number):
            return 0.0
        return max(0.0, min(100.0, number))
