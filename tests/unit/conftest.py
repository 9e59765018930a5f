"""Shared claim and document fixtures for the stage unit tests."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from adjudicator.schemas.claims import ClaimSnapshot, MemberSnapshot, PolicySnapshot, ResolvedExtraction
from adjudicator.schemas.enums import DocumentLanguage, DocumentType
from adjudicator.schemas.extraction import ExtractionOutput


def make_prescription(**overrides) -> ExtractionOutput:
    payload = {
        "document_type": DocumentType.PRESCRIPTION,
        "confidence": 95.0,
        "language": DocumentLanguage.ENGLISH,
        "keywords_found": ["Rx", "Consultant"],
        "entities": {
            "patient": {"name": "Nimal Perera", "age": 42},
            "doctor": {"name": "Dr. K. Silva", "registration_number": "SLMC 12345"},
            "diagnosis": "Acute bronchitis",
            "treatment_date": "2025-03-01",
            "medicines": [
                {"name": "Amoxil", "generic_name": "amoxicillin", "quantity": 21},
            ],
        },
    }
    payload.update(overrides)
    return ExtractionOutput.model_validate(payload)


def make_bill(**overrides) -> ExtractionOutput:
    payload = {
        "document_type": DocumentType.MEDICAL_BILL,
        "confidence": 93.0,
        "language": DocumentLanguage.ENGLISH,
        "keywords_found": ["Invoice", "Total Amount"],
        "entities": {
            "patient": {"name": "Nimal Perera"},
            "clinic": {"name": "Asiri Medical Centre"},
            "bill_date": "2025-03-01",
            "medicines": [
                {"name": "Amoxil", "generic_name": "amoxicillin", "quantity": 21},
            ],
            "billing": {
                "items": [
                    {"description": "Amoxil", "category": "medicine", "quantity": 21, "amount": 3500},
                    {"description": "Consultation", "category": "consultation", "amount": 1500},
                ],
                "total_amount": 5000,
            },
        },
    }
    payload.update(overrides)
    return ExtractionOutput.model_validate(payload)


def resolved(output: ExtractionOutput, content_hash=None) -> ResolvedExtraction:
    return ResolvedExtraction(document_id=uuid4(), output=output, content_hash=content_hash)


@pytest.fixture
def claim():
    return ClaimSnapshot(
        id=uuid4(),
        reference_number="CLM-2025-0001",
        user_id=uuid4(),
        policy_id=uuid4(),
        member_id=uuid4(),
        claim_amount=Decimal("5000.00"),
        diagnosis="Acute bronchitis",
        date_of_treatment=date(2025, 3, 1),
        hospital_name="Asiri Medical Centre",
        doctor_name="Dr. K. Silva",
        status="pending",
        processing_status="uploaded",
        created_at=datetime(2025, 3, 5, 9, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def policy():
    return PolicySnapshot(
        id=uuid4(),
        policy_number="POL-7781",
        holder_name="Nimal Perera",
        opd_limit=Decimal("20000.00"),
        co_payment_percentage=Decimal("10"),
        deductible_amount=Decimal("0"),
        warranty_period_days=30,
        exclusions=["cosmetic surgery"],
    )


@pytest.fixture
def member():
    return MemberSnapshot(id=uuid4(), member_name="Nimal Perera", relationship_type="self")


@pytest.fixture
def clean_documents():
    return [resolved(make_prescription()), resolved(make_bill())]


@pytest.fixture
def prescription_factory():
    return make_prescription


@pytest.fixture
def bill_factory():
    return make_bill


@pytest.fixture
def resolve():
    return resolved
