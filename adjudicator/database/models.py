"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adjudicator.core.database import Base

MONEY = Numeric(12, 2)


class Policy(Base):
    """Insurance policy with OPD coverage terms."""

    __tablename__ = "policies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    policy_number: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    holder_name: Mapped[str] = mapped_column(String, nullable=False)
    policy_type: Mapped[str] = mapped_column(String, nullable=False, default="individual")
    opd_limit: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    hospitalization_limit: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    co_payment_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=0
    )
    deductible_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    warranty_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    exclusions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    special_covers: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    members: Mapped[list["PolicyMember"]] = relationship(
        "PolicyMember", back_populates="policy", cascade="all, delete-orphan"
    )


class PolicyMember(Base):
    """Person covered by a policy."""

    __tablename__ = "policy_members"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False
    )
    member_name: Mapped[str] = mapped_column(String, nullable=False)
    nic: Mapped[str | None] = mapped_column(String, nullable=True)
    relationship_type: Mapped[str] = mapped_column(
        String, nullable=False, default="self"
    )  # self | spouse | child | parent
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    policy: Mapped["Policy"] = relationship("Policy", back_populates="members")


class Claim(Base):
    """OPD claim submitted against a policy member."""

    __tablename__ = "claims"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    reference_number: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    policy_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("policies.id"), nullable=True, index=True
    )
    member_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("policy_members.id"), nullable=True
    )
    claim_type: Mapped[str] = mapped_column(
        String, nullable=False, default="opd"
    )  # opd | dental | spectacles
    claim_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    diagnosis: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_of_treatment: Mapped[date | None] = mapped_column(Date, nullable=True)
    hospital_name: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    doctor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    doctor_registration_number: Mapped[str | None] = mapped_column(String, nullable=True)
    processing_status: Mapped[str] = mapped_column(
        String, nullable=False, default="uploaded"
    )  # see ProcessingStatus
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | approved | rejected | manual-review
    approved_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    settled_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    risk_level: Mapped[str | None] = mapped_column(String, nullable=True)
    fraud_status: Mapped[str | None] = mapped_column(String, nullable=True)
    fraud_flags: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    documents: Mapped[list["ClaimDocument"]] = relationship(
        "ClaimDocument", back_populates="claim", cascade="all, delete-orphan"
    )
    history: Mapped[list["ClaimHistory"]] = relationship(
        "ClaimHistory", back_populates="claim", cascade="all, delete-orphan"
    )


class ClaimDocument(Base):
    """File uploaded in support of a claim."""

    __tablename__ = "claim_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    claim_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_type: Mapped[str | None] = mapped_column(String, nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    claim: Mapped["Claim"] = relationship("Claim", back_populates="documents")


class ExtractionResult(Base):
    """Latest extraction and intake outcome for one document."""

    __tablename__ = "claim_extraction_results"
    __table_args__ = (UniqueConstraint("document_id", name="uq_extraction_document"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    claim_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claim_documents.id", ondelete="CASCADE"), nullable=False
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False, default="other")
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    language: Mapped[str | None] = mapped_column(String, nullable=True)
    is_handwritten: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    keywords_found: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    entities: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String, nullable=False
    )  # accepted | reupload_required | rejected
    reupload_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manual_verification_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    issues: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    is_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ValidationResult(Base):
    """Latest cross-document validation outcome for a claim."""

    __tablename__ = "claim_validations"
    __table_args__ = (UniqueConstraint("claim_id", name="uq_validation_claim"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    claim_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False
    )
    detected_claim_type: Mapped[str] = mapped_column(String, nullable=False, default="opd")
    prescription_diagnosis_score: Mapped[float] = mapped_column(Float, nullable=False)
    prescription_bill_score: Mapped[float] = mapped_column(Float, nullable=False)
    diagnosis_treatment_score: Mapped[float] = mapped_column(Float, nullable=False)
    billing_policy_score: Mapped[float] = mapped_column(Float, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    checklist: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    missing_documents: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    exclusions_found: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    mismatched_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    policy_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    member_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    previous_claims_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    remaining_coverage: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    max_payable: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    co_payment_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    workflow_action: Mapped[str] = mapped_column(String, nullable=False)
    issues: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    validated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class FraudResult(Base):
    """Latest fraud and anomaly assessment for a claim."""

    __tablename__ = "fraud_detection_results"
    __table_args__ = (UniqueConstraint("claim_id", name="uq_fraud_claim"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    claim_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False
    )
    duplicate_hash_match: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    duplicate_content_match: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    duplicate_claim_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    anomaly_score: Mapped[float] = mapped_column(Float, nullable=False)
    fraud_score: Mapped[float] = mapped_column(Float, nullable=False)
    amount_deviation_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    z_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    provider_claim_frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    historical_mean: Mapped[float | None] = mapped_column(Float, nullable=True)
    historical_std: Mapped[float | None] = mapped_column(Float, nullable=True)
    baseline_sample_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    alerts: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    risk_level: Mapped[str] = mapped_column(String, nullable=False)
    fraud_status: Mapped[str] = mapped_column(String, nullable=False)
    workflow_action: Mapped[str] = mapped_column(String, nullable=False)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    detected_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SettlementResult(Base):
    """Latest settlement calculation and decision for a claim."""

    __tablename__ = "settlement_calculations"
    __table_args__ = (UniqueConstraint("claim_id", name="uq_settlement_claim"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    claim_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False
    )
    total_billed: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    covered_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    non_covered_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    policy_limit: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    previous_claims_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    remaining_coverage: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    max_payable: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    co_payment_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    co_payment_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    deductible_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    insurer_payment: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    decision: Mapped[str] = mapped_column(
        String, nullable=False
    )  # auto_approve | reject | manual_review
    decision_reason: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ClaimHistory(Base):
    """Append-only audit trail of claim actions."""

    __tablename__ = "claim_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    claim_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String, nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String, nullable=True)
    new_status: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    claim: Mapped["Claim"] = relationship("Claim", back_populates="history")


class MedicineCatalogEntry(Base):
    """Brand and generic medicine reference data."""

    __tablename__ = "medicine_database"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    brand_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    generic_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    is_vitamin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_cosmetic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_covered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DiseaseMedicineMapping(Base):
    """Medicines recommended or excluded for a disease."""

    __tablename__ = "disease_medicine_mapping"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    disease_name: Mapped[str] = mapped_column(String, nullable=False)
    disease_keywords: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    recommended_medicines: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    excluded_medicines: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)


class UserRole(Base):
    """Role assignment for an authenticated user."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)  # admin | branch | customer
