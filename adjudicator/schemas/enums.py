"""Enumerations shared by the claim adjudication pipeline."""

from enum import Enum


class ClaimType(str, Enum):
    """Claim category a policy limit applies to."""
    OPD = "opd"
    DENTAL = "dental"
    SPECTACLES = "spectacles"


class ClaimStatus(str, Enum):
    """Outward decision status of a claim."""
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"
    MANUAL_REVIEW = "manual-review"


class ProcessingStatus(str, Enum):
    """Position of a claim within the adjudication pipeline."""
    UPLOADED = "uploaded"
    OCR_PROCESSING = "ocr_processing"
    OCR_COMPLETE = "ocr_complete"
    OCR_FAILED = "ocr_failed"
    REUPLOAD_REQUIRED = "reupload_required"
    VALIDATION_IN_PROGRESS = "validation_in_progress"
    VALIDATION_COMPLETE = "validation_complete"
    FRAUD_CHECK_IN_PROGRESS = "fraud_check_in_progress"
    FRAUD_CHECK_COMPLETE = "fraud_check_complete"
    SETTLEMENT_PENDING = "settlement_pending"
    MANUAL_REVIEW = "manual_review"
    AUTO_APPROVED = "auto_approved"
    AUTO_REJECTED = "auto_rejected"
    SETTLED = "settled"
    CLOSED = "closed"

    @property
    def rank(self) -> int:
        """Ordinal position used to keep a run moving forward."""
        return _PROCESSING_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (
            ProcessingStatus.MANUAL_REVIEW,
            ProcessingStatus.AUTO_APPROVED,
            ProcessingStatus.AUTO_REJECTED,
            ProcessingStatus.SETTLED,
            ProcessingStatus.CLOSED,
        )


_PROCESSING_RANK = {
    ProcessingStatus.UPLOADED: 0,
    ProcessingStatus.OCR_PROCESSING: 1,
    ProcessingStatus.OCR_FAILED: 2,
    ProcessingStatus.REUPLOAD_REQUIRED: 2,
    ProcessingStatus.OCR_COMPLETE: 2,
    ProcessingStatus.VALIDATION_IN_PROGRESS: 3,
    ProcessingStatus.VALIDATION_COMPLETE: 4,
    ProcessingStatus.FRAUD_CHECK_IN_PROGRESS: 5,
    ProcessingStatus.FRAUD_CHECK_COMPLETE: 6,
    ProcessingStatus.SETTLEMENT_PENDING: 7,
    ProcessingStatus.MANUAL_REVIEW: 8,
    ProcessingStatus.AUTO_APPROVED: 8,
    ProcessingStatus.AUTO_REJECTED: 8,
    ProcessingStatus.SETTLED: 9,
    ProcessingStatus.CLOSED: 10,
}


class DocumentType(str, Enum):
    """Classification returned by the document extractor."""
    PRESCRIPTION = "prescription"
    MEDICAL_BILL = "medical_bill"
    LAB_REPORT = "lab_report"
    CHANNELLING_BILL = "channelling_bill"
    CLAIM_FORM = "claim_form"
    OTHER = "other"


class DocumentLanguage(str, Enum):
    ENGLISH = "english"
    SINHALA = "sinhala"
    TAMIL = "tamil"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class IntakeStatus(str, Enum):
    """Per-document lifecycle state."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    ACCEPTED = "accepted"
    ACCEPTED_VIA_OVERRIDE = "accepted_via_override"
    REUPLOAD_REQUIRED = "reupload_required"
    REJECTED = "rejected"

    @property
    def persisted(self) -> "IntakeStatus":
        """State stored on the extraction row (override collapses to accepted)."""
        if self is IntakeStatus.ACCEPTED_VIA_OVERRIDE:
            return IntakeStatus.ACCEPTED
        return self


class WorkflowAction(str, Enum):
    """Recommended next step emitted by validation and fraud stages."""
    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"
    ESCALATE = "escalate"
    REJECT = "reject"


class SettlementDecision(str, Enum):
    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"
    REJECT = "reject"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FraudStatus(str, Enum):
    CLEAN = "clean"
    SUSPICIOUS = "suspicious"
    FLAGGED = "flagged"


class UserRoleType(str, Enum):
    ADMIN = "admin"
    BRANCH = "branch"
    CUSTOMER = "customer"
