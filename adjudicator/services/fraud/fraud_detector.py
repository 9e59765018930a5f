"""Fraud and anomaly detection for OPD claims.

Combines four signals into a fraud score:

1. Duplicate detection against recent claims on the same policy
2. Statistical deviation of the claimed amount from the OPD baseline
3. Claim frequency of the treating provider
4. Content flags raised from the extracted documents
"""

from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

import numpy as np
from rapidfuzz import fuzz

from adjudicator.core.config import PipelineSettings
from adjudicator.schemas.enums import DocumentType, FraudStatus, RiskLevel, WorkflowAction
from adjudicator.schemas.extraction import MedicineEntry
from adjudicator.schemas.fraud import FraudInput, FraudOutcome, HistoricalClaim
from adjudicator.utils.logging import get_logger
from adjudicator.utils.money import clamp_score

LOGGER = get_logger(__name__)

DUPLICATE_WEIGHT = 0.45
ANOMALY_WEIGHT = 0.25
PROVIDER_WEIGHT = 0.15
CONTENT_WEIGHT = 0.15

# Normalcy curve: z-score breakpoints and the anomaly score at each
Z_BREAKPOINTS = [1.0, 2.0, 3.0, 6.0]
NORMALCY_AT_BREAKPOINT = [1.0, 0.9, 0.5, 0.0]

INSUFFICIENT_BASELINE_SCORE = 0.9
CONTENT_FLAG_KINDS = 3


class FraudDetector:
    """Scores a claim for duplicate, statistical and content-level fraud signals."""

    def __init__(self, settings: PipelineSettings):
        self.settings = settings

    def detect(self, data: FraudInput) -> FraudOutcome:
        """Run every fraud signal and band the combined score.

        Args:
            data: Claim, accepted documents and the historical context loaded
                by the pipeline stage

        Returns:
            FraudOutcome with scores, alerts, risk band and workflow action
        """
        alerts: List[str] = []
        claim = data.claim

        hash_match = bool(data.hash_matched_claim_ids)
        if hash_match:
            alerts.append(
                f"Document content identical to {len(data.hash_matched_claim_ids)} other claim(s)"
            )

        similarity, similar_ids = self._duplicate_similarity(claim, data.recent_policy_claims)
        content_match = similarity >= self.settings.duplicate_similarity_threshold
        if content_match:
            alerts.append(f"Possible duplicate of a recent claim (similarity {similarity:.2f})")

        duplicate_ids = list(dict.fromkeys(list(data.hash_matched_claim_ids) + similar_ids))
        duplicate_signal = 1.0 if (hash_match or content_match) else 0.0

        stats = self._amount_statistics(float(claim.claim_amount), data.baseline_amounts, alerts)
        anomaly_score = stats["anomaly_score"]

        provider_signal = self._provider_signal(data.provider_claim_count)
        if provider_signal > 0:
            alerts.append(
                f"{data.provider_claim_count} claims from {claim.hospital_name} in the last "
                f"{self.settings.provider_lookback_days} days"
            )

        content_flags = self._content_flags(data)
        alerts.extend(content_flags)
        content_signal = min(1.0, len(content_flags) / CONTENT_FLAG_KINDS)

        fraud_score = (
            DUPLICATE_WEIGHT * duplicate_signal
            + ANOMALY_WEIGHT * (1.0 - anomaly_score)
            + PROVIDER_WEIGHT * provider_signal
            + CONTENT_WEIGHT * content_signal
        )
        if duplicate_signal:
            fraud_score = max(fraud_score, self.settings.high_fraud_score)
        fraud_score = clamp_score(fraud_score)

        risk_level, fraud_status = self.band(fraud_score)
        action = self.recommend(risk_level, data.validation_score)

        LOGGER.info(
            "Fraud detection complete",
            extra={
                "claim_id": str(claim.id),
                "fraud_score": round(fraud_score, 4),
                "anomaly_score": round(anomaly_score, 4),
                "risk_level": risk_level.value,
                "alerts": len(alerts),
            },
        )

        return FraudOutcome(
            duplicate_hash_match=hash_match,
            duplicate_content_match=content_match,
            similarity_score=similarity,
            duplicate_claim_ids=duplicate_ids,
            anomaly_score=anomaly_score,
            fraud_score=fraud_score,
            amount_deviation_percentage=stats["deviation"],
            z_score=stats["z_score"],
            provider_claim_frequency=data.provider_claim_count,
            historical_mean=stats["mean"],
            historical_std=stats["std"],
            baseline_sample_size=stats["sample_size"],
            alerts=alerts,
            risk_level=risk_level,
            fraud_status=fraud_status,
            workflow_action=action,
        )

    def band(self, fraud_score: float) -> Tuple[RiskLevel, FraudStatus]:
        if fraud_score >= self.settings.high_fraud_score:
            return RiskLevel.HIGH, FraudStatus.FLAGGED
        if fraud_score >= self.settings.medium_fraud_score:
            return RiskLevel.MEDIUM, FraudStatus.SUSPICIOUS
        return RiskLevel.LOW, FraudStatus.CLEAN

    def recommend(self, risk_level: RiskLevel, validation_score: float) -> WorkflowAction:
        if risk_level is RiskLevel.HIGH:
            if validation_score < self.settings.reject_validation_score:
                return WorkflowAction.REJECT
            return WorkflowAction.ESCALATE
        if risk_level is RiskLevel.MEDIUM:
            return WorkflowAction.MANUAL_REVIEW
        return WorkflowAction.AUTO_APPROVE

    @staticmethod
    def similarity(amount: Decimal, diagnosis: Optional[str], provider: Optional[str], other: HistoricalClaim) -> float:
        """Weighted similarity of two claims on amount, diagnosis and provider."""
        left, right = float(amount), float(other.claim_amount)
        largest = max(abs(left), abs(right))
        amount_closeness = 1.0 - abs(left - right) / largest if largest else 1.0

        def _text(a: Optional[str], b: Optional[str]) -> float:
            if not a or not b:
                return 0.0
            return fuzz.token_sort_ratio(a.lower(), b.lower()) / 100.0

        score = (
            0.4 * amount_closeness
            + 0.3 * _text(diagnosis, other.diagnosis)
            + 0.3 * _text(provider, other.hospital_name)
        )
        return clamp_score(score)

    def _duplicate_similarity(
        self, claim, recent: List[HistoricalClaim]
    ) -> Tuple[float, List[UUID]]:
        best = 0.0
        matches: List[UUID] = []
        for other in recent:
            if other.id == claim.id:
                continue
            score = self.similarity(claim.claim_amount, claim.diagnosis, claim.hospital_name, other)
            best = max(best, score)
            if score >= self.settings.duplicate_similarity_threshold:
                matches.append(other.id)
        return best, matches

    def _amount_statistics(self, amount: float, baseline: List[Decimal], alerts: List[str]) -> dict:
        sample = np.array([float(value) for value in baseline], dtype=float)
        stats = {
            "anomaly_score": INSUFFICIENT_BASELINE_SCORE,
            "deviation": None,
            "z_score": None,
            "mean": None,
            "std": None,
            "sample_size": int(sample.size),
        }
        if sample.size < self.settings.min_baseline_samples:
            alerts.append(f"Insufficient baseline ({sample.size} claims) for statistical comparison")
            return stats

        mean = float(np.mean(sample))
        std = float(np.std(sample))
        stats["mean"] = round(mean, 2)
        stats["std"] = round(std, 2)
        if mean:
            stats["deviation"] = round((amount - mean) / mean * 100, 2)

        if std == 0:
            z = 0.0 if amount == mean else self.settings.anomaly_sigma_cutoff
        else:
            z = (amount - mean) / std
        stats["z_score"] = round(z, 4)

        anomaly = float(np.interp(abs(z), Z_BREAKPOINTS, NORMALCY_AT_BREAKPOINT))
        stats["anomaly_score"] = clamp_score(anomaly)
        if abs(z) >= self.settings.anomaly_sigma_cutoff:
            alerts.append(f"Claim amount is {abs(z):.1f} standard deviations from the OPD baseline")
        return stats

    def _provider_signal(self, count: int) -> float:
        normal = self.settings.provider_frequency_normal
        high = self.settings.provider_frequency_high
        if high <= normal:
            return 1.0 if count > normal else 0.0
        return float(np.clip((count - normal) / (high - normal), 0.0, 1.0))

    def _content_flags(self, data: FraudInput) -> List[str]:
        outputs = [doc.output for doc in data.documents]
        bills = [o for o in outputs if o.document_type is DocumentType.MEDICAL_BILL]
        billed: List[MedicineEntry] = [m for bill in bills for m in bill.entities.medicines]
        prescribed = [
            m for o in outputs if o.document_type is DocumentType.PRESCRIPTION for m in o.entities.medicines
        ]
        flags: List[str] = []

        non_medical = [m.name for m in billed if m.is_vitamin or m.is_cosmetic]
        if non_medical:
            flags.append("Vitamins or cosmetics billed as medicine: " + ", ".join(non_medical))

        if billed and prescribed:
            unprescribed = [m.name for m in billed if not self._on_prescription(m, prescribed)]
            if unprescribed:
                flags.append("Billed medicines missing from prescription: " + ", ".join(unprescribed))

        limit = self.settings.standard_channelling_fee * self.settings.inflated_fee_ratio
        fees = [
            o.entities.billing.consultation_fee
            for o in outputs
            if o.document_type in (DocumentType.MEDICAL_BILL, DocumentType.CHANNELLING_BILL)
            and o.entities.billing.consultation_fee
        ]
        inflated = [fee for fee in fees if fee > limit]
        if inflated:
            flags.append(f"Consultation fee {max(inflated):.2f} exceeds {limit:.2f}")

        return flags

    def _on_prescription(self, billed: MedicineEntry, prescribed: List[MedicineEntry]) -> bool:
        threshold = self.settings.medicine_match_threshold * 100
        names = {billed.name.lower()} | ({billed.generic_name.lower()} if billed.generic_name else set())
        for entry in prescribed:
            candidates = {entry.name.lower()} | ({entry.generic_name.lower()} if entry.generic_name else set())
            if any(fuzz.ratio(a, b) >= threshold for a in names for b in candidates):
                return True
        return False
