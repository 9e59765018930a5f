"""Compliance checks evaluated by the claim validator.

Every check receives the same ``ValidationContext`` and returns a
``CheckResult``. ``CHECK_REGISTRY`` binds each check to the sub-score it
feeds, its weight inside that sub-score, and whether a failure blocks
automatic approval.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz

from adjudicator.core.config import PipelineSettings
from adjudicator.prompts.system_prompts import OPD_DOCUMENT_KEYWORDS
from adjudicator.schemas.claims import ClaimSnapshot, MemberSnapshot, PolicySnapshot
from adjudicator.schemas.enums import ClaimType, DocumentLanguage, DocumentType
from adjudicator.schemas.extraction import ExtractionOutput, MedicineEntry
from adjudicator.schemas.validation import CheckResult, DiseaseMapping, MedicineReference

PRESCRIPTION_DIAGNOSIS = "prescription_diagnosis"
PRESCRIPTION_BILL = "prescription_bill"
DIAGNOSIS_TREATMENT = "diagnosis_treatment"
BILLING_POLICY = "billing_policy"

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d", "%d %b %Y", "%d %B %Y")

SKIN_TERMS = ("skin", "derma", "acne", "eczema", "psoriasis", "pigment", "melasma", "fungal", "cosmetic")
ALLERGY_TERMS = ("allerg", "urticaria", "hives", "dermatitis", "itch", "prurit", "rash")
TRADITIONAL_MEDICINE_TERMS = ("ayurved", "siddha", "hela wedakam", "deshiya chikitsa")
DENTAL_TERMS = ("dental", "tooth", "teeth", "gum", "molar", "caries", "root canal")
SPECTACLE_TERMS = ("spectacle", "eyeglass", "eye glass", "lens", "optical", "frame")


def parse_document_date(value: Optional[str]) -> Optional[date]:
    """Parse a date string in the formats found on Sri Lankan bills."""
    if not value:
        return None
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _contains_any(text: Optional[str], terms: Iterable[str]) -> bool:
    lowered = (text or "").lower()
    return any(term in lowered for term in terms)


def _norm(name: Optional[str]) -> str:
    return " ".join((name or "").lower().split())


@dataclass
class ValidationContext:
    """Pre-sorted view over the claim aggregate shared by all checks."""

    claim: ClaimSnapshot
    policy: PolicySnapshot
    member: MemberSnapshot
    documents: List[ExtractionOutput]
    previous_approved_total: Decimal
    submission_date: date
    settings: PipelineSettings
    medicine_catalog: List[MedicineReference] = field(default_factory=list)
    disease_mappings: List[DiseaseMapping] = field(default_factory=list)
    detected_claim_type: ClaimType = ClaimType.OPD

    # Collected while checks run
    exclusions_found: List[str] = field(default_factory=list)
    mismatched_items: List[str] = field(default_factory=list)

    def __post_init__(self):
        self._catalog_index: Dict[str, MedicineReference] = {}
        for entry in self.medicine_catalog:
            self._catalog_index[_norm(entry.brand_name)] = entry
            self._catalog_index.setdefault(_norm(entry.generic_name), entry)

    def of_type(self, *types: DocumentType) -> List[ExtractionOutput]:
        return [doc for doc in self.documents if doc.document_type in types]

    @property
    def prescriptions(self) -> List[ExtractionOutput]:
        return self.of_type(DocumentType.PRESCRIPTION)

    @property
    def bills(self) -> List[ExtractionOutput]:
        return self.of_type(DocumentType.MEDICAL_BILL, DocumentType.CHANNELLING_BILL)

    @property
    def diagnosis(self) -> Optional[str]:
        if self.claim.diagnosis:
            return self.claim.diagnosis
        for doc in self.prescriptions + self.documents:
            if doc.entities.diagnosis:
                return doc.entities.diagnosis
        return None

    @property
    def category_limit(self) -> Decimal:
        return self.policy.category_limit(self.claim.claim_type)

    @property
    def remaining_coverage(self) -> Decimal:
        return self.category_limit - self.previous_approved_total

    def prescribed_medicines(self) -> List[MedicineEntry]:
        return [m for doc in self.prescriptions for m in doc.entities.medicines]

    def billed_medicines(self) -> List[MedicineEntry]:
        """Medicines on bills, including medicine-category billing lines."""
        billed: List[MedicineEntry] = []
        for doc in self.of_type(DocumentType.MEDICAL_BILL):
            billed.extend(doc.entities.medicines)
            listed = {_norm(m.name) for m in doc.entities.medicines}
            for item in doc.entities.billing.items:
                if (item.category or "").lower() == "medicine" and _norm(item.description) not in listed:
                    billed.append(MedicineEntry(name=item.description, quantity=item.quantity))
        return billed

    def lookup(self, name: Optional[str]) -> Optional[MedicineReference]:
        return self._catalog_index.get(_norm(name))

    def generic_of(self, medicine: MedicineEntry) -> str:
        if medicine.generic_name:
            return _norm(medicine.generic_name)
        entry = self.lookup(medicine.name)
        return _norm(entry.generic_name) if entry else _norm(medicine.name)

    def same_medicine(self, left: MedicineEntry, right: MedicineEntry) -> bool:
        """Match two medicine lines allowing brand-name substitution."""
        threshold = self.settings.medicine_match_threshold * 100
        if self.generic_of(left) == self.generic_of(right):
            return True
        if fuzz.ratio(self.generic_of(left), self.generic_of(right)) >= threshold:
            return True
        return fuzz.ratio(_norm(left.name), _norm(right.name)) >= threshold

    def match_prescribed(self, billed: MedicineEntry) -> Optional[MedicineEntry]:
        for prescribed in self.prescribed_medicines():
            if self.same_medicine(billed, prescribed):
                return prescribed
        return None

    def all_text(self) -> str:
        parts = [self.claim.diagnosis or "", self.claim.hospital_name or ""]
        for doc in self.documents:
            parts.append(doc.entities.diagnosis or "")
            parts.append(doc.entities.clinic.name or "")
            parts.extend(doc.keywords_found)
        return " ".join(parts).lower()


def _result(name: str, passed: bool, score: float, detail: str) -> CheckResult:
    return CheckResult(name=name, passed=passed, score=max(0.0, min(1.0, score)), detail=detail)


def check_bill_date_visible(ctx: ValidationContext) -> CheckResult:
    name = "bill_date_visible"
    if not ctx.bills:
        return _result(name, False, 0.0, "No bill among accepted documents")

    dates = [parse_document_date(doc.entities.bill_date) for doc in ctx.bills]
    readable = [d for d in dates if d is not None]
    if not readable:
        return _result(name, False, 0.0, "Bill date not legible")

    future = [d for d in readable if d > ctx.submission_date]
    if future:
        return _result(name, False, 0.2, f"Bill dated after submission: {future[0].isoformat()}")

    score = len(readable) / len(dates)
    return _result(name, score == 1.0, score, f"{len(readable)} of {len(dates)} bill dates readable")


def check_warranty_period(ctx: ValidationContext) -> CheckResult:
    name = "warranty_period_ok"
    treatment = ctx.claim.date_of_treatment
    if treatment is None:
        for doc in ctx.documents:
            treatment = parse_document_date(doc.entities.treatment_date)
            if treatment:
                break
    if treatment is None:
        return _result(name, True, 1.0, "Treatment date unknown, warranty not assessed")

    elapsed = (ctx.submission_date - treatment).days
    allowed = ctx.policy.warranty_period_days or ctx.settings.default_warranty_days
    if elapsed < 0:
        return _result(name, False, 0.0, f"Treatment date {treatment.isoformat()} is after submission")
    if elapsed > allowed:
        return _result(name, False, 0.0, f"Submitted {elapsed} days after treatment, limit is {allowed}")
    return _result(name, True, 1.0, f"Submitted {elapsed} days after treatment")


def check_submitted_clause(ctx: ValidationContext) -> CheckResult:
    name = "submitted_clause_present"
    satisfied, required = 0, 0
    for doc_type, keywords in OPD_DOCUMENT_KEYWORDS.items():
        docs = ctx.of_type(DocumentType(doc_type))
        if not docs:
            continue
        required += 1
        expected = {kw.lower() for kw in keywords}
        if any(expected & {kw.lower() for kw in doc.keywords_found} for doc in docs):
            satisfied += 1
    if ctx.of_type(DocumentType.CLAIM_FORM):
        return _result(name, True, 1.0, "Claim form submitted")
    if required == 0:
        return _result(name, False, 0.0, "No identifying document headers found")
    score = satisfied / required
    return _result(name, score == 1.0, score, f"{satisfied} of {required} documents carry their identifying header")


def check_name_matches(ctx: ValidationContext) -> CheckResult:
    name = "name_matches"
    names = [doc.entities.patient.name for doc in ctx.prescriptions if doc.entities.patient.name]
    if not names:
        names = [doc.entities.patient.name for doc in ctx.documents if doc.entities.patient.name]
    if not names:
        return _result(name, False, 0.0, "No patient name found on documents")

    candidates = [ctx.member.member_name]
    if ctx.member.relationship_type == "self":
        candidates.append(ctx.policy.holder_name)

    best = max(
        fuzz.token_sort_ratio(_norm(found), _norm(expected)) / 100.0
        for found in names
        for expected in candidates
        if expected
    )
    passed = best >= ctx.settings.name_match_threshold
    detail = f"Best name similarity {best:.2f} against '{ctx.member.member_name}'"
    if not passed:
        ctx.mismatched_items.append(f"Patient name '{names[0]}' does not match member")
    return _result(name, passed, best, detail)


def check_amount_within_limit(ctx: ValidationContext) -> CheckResult:
    name = "amount_within_limit"
    if not ctx.policy.is_active:
        return _result(name, False, 0.0, "Policy is not active")

    remaining = ctx.remaining_coverage
    amount = ctx.claim.claim_amount
    if amount <= remaining:
        return _result(name, True, 1.0, f"Claim {amount} within remaining coverage {remaining}")
    if remaining <= 0:
        return _result(name, False, 0.0, "Coverage limit exhausted")
    return _result(
        name, False, float(remaining / amount), f"Claim {amount} exceeds remaining coverage {remaining}"
    )


def check_medicines_match(ctx: ValidationContext) -> CheckResult:
    name = "medicines_match"
    billed = ctx.billed_medicines()
    if not billed:
        return _result(name, True, 1.0, "No billed medicines to reconcile")
    if not ctx.prescribed_medicines():
        ctx.mismatched_items.extend(f"{m.name} billed without prescription" for m in billed)
        return _result(name, False, 0.0, "Medicines billed but no prescription medicines found")

    unmatched = [m for m in billed if ctx.match_prescribed(m) is None]
    for medicine in unmatched:
        ctx.mismatched_items.append(f"{medicine.name} billed but not prescribed")
    score = 1.0 - len(unmatched) / len(billed)
    return _result(name, not unmatched, score, f"{len(billed) - len(unmatched)} of {len(billed)} billed medicines prescribed")


def check_quantities_match(ctx: ValidationContext) -> CheckResult:
    name = "quantities_match"
    compared, mismatched = 0, 0
    for medicine in ctx.billed_medicines():
        prescribed = ctx.match_prescribed(medicine)
        if prescribed is None or medicine.quantity is None or prescribed.quantity is None:
            continue
        compared += 1
        if medicine.quantity > prescribed.quantity:
            mismatched += 1
            ctx.mismatched_items.append(
                f"{medicine.name}: billed {medicine.quantity:g}, prescribed {prescribed.quantity:g}"
            )
    if compared == 0:
        return _result(name, True, 1.0, "No comparable quantities")
    score = 1.0 - mismatched / compared
    return _result(name, mismatched == 0, score, f"{compared - mismatched} of {compared} quantities consistent")


def check_ailment_covered(ctx: ValidationContext) -> CheckResult:
    name = "ailment_covered"
    diagnosis = ctx.diagnosis
    if not diagnosis:
        return _result(name, False, 0.5, "Diagnosis not stated")
    for exclusion in ctx.policy.exclusions:
        if not exclusion:
            continue
        if exclusion.lower() in diagnosis.lower() or fuzz.partial_ratio(exclusion.lower(), diagnosis.lower()) >= 90:
            ctx.exclusions_found.append(exclusion)
            return _result(name, False, 0.0, f"Diagnosis '{diagnosis}' falls under exclusion '{exclusion}'")
    return _result(name, True, 1.0, f"Diagnosis '{diagnosis}' is covered")


def check_no_exclusions(ctx: ValidationContext) -> CheckResult:
    name = "no_exclusions"
    medicines = ctx.billed_medicines() or ctx.prescribed_medicines()
    if not medicines:
        return _result(name, True, 1.0, "No medicines to screen")

    excluded: List[str] = []
    policy_exclusions = [e.lower() for e in ctx.policy.exclusions if e]
    for medicine in medicines:
        entry = ctx.lookup(medicine.name) or ctx.lookup(medicine.generic_name)
        reason = None
        if medicine.is_vitamin or (entry and entry.is_vitamin):
            reason = "vitamin"
        elif medicine.is_cosmetic or (entry and entry.is_cosmetic):
            reason = "cosmetic"
        elif not medicine.is_covered or (entry and not entry.is_covered):
            reason = "not covered"
        elif any(exc in _norm(medicine.name) or exc in ctx.generic_of(medicine) for exc in policy_exclusions):
            reason = "policy exclusion"
        if reason:
            excluded.append(f"{medicine.name} ({reason})")

    ctx.exclusions_found.extend(excluded)
    score = 1.0 - len(excluded) / len(medicines)
    detail = "Excluded items: " + ", ".join(excluded) if excluded else "No excluded items"
    return _result(name, not excluded, score, detail)


def _consultation_fees(ctx: ValidationContext) -> List[float]:
    fees: List[float] = []
    for doc in ctx.bills:
        if doc.entities.billing.consultation_fee:
            fees.append(doc.entities.billing.consultation_fee)
            continue
        fees.extend(
            item.amount for item in doc.entities.billing.items
            if (item.category or "").lower() == "consultation" and item.amount
        )
    return fees


def check_channelling_valid(ctx: ValidationContext) -> CheckResult:
    name = "channelling_valid"
    fees = _consultation_fees(ctx)
    if not fees:
        return _result(name, True, 1.0, "No channelling charges")
    standard = ctx.settings.standard_channelling_fee
    highest = max(fees)
    if highest <= standard:
        return _result(name, True, 1.0, f"Channelling fee {highest:.2f} within standard {standard:.2f}")
    return _result(name, False, standard / highest, f"Channelling fee {highest:.2f} above standard {standard:.2f}")


def check_amount_normal(ctx: ValidationContext) -> CheckResult:
    name = "amount_normal"
    totals = [doc.entities.billing.total_amount for doc in ctx.bills if doc.entities.billing.total_amount]
    if not totals:
        return _result(name, False, 0.5, "No bill totals to reconcile with claim amount")

    documented = sum(totals)
    claimed = float(ctx.claim.claim_amount)
    if claimed <= 0:
        return _result(name, False, 0.0, "Claim amount is not positive")
    deviation = abs(claimed - documented) / claimed
    tolerance = ctx.settings.amount_tolerance
    if deviation <= tolerance:
        return _result(name, True, 1.0, f"Bill totals {documented:.2f} reconcile with claim {claimed:.2f}")
    return _result(
        name, False, 1.0 - (deviation - tolerance), f"Bill totals {documented:.2f} differ from claim {claimed:.2f}"
    )


def check_reports_acceptable(ctx: ValidationContext) -> CheckResult:
    name = "reports_acceptable"
    reports = ctx.of_type(DocumentType.LAB_REPORT)
    if not reports:
        return _result(name, True, 1.0, "No medical reports submitted")
    non_english = [r for r in reports if r.language not in (DocumentLanguage.ENGLISH, DocumentLanguage.UNKNOWN)]
    score = 1.0 - len(non_english) / len(reports)
    return _result(name, not non_english, score, f"{len(reports) - len(non_english)} of {len(reports)} reports in English")


def check_sinhala_bills(ctx: ValidationContext) -> CheckResult:
    name = "sinhala_bills_ok"
    local = [b for b in ctx.bills if b.language in (DocumentLanguage.SINHALA, DocumentLanguage.TAMIL)]
    if not local:
        return _result(name, True, 1.0, "No Sinhala or Tamil bills")
    if _contains_any(ctx.all_text(), TRADITIONAL_MEDICINE_TERMS):
        return _result(name, True, 1.0, "Local-language bills for Ayurvedic or Siddha treatment")
    return _result(name, False, 0.0, "Sinhala or Tamil bills outside Ayurvedic or Siddha treatment")


def check_skin_treatment(ctx: ValidationContext) -> CheckResult:
    name = "skin_treatment_ok"
    medicine_text = " ".join(m.name for m in ctx.prescribed_medicines())
    subject = f"{ctx.diagnosis or ''} {medicine_text}"
    if not _contains_any(subject, SKIN_TERMS):
        return _result(name, True, 1.0, "Not a skin treatment")
    if _contains_any(ctx.diagnosis, ALLERGY_TERMS):
        return _result(name, True, 1.0, "Skin treatment for an allergic condition")
    return _result(name, False, 0.0, "Skin treatment without an allergy-related diagnosis")


def check_dental_spectacles(ctx: ValidationContext) -> CheckResult:
    name = "dental_spectacles_ok"
    claim_type = ctx.detected_claim_type
    if claim_type is ClaimType.OPD:
        return _result(name, True, 1.0, "Not a dental or spectacle claim")
    if ctx.policy.has_special_cover(claim_type.value):
        return _result(name, True, 1.0, f"Policy includes the {claim_type.value} OPD sub-cover")
    return _result(name, False, 0.0, f"Policy has no {claim_type.value} OPD sub-cover")


def detect_claim_type(claim: ClaimSnapshot, documents: List[ExtractionOutput]) -> ClaimType:
    """Refine an OPD claim into dental or spectacles when documents say so."""
    if claim.claim_type is not ClaimType.OPD:
        return claim.claim_type
    text = " ".join(
        [claim.diagnosis or ""] + [doc.entities.diagnosis or "" for doc in documents]
    )
    if _contains_any(text, DENTAL_TERMS):
        return ClaimType.DENTAL
    if _contains_any(text, SPECTACLE_TERMS):
        return ClaimType.SPECTACLES
    return ClaimType.OPD


def disease_medicine_consistency(ctx: ValidationContext) -> Tuple[float, str]:
    """Score how well prescribed medicines fit the diagnosed disease.

    Returns 1.0 when no mapping applies to the diagnosis.
    """
    diagnosis = _norm(ctx.diagnosis)
    if not diagnosis:
        return 1.0, "No diagnosis to compare"
    mappings = [
        m for m in ctx.disease_mappings
        if any(_norm(kw) and _norm(kw) in diagnosis for kw in m.disease_keywords + [m.disease_name])
    ]
    if not mappings:
        return 1.0, "No disease mapping for diagnosis"

    prescribed = ctx.prescribed_medicines()
    generics = {ctx.generic_of(m) for m in prescribed} | {_norm(m.name) for m in prescribed}
    threshold = ctx.settings.medicine_match_threshold * 100

    def _hits(names: List[str]) -> List[str]:
        return [n for n in names if any(fuzz.ratio(_norm(n), g) >= threshold for g in generics)]

    recommended = [n for m in mappings for n in m.recommended_medicines]
    excluded = [n for m in mappings for n in m.excluded_medicines]
    score = 1.0 if not recommended or _hits(recommended) else 0.7
    contraindicated = _hits(excluded)
    if contraindicated:
        score -= 0.5
        ctx.mismatched_items.extend(f"{name} not indicated for {mappings[0].disease_name}" for name in contraindicated)
    return max(0.0, score), f"Matched disease mapping '{mappings[0].disease_name}'"


CheckFn = Callable[[ValidationContext], CheckResult]


@dataclass(frozen=True)
class CheckSpec:
    name: str
    group: str
    weight: float
    fn: CheckFn
    hard: bool = False


CHECK_REGISTRY: List[CheckSpec] = [
    CheckSpec("bill_date_visible", BILLING_POLICY, 0.10, check_bill_date_visible),
    CheckSpec("warranty_period_ok", BILLING_POLICY, 0.10, check_warranty_period, hard=True),
    CheckSpec("submitted_clause_present", BILLING_POLICY, 0.05, check_submitted_clause),
    CheckSpec("name_matches", PRESCRIPTION_DIAGNOSIS, 0.10, check_name_matches),
    CheckSpec("amount_within_limit", BILLING_POLICY, 0.10, check_amount_within_limit, hard=True),
    CheckSpec("medicines_match", PRESCRIPTION_BILL, 0.15, check_medicines_match),
    CheckSpec("quantities_match", PRESCRIPTION_BILL, 0.10, check_quantities_match),
    CheckSpec("ailment_covered", PRESCRIPTION_DIAGNOSIS, 0.10, check_ailment_covered, hard=True),
    CheckSpec("no_exclusions", PRESCRIPTION_BILL, 0.10, check_no_exclusions, hard=True),
    CheckSpec("channelling_valid", DIAGNOSIS_TREATMENT, 0.05, check_channelling_valid),
    CheckSpec("amount_normal", BILLING_POLICY, 0.05, check_amount_normal),
    CheckSpec("reports_acceptable", DIAGNOSIS_TREATMENT, 0.05, check_reports_acceptable),
    CheckSpec("sinhala_bills_ok", DIAGNOSIS_TREATMENT, 0.05, check_sinhala_bills),
    CheckSpec("skin_treatment_ok", PRESCRIPTION_DIAGNOSIS, 0.05, check_skin_treatment),
    CheckSpec("dental_spectacles_ok", DIAGNOSIS_TREATMENT, 0.05, check_dental_spectacles, hard=True),
]

# Weight of the disease-medicine consistency factor inside prescription_diagnosis
DISEASE_CONSISTENCY_WEIGHT = 0.10

SUBSCORE_WEIGHTS = {
    PRESCRIPTION_DIAGNOSIS: 0.35,
    PRESCRIPTION_BILL: 0.30,
    DIAGNOSIS_TREATMENT: 0.20,
    BILLING_POLICY: 0.15,
}
