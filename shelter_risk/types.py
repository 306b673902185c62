"""
Shelter Risk Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the urgency scoring engine.

This module defines the enums, input snapshots, output
records and exceptions shared by every component of the
engine. The evaluators, the assembler and the stores all
speak in these types.

============================================================
DESIGN PRINCIPLES
============================================================
- All types are immutable (frozen dataclasses)
- Enums for every closed vocabulary (reasons, tiers, tags)
- Inputs are read-only snapshots owned by the record provider
- Timestamps never participate in equality, so two scoring
  passes over the same data compare equal

============================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# ============================================================
# ENUMS
# ============================================================


class RiskSeverity(str, Enum):
    """
    Severity tier derived from the urgency score.

    - CRITICAL: immediate intervention needed
    - HIGH: priority attention required
    - ELEVATED: close monitoring recommended
    - MODERATE: standard care protocols
    - LOW: routine monitoring
    """

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    ELEVATED = "ELEVATED"
    MODERATE = "MODERATE"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Numeric ordering for severity comparison (LOW=0)."""
        return {
            "LOW": 0,
            "MODERATE": 1,
            "ELEVATED": 2,
            "HIGH": 3,
            "CRITICAL": 4,
        }[self.value]

    @classmethod
    def descending(cls) -> List["RiskSeverity"]:
        """Tiers from most to least severe."""
        return [cls.CRITICAL, cls.HIGH, cls.ELEVATED, cls.MODERATE, cls.LOW]


class RiskFactor(str, Enum):
    """
    The six independently evaluated risk factors.

    Declaration order is evaluation order: length of stay is
    evaluated first because the behavioral evaluator uses its
    ratio for the enrichment-deficit fallback.
    """

    LENGTH_OF_STAY = "length_of_stay"
    MEDICAL = "medical"
    BEHAVIORAL = "behavioral"
    CAPACITY = "capacity"
    ADOPTABILITY = "adoptability"
    SPECIAL_CATEGORIES = "special_categories"

    @classmethod
    def all_factors(cls) -> List["RiskFactor"]:
        """Return all factors in evaluation order."""
        return list(cls)


class RiskReason(str, Enum):
    """Closed set of tags explaining why a factor contributed risk."""

    LONG_LOS = "LONG_LOS"
    MEDICAL_CRITICAL = "MEDICAL_CRITICAL"
    MEDICAL_URGENT = "MEDICAL_URGENT"
    KENNEL_STRESS = "KENNEL_STRESS"
    BEHAVIORAL_DECLINE = "BEHAVIORAL_DECLINE"
    CAPACITY_PRESSURE = "CAPACITY_PRESSURE"
    SENIOR = "SENIOR"
    SPECIAL_NEEDS = "SPECIAL_NEEDS"
    LOW_INTEREST = "LOW_INTEREST"
    LARGE_BREED = "LARGE_BREED"
    BLACK_ANIMAL = "BLACK_ANIMAL"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"


class KennelStressLevel(str, Enum):
    """Behavioral deterioration observed while in the kennel."""

    NONE = "NONE"
    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"


class SpecialNeedsCategory(str, Enum):
    """Structured accommodation needs used for adopter matching."""

    MEDICATION = "MEDICATION"
    SPECIAL_DIET = "SPECIAL_DIET"
    MOBILITY = "MOBILITY"
    VISION = "VISION"
    HEARING = "HEARING"
    CHRONIC_CONDITION = "CHRONIC_CONDITION"
    BEHAVIORAL = "BEHAVIORAL"
    EXPERIENCED_OWNER = "EXPERIENCED_OWNER"
    ONLY_PET = "ONLY_PET"
    FENCED_YARD = "FENCED_YARD"
    NO_CHILDREN = "NO_CHILDREN"
    HOSPICE = "HOSPICE"


class AgeCategory(str, Enum):
    """Age category as recorded at intake."""

    BABY = "BABY"
    YOUNG = "YOUNG"
    ADULT = "ADULT"
    SENIOR = "SENIOR"
    GERIATRIC = "GERIATRIC"

    @property
    def los_bucket(self) -> str:
        """Key into the target length-of-stay table."""
        if self in (AgeCategory.SENIOR, AgeCategory.GERIATRIC):
            return "senior"
        return self.value.lower()

    @property
    def is_senior(self) -> bool:
        return self in (AgeCategory.SENIOR, AgeCategory.GERIATRIC)


class AnimalSize(str, Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    EXTRA_LARGE = "EXTRA_LARGE"


class AnimalStatus(str, Enum):
    """Lifecycle status of an animal record."""

    IN_SHELTER = "IN_SHELTER"
    IN_FOSTER = "IN_FOSTER"
    IN_MEDICAL = "IN_MEDICAL"
    MEDICAL_HOLD = "MEDICAL_HOLD"
    BEHAVIORAL_HOLD = "BEHAVIORAL_HOLD"
    HOLD = "HOLD"
    AVAILABLE = "AVAILABLE"
    PENDING = "PENDING"
    ADOPTED = "ADOPTED"
    TRANSFERRED = "TRANSFERRED"
    RETURNED_TO_OWNER = "RETURNED_TO_OWNER"
    DECEASED = "DECEASED"

    @classmethod
    def active_statuses(cls) -> Tuple["AnimalStatus", ...]:
        """Statuses whose animals are still in care and get scored."""
        return (
            cls.IN_SHELTER,
            cls.IN_FOSTER,
            cls.IN_MEDICAL,
            cls.MEDICAL_HOLD,
            cls.BEHAVIORAL_HOLD,
            cls.HOLD,
            cls.AVAILABLE,
            cls.PENDING,
        )


class BehavioralResult(str, Enum):
    """Categorical outcome of a behavioral assessment."""

    ADOPTABLE = "ADOPTABLE"
    NEEDS_TRAINING = "NEEDS_TRAINING"
    RESTRICTED = "RESTRICTED"
    RESCUE_ONLY = "RESCUE_ONLY"
    CONCERNING = "CONCERNING"
    NOT_ADOPTABLE = "NOT_ADOPTABLE"


class AlertType(str, Enum):
    THRESHOLD_CROSSED = "THRESHOLD_CROSSED"
    RECOVERED = "RECOVERED"


# ============================================================
# INPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class AnimalSnapshot:
    """
    Read-only view of an animal record at scoring time.

    Owned by the record provider; the engine never mutates it.
    Either age_category or birth_date may be supplied. Structured
    special_needs_categories take precedence over keyword scanning
    of the free-text special_needs field.
    """

    animal_id: str
    species: str
    intake_date: date
    organization_id: Optional[str] = None

    age_category: Optional[AgeCategory] = None
    birth_date: Optional[date] = None

    size: Optional[AnimalSize] = None
    color_primary: Optional[str] = None

    special_needs: Optional[str] = None
    medical_conditions: Tuple[str, ...] = ()
    special_needs_categories: Tuple[SpecialNeedsCategory, ...] = ()

    status: AnimalStatus = AnimalStatus.IN_SHELTER

    @property
    def species_key(self) -> str:
        """Normalized species used for table lookups."""
        return (self.species or "").strip().upper()


@dataclass(frozen=True)
class MedicalRecord:
    """A medical record relevant to placement risk."""

    diagnosis: str
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None
    affects_adoptability: bool = False
    is_treatable: bool = True
    recorded_at: Optional[date] = None


@dataclass(frozen=True)
class BehavioralAssessment:
    """A behavioral assessment; overall_score is on a 0-10 scale."""

    result: BehavioralResult
    assessed_at: date
    overall_score: Optional[float] = None


@dataclass(frozen=True)
class PopulationCounts:
    """Current population against capacity (org-wide or per species)."""

    current: int
    capacity: int

    @property
    def percent(self) -> Optional[float]:
        """Occupancy percentage, or None when capacity is unknown."""
        if self.capacity is None or self.capacity <= 0:
            return None
        return self.current / self.capacity * 100


@dataclass(frozen=True)
class AdoptionInterest:
    """Opaque adoption-interest counters supplied by the provider."""

    profile_views: int = 0
    inquiry_count: int = 0


@dataclass(frozen=True)
class SupportingContext:
    """
    Supporting records for one scoring pass.

    Every field is optional; missing data contributes zero risk
    for the corresponding factor rather than raising.
    """

    medical_records: Tuple[MedicalRecord, ...] = ()
    behavioral_assessments: Tuple[BehavioralAssessment, ...] = ()
    organization_population: Optional[PopulationCounts] = None
    species_population: Optional[PopulationCounts] = None
    adoption_interest: Optional[AdoptionInterest] = None


# ============================================================
# OUTPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class FactorEvaluation:
    """
    Result of a single factor evaluator.

    raw_score is on the evaluator's native scale (0-10 for
    medical and behavioral, 0-100 otherwise); score is always
    normalized to 0-100 and is what the composite consumes.
    """

    factor: RiskFactor
    raw_score: float
    score: float
    reasons: Tuple[RiskReason, ...] = ()
    explanation: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RiskFactorScore:
    """Weighted contribution of one factor, retained for audit."""

    factor: RiskFactor
    raw_score: float
    score: float
    weight: float
    weighted_contribution: float
    explanation: str
    evaluated_at: datetime = field(default_factory=utc_now, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factor": self.factor.value,
            "raw_score": self.raw_score,
            "score": self.score,
            "weight": self.weight,
            "weighted_contribution": self.weighted_contribution,
            "explanation": self.explanation,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """
    Complete engine output for one animal.

    Produced by RiskScoringEngine.score and consumed by the
    profile assembler. Pure function of snapshot, context,
    config version and the reference time.
    """

    animal_id: str
    organization_id: Optional[str]
    urgency_score: int
    severity: RiskSeverity
    risk_reasons: Tuple[RiskReason, ...]
    factor_scores: Tuple[RiskFactorScore, ...]
    evaluations: Mapping[RiskFactor, FactorEvaluation]
    algorithm_version: str
    assessed_at: datetime = field(default_factory=utc_now, compare=False)

    def get_evaluation(self, factor: RiskFactor) -> FactorEvaluation:
        return self.evaluations[factor]

    def detail(self, factor: RiskFactor, key: str, default: Any = None) -> Any:
        """Look up a single detail value of one factor's evaluation."""
        evaluation = self.evaluations.get(factor)
        if evaluation is None:
            return default
        return evaluation.details.get(key, default)


@dataclass(frozen=True)
class RiskProfile:
    """
    Persisted risk profile; exactly one per animal.

    Created on first scoring and upserted on every recompute.
    When is_manual_override is set, automatic recomputes keep
    urgency_score and severity and refresh everything else.
    """

    animal_id: str
    urgency_score: int
    severity: RiskSeverity
    risk_reasons: Tuple[RiskReason, ...] = ()
    factor_scores: Tuple[RiskFactorScore, ...] = ()
    organization_id: Optional[str] = None

    # Time-based
    length_of_stay: int = 0
    target_los: Optional[int] = None
    los_percentile: Optional[float] = None

    # Medical
    medical_score: float = 0.0
    has_medical_deadline: bool = False
    medical_conditions: Tuple[str, ...] = ()

    # Behavioral
    behavioral_score: float = 0.0
    kennel_stress_level: KennelStressLevel = KennelStressLevel.NONE
    enrichment_deficit: bool = False

    # Capacity
    shelter_capacity: Optional[float] = None
    species_capacity: Optional[float] = None
    is_over_capacity: bool = False

    # Adoptability
    adoptability_score: Optional[float] = None
    profile_views: int = 0
    inquiry_count: int = 0
    views_to_apps_ratio: Optional[float] = None

    # Special categories
    is_senior: bool = False
    has_special_needs: bool = False
    special_needs_categories: Tuple[SpecialNeedsCategory, ...] = ()
    vulnerable_category: Optional[str] = None

    # Metadata
    last_calculated: datetime = field(default_factory=utc_now, compare=False)
    algorithm_version: str = "1.0"
    is_manual_override: bool = False
    override_reason: Optional[str] = None
    override_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "animal_id": self.animal_id,
            "organization_id": self.organization_id,
            "urgency_score": self.urgency_score,
            "severity": self.severity.value,
            "risk_reasons": [r.value for r in self.risk_reasons],
            "factor_scores": [f.to_dict() for f in self.factor_scores],
            "length_of_stay": self.length_of_stay,
            "target_los": self.target_los,
            "los_percentile": self.los_percentile,
            "medical_score": self.medical_score,
            "has_medical_deadline": self.has_medical_deadline,
            "medical_conditions": list(self.medical_conditions),
            "behavioral_score": self.behavioral_score,
            "kennel_stress_level": self.kennel_stress_level.value,
            "enrichment_deficit": self.enrichment_deficit,
            "shelter_capacity": self.shelter_capacity,
            "species_capacity": self.species_capacity,
            "is_over_capacity": self.is_over_capacity,
            "adoptability_score": self.adoptability_score,
            "profile_views": self.profile_views,
            "inquiry_count": self.inquiry_count,
            "views_to_apps_ratio": self.views_to_apps_ratio,
            "is_senior": self.is_senior,
            "has_special_needs": self.has_special_needs,
            "special_needs_categories": [c.value for c in self.special_needs_categories],
            "vulnerable_category": self.vulnerable_category,
            "last_calculated": self.last_calculated.isoformat(),
            "algorithm_version": self.algorithm_version,
            "is_manual_override": self.is_manual_override,
            "override_reason": self.override_reason,
            "override_by": self.override_by,
        }


@dataclass(frozen=True)
class RiskAlert:
    """
    Alert emitted when an animal's score crosses a tier boundary.

    Produced only by the threshold-crossing detector. Delivery
    and persistence belong to the notification layer.
    """

    animal_id: str
    alert_type: AlertType
    severity: RiskSeverity
    previous_score: int
    new_score: int
    previous_severity: RiskSeverity
    new_severity: RiskSeverity
    triggering_reasons: Tuple[RiskReason, ...] = ()
    message: str = ""
    recommended_actions: Tuple[str, ...] = ()
    organization_id: Optional[str] = None
    alert_id: str = field(default_factory=lambda: str(uuid4()), compare=False)
    created_at: datetime = field(default_factory=utc_now, compare=False)

    @property
    def is_escalation(self) -> bool:
        return self.new_severity.rank > self.previous_severity.rank

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "animal_id": self.animal_id,
            "organization_id": self.organization_id,
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "previous_score": self.previous_score,
            "new_score": self.new_score,
            "previous_severity": self.previous_severity.value,
            "new_severity": self.new_severity.value,
            "triggering_reasons": [r.value for r in self.triggering_reasons],
            "message": self.message,
            "recommended_actions": list(self.recommended_actions),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class BatchItemError:
    """One animal that failed during a batch recompute."""

    animal_id: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"animal_id": self.animal_id, "error": self.error}


@dataclass(frozen=True)
class BatchSummary:
    """Outcome of a batch recompute over a population."""

    total: int
    updated: int
    errors: Tuple[BatchItemError, ...] = ()
    skipped: int = 0
    cancelled: bool = False
    started_at: datetime = field(default_factory=utc_now, compare=False)
    finished_at: datetime = field(default_factory=utc_now, compare=False)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "updated": self.updated,
            "errors": [e.to_dict() for e in self.errors],
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        }


# ============================================================
# ERROR TYPES
# ============================================================


class RiskScoringError(Exception):
    """Base exception for risk scoring errors."""

    def __init__(
        self,
        message: str,
        animal_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.animal_id = animal_id
        self.context = context or {}


class ConfigurationError(RiskScoringError):
    """
    Raised when a RiskScoringConfig is invalid.

    Raised at load/construction time so that no scoring can
    ever run against an invalid configuration.
    """
    pass


class AnimalNotFoundError(RiskScoringError):
    """Raised when the record provider has no such animal."""

    def __init__(self, animal_id: str) -> None:
        super().__init__(f"Animal not found: {animal_id}", animal_id=animal_id)


class ProviderError(RiskScoringError):
    """Raised when a collaborator (provider or store) fails."""
    pass


class ScoringError(RiskScoringError):
    """Raised when an evaluator fails unexpectedly."""
    pass
