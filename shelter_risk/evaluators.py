"""
Shelter Risk Engine - Factor Evaluators.

============================================================
PURPOSE
============================================================
One evaluator per risk factor.

Each evaluator:
1. Takes the animal snapshot and its supporting context
2. Applies piecewise, threshold-based logic
3. Returns a FactorEvaluation with a 0-100 score, reason
   tags and a human-readable explanation

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions: same input = same output
- No I/O, no clock reads (the reference date is passed in)
- Missing supporting data contributes zero risk
- Dirty temporal data is clamped, never rejected

============================================================
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .config import RiskScoringConfig
from .types import (
    AgeCategory,
    AnimalSize,
    AnimalSnapshot,
    BehavioralResult,
    FactorEvaluation,
    KennelStressLevel,
    RiskFactor,
    RiskReason,
    SpecialNeedsCategory,
    SupportingContext,
)


MEDICAL_DEADLINE_DAYS = 3
LOW_INTEREST_MIN_DAYS = 14

# Free-text fallback when no structured categories are recorded.
SPECIAL_NEEDS_KEYWORDS: Tuple[Tuple[SpecialNeedsCategory, Tuple[str, ...]], ...] = (
    (SpecialNeedsCategory.MEDICATION, ("medication", "medicine", "insulin", "pill")),
    (SpecialNeedsCategory.SPECIAL_DIET, ("diet", "food allerg")),
    (SpecialNeedsCategory.VISION, ("blind", "vision")),
    (SpecialNeedsCategory.HEARING, ("deaf", "hearing")),
)

BEHAVIORAL_RESULT_SCORES: Dict[BehavioralResult, float] = {
    BehavioralResult.CONCERNING: 8,
    BehavioralResult.NOT_ADOPTABLE: 8,
    BehavioralResult.RESCUE_ONLY: 6,
    BehavioralResult.RESTRICTED: 6,
    BehavioralResult.NEEDS_TRAINING: 4,
}


# ============================================================
# SHARED HELPERS
# ============================================================


def days_in_shelter(snapshot: AnimalSnapshot, as_of: date) -> int:
    """Whole days since intake; intake dates in the future clamp to 0."""
    return max(0, (as_of - snapshot.intake_date).days)


def _age_in_years(birth_date: date, as_of: date) -> int:
    years = as_of.year - birth_date.year
    if (as_of.month, as_of.day) < (birth_date.month, birth_date.day):
        years -= 1
    return max(0, years)


def resolve_age_category(
    snapshot: AnimalSnapshot,
    config: RiskScoringConfig,
    as_of: date,
) -> Optional[AgeCategory]:
    """
    Age category recorded on the snapshot, or derived from birth date.

    Derivation: under 1 year BABY, under 3 YOUNG, under the
    species senior age ADULT, otherwise SENIOR.
    """
    if snapshot.age_category is not None:
        return snapshot.age_category
    if snapshot.birth_date is None:
        return None

    years = _age_in_years(snapshot.birth_date, as_of)
    if years < 1:
        return AgeCategory.BABY
    if years < 3:
        return AgeCategory.YOUNG
    if years < config.get_senior_age(snapshot.species):
        return AgeCategory.ADULT
    return AgeCategory.SENIOR


def _dedupe(reasons: Sequence[RiskReason]) -> Tuple[RiskReason, ...]:
    return tuple(dict.fromkeys(reasons))


# ============================================================
# BASE EVALUATOR
# ============================================================


class BaseFactorEvaluator(ABC):
    """
    Abstract base class for factor evaluators.

    Evaluators run in RiskFactor order; `prior` holds the
    evaluations already produced in the same pass so that a
    later factor can read an earlier one (behavioral reads the
    length-of-stay ratio).
    """

    def __init__(self, config: RiskScoringConfig):
        self.config = config

    @property
    @abstractmethod
    def factor(self) -> RiskFactor:
        """Return the risk factor this evaluator handles."""
        pass

    @abstractmethod
    def evaluate(
        self,
        snapshot: AnimalSnapshot,
        context: SupportingContext,
        as_of: date,
        prior: Mapping[RiskFactor, FactorEvaluation],
    ) -> FactorEvaluation:
        pass


# ============================================================
# LENGTH OF STAY
# ============================================================


class LengthOfStayEvaluator(BaseFactorEvaluator):
    """
    Risk from time spent in care relative to a target.

    ratio = days in shelter / target LOS (species, age bucket)

        ratio >= 3.0  -> 100  LONG_LOS
        ratio >= 2.0  ->  80  LONG_LOS
        ratio >= 1.5  ->  60  LONG_LOS
        ratio >= 1.0  ->  40  (approaching target)
        otherwise     ->  ratio * 40
    """

    @property
    def factor(self) -> RiskFactor:
        return RiskFactor.LENGTH_OF_STAY

    def evaluate(self, snapshot, context, as_of, prior) -> FactorEvaluation:
        days = days_in_shelter(snapshot, as_of)
        age = resolve_age_category(snapshot, self.config, as_of)
        target = self.config.get_target_los(
            snapshot.species, age.los_bucket if age is not None else None
        )
        ratio = days / target

        reasons: List[RiskReason] = []
        if ratio >= 3:
            score = 100.0
            reasons.append(RiskReason.LONG_LOS)
            explanation = f"{days} days in care, more than 3x the {target}-day target"
        elif ratio >= 2:
            score = 80.0
            reasons.append(RiskReason.LONG_LOS)
            explanation = f"{days} days in care, more than 2x the {target}-day target"
        elif ratio >= 1.5:
            score = 60.0
            reasons.append(RiskReason.LONG_LOS)
            explanation = f"{days} days in care, 1.5x the {target}-day target"
        elif ratio >= 1:
            score = 40.0
            explanation = f"{days} days in care, approaching the {target}-day target"
        else:
            score = ratio * 40
            explanation = f"{days} of {target} target days in care"

        return FactorEvaluation(
            factor=self.factor,
            raw_score=score,
            score=score,
            reasons=tuple(reasons),
            explanation=explanation,
            details={
                "days_in_shelter": days,
                "target_los": target,
                "los_ratio": ratio,
                "los_percentile": min(99.0, ratio * 50),
            },
        )


# ============================================================
# MEDICAL
# ============================================================


class MedicalEvaluator(BaseFactorEvaluator):
    """
    Risk from open medical follow-ups.

    Only records that require follow-up AND either affect
    adoptability or are not treatable are considered.

    - non-treatable condition:      8/10  MEDICAL_CRITICAL
    - adoptability-affecting only:  6/10
    - follow-up due within 3 days:  MEDICAL_URGENT (overdue counts)

    Raw score is on a 0-10 scale, normalized x10.
    """

    @property
    def factor(self) -> RiskFactor:
        return RiskFactor.MEDICAL

    def evaluate(self, snapshot, context, as_of, prior) -> FactorEvaluation:
        raw = 0.0
        reasons: List[RiskReason] = []
        conditions: List[str] = []
        has_deadline = False

        for record in context.medical_records:
            if not record.follow_up_required:
                continue
            if not (record.affects_adoptability or not record.is_treatable):
                continue

            conditions.append(record.diagnosis)

            if record.follow_up_date is not None:
                if (record.follow_up_date - as_of).days <= MEDICAL_DEADLINE_DAYS:
                    has_deadline = True
                    reasons.append(RiskReason.MEDICAL_URGENT)

            if not record.is_treatable:
                raw = max(raw, 8.0)
                reasons.append(RiskReason.MEDICAL_CRITICAL)
            else:
                raw = max(raw, 6.0)

        if not conditions:
            explanation = "No open medical follow-ups"
        else:
            explanation = f"{len(conditions)} open follow-up(s): {', '.join(conditions)}"
            if has_deadline:
                explanation += f" (due within {MEDICAL_DEADLINE_DAYS} days)"

        return FactorEvaluation(
            factor=self.factor,
            raw_score=raw,
            score=raw * 10,
            reasons=_dedupe(reasons),
            explanation=explanation,
            details={
                "medical_score": raw,
                "has_medical_deadline": has_deadline,
                "medical_conditions": tuple(conditions),
            },
        )


# ============================================================
# BEHAVIORAL
# ============================================================


class BehavioralEvaluator(BaseFactorEvaluator):
    """
    Risk from behavioral assessments.

    The most recent assessment's result sets the score:
    CONCERNING / NOT_ADOPTABLE 8/10 (BEHAVIORAL_DECLINE),
    RESCUE_ONLY / RESTRICTED 6/10, NEEDS_TRAINING 4/10.

    Kennel stress comes from the drop in overall score between
    the two most recent scored assessments: >= 3 SEVERE, >= 2
    MODERATE (both KENNEL_STRESS), >= 1 MILD. When no stress was
    observed and the stay exceeds twice the target, stress is
    assumed MODERATE and an enrichment deficit is flagged.
    """

    @property
    def factor(self) -> RiskFactor:
        return RiskFactor.BEHAVIORAL

    def evaluate(self, snapshot, context, as_of, prior) -> FactorEvaluation:
        assessments = sorted(
            context.behavioral_assessments,
            key=lambda a: a.assessed_at,
            reverse=True,
        )

        raw = 0.0
        reasons: List[RiskReason] = []
        parts: List[str] = []

        if assessments:
            latest = assessments[0]
            raw = float(BEHAVIORAL_RESULT_SCORES.get(latest.result, 0))
            if latest.result in (BehavioralResult.CONCERNING, BehavioralResult.NOT_ADOPTABLE):
                reasons.append(RiskReason.BEHAVIORAL_DECLINE)
            parts.append(f"latest assessment {latest.result.value}")

        stress = KennelStressLevel.NONE
        decline = None
        scored = [a for a in assessments if a.overall_score is not None]
        if len(scored) >= 2:
            decline = scored[1].overall_score - scored[0].overall_score
            if decline >= 3:
                stress = KennelStressLevel.SEVERE
                reasons.append(RiskReason.KENNEL_STRESS)
            elif decline >= 2:
                stress = KennelStressLevel.MODERATE
                reasons.append(RiskReason.KENNEL_STRESS)
            elif decline >= 1:
                stress = KennelStressLevel.MILD

        enrichment_deficit = False
        los = prior.get(RiskFactor.LENGTH_OF_STAY)
        los_ratio = los.details.get("los_ratio", 0.0) if los is not None else 0.0
        if stress == KennelStressLevel.NONE and los_ratio > 2:
            stress = KennelStressLevel.MODERATE
            enrichment_deficit = True
            parts.append("extended stay suggests enrichment deficit")
        elif stress != KennelStressLevel.NONE:
            parts.append(f"kennel stress {stress.value} (score dropped {decline:g})")

        return FactorEvaluation(
            factor=self.factor,
            raw_score=raw,
            score=raw * 10,
            reasons=_dedupe(reasons),
            explanation="; ".join(parts) if parts else "No behavioral concerns recorded",
            details={
                "behavioral_score": raw,
                "kennel_stress_level": stress,
                "enrichment_deficit": enrichment_deficit,
                "score_decline": decline,
            },
        )


# ============================================================
# CAPACITY
# ============================================================


class CapacityEvaluator(BaseFactorEvaluator):
    """
    Risk from shelter crowding.

    Occupancy is computed org-wide and per species; the higher
    of the two is scored. Strict comparisons:

        pct > 100 -> 80  CAPACITY_PRESSURE
        pct >  90 -> 60  CAPACITY_PRESSURE
        pct >  80 -> 40
        otherwise ->  0
    """

    @property
    def factor(self) -> RiskFactor:
        return RiskFactor.CAPACITY

    def evaluate(self, snapshot, context, as_of, prior) -> FactorEvaluation:
        shelter_pct = (
            context.organization_population.percent
            if context.organization_population is not None else None
        )
        species_pct = (
            context.species_population.percent
            if context.species_population is not None else None
        )
        known = [p for p in (shelter_pct, species_pct) if p is not None]

        score = 0.0
        reasons: List[RiskReason] = []
        if not known:
            explanation = "No capacity data"
        else:
            pct = max(known)
            if pct > 100:
                score = 80.0
                reasons.append(RiskReason.CAPACITY_PRESSURE)
            elif pct > 90:
                score = 60.0
                reasons.append(RiskReason.CAPACITY_PRESSURE)
            elif pct > 80:
                score = 40.0
            explanation = f"Occupancy at {pct:.0f}% of capacity"

        return FactorEvaluation(
            factor=self.factor,
            raw_score=score,
            score=score,
            reasons=tuple(reasons),
            explanation=explanation,
            details={
                "shelter_capacity": shelter_pct,
                "species_capacity": species_pct,
                "is_over_capacity": any(p > 100 for p in known),
            },
        )


# ============================================================
# ADOPTABILITY
# ============================================================


class AdoptabilityEvaluator(BaseFactorEvaluator):
    """
    Risk from low adopter interest.

    Predicted adoptability starts at 50. With profile views,
    an inquiry ratio under 1% after two weeks drops it to 30
    (LOW_INTEREST); a ratio over 10% raises it to 70. Risk is
    100 minus predicted adoptability.
    """

    @property
    def factor(self) -> RiskFactor:
        return RiskFactor.ADOPTABILITY

    def evaluate(self, snapshot, context, as_of, prior) -> FactorEvaluation:
        interest = context.adoption_interest
        views = interest.profile_views if interest is not None else 0
        inquiries = interest.inquiry_count if interest is not None else 0
        days = days_in_shelter(snapshot, as_of)

        predicted = 50.0
        ratio = None
        reasons: List[RiskReason] = []
        if views > 0:
            ratio = inquiries / views
            if ratio < 0.01 and days > LOW_INTEREST_MIN_DAYS:
                predicted = 30.0
                reasons.append(RiskReason.LOW_INTEREST)
            elif ratio > 0.1:
                predicted = 70.0

        if ratio is None:
            explanation = "No profile views yet; baseline adoptability"
        else:
            explanation = f"{inquiries} inquiries from {views} views ({ratio:.1%})"

        score = 100 - predicted
        return FactorEvaluation(
            factor=self.factor,
            raw_score=score,
            score=score,
            reasons=tuple(reasons),
            explanation=explanation,
            details={
                "adoptability_score": predicted,
                "profile_views": views,
                "inquiry_count": inquiries,
                "views_to_apps_ratio": ratio,
            },
        )


# ============================================================
# SPECIAL CATEGORIES
# ============================================================


class SpecialCategoryEvaluator(BaseFactorEvaluator):
    """
    Additive risk from categories that lower placement odds.

    - senior or geriatric:                         +20  SENIOR
    - special-needs text, conditions or categories: +15  SPECIAL_NEEDS
    - large or extra-large dog:                    +10  LARGE_BREED
    - primary color black:                          +5  BLACK_ANIMAL

    The sum is capped at 100 and weighted as one bucket.
    """

    @property
    def factor(self) -> RiskFactor:
        return RiskFactor.SPECIAL_CATEGORIES

    def evaluate(self, snapshot, context, as_of, prior) -> FactorEvaluation:
        age = resolve_age_category(snapshot, self.config, as_of)
        is_senior = age is not None and age.is_senior

        categories = self.categorize(snapshot)
        has_special_needs = bool(
            (snapshot.special_needs or "").strip()
            or snapshot.medical_conditions
            or categories
        )
        is_large_dog = (
            snapshot.species_key == "DOG"
            and snapshot.size in (AnimalSize.LARGE, AnimalSize.EXTRA_LARGE)
        )
        is_black = (snapshot.color_primary or "").strip().lower() == "black"

        total = 0.0
        reasons: List[RiskReason] = []
        parts: List[str] = []
        if is_senior:
            total += 20
            reasons.append(RiskReason.SENIOR)
            parts.append("senior")
        if has_special_needs:
            total += 15
            reasons.append(RiskReason.SPECIAL_NEEDS)
            parts.append("special needs")
        if is_large_dog:
            total += 10
            reasons.append(RiskReason.LARGE_BREED)
            parts.append("large breed")
        if is_black:
            total += 5
            reasons.append(RiskReason.BLACK_ANIMAL)
            parts.append("black coat")

        score = min(100.0, total)
        return FactorEvaluation(
            factor=self.factor,
            raw_score=score,
            score=score,
            reasons=tuple(reasons),
            explanation=", ".join(parts) if parts else "No special categories",
            details={
                "is_senior": is_senior,
                "has_special_needs": has_special_needs,
                "special_needs_categories": categories,
                "vulnerable_category": "BLACK_ANIMAL" if is_black else None,
            },
        )

    @staticmethod
    def categorize(snapshot: AnimalSnapshot) -> Tuple[SpecialNeedsCategory, ...]:
        """Structured categories, else keyword matches on the free text."""
        if snapshot.special_needs_categories:
            return tuple(dict.fromkeys(snapshot.special_needs_categories))

        text = (snapshot.special_needs or "").lower()
        if not text:
            return ()
        return tuple(
            category
            for category, keywords in SPECIAL_NEEDS_KEYWORDS
            if any(keyword in text for keyword in keywords)
        )


def build_evaluators(config: RiskScoringConfig) -> List[BaseFactorEvaluator]:
    """All evaluators in evaluation order."""
    return [
        LengthOfStayEvaluator(config),
        MedicalEvaluator(config),
        BehavioralEvaluator(config),
        CapacityEvaluator(config),
        AdoptabilityEvaluator(config),
        SpecialCategoryEvaluator(config),
    ]
