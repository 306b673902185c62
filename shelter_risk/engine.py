"""
Shelter Risk Engine - Main Orchestrator.

============================================================
PURPOSE
============================================================
The RiskScoringEngine is the main entry point for scoring
a single animal.

It orchestrates:
1. Factor evaluations (in RiskFactor order)
2. Weighted composite score
3. Severity classification
4. Reason collection
5. Result packaging

============================================================
DESIGN PRINCIPLES
============================================================
- Orchestration only; factor logic lives in the evaluators
- Deterministic and stateless per call
- Config is an explicit value, validated before it gets here
- One code path for the full and simplified weightings

============================================================
USAGE
============================================================
    from shelter_risk import RiskScoringEngine, AnimalSnapshot

    engine = RiskScoringEngine(get_default_config())

    assessment = engine.score(snapshot, context)

    print(f"Severity: {assessment.severity.value}")
    print(f"Urgency: {assessment.urgency_score}/100")

============================================================
"""

import logging
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .config import FactorWeights, RiskScoringConfig, SeverityThresholds, get_default_config
from .evaluators import build_evaluators
from .types import (
    AnimalSnapshot,
    FactorEvaluation,
    RiskAssessment,
    RiskFactor,
    RiskFactorScore,
    RiskReason,
    RiskScoringError,
    RiskSeverity,
    ScoringError,
    SupportingContext,
    utc_now,
)


logger = logging.getLogger(__name__)


SEVERITY_ACTIONS: Dict[RiskSeverity, str] = {
    RiskSeverity.CRITICAL: "Immediate intervention needed",
    RiskSeverity.HIGH: "Priority attention required",
    RiskSeverity.ELEVATED: "Close monitoring recommended",
    RiskSeverity.MODERATE: "Standard care protocols",
    RiskSeverity.LOW: "Routine monitoring",
}

REASON_LABELS: Dict[RiskReason, str] = {
    RiskReason.LONG_LOS: "extended shelter stay",
    RiskReason.MEDICAL_CRITICAL: "untreatable medical condition",
    RiskReason.MEDICAL_URGENT: "imminent medical follow-up",
    RiskReason.KENNEL_STRESS: "kennel stress",
    RiskReason.BEHAVIORAL_DECLINE: "behavioral concerns",
    RiskReason.CAPACITY_PRESSURE: "shelter capacity pressure",
    RiskReason.SENIOR: "senior status",
    RiskReason.SPECIAL_NEEDS: "special needs",
    RiskReason.LOW_INTEREST: "low adopter interest",
    RiskReason.LARGE_BREED: "large breed challenges",
    RiskReason.BLACK_ANIMAL: "black animal bias",
    RiskReason.MANUAL_OVERRIDE: "manual override",
}

FACTOR_DESCRIPTIONS: Dict[RiskFactor, Dict[str, Any]] = {
    RiskFactor.LENGTH_OF_STAY: {
        "name": "Length of Stay",
        "description": "Animals staying well past their species/age target face increased risk",
        "thresholds": [
            {"ratio": 3.0, "score": 100},
            {"ratio": 2.0, "score": 80},
            {"ratio": 1.5, "score": 60},
            {"ratio": 1.0, "score": 40},
        ],
    },
    RiskFactor.MEDICAL: {
        "name": "Medical Status",
        "description": "Open follow-ups on untreatable or adoptability-affecting conditions",
        "thresholds": [
            {"condition": "not treatable", "score": 80},
            {"condition": "affects adoptability", "score": 60},
        ],
    },
    RiskFactor.BEHAVIORAL: {
        "name": "Behavioral Status",
        "description": "Latest assessment result and decline between assessments",
        "thresholds": [
            {"result": "CONCERNING / NOT_ADOPTABLE", "score": 80},
            {"result": "RESCUE_ONLY / RESTRICTED", "score": 60},
            {"result": "NEEDS_TRAINING", "score": 40},
        ],
    },
    RiskFactor.CAPACITY: {
        "name": "Capacity Pressure",
        "description": "Organization or species occupancy relative to capacity",
        "thresholds": [
            {"occupancy_pct": 100, "score": 80},
            {"occupancy_pct": 90, "score": 60},
            {"occupancy_pct": 80, "score": 40},
        ],
    },
    RiskFactor.ADOPTABILITY: {
        "name": "Predicted Adoptability",
        "description": "Inquiries per profile view; low interest raises risk",
        "thresholds": [
            {"inquiry_ratio": "< 1% after 14 days", "score": 70},
            {"inquiry_ratio": "baseline", "score": 50},
            {"inquiry_ratio": "> 10%", "score": 30},
        ],
    },
    RiskFactor.SPECIAL_CATEGORIES: {
        "name": "Special Categories",
        "description": "Senior, special needs, large breed and black coat, summed and capped",
        "thresholds": [
            {"category": "SENIOR", "points": 20},
            {"category": "SPECIAL_NEEDS", "points": 15},
            {"category": "LARGE_BREED", "points": 10},
            {"category": "BLACK_ANIMAL", "points": 5},
        ],
    },
}


class RiskScoringEngine:
    """
    Main orchestrator for urgency scoring.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    1. Build evaluators from the config
    2. Run every evaluator against one snapshot
    3. Weight factor scores into the urgency score
    4. Classify severity
    5. Collect reasons of weighted factors
    6. Package a RiskAssessment

    ============================================================
    """

    def __init__(self, config: Optional[RiskScoringConfig] = None):
        """
        Initialize the engine.

        Args:
            config: Validated scoring configuration.
                    Uses defaults if not provided.
        """
        self.config = config or get_default_config()
        self._evaluators = build_evaluators(self.config)

    def score(
        self,
        snapshot: AnimalSnapshot,
        context: Optional[SupportingContext] = None,
        as_of: Optional[Union[datetime, date]] = None,
    ) -> RiskAssessment:
        """
        Score one animal.

        Args:
            snapshot: Read-only animal record
            context: Supporting records; missing pieces score zero
            as_of: Reference time for day counts (defaults to now)

        Returns:
            RiskAssessment with composite score, severity and reasons

        Raises:
            ScoringError: If an evaluator fails unexpectedly
        """
        context = context or SupportingContext()
        assessed_at = _as_datetime(as_of) if as_of is not None else utc_now()
        reference_date = assessed_at.date()

        evaluations: Dict[RiskFactor, FactorEvaluation] = {}
        try:
            for evaluator in self._evaluators:
                evaluations[evaluator.factor] = evaluator.evaluate(
                    snapshot, context, reference_date, evaluations
                )
        except RiskScoringError:
            raise
        except Exception as e:
            raise ScoringError(
                f"Scoring failed for animal {snapshot.animal_id}: {e}",
                animal_id=snapshot.animal_id,
            ) from e

        weights = self.config.weights
        factor_scores = tuple(
            RiskFactorScore(
                factor=factor,
                raw_score=evaluation.raw_score,
                score=evaluation.score,
                weight=weights.get_weight(factor),
                weighted_contribution=evaluation.score * weights.get_weight(factor),
                explanation=evaluation.explanation,
                evaluated_at=assessed_at,
            )
            for factor, evaluation in evaluations.items()
        )

        urgency_score = calculate_composite_score(
            {factor: e.score for factor, e in evaluations.items()}, weights
        )
        severity = self.config.thresholds.classify(urgency_score)
        reasons = self._collect_reasons(evaluations)

        logger.debug(
            f"Scored animal {snapshot.animal_id}: {urgency_score} {severity.value} "
            f"reasons={[r.value for r in reasons]}"
        )

        return RiskAssessment(
            animal_id=snapshot.animal_id,
            organization_id=snapshot.organization_id,
            urgency_score=urgency_score,
            severity=severity,
            risk_reasons=reasons,
            factor_scores=factor_scores,
            evaluations=evaluations,
            algorithm_version=self.config.version,
            assessed_at=assessed_at,
        )

    def _collect_reasons(
        self,
        evaluations: Mapping[RiskFactor, FactorEvaluation],
    ) -> tuple:
        """Reasons in factor order, deduplicated; zero-weight factors stay silent."""
        reasons: List[RiskReason] = []
        for factor, evaluation in evaluations.items():
            if self.config.weights.get_weight(factor) <= 0:
                continue
            reasons.extend(evaluation.reasons)
        return tuple(dict.fromkeys(reasons))

    def get_config(self) -> RiskScoringConfig:
        """Return the current engine configuration."""
        return self.config


def _as_datetime(value: Union[datetime, date]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


def calculate_composite_score(
    factor_scores: Mapping[RiskFactor, float],
    weights: FactorWeights,
) -> int:
    """
    Weighted sum of normalized factor scores.

    Rounded half-up to an integer and clamped to [0, 100].
    The sum is first rounded to 6 places to absorb float noise
    (31.999999999999996 -> 32).
    """
    total = sum(
        score * weights.get_weight(factor)
        for factor, score in factor_scores.items()
    )
    rounded = Decimal(repr(round(total, 6))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, min(100, int(rounded)))


def classify_severity(
    urgency_score: float,
    thresholds: Optional[SeverityThresholds] = None,
) -> RiskSeverity:
    """Map an urgency score to its severity tier."""
    return (thresholds or SeverityThresholds()).classify(urgency_score)


def score_animal(
    snapshot: AnimalSnapshot,
    context: Optional[SupportingContext] = None,
    config: Optional[RiskScoringConfig] = None,
    as_of: Optional[Union[datetime, date]] = None,
) -> RiskAssessment:
    """
    Convenience function to score one animal in one call.

    For repeated scoring, prefer creating a persistent
    RiskScoringEngine instance.
    """
    return RiskScoringEngine(config).score(snapshot, context, as_of)


def explain_score(
    severity: RiskSeverity,
    reasons: Iterable[RiskReason],
) -> str:
    """Plain-language explanation of a tier and its reasons."""
    readable = ", ".join(REASON_LABELS.get(r, r.value) for r in reasons)

    if severity == RiskSeverity.CRITICAL:
        return f"CRITICAL: This animal needs immediate attention due to {readable or 'multiple risk factors'}."
    elif severity == RiskSeverity.HIGH:
        return f"HIGH RISK: Priority placement needed. Contributing factors: {readable or 'elevated risk indicators'}."
    elif severity == RiskSeverity.ELEVATED:
        return f"ELEVATED: Enhanced visibility recommended due to {readable or 'moderate risk factors'}."
    elif severity == RiskSeverity.MODERATE:
        return f"MODERATE: Standard care with attention to {readable or 'typical adoption timeline'}."
    else:
        return "LOW: Good adoption prospects expected."


def describe_factors(config: Optional[RiskScoringConfig] = None) -> Dict[str, Any]:
    """
    Describe the factors and tiers a config scores with.

    Useful for dashboards and the `factors` CLI command.
    """
    config = config or get_default_config()
    thresholds = config.thresholds
    minimums = {
        RiskSeverity.CRITICAL: thresholds.critical,
        RiskSeverity.HIGH: thresholds.high,
        RiskSeverity.ELEVATED: thresholds.elevated,
        RiskSeverity.MODERATE: thresholds.moderate,
        RiskSeverity.LOW: 0,
    }
    return {
        "version": config.version,
        "factors": [
            {
                "factor": factor.value,
                "weight": config.weights.get_weight(factor),
                **FACTOR_DESCRIPTIONS[factor],
            }
            for factor in RiskFactor
        ],
        "severity_levels": [
            {
                "level": severity.value,
                "min_score": minimums[severity],
                "action": SEVERITY_ACTIONS[severity],
            }
            for severity in RiskSeverity.descending()
        ],
    }


def format_risk_summary(result: Any) -> str:
    """
    Format a human-readable summary of an assessment or profile.

    Useful for logging, alerts, and the CLI.
    """
    lines = [
        "=" * 50,
        "URGENCY ASSESSMENT SUMMARY",
        "=" * 50,
        f"Animal: {result.animal_id}",
        f"Urgency Score: {result.urgency_score}/100",
        f"Severity: {result.severity.value} ({SEVERITY_ACTIONS[result.severity]})",
        f"Algorithm: {result.algorithm_version}",
        "",
        "Factor Breakdown:",
    ]
    for fs in result.factor_scores:
        lines.append(
            f"  {fs.factor.value:<20} {fs.score:6.1f} x {fs.weight:.2f} = {fs.weighted_contribution:6.2f}"
        )
    lines.extend([
        "",
        f"Reasons: {', '.join(r.value for r in result.risk_reasons) or 'none'}",
        explain_score(result.severity, result.risk_reasons),
        "=" * 50,
    ])
    return "\n".join(lines)
