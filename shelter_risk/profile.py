"""
Shelter Risk Engine - Profile Assembly.

============================================================
PURPOSE
============================================================
Packages an engine assessment into the persisted RiskProfile
and applies manual-override rules.

============================================================
OVERRIDE RULES
============================================================
When the stored profile carries a manual override, an
automatic recompute keeps the stored urgency_score and
severity, puts MANUAL_OVERRIDE first in the reasons and
refreshes every factor and metadata field. Only an explicit
clear_override request replaces the overridden score.

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .config import SeverityThresholds
from .types import (
    KennelStressLevel,
    RiskAssessment,
    RiskFactor,
    RiskProfile,
    RiskReason,
    RiskSeverity,
    utc_now,
)


def assemble_profile(
    assessment: RiskAssessment,
    existing: Optional[RiskProfile] = None,
    clear_override: bool = False,
    calculated_at: Optional[datetime] = None,
) -> RiskProfile:
    """
    Build the profile to persist for one assessment.

    Args:
        assessment: Fresh engine output
        existing: Currently stored profile, if any
        clear_override: Replace a manual override with the computed score
        calculated_at: Timestamp for last_calculated (defaults to now)

    Returns:
        RiskProfile ready for upsert
    """
    los = RiskFactor.LENGTH_OF_STAY
    medical = RiskFactor.MEDICAL
    behavioral = RiskFactor.BEHAVIORAL
    capacity = RiskFactor.CAPACITY
    adoptability = RiskFactor.ADOPTABILITY
    special = RiskFactor.SPECIAL_CATEGORIES
    detail = assessment.detail

    profile = RiskProfile(
        animal_id=assessment.animal_id,
        organization_id=assessment.organization_id,
        urgency_score=assessment.urgency_score,
        severity=assessment.severity,
        risk_reasons=assessment.risk_reasons,
        factor_scores=assessment.factor_scores,
        length_of_stay=detail(los, "days_in_shelter", 0),
        target_los=detail(los, "target_los"),
        los_percentile=detail(los, "los_percentile"),
        medical_score=detail(medical, "medical_score", 0.0),
        has_medical_deadline=detail(medical, "has_medical_deadline", False),
        medical_conditions=tuple(detail(medical, "medical_conditions", ())),
        behavioral_score=detail(behavioral, "behavioral_score", 0.0),
        kennel_stress_level=detail(behavioral, "kennel_stress_level", KennelStressLevel.NONE),
        enrichment_deficit=detail(behavioral, "enrichment_deficit", False),
        shelter_capacity=detail(capacity, "shelter_capacity"),
        species_capacity=detail(capacity, "species_capacity"),
        is_over_capacity=detail(capacity, "is_over_capacity", False),
        adoptability_score=detail(adoptability, "adoptability_score"),
        profile_views=detail(adoptability, "profile_views", 0),
        inquiry_count=detail(adoptability, "inquiry_count", 0),
        views_to_apps_ratio=detail(adoptability, "views_to_apps_ratio"),
        is_senior=detail(special, "is_senior", False),
        has_special_needs=detail(special, "has_special_needs", False),
        special_needs_categories=tuple(detail(special, "special_needs_categories", ())),
        vulnerable_category=detail(special, "vulnerable_category"),
        last_calculated=calculated_at or utc_now(),
        algorithm_version=assessment.algorithm_version,
    )

    if existing is not None and existing.is_manual_override and not clear_override:
        profile = replace(
            profile,
            urgency_score=existing.urgency_score,
            severity=existing.severity,
            risk_reasons=_with_override_reason(profile.risk_reasons),
            is_manual_override=True,
            override_reason=existing.override_reason,
            override_by=existing.override_by,
        )

    return profile


def apply_manual_override(
    profile: RiskProfile,
    urgency_score: int,
    reason: str,
    author: str,
    thresholds: Optional[SeverityThresholds] = None,
    calculated_at: Optional[datetime] = None,
) -> RiskProfile:
    """
    Pin a profile's score and severity until the override is cleared.

    Raises:
        ValueError: If the score is outside 0-100 or reason/author are blank
    """
    if isinstance(urgency_score, bool) or not isinstance(urgency_score, int):
        raise ValueError(f"Override score must be an integer, got {urgency_score!r}")
    if not 0 <= urgency_score <= 100:
        raise ValueError(f"Override score must be within 0-100, got {urgency_score}")
    if not reason or not reason.strip():
        raise ValueError("Override reason is required")
    if not author or not author.strip():
        raise ValueError("Override author is required")

    thresholds = thresholds or SeverityThresholds()
    return replace(
        profile,
        urgency_score=urgency_score,
        severity=thresholds.classify(urgency_score),
        risk_reasons=_with_override_reason(profile.risk_reasons),
        is_manual_override=True,
        override_reason=reason.strip(),
        override_by=author.strip(),
        last_calculated=calculated_at or utc_now(),
    )


def _with_override_reason(reasons: Iterable[RiskReason]) -> tuple:
    rest = [r for r in reasons if r != RiskReason.MANUAL_OVERRIDE]
    return (RiskReason.MANUAL_OVERRIDE, *dict.fromkeys(rest))


# ============================================================
# POPULATION SUMMARY
# ============================================================


@dataclass(frozen=True)
class RiskSummary:
    """Severity distribution and most urgent animals of a population."""

    total_animals: int
    by_severity: Dict[RiskSeverity, int]
    top_at_risk: List[RiskProfile] = field(default_factory=list)

    @property
    def critical_count(self) -> int:
        return self.by_severity.get(RiskSeverity.CRITICAL, 0)

    @property
    def high_risk_count(self) -> int:
        return self.critical_count + self.by_severity.get(RiskSeverity.HIGH, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_animals": self.total_animals,
            "by_severity": {s.value: n for s, n in self.by_severity.items()},
            "critical_count": self.critical_count,
            "high_risk_count": self.high_risk_count,
            "top_at_risk": [
                {
                    "animal_id": p.animal_id,
                    "urgency_score": p.urgency_score,
                    "severity": p.severity.value,
                    "risk_reasons": [r.value for r in p.risk_reasons],
                }
                for p in self.top_at_risk
            ],
        }


def summarize_profiles(profiles: Iterable[RiskProfile], top_n: int = 5) -> RiskSummary:
    """
    Summarize a population of profiles.

    Top animals are ordered by urgency descending, ties broken
    by animal id so the result is stable.
    """
    profiles = list(profiles)
    by_severity = {severity: 0 for severity in RiskSeverity.descending()}
    for profile in profiles:
        by_severity[profile.severity] += 1

    ranked = sorted(profiles, key=lambda p: (-p.urgency_score, p.animal_id))
    return RiskSummary(
        total_animals=len(profiles),
        by_severity=by_severity,
        top_at_risk=ranked[:top_n],
    )
