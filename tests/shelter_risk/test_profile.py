"""
Tests for profile assembly, manual overrides and summaries.
"""

import pytest

from shelter_risk import (
    AgeCategory,
    KennelStressLevel,
    PopulationCounts,
    RiskProfile,
    RiskReason,
    RiskScoringEngine,
    RiskSeverity,
    SupportingContext,
    apply_manual_override,
    assemble_profile,
    summarize_profiles,
)

from .factories import AS_OF_DT, make_snapshot


@pytest.fixture
def assessment(config):
    snapshot = make_snapshot(days=70, age_category=AgeCategory.SENIOR, color_primary="black")
    context = SupportingContext(organization_population=PopulationCounts(95, 100))
    return RiskScoringEngine(config).score(snapshot, context, as_of=AS_OF_DT)


# ============================================================
# ASSEMBLY
# ============================================================

class TestAssembleProfile:

    def test_copies_factor_details(self, assessment):
        profile = assemble_profile(assessment, calculated_at=AS_OF_DT)

        assert profile.animal_id == assessment.animal_id
        assert profile.organization_id == "org-1"
        assert profile.urgency_score == assessment.urgency_score
        assert profile.severity == assessment.severity
        assert profile.risk_reasons == assessment.risk_reasons
        assert profile.length_of_stay == 70
        assert profile.target_los == 45
        assert profile.shelter_capacity == pytest.approx(95.0)
        assert profile.species_capacity is None
        assert profile.is_over_capacity is False
        assert profile.is_senior is True
        assert profile.vulnerable_category == "BLACK_ANIMAL"
        assert profile.kennel_stress_level == KennelStressLevel.NONE
        assert profile.adoptability_score == 50.0
        assert profile.last_calculated == AS_OF_DT
        assert profile.algorithm_version == "1.0"
        assert profile.is_manual_override is False

    def test_recompute_replaces_plain_profile(self, assessment):
        existing = RiskProfile(animal_id=assessment.animal_id, urgency_score=5, severity=RiskSeverity.LOW)
        profile = assemble_profile(assessment, existing=existing)

        assert profile.urgency_score == assessment.urgency_score

    def test_override_survives_recompute(self, assessment):
        existing = apply_manual_override(
            assemble_profile(assessment),
            urgency_score=95,
            reason="Bite quarantine ends Friday",
            author="dr.lee",
        )

        profile = assemble_profile(assessment, existing=existing)

        assert profile.urgency_score == 95
        assert profile.severity == RiskSeverity.CRITICAL
        assert profile.is_manual_override is True
        assert profile.override_reason == "Bite quarantine ends Friday"
        assert profile.override_by == "dr.lee"
        assert profile.risk_reasons[0] == RiskReason.MANUAL_OVERRIDE
        assert profile.risk_reasons[1:] == assessment.risk_reasons
        # factor fields still refresh
        assert profile.factor_scores == assessment.factor_scores
        assert profile.length_of_stay == 70

    def test_clear_override_restores_computed_score(self, assessment):
        existing = apply_manual_override(assemble_profile(assessment), 95, "hold", "dr.lee")

        profile = assemble_profile(assessment, existing=existing, clear_override=True)

        assert profile.urgency_score == assessment.urgency_score
        assert profile.is_manual_override is False
        assert profile.override_reason is None
        assert RiskReason.MANUAL_OVERRIDE not in profile.risk_reasons

    def test_to_dict_is_serializable(self, assessment):
        data = assemble_profile(assessment).to_dict()

        assert data["severity"] == assessment.severity.value
        assert data["risk_reasons"] == [r.value for r in assessment.risk_reasons]
        assert len(data["factor_scores"]) == 6
        assert data["kennel_stress_level"] == "NONE"


# ============================================================
# MANUAL OVERRIDE
# ============================================================

class TestApplyManualOverride:

    @pytest.fixture
    def profile(self, assessment):
        return assemble_profile(assessment)

    def test_severity_follows_override_score(self, profile):
        overridden = apply_manual_override(profile, 45, "transfer pending", "staff")

        assert overridden.urgency_score == 45
        assert overridden.severity == RiskSeverity.ELEVATED

    def test_reason_not_duplicated(self, profile):
        once = apply_manual_override(profile, 70, "first", "staff")
        twice = apply_manual_override(once, 75, "second", "staff")

        assert twice.risk_reasons.count(RiskReason.MANUAL_OVERRIDE) == 1
        assert twice.override_reason == "second"

    @pytest.mark.parametrize("score", [-1, 101, 50.5, True])
    def test_invalid_score_rejected(self, profile, score):
        with pytest.raises(ValueError):
            apply_manual_override(profile, score, "reason", "staff")

    def test_reason_and_author_required(self, profile):
        with pytest.raises(ValueError, match="reason"):
            apply_manual_override(profile, 50, "  ", "staff")
        with pytest.raises(ValueError, match="author"):
            apply_manual_override(profile, 50, "reason", "")


# ============================================================
# SUMMARY
# ============================================================

class TestSummarizeProfiles:

    def test_distribution_and_top(self):
        profiles = [
            RiskProfile(animal_id="A-1", urgency_score=85, severity=RiskSeverity.CRITICAL),
            RiskProfile(animal_id="A-2", urgency_score=62, severity=RiskSeverity.HIGH),
            RiskProfile(animal_id="A-3", urgency_score=85, severity=RiskSeverity.CRITICAL),
            RiskProfile(animal_id="A-4", urgency_score=10, severity=RiskSeverity.LOW),
        ]

        summary = summarize_profiles(profiles, top_n=3)

        assert summary.total_animals == 4
        assert summary.by_severity[RiskSeverity.CRITICAL] == 2
        assert summary.by_severity[RiskSeverity.ELEVATED] == 0
        assert summary.critical_count == 2
        assert summary.high_risk_count == 3
        assert [p.animal_id for p in summary.top_at_risk] == ["A-1", "A-3", "A-2"]

    def test_empty_population(self):
        summary = summarize_profiles([])

        assert summary.total_animals == 0
        assert summary.to_dict()["by_severity"] == {
            "CRITICAL": 0, "HIGH": 0, "ELEVATED": 0, "MODERATE": 0, "LOW": 0,
        }

    def test_summary_ignores_input_order(self):
        profiles = [
            RiskProfile(animal_id=f"A-{i}", urgency_score=score, severity=RiskSeverity.LOW)
            for i, score in enumerate([3, 9, 1, 9])
        ]
        forward = summarize_profiles(profiles)
        backward = summarize_profiles(list(reversed(profiles)))

        assert forward.top_at_risk == backward.top_at_risk
        assert forward.top_at_risk[0].animal_id == "A-1"
