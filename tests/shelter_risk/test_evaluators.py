"""
Tests for the factor evaluators.

============================================================
TEST COVERAGE
============================================================
1. Length of stay tiers and clamping
2. Medical follow-ups and deadlines
3. Behavioral results, kennel stress, enrichment deficit
4. Capacity pressure
5. Adoptability / low interest
6. Special categories and special-needs tagging
7. Age category derivation
============================================================
"""

from datetime import date

import pytest

from shelter_risk import (
    AdoptionInterest,
    AgeCategory,
    AnimalSize,
    BehavioralAssessment,
    BehavioralResult,
    KennelStressLevel,
    MedicalRecord,
    PopulationCounts,
    RiskFactor,
    RiskReason,
    SpecialNeedsCategory,
    SupportingContext,
)
from shelter_risk.evaluators import (
    AdoptabilityEvaluator,
    BehavioralEvaluator,
    CapacityEvaluator,
    LengthOfStayEvaluator,
    MedicalEvaluator,
    SpecialCategoryEvaluator,
    build_evaluators,
    days_in_shelter,
    resolve_age_category,
)

from .factories import AS_OF, days_ago, make_snapshot


def evaluate(evaluator, snapshot, context=None, prior=None):
    return evaluator.evaluate(snapshot, context or SupportingContext(), AS_OF, prior or {})


# ============================================================
# LENGTH OF STAY
# ============================================================

class TestLengthOfStay:
    """Adult dog target is 30 days."""

    @pytest.fixture
    def evaluator(self, config):
        return LengthOfStayEvaluator(config)

    @pytest.mark.parametrize("days,expected_score,long_los", [
        (0, 0.0, False),
        (15, 20.0, False),
        (30, 40.0, False),
        (44, 40.0, False),
        (45, 60.0, True),
        (60, 80.0, True),
        (89, 80.0, True),
        (90, 100.0, True),
        (400, 100.0, True),
    ])
    def test_tiers(self, evaluator, days, expected_score, long_los):
        result = evaluate(evaluator, make_snapshot(days=days))

        assert result.score == pytest.approx(expected_score)
        assert (RiskReason.LONG_LOS in result.reasons) is long_los

    def test_monotonic_in_days(self, evaluator):
        scores = [evaluate(evaluator, make_snapshot(days=d)).score for d in range(0, 200, 3)]
        assert scores == sorted(scores)

    def test_future_intake_clamps_to_zero(self, evaluator):
        snapshot = make_snapshot(intake_date=date(2024, 7, 1))
        result = evaluate(evaluator, snapshot)

        assert result.details["days_in_shelter"] == 0
        assert result.score == 0.0

    def test_details(self, evaluator):
        result = evaluate(evaluator, make_snapshot(days=45))

        assert result.details["target_los"] == 30
        assert result.details["los_ratio"] == pytest.approx(1.5)
        assert result.details["los_percentile"] == pytest.approx(75.0)

    def test_percentile_capped(self, evaluator):
        result = evaluate(evaluator, make_snapshot(days=300))
        assert result.details["los_percentile"] == 99.0

    def test_senior_uses_senior_target(self, evaluator):
        snapshot = make_snapshot(days=45, age_category=AgeCategory.GERIATRIC)
        result = evaluate(evaluator, snapshot)

        assert result.details["target_los"] == 45
        assert result.score == 40.0

    @pytest.mark.parametrize("species,target", [("CAT", 21), ("RABBIT", 14), ("HORSE", 60)])
    def test_species_target_reached(self, evaluator, species, target):
        result = evaluate(evaluator, make_snapshot(species=species, days=target))

        assert result.details["target_los"] == target
        assert result.details["los_ratio"] == pytest.approx(1.0)
        assert result.score == 40.0

    def test_unknown_age_uses_default_target(self, evaluator):
        snapshot = make_snapshot(days=30, age_category=None)
        assert evaluate(evaluator, snapshot).details["target_los"] == 30

    def test_days_in_shelter_helper(self):
        assert days_in_shelter(make_snapshot(days=12), AS_OF) == 12


# ============================================================
# MEDICAL
# ============================================================

class TestMedical:

    @pytest.fixture
    def evaluator(self, config):
        return MedicalEvaluator(config)

    def context(self, *records):
        return SupportingContext(medical_records=tuple(records))

    def test_no_records(self, evaluator):
        result = evaluate(evaluator, make_snapshot())

        assert result.score == 0.0
        assert result.reasons == ()
        assert result.details["has_medical_deadline"] is False

    def test_untreatable_condition_is_critical(self, evaluator):
        record = MedicalRecord("Chronic kidney disease", follow_up_required=True, is_treatable=False)
        result = evaluate(evaluator, make_snapshot(), self.context(record))

        assert result.raw_score == 8.0
        assert result.score == 80.0
        assert result.reasons == (RiskReason.MEDICAL_CRITICAL,)
        assert result.details["medical_conditions"] == ("Chronic kidney disease",)

    def test_adoptability_affecting_condition(self, evaluator):
        record = MedicalRecord("Heartworm", follow_up_required=True, affects_adoptability=True)
        result = evaluate(evaluator, make_snapshot(), self.context(record))

        assert result.score == 60.0
        assert result.reasons == ()

    def test_records_without_follow_up_ignored(self, evaluator):
        record = MedicalRecord("Old fracture", follow_up_required=False, is_treatable=False)
        assert evaluate(evaluator, make_snapshot(), self.context(record)).score == 0.0

    def test_minor_treatable_condition_ignored(self, evaluator):
        record = MedicalRecord("Ear infection", follow_up_required=True)
        assert evaluate(evaluator, make_snapshot(), self.context(record)).score == 0.0

    @pytest.mark.parametrize("offset,urgent", [(-5, True), (0, True), (3, True), (4, False)])
    def test_follow_up_deadline(self, evaluator, offset, urgent):
        record = MedicalRecord(
            "Heartworm",
            follow_up_required=True,
            affects_adoptability=True,
            follow_up_date=days_ago(-offset),
        )
        result = evaluate(evaluator, make_snapshot(), self.context(record))

        assert result.details["has_medical_deadline"] is urgent
        assert (RiskReason.MEDICAL_URGENT in result.reasons) is urgent

    def test_urgent_listed_before_critical(self, evaluator):
        record = MedicalRecord(
            "Cancer",
            follow_up_required=True,
            is_treatable=False,
            follow_up_date=days_ago(-1),
        )
        result = evaluate(evaluator, make_snapshot(), self.context(record))

        assert result.reasons == (RiskReason.MEDICAL_URGENT, RiskReason.MEDICAL_CRITICAL)

    def test_highest_record_wins_and_reasons_dedupe(self, evaluator):
        records = (
            MedicalRecord("Heartworm", follow_up_required=True, affects_adoptability=True),
            MedicalRecord("Cancer", follow_up_required=True, is_treatable=False),
            MedicalRecord("FIV", follow_up_required=True, is_treatable=False),
        )
        result = evaluate(evaluator, make_snapshot(), self.context(*records))

        assert result.score == 80.0
        assert result.reasons == (RiskReason.MEDICAL_CRITICAL,)
        assert len(result.details["medical_conditions"]) == 3


# ============================================================
# BEHAVIORAL
# ============================================================

class TestBehavioral:

    @pytest.fixture
    def evaluator(self, config):
        return BehavioralEvaluator(config)

    def context(self, *assessments):
        return SupportingContext(behavioral_assessments=tuple(assessments))

    @pytest.mark.parametrize("result,score", [
        (BehavioralResult.CONCERNING, 80.0),
        (BehavioralResult.NOT_ADOPTABLE, 80.0),
        (BehavioralResult.RESCUE_ONLY, 60.0),
        (BehavioralResult.RESTRICTED, 60.0),
        (BehavioralResult.NEEDS_TRAINING, 40.0),
        (BehavioralResult.ADOPTABLE, 0.0),
    ])
    def test_latest_result_sets_score(self, evaluator, result, score):
        assessment = BehavioralAssessment(result, assessed_at=days_ago(2))
        assert evaluate(evaluator, make_snapshot(), self.context(assessment)).score == score

    def test_most_recent_assessment_wins(self, evaluator):
        result = evaluate(evaluator, make_snapshot(), self.context(
            BehavioralAssessment(BehavioralResult.CONCERNING, assessed_at=days_ago(30)),
            BehavioralAssessment(BehavioralResult.ADOPTABLE, assessed_at=days_ago(1)),
        ))

        assert result.score == 0.0
        assert RiskReason.BEHAVIORAL_DECLINE not in result.reasons

    def test_concerning_result_flags_decline(self, evaluator):
        assessment = BehavioralAssessment(BehavioralResult.NOT_ADOPTABLE, assessed_at=days_ago(1))
        result = evaluate(evaluator, make_snapshot(), self.context(assessment))

        assert result.reasons == (RiskReason.BEHAVIORAL_DECLINE,)

    @pytest.mark.parametrize("previous,latest,level,stress_reason", [
        (8.0, 5.0, KennelStressLevel.SEVERE, True),
        (8.0, 6.0, KennelStressLevel.MODERATE, True),
        (8.0, 7.0, KennelStressLevel.MILD, False),
        (8.0, 7.5, KennelStressLevel.NONE, False),
        (5.0, 8.0, KennelStressLevel.NONE, False),
    ])
    def test_kennel_stress_from_score_decline(self, evaluator, previous, latest, level, stress_reason):
        result = evaluate(evaluator, make_snapshot(), self.context(
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(20), overall_score=previous),
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(2), overall_score=latest),
        ))

        assert result.details["kennel_stress_level"] == level
        assert (RiskReason.KENNEL_STRESS in result.reasons) is stress_reason

    def test_full_decline_reaches_top_stress_level(self, evaluator):
        result = evaluate(evaluator, make_snapshot(), self.context(
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(20), overall_score=10.0),
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(2), overall_score=0.0),
        ))

        assert result.details["kennel_stress_level"] == list(KennelStressLevel)[-1]
        assert list(KennelStressLevel) == [
            KennelStressLevel.NONE,
            KennelStressLevel.MILD,
            KennelStressLevel.MODERATE,
            KennelStressLevel.SEVERE,
        ]

    def test_decline_uses_scored_assessments_only(self, evaluator):
        result = evaluate(evaluator, make_snapshot(), self.context(
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(30), overall_score=9.0),
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(15), overall_score=6.0),
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(1)),
        ))

        assert result.details["score_decline"] == pytest.approx(3.0)
        assert result.details["kennel_stress_level"] == KennelStressLevel.SEVERE

    def test_enrichment_deficit_after_long_stay(self, config, evaluator):
        snapshot = make_snapshot(days=61)
        los = evaluate(LengthOfStayEvaluator(config), snapshot)
        result = evaluate(evaluator, snapshot, prior={RiskFactor.LENGTH_OF_STAY: los})

        assert result.details["kennel_stress_level"] == KennelStressLevel.MODERATE
        assert result.details["enrichment_deficit"] is True
        assert RiskReason.KENNEL_STRESS not in result.reasons
        assert result.score == 0.0

    def test_no_enrichment_deficit_at_exactly_twice_target(self, config, evaluator):
        snapshot = make_snapshot(days=60)
        los = evaluate(LengthOfStayEvaluator(config), snapshot)
        result = evaluate(evaluator, snapshot, prior={RiskFactor.LENGTH_OF_STAY: los})

        assert result.details["enrichment_deficit"] is False

    def test_observed_stress_is_not_replaced_by_fallback(self, config, evaluator):
        snapshot = make_snapshot(days=100)
        los = evaluate(LengthOfStayEvaluator(config), snapshot)
        context = self.context(
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(20), overall_score=9.0),
            BehavioralAssessment(BehavioralResult.ADOPTABLE, days_ago(2), overall_score=5.0),
        )
        result = evaluate(evaluator, snapshot, context, prior={RiskFactor.LENGTH_OF_STAY: los})

        assert result.details["kennel_stress_level"] == KennelStressLevel.SEVERE
        assert result.details["enrichment_deficit"] is False


# ============================================================
# CAPACITY
# ============================================================

class TestCapacity:

    @pytest.fixture
    def evaluator(self, config):
        return CapacityEvaluator(config)

    @pytest.mark.parametrize("current,score,pressure", [
        (80, 0.0, False),
        (81, 40.0, False),
        (90, 40.0, False),
        (91, 60.0, True),
        (100, 60.0, True),
        (101, 80.0, True),
    ])
    def test_organization_tiers(self, evaluator, current, score, pressure):
        context = SupportingContext(organization_population=PopulationCounts(current, 100))
        result = evaluate(evaluator, make_snapshot(), context)

        assert result.score == score
        assert (RiskReason.CAPACITY_PRESSURE in result.reasons) is pressure

    def test_species_pressure_wins_over_org(self, evaluator):
        context = SupportingContext(
            organization_population=PopulationCounts(60, 100),
            species_population=PopulationCounts(22, 20),
        )
        result = evaluate(evaluator, make_snapshot(), context)

        assert result.score == 80.0
        assert result.details["shelter_capacity"] == pytest.approx(60.0)
        assert result.details["species_capacity"] == pytest.approx(110.0)
        assert result.details["is_over_capacity"] is True

    def test_missing_or_zero_capacity_scores_zero(self, evaluator):
        assert evaluate(evaluator, make_snapshot()).score == 0.0

        context = SupportingContext(organization_population=PopulationCounts(10, 0))
        result = evaluate(evaluator, make_snapshot(), context)
        assert result.score == 0.0
        assert result.details["shelter_capacity"] is None


# ============================================================
# ADOPTABILITY
# ============================================================

class TestAdoptability:

    @pytest.fixture
    def evaluator(self, config):
        return AdoptabilityEvaluator(config)

    def test_no_views_is_baseline(self, evaluator):
        result = evaluate(evaluator, make_snapshot(days=40))

        assert result.score == 50.0
        assert result.details["adoptability_score"] == 50.0
        assert result.details["views_to_apps_ratio"] is None

    def test_low_interest_after_two_weeks(self, evaluator):
        context = SupportingContext(adoption_interest=AdoptionInterest(profile_views=500, inquiry_count=2))
        result = evaluate(evaluator, make_snapshot(days=15), context)

        assert result.score == 70.0
        assert result.reasons == (RiskReason.LOW_INTEREST,)

    def test_low_interest_needs_more_than_fourteen_days(self, evaluator):
        context = SupportingContext(adoption_interest=AdoptionInterest(profile_views=500, inquiry_count=2))
        result = evaluate(evaluator, make_snapshot(days=14), context)

        assert result.score == 50.0
        assert result.reasons == ()

    def test_high_interest_lowers_risk(self, evaluator):
        context = SupportingContext(adoption_interest=AdoptionInterest(profile_views=100, inquiry_count=15))
        result = evaluate(evaluator, make_snapshot(days=3), context)

        assert result.score == 30.0
        assert result.details["views_to_apps_ratio"] == pytest.approx(0.15)


# ============================================================
# SPECIAL CATEGORIES
# ============================================================

class TestSpecialCategories:

    @pytest.fixture
    def evaluator(self, config):
        return SpecialCategoryEvaluator(config)

    def test_no_categories(self, evaluator):
        result = evaluate(evaluator, make_snapshot())

        assert result.score == 0.0
        assert result.reasons == ()

    def test_all_categories_sum(self, evaluator):
        snapshot = make_snapshot(
            age_category=AgeCategory.SENIOR,
            special_needs="Needs daily insulin",
            size=AnimalSize.EXTRA_LARGE,
            color_primary="Black",
        )
        result = evaluate(evaluator, snapshot)

        assert result.score == 50.0
        assert result.reasons == (
            RiskReason.SENIOR,
            RiskReason.SPECIAL_NEEDS,
            RiskReason.LARGE_BREED,
            RiskReason.BLACK_ANIMAL,
        )
        assert result.details["vulnerable_category"] == "BLACK_ANIMAL"

    def test_large_breed_only_for_dogs(self, evaluator):
        snapshot = make_snapshot(species="CAT", size=AnimalSize.LARGE)
        assert RiskReason.LARGE_BREED not in evaluate(evaluator, snapshot).reasons

    def test_medical_conditions_count_as_special_needs(self, evaluator):
        snapshot = make_snapshot(medical_conditions=("diabetes",))
        result = evaluate(evaluator, snapshot)

        assert result.details["has_special_needs"] is True
        assert result.score == 15.0

    def test_keyword_categories(self, evaluator):
        snapshot = make_snapshot(special_needs="Blind, partially deaf, special diet and pills")
        result = evaluate(evaluator, snapshot)

        assert result.details["special_needs_categories"] == (
            SpecialNeedsCategory.MEDICATION,
            SpecialNeedsCategory.SPECIAL_DIET,
            SpecialNeedsCategory.VISION,
            SpecialNeedsCategory.HEARING,
        )

    def test_structured_categories_take_precedence(self, evaluator):
        snapshot = make_snapshot(
            special_needs="needs medication",
            special_needs_categories=(SpecialNeedsCategory.MOBILITY, SpecialNeedsCategory.MOBILITY),
        )
        result = evaluate(evaluator, snapshot)

        assert result.details["special_needs_categories"] == (SpecialNeedsCategory.MOBILITY,)

    def test_blank_special_needs_text_ignored(self, evaluator):
        result = evaluate(evaluator, make_snapshot(special_needs="   "))
        assert result.details["has_special_needs"] is False


# ============================================================
# AGE DERIVATION
# ============================================================

class TestAgeCategory:

    @pytest.mark.parametrize("species,birth_date,expected", [
        ("DOG", date(2024, 1, 1), AgeCategory.BABY),
        ("DOG", date(2022, 1, 1), AgeCategory.YOUNG),
        ("DOG", date(2019, 1, 1), AgeCategory.ADULT),
        ("DOG", date(2017, 1, 1), AgeCategory.SENIOR),
        ("CAT", date(2017, 1, 1), AgeCategory.ADULT),
        ("CAT", date(2014, 6, 1), AgeCategory.SENIOR),
    ])
    def test_derived_from_birth_date(self, config, species, birth_date, expected):
        snapshot = make_snapshot(species=species, age_category=None, birth_date=birth_date)
        assert resolve_age_category(snapshot, config, AS_OF) == expected

    def test_recorded_category_wins(self, config):
        snapshot = make_snapshot(age_category=AgeCategory.YOUNG, birth_date=date(2010, 1, 1))
        assert resolve_age_category(snapshot, config, AS_OF) == AgeCategory.YOUNG

    def test_no_age_information(self, config):
        snapshot = make_snapshot(age_category=None)
        assert resolve_age_category(snapshot, config, AS_OF) is None

    def test_derived_senior_counts_as_special_category(self, config):
        snapshot = make_snapshot(age_category=None, birth_date=date(2015, 1, 1))
        result = evaluate(SpecialCategoryEvaluator(config), snapshot)

        assert result.reasons == (RiskReason.SENIOR,)


class TestBuildEvaluators:

    def test_evaluation_order(self, config):
        factors = [e.factor for e in build_evaluators(config)]
        assert factors == RiskFactor.all_factors()
