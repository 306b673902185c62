"""
Shelter Risk Engine - Package.

============================================================
PURPOSE
============================================================
Computes a 0-100 urgency score for every animal in care,
classifies it into a severity tier, explains it with risk
reasons, persists it as one RiskProfile per animal and
raises alerts when an animal crosses into a higher tier.

============================================================
SIX RISK FACTORS
============================================================
1. LENGTH_OF_STAY: Days in care against a species/age target
2. MEDICAL: Open follow-ups on serious conditions
3. BEHAVIORAL: Assessment results and kennel stress
4. CAPACITY: Organization and species crowding
5. ADOPTABILITY: Adopter interest per profile view
6. SPECIAL_CATEGORIES: Senior, special needs, large breed, black coat

============================================================
SCORING
============================================================
Each factor: 0-100. Urgency = weighted sum, rounded, 0-100.

Classification (default thresholds):
- CRITICAL (>= 80): Immediate intervention needed
- HIGH (>= 60): Priority attention required
- ELEVATED (>= 40): Close monitoring recommended
- MODERATE (>= 20): Standard care protocols
- LOW (< 20): Routine monitoring

============================================================
USAGE
============================================================
    from datetime import date
    from shelter_risk import (
        AgeCategory,
        AnimalSnapshot,
        RiskScoringEngine,
        SupportingContext,
        get_default_config,
    )

    engine = RiskScoringEngine(get_default_config())

    assessment = engine.score(
        AnimalSnapshot(
            animal_id="A-1001",
            species="DOG",
            intake_date=date(2024, 1, 5),
            age_category=AgeCategory.SENIOR,
            special_needs="daily medication",
        ),
        SupportingContext(),
    )

    print(f"{assessment.urgency_score} {assessment.severity.value}")

============================================================
"""

from .types import (
    # Enums
    RiskSeverity,
    RiskFactor,
    RiskReason,
    KennelStressLevel,
    SpecialNeedsCategory,
    AgeCategory,
    AnimalSize,
    AnimalStatus,
    BehavioralResult,
    AlertType,
    # Inputs
    AnimalSnapshot,
    MedicalRecord,
    BehavioralAssessment,
    PopulationCounts,
    AdoptionInterest,
    SupportingContext,
    # Outputs
    FactorEvaluation,
    RiskFactorScore,
    RiskAssessment,
    RiskProfile,
    RiskAlert,
    BatchItemError,
    BatchSummary,
    # Errors
    RiskScoringError,
    ConfigurationError,
    AnimalNotFoundError,
    ProviderError,
    ScoringError,
)

from .config import (
    FactorWeights,
    SeverityThresholds,
    AlertingConfig,
    BatchConfig,
    RiskScoringConfig,
    DefaultConfigSource,
    YamlConfigSource,
    EnvConfigSource,
    get_default_config,
    get_simplified_config,
    load_config,
)

from .engine import (
    RiskScoringEngine,
    calculate_composite_score,
    classify_severity,
    score_animal,
    explain_score,
    describe_factors,
    format_risk_summary,
)

from .profile import (
    RiskSummary,
    assemble_profile,
    apply_manual_override,
    summarize_profiles,
)

from .alerting import (
    ThresholdCrossingDetector,
    LoggingAlertSink,
)

from .interfaces import (
    AnimalRecordProvider,
    RiskProfileStore,
    AlertSink,
    ConfigSource,
)

from .memory import (
    InMemoryAnimalRecordProvider,
    InMemoryRiskProfileStore,
    InMemoryAlertSink,
)

from .service import RiskScoringService
from .batch import BatchRecalculator


__all__ = [
    # Enums
    "RiskSeverity",
    "RiskFactor",
    "RiskReason",
    "KennelStressLevel",
    "SpecialNeedsCategory",
    "AgeCategory",
    "AnimalSize",
    "AnimalStatus",
    "BehavioralResult",
    "AlertType",
    # Inputs
    "AnimalSnapshot",
    "MedicalRecord",
    "BehavioralAssessment",
    "PopulationCounts",
    "AdoptionInterest",
    "SupportingContext",
    # Outputs
    "FactorEvaluation",
    "RiskFactorScore",
    "RiskAssessment",
    "RiskProfile",
    "RiskAlert",
    "BatchItemError",
    "BatchSummary",
    # Errors
    "RiskScoringError",
    "ConfigurationError",
    "AnimalNotFoundError",
    "ProviderError",
    "ScoringError",
    # Config
    "FactorWeights",
    "SeverityThresholds",
    "AlertingConfig",
    "BatchConfig",
    "RiskScoringConfig",
    "DefaultConfigSource",
    "YamlConfigSource",
    "EnvConfigSource",
    "get_default_config",
    "get_simplified_config",
    "load_config",
    # Engine
    "RiskScoringEngine",
    "calculate_composite_score",
    "classify_severity",
    "score_animal",
    "explain_score",
    "describe_factors",
    "format_risk_summary",
    # Profiles
    "RiskSummary",
    "assemble_profile",
    "apply_manual_override",
    "summarize_profiles",
    # Alerting
    "ThresholdCrossingDetector",
    "LoggingAlertSink",
    # Interfaces
    "AnimalRecordProvider",
    "RiskProfileStore",
    "AlertSink",
    "ConfigSource",
    # In-memory collaborators
    "InMemoryAnimalRecordProvider",
    "InMemoryRiskProfileStore",
    "InMemoryAlertSink",
    # Services
    "RiskScoringService",
    "BatchRecalculator",
]
