"""
Shelter Risk Engine - Configuration.

============================================================
PURPOSE
============================================================
Defines the configuration dataclasses for the urgency
scoring engine and the sources they are loaded from.

A RiskScoringConfig is an explicit value passed into every
scoring call. There is no module-level singleton.

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable configurations (frozen dataclasses)
- Validated on construction: an invalid config cannot exist
- Loaders raise ConfigurationError, never fall back to defaults
- version is stamped onto every profile for auditability

============================================================
SOURCES
============================================================
Configuration can be loaded from:
- Default values (DefaultConfigSource)
- YAML config file (YamlConfigSource)
- Environment variables / .env file (EnvConfigSource)

============================================================
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .types import ConfigurationError, RiskFactor, RiskSeverity


logger = logging.getLogger(__name__)


WEIGHT_SUM_TOLERANCE = 1e-6

AGE_BUCKETS = ("baby", "young", "adult", "senior")

# Adult target length of stay (days) per species; OTHER covers unlisted species.
ADULT_TARGET_LOS_DAYS: Dict[str, int] = {
    "DOG": 30,
    "CAT": 21,
    "RABBIT": 14,
    "GUINEA_PIG": 14,
    "HAMSTER": 14,
    "BIRD": 21,
    "REPTILE": 30,
    "FERRET": 21,
    "HORSE": 60,
    "OTHER": 30,
}

# Other age buckets scale the adult target, rounded half-up to whole days.
AGE_BUCKET_LOS_FACTORS: Dict[str, float] = {
    "baby": 0.5,
    "young": 0.7,
    "adult": 1.0,
    "senior": 1.5,
}


def scale_target_los(adult_days: int) -> Dict[str, int]:
    """Derive the per-age-bucket targets from an adult target."""
    return {
        bucket: max(1, int(adult_days * factor + 0.5))
        for bucket, factor in AGE_BUCKET_LOS_FACTORS.items()
    }


DEFAULT_TARGET_LOS: Dict[str, Dict[str, int]] = {
    species: scale_target_los(days) for species, days in ADULT_TARGET_LOS_DAYS.items()
}

DEFAULT_SENIOR_AGE_YEARS: Dict[str, int] = {
    "DOG": 7,
    "CAT": 10,
    "RABBIT": 5,
}


# ============================================================
# FACTOR WEIGHTS
# ============================================================


@dataclass(frozen=True)
class FactorWeights:
    """
    Composite weight of each risk factor.

    All weights must be non-negative and sum to 1.0 within
    WEIGHT_SUM_TOLERANCE. Unlike a lenient loader, a bad sum is
    rejected rather than normalized.
    """

    length_of_stay: float = 0.25
    medical: float = 0.20
    behavioral: float = 0.15
    capacity: float = 0.15
    adoptability: float = 0.15
    special_categories: float = 0.10

    def __post_init__(self) -> None:
        for factor in RiskFactor:
            value = self.get_weight(factor)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(
                    f"Weight for {factor.value} must be a number, got {value!r}"
                )
            if not math.isfinite(value) or value < 0:
                raise ConfigurationError(
                    f"Weight for {factor.value} must be a finite non-negative number, got {value}"
                )

        total = self.total()
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigurationError(
                f"Factor weights must sum to 1.0 (got {total:.6f})",
                context={"weights": self.to_dict()},
            )

    def total(self) -> float:
        """Get sum of all weights."""
        return (
            self.length_of_stay +
            self.medical +
            self.behavioral +
            self.capacity +
            self.adoptability +
            self.special_categories
        )

    def get_weight(self, factor: RiskFactor) -> float:
        """Get weight for a specific factor."""
        return getattr(self, factor.value)

    def to_dict(self) -> Dict[str, float]:
        return {factor.value: self.get_weight(factor) for factor in RiskFactor}


# ============================================================
# SEVERITY THRESHOLDS
# ============================================================


@dataclass(frozen=True)
class SeverityThresholds:
    """
    Lower bounds of the severity tiers.

    - CRITICAL: score >= critical
    - HIGH:     high <= score < critical
    - ELEVATED: elevated <= score < high
    - MODERATE: moderate <= score < elevated
    - LOW:      score < moderate
    """

    critical: float = 80
    high: float = 60
    elevated: float = 40
    moderate: float = 20

    def __post_init__(self) -> None:
        ordered = self.as_list()
        for name, value in zip(("critical", "high", "elevated", "moderate"), ordered):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"Threshold {name} must be a number, got {value!r}")
            if not 0 < value <= 100:
                raise ConfigurationError(f"Threshold {name} must be within (0, 100], got {value}")

        for upper, lower in zip(ordered, ordered[1:]):
            if not upper > lower:
                raise ConfigurationError(
                    f"Severity thresholds must be strictly descending, got {ordered}",
                    context={"thresholds": self.to_dict()},
                )

    def as_list(self) -> List[float]:
        """Thresholds in descending tier order."""
        return [self.critical, self.high, self.elevated, self.moderate]

    def classify(self, score: float) -> RiskSeverity:
        """Determine severity tier from score."""
        if score >= self.critical:
            return RiskSeverity.CRITICAL
        elif score >= self.high:
            return RiskSeverity.HIGH
        elif score >= self.elevated:
            return RiskSeverity.ELEVATED
        elif score >= self.moderate:
            return RiskSeverity.MODERATE
        else:
            return RiskSeverity.LOW

    def alert_boundaries(self) -> List[Tuple[RiskSeverity, float]]:
        """Boundaries watched for crossings, most severe first."""
        return [
            (RiskSeverity.CRITICAL, self.critical),
            (RiskSeverity.HIGH, self.high),
            (RiskSeverity.ELEVATED, self.elevated),
        ]

    def to_dict(self) -> Dict[str, float]:
        return {
            "critical": self.critical,
            "high": self.high,
            "elevated": self.elevated,
            "moderate": self.moderate,
        }


# ============================================================
# ALERTING / BATCH CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class AlertingConfig:
    """
    Configuration for threshold-crossing alerts.

    Upward crossings always alert. Recoveries (a score falling
    back below a boundary) are opt-in.
    """

    alert_on_recovery: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"alert_on_recovery": self.alert_on_recovery}


@dataclass(frozen=True)
class BatchConfig:
    """Worker pool settings for population-wide recomputes."""

    max_concurrency: int = 16                 # Animals scored in parallel
    item_timeout_seconds: float = 30.0        # Per-animal time limit before recording an error

    def __post_init__(self) -> None:
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int):
            raise ConfigurationError(
                f"max_concurrency must be an integer, got {self.max_concurrency!r}"
            )
        if not 1 <= self.max_concurrency <= 64:
            raise ConfigurationError(
                f"max_concurrency must be between 1 and 64, got {self.max_concurrency}"
            )
        if not self.item_timeout_seconds > 0:
            raise ConfigurationError(
                f"item_timeout_seconds must be positive, got {self.item_timeout_seconds}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_concurrency": self.max_concurrency,
            "item_timeout_seconds": self.item_timeout_seconds,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


def _freeze_target_los(table: Mapping[str, Mapping[str, Any]]) -> Mapping[str, Mapping[str, int]]:
    frozen = {}
    for species, buckets in table.items():
        if not isinstance(buckets, Mapping):
            raise ConfigurationError(f"Target LOS for {species} must be a mapping of age buckets")
        species_table = {}
        for bucket, days in buckets.items():
            key = str(bucket).lower()
            if key not in AGE_BUCKETS:
                raise ConfigurationError(
                    f"Unknown age bucket {bucket!r} for {species} (expected one of {AGE_BUCKETS})"
                )
            if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
                raise ConfigurationError(
                    f"Target LOS for {species}/{key} must be a positive integer, got {days!r}"
                )
            species_table[key] = days
        frozen[str(species).upper()] = MappingProxyType(species_table)
    return MappingProxyType(frozen)


def _freeze_senior_ages(table: Mapping[str, Any]) -> Mapping[str, int]:
    frozen = {}
    for species, years in table.items():
        if isinstance(years, bool) or not isinstance(years, int) or years <= 0:
            raise ConfigurationError(
                f"Senior age for {species} must be a positive integer, got {years!r}"
            )
        frozen[str(species).upper()] = years
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class RiskScoringConfig:
    """
    Master configuration for the urgency scoring engine.

    Loaded once per run and passed explicitly into the engine,
    the service and the batch recalculator. Never mutated.
    """

    version: str = "1.0"

    weights: FactorWeights = field(default_factory=FactorWeights)
    thresholds: SeverityThresholds = field(default_factory=SeverityThresholds)

    # Target length of stay, species -> age bucket -> days
    target_los: Mapping[str, Mapping[str, int]] = field(
        default_factory=lambda: DEFAULT_TARGET_LOS
    )
    default_target_los_days: int = 30

    # Age (years) at which a species counts as senior
    senior_age_years: Mapping[str, int] = field(
        default_factory=lambda: DEFAULT_SENIOR_AGE_YEARS
    )
    default_senior_age_years: int = 7

    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    def __post_init__(self) -> None:
        if not isinstance(self.version, str) or not self.version.strip():
            raise ConfigurationError("Config version must be a non-empty string")
        for name in ("default_target_los_days", "default_senior_age_years"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

        object.__setattr__(self, "target_los", _freeze_target_los(self.target_los))
        object.__setattr__(self, "senior_age_years", _freeze_senior_ages(self.senior_age_years))

    def get_target_los(self, species: str, age_bucket: Optional[str]) -> int:
        """
        Target length of stay in days.

        Unlisted species use the OTHER row, an unknown age uses the
        adult target, and anything still missing uses the default.
        """
        species_table = self.target_los.get((species or "").upper())
        if species_table is None:
            species_table = self.target_los.get("OTHER", {})
        return species_table.get(
            age_bucket or "adult",
            species_table.get("adult", self.default_target_los_days),
        )

    def get_senior_age(self, species: str) -> int:
        return self.senior_age_years.get(
            (species or "").upper(), self.default_senior_age_years
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "weights": self.weights.to_dict(),
            "thresholds": self.thresholds.to_dict(),
            "target_los": {s: dict(b) for s, b in self.target_los.items()},
            "default_target_los_days": self.default_target_los_days,
            "senior_age_years": dict(self.senior_age_years),
            "default_senior_age_years": self.default_senior_age_years,
            "alerting": self.alerting.to_dict(),
            "batch": self.batch.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RiskScoringConfig":
        """
        Build a config from a plain mapping (YAML document, JSON).

        Omitted sections keep their defaults. Unknown keys are
        rejected so that typos never silently fall back.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Config document must be a mapping")

        known = {
            "version", "weights", "thresholds", "target_los",
            "default_target_los_days", "senior_age_years",
            "default_senior_age_years", "alerting", "batch",
        }
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        try:
            if "version" in data:
                kwargs["version"] = str(data["version"])
            if "weights" in data:
                kwargs["weights"] = FactorWeights(**_section(data, "weights"))
            if "thresholds" in data:
                kwargs["thresholds"] = SeverityThresholds(**_section(data, "thresholds"))
            if "alerting" in data:
                kwargs["alerting"] = AlertingConfig(**_section(data, "alerting"))
            if "batch" in data:
                kwargs["batch"] = BatchConfig(**_section(data, "batch"))
        except TypeError as e:
            raise ConfigurationError(f"Invalid config section: {e}") from e

        for key in ("target_los", "senior_age_years",
                    "default_target_los_days", "default_senior_age_years"):
            if key in data:
                kwargs[key] = data[key]

        return cls(**kwargs)


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = data[name]
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    return dict(section)


# ============================================================
# PRESET CONFIGURATIONS
# ============================================================


def get_default_config() -> RiskScoringConfig:
    """Return the default six-factor configuration."""
    return RiskScoringConfig()


def get_simplified_config() -> RiskScoringConfig:
    """
    Return the reduced configuration used by the quick scorer.

    Only length of stay and the special-category bucket
    (senior, special needs, large breed, black animal) carry
    weight. Medical, behavioral, capacity and adoptability are
    zeroed out; the engine code path is the same.
    """
    return RiskScoringConfig(
        version="1.0-simplified",
        weights=FactorWeights(
            length_of_stay=0.40,
            medical=0.0,
            behavioral=0.0,
            capacity=0.0,
            adoptability=0.0,
            special_categories=0.60,
        ),
    )


# ============================================================
# CONFIG SOURCES
# ============================================================


class DefaultConfigSource:
    """Serves the built-in defaults."""

    def load_risk_scoring_config(self) -> RiskScoringConfig:
        return get_default_config()


class YamlConfigSource:
    """
    Loads configuration from a YAML file.

    Example document:

        version: "2024.1"
        weights:
          length_of_stay: 0.30
          medical: 0.20
          behavioral: 0.10
          capacity: 0.15
          adoptability: 0.15
          special_categories: 0.10
        thresholds: {critical: 85, high: 65, elevated: 45, moderate: 25}
        target_los:
          DOG: {baby: 14, young: 21, adult: 30, senior: 45}
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    def load_risk_scoring_config(self) -> RiskScoringConfig:
        try:
            with open(self._path, "r") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {self._path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self._path}: {e}") from e

        config = RiskScoringConfig.from_dict(data or {})
        logger.info(f"Loaded risk scoring config {config.version} from {self._path}")
        return config


class EnvConfigSource:
    """
    Loads configuration from environment variables.

    A .env file is read first (python-dotenv); variables already
    present in the process environment win.

    Environment variables:
    - RISK_CONFIG_VERSION
    - RISK_WEIGHT_LENGTH_OF_STAY
    - RISK_WEIGHT_MEDICAL
    - RISK_WEIGHT_BEHAVIORAL
    - RISK_WEIGHT_CAPACITY
    - RISK_WEIGHT_ADOPTABILITY
    - RISK_WEIGHT_SPECIAL_CATEGORIES
    - RISK_THRESHOLD_CRITICAL
    - RISK_THRESHOLD_HIGH
    - RISK_THRESHOLD_ELEVATED
    - RISK_THRESHOLD_MODERATE
    - RISK_BATCH_MAX_CONCURRENCY
    - RISK_BATCH_ITEM_TIMEOUT
    - RISK_ALERT_ON_RECOVERY
    """

    def __init__(self, env_file: Optional[Union[str, Path]] = None) -> None:
        self._env_file = env_file

    def load_risk_scoring_config(self) -> RiskScoringConfig:
        load_dotenv(self._env_file)
        defaults = get_default_config()

        weights = {
            factor.value: _env_float(
                f"RISK_WEIGHT_{factor.value.upper()}",
                defaults.weights.get_weight(factor),
            )
            for factor in RiskFactor
        }
        thresholds = {
            name: _env_float(f"RISK_THRESHOLD_{name.upper()}", value)
            for name, value in defaults.thresholds.to_dict().items()
        }

        return RiskScoringConfig(
            version=os.getenv("RISK_CONFIG_VERSION") or defaults.version,
            weights=FactorWeights(**weights),
            thresholds=SeverityThresholds(**thresholds),
            alerting=AlertingConfig(
                alert_on_recovery=_env_bool(
                    "RISK_ALERT_ON_RECOVERY", defaults.alerting.alert_on_recovery
                ),
            ),
            batch=BatchConfig(
                max_concurrency=_env_int(
                    "RISK_BATCH_MAX_CONCURRENCY", defaults.batch.max_concurrency
                ),
                item_timeout_seconds=_env_float(
                    "RISK_BATCH_ITEM_TIMEOUT", defaults.batch.item_timeout_seconds
                ),
            ),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def load_config(path: Optional[Union[str, Path]] = None) -> RiskScoringConfig:
    """
    Load configuration for a run.

    An explicit path (or RISK_CONFIG_PATH) selects the YAML
    source; otherwise the environment source is used.
    """
    if path is None:
        load_dotenv()
        path = os.getenv("RISK_CONFIG_PATH") or None

    if path is not None:
        return YamlConfigSource(path).load_risk_scoring_config()
    return EnvConfigSource().load_risk_scoring_config()
