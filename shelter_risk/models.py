"""
Shelter Risk Engine - Persistence Models.

============================================================
PURPOSE
============================================================
ORM models for persisted risk profiles.

Enables:
- One current profile per animal (upserted on recompute)
- Audit of the per-factor scores behind each profile
- Severity distribution and top-at-risk queries

============================================================
MODELS
============================================================
1. RiskProfileRecord: One row per animal
2. RiskFactorScoreRecord: Per-factor breakdown (child of RiskProfileRecord)

Risk reasons and special-needs categories are stored as JSON
arrays of enum values; the domain layer sees enum tuples.

============================================================
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.engine import Base


# ============================================================
# RISK PROFILE MODEL
# ============================================================


class RiskProfileRecord(Base):
    """
    Current risk profile of one animal.

    ============================================================
    RELATIONSHIPS
    ============================================================
    - Has many RiskFactorScoreRecord (one per factor), replaced
      on every upsert

    ============================================================
    """

    __tablename__ = "risk_profiles"

    animal_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # Core scoring data
    urgency_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Composite urgency score (0-100)",
    )
    severity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="CRITICAL, HIGH, ELEVATED, MODERATE, LOW",
    )
    risk_reasons: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Time-based
    length_of_stay: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_los: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    los_percentile: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Medical
    medical_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    has_medical_deadline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    medical_conditions: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Behavioral
    behavioral_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    kennel_stress_level: Mapped[str] = mapped_column(String(20), nullable=False, default="NONE")
    enrichment_deficit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Capacity
    shelter_capacity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    species_capacity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_over_capacity: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Adoptability
    adoptability_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    profile_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inquiry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    views_to_apps_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Special categories
    is_senior: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_special_needs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    special_needs_categories: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    vulnerable_category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Metadata
    last_calculated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    algorithm_version: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Config version the score was computed with",
    )
    is_manual_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    override_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    override_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    factor_scores: Mapped[List["RiskFactorScoreRecord"]] = relationship(
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="RiskFactorScoreRecord.position",
    )

    __table_args__ = (
        Index("ix_risk_profiles_org_score", "organization_id", "urgency_score"),
    )

    def __repr__(self) -> str:
        return (
            f"<RiskProfileRecord(animal_id={self.animal_id}, "
            f"score={self.urgency_score}, severity={self.severity})>"
        )


# ============================================================
# FACTOR SCORE MODEL
# ============================================================


class RiskFactorScoreRecord(Base):
    """Weighted contribution of one factor to a stored profile."""

    __tablename__ = "risk_factor_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    animal_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("risk_profiles.animal_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, comment="Evaluation order")

    factor: Mapped[str] = mapped_column(String(32), nullable=False)
    raw_score: Mapped[float] = mapped_column(Float, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    weighted_contribution: Mapped[float] = mapped_column(Float, nullable=False)
    explanation: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    profile: Mapped[RiskProfileRecord] = relationship(back_populates="factor_scores")

    def __repr__(self) -> str:
        return f"<RiskFactorScoreRecord(animal_id={self.animal_id}, factor={self.factor}, score={self.score})>"
