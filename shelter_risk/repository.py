"""
Shelter Risk Engine - Repository.

============================================================
PURPOSE
============================================================
SQLAlchemy implementation of the RiskProfileStore protocol.

Provides:
- Atomic per-animal upsert (one transaction per profile)
- Profile lookup with its factor breakdown
- Severity distribution and top-at-risk queries

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from database.engine import DatabasePersistenceError

from .models import RiskFactorScoreRecord, RiskProfileRecord
from .types import (
    KennelStressLevel,
    RiskFactor,
    RiskFactorScore,
    RiskProfile,
    RiskReason,
    RiskSeverity,
    SpecialNeedsCategory,
)


logger = logging.getLogger(__name__)


class SqlAlchemyRiskProfileStore:
    """
    Repository for risk profile persistence.

    ============================================================
    METHODS
    ============================================================
    - upsert: Insert or replace an animal's profile
    - get: Current profile of one animal
    - get_severity_distribution: Count per tier
    - get_top_at_risk: Highest urgency profiles
    - delete: Remove an animal's profile

    ============================================================
    """

    def __init__(self, session_factory: async_sessionmaker):
        """
        Initialize repository with a session factory.

        Each operation opens its own session so concurrent batch
        items never share one.
        """
        self._session_factory = session_factory

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    async def upsert(self, profile: RiskProfile) -> None:
        """
        Insert or replace the profile and its factor scores.

        If another writer inserts the same animal between the
        lookup and the insert, the write is retried once as an
        update so the last writer wins.
        """
        try:
            try:
                await self._write(profile)
            except IntegrityError:
                logger.warning(
                    f"Concurrent insert of risk profile for animal {profile.animal_id}, retrying as update"
                )
                await self._write(profile)
        except SQLAlchemyError as e:
            logger.error(f"Failed to upsert risk profile for animal {profile.animal_id}: {e}")
            raise DatabasePersistenceError(f"Upsert failed for animal {profile.animal_id}: {e}") from e

    async def _write(self, profile: RiskProfile) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                record = await self._load(session, profile.animal_id)
                if record is None:
                    record = RiskProfileRecord(animal_id=profile.animal_id)
                    session.add(record)
                _apply_profile(record, profile)

    async def delete(self, animal_id: str) -> bool:
        """Delete a profile. Returns True if one existed."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(RiskFactorScoreRecord).where(RiskFactorScoreRecord.animal_id == animal_id)
                    )
                    result = await session.execute(
                        delete(RiskProfileRecord).where(RiskProfileRecord.animal_id == animal_id)
                    )
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete risk profile for animal {animal_id}: {e}")
            raise DatabasePersistenceError(f"Delete failed for animal {animal_id}: {e}") from e

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    async def get(self, animal_id: str) -> Optional[RiskProfile]:
        async with self._session_factory() as session:
            record = await self._load(session, animal_id)
            return _to_domain(record) if record is not None else None

    async def get_severity_distribution(
        self,
        organization_id: Optional[str] = None,
    ) -> Dict[RiskSeverity, int]:
        """Number of profiles per severity tier (all tiers present)."""
        stmt = select(RiskProfileRecord.severity, func.count()).group_by(RiskProfileRecord.severity)
        if organization_id is not None:
            stmt = stmt.where(RiskProfileRecord.organization_id == organization_id)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        distribution = {severity: 0 for severity in RiskSeverity.descending()}
        for severity, count in rows:
            distribution[RiskSeverity(severity)] = count
        return distribution

    async def get_top_at_risk(
        self,
        organization_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[RiskProfile]:
        """Profiles ordered by urgency, highest first."""
        stmt = (
            select(RiskProfileRecord)
            .options(selectinload(RiskProfileRecord.factor_scores))
            .order_by(desc(RiskProfileRecord.urgency_score), RiskProfileRecord.animal_id)
            .limit(limit)
        )
        if organization_id is not None:
            stmt = stmt.where(RiskProfileRecord.organization_id == organization_id)

        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
            return [_to_domain(r) for r in records]

    async def _load(self, session: AsyncSession, animal_id: str) -> Optional[RiskProfileRecord]:
        stmt = (
            select(RiskProfileRecord)
            .options(selectinload(RiskProfileRecord.factor_scores))
            .where(RiskProfileRecord.animal_id == animal_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()


# ============================================================
# MAPPING
# ============================================================


def _apply_profile(record: RiskProfileRecord, profile: RiskProfile) -> None:
    record.organization_id = profile.organization_id
    record.urgency_score = profile.urgency_score
    record.severity = profile.severity.value
    record.risk_reasons = [r.value for r in profile.risk_reasons]
    record.length_of_stay = profile.length_of_stay
    record.target_los = profile.target_los
    record.los_percentile = profile.los_percentile
    record.medical_score = profile.medical_score
    record.has_medical_deadline = profile.has_medical_deadline
    record.medical_conditions = list(profile.medical_conditions)
    record.behavioral_score = profile.behavioral_score
    record.kennel_stress_level = profile.kennel_stress_level.value
    record.enrichment_deficit = profile.enrichment_deficit
    record.shelter_capacity = profile.shelter_capacity
    record.species_capacity = profile.species_capacity
    record.is_over_capacity = profile.is_over_capacity
    record.adoptability_score = profile.adoptability_score
    record.profile_views = profile.profile_views
    record.inquiry_count = profile.inquiry_count
    record.views_to_apps_ratio = profile.views_to_apps_ratio
    record.is_senior = profile.is_senior
    record.has_special_needs = profile.has_special_needs
    record.special_needs_categories = [c.value for c in profile.special_needs_categories]
    record.vulnerable_category = profile.vulnerable_category
    record.last_calculated = profile.last_calculated
    record.algorithm_version = profile.algorithm_version
    record.is_manual_override = profile.is_manual_override
    record.override_reason = profile.override_reason
    record.override_by = profile.override_by

    # delete-orphan cascade removes the previous breakdown
    record.factor_scores = [
        RiskFactorScoreRecord(
            position=position,
            factor=fs.factor.value,
            raw_score=fs.raw_score,
            score=fs.score,
            weight=fs.weight,
            weighted_contribution=fs.weighted_contribution,
            explanation=fs.explanation,
            evaluated_at=fs.evaluated_at,
        )
        for position, fs in enumerate(profile.factor_scores)
    ]


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(record: RiskProfileRecord) -> RiskProfile:
    return RiskProfile(
        animal_id=record.animal_id,
        organization_id=record.organization_id,
        urgency_score=record.urgency_score,
        severity=RiskSeverity(record.severity),
        risk_reasons=tuple(RiskReason(r) for r in record.risk_reasons or ()),
        factor_scores=tuple(
            RiskFactorScore(
                factor=RiskFactor(fs.factor),
                raw_score=fs.raw_score,
                score=fs.score,
                weight=fs.weight,
                weighted_contribution=fs.weighted_contribution,
                explanation=fs.explanation,
                evaluated_at=_aware(fs.evaluated_at),
            )
            for fs in record.factor_scores
        ),
        length_of_stay=record.length_of_stay,
        target_los=record.target_los,
        los_percentile=record.los_percentile,
        medical_score=record.medical_score,
        has_medical_deadline=record.has_medical_deadline,
        medical_conditions=tuple(record.medical_conditions or ()),
        behavioral_score=record.behavioral_score,
        kennel_stress_level=KennelStressLevel(record.kennel_stress_level),
        enrichment_deficit=record.enrichment_deficit,
        shelter_capacity=record.shelter_capacity,
        species_capacity=record.species_capacity,
        is_over_capacity=record.is_over_capacity,
        adoptability_score=record.adoptability_score,
        profile_views=record.profile_views,
        inquiry_count=record.inquiry_count,
        views_to_apps_ratio=record.views_to_apps_ratio,
        is_senior=record.is_senior,
        has_special_needs=record.has_special_needs,
        special_needs_categories=tuple(
            SpecialNeedsCategory(c) for c in record.special_needs_categories or ()
        ),
        vulnerable_category=record.vulnerable_category,
        last_calculated=_aware(record.last_calculated),
        algorithm_version=record.algorithm_version,
        is_manual_override=record.is_manual_override,
        override_reason=record.override_reason,
        override_by=record.override_by,
    )
