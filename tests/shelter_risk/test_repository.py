"""
Tests for the SQLAlchemy risk profile store.

Runs against a temporary SQLite file through aiosqlite.
"""

import logging

import pytest

pytest.importorskip("aiosqlite")

from sqlalchemy.ext.asyncio import create_async_engine

from database.engine import get_session_factory, init_database, verify_database_connection
from shelter_risk import (
    AgeCategory,
    MedicalRecord,
    PopulationCounts,
    RiskProfile,
    RiskReason,
    RiskScoringEngine,
    RiskScoringService,
    RiskSeverity,
    SpecialNeedsCategory,
    SupportingContext,
    apply_manual_override,
    assemble_profile,
)
from shelter_risk.repository import SqlAlchemyRiskProfileStore

from .factories import AS_OF_DT, make_snapshot


def build_profile(animal_id="A-1", days=70, **snapshot_overrides):
    snapshot = make_snapshot(
        animal_id,
        days=days,
        age_category=AgeCategory.SENIOR,
        special_needs="insulin twice daily",
        **snapshot_overrides,
    )
    context = SupportingContext(
        medical_records=(MedicalRecord("Diabetes", follow_up_required=True, affects_adoptability=True),),
        organization_population=PopulationCounts(92, 100),
    )
    assessment = RiskScoringEngine().score(snapshot, context, as_of=AS_OF_DT)
    return assemble_profile(assessment, calculated_at=AS_OF_DT)


# ============================================================
# UPSERT / GET
# ============================================================

class TestSqlAlchemyRiskProfileStore:

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))
            profile = build_profile()

            await store.upsert(profile)
            loaded = await store.get("A-1")

            assert loaded == profile
            assert loaded.last_calculated == AS_OF_DT
            assert loaded.special_needs_categories == (SpecialNeedsCategory.MEDICATION,)
            assert [fs.factor for fs in loaded.factor_scores] == [fs.factor for fs in profile.factor_scores]
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_upsert_replaces_single_row(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))

            await store.upsert(build_profile(days=10))
            updated = build_profile(days=200)
            await store.upsert(updated)

            loaded = await store.get("A-1")
            assert loaded.length_of_stay == 200
            assert loaded.urgency_score == updated.urgency_score
            assert len(loaded.factor_scores) == 6
            distribution = await store.get_severity_distribution()
            assert sum(distribution.values()) == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_concurrent_first_insert_last_writer_wins(self, tmp_path, caplog):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            first = SqlAlchemyRiskProfileStore(get_session_factory(engine))
            second = SqlAlchemyRiskProfileStore(get_session_factory(engine))

            # second writer looked the animal up before first committed
            original_load = second._load
            lookups = 0

            async def stale_load(session, animal_id):
                nonlocal lookups
                lookups += 1
                if lookups == 1:
                    return None
                return await original_load(session, animal_id)

            second._load = stale_load

            await first.upsert(build_profile(days=10))
            latest = build_profile(days=200)
            with caplog.at_level(logging.WARNING, logger="shelter_risk.repository"):
                await second.upsert(latest)

            loaded = await first.get("A-1")
            assert loaded == latest
            assert len(loaded.factor_scores) == 6
            assert lookups == 2
            assert "retrying as update" in caplog.text
            assert sum((await first.get_severity_distribution()).values()) == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_manual_override_persisted(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))
            profile = apply_manual_override(build_profile(), 88, "court case", "director")

            await store.upsert(profile)
            loaded = await store.get("A-1")

            assert loaded.is_manual_override is True
            assert loaded.override_by == "director"
            assert loaded.risk_reasons[0] == RiskReason.MANUAL_OVERRIDE
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_missing_profile(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))

            assert await store.get("nope") is None
            assert await store.delete("nope") is False
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))
            await store.upsert(build_profile())

            assert await store.delete("A-1") is True
            assert await store.get("A-1") is None
        finally:
            await engine.dispose()


# ============================================================
# QUERIES
# ============================================================

class TestPopulationQueries:

    @pytest.mark.asyncio
    async def test_distribution_and_top_at_risk(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))
            for animal_id, score, severity, org in [
                ("A-1", 85, RiskSeverity.CRITICAL, "org-1"),
                ("A-2", 62, RiskSeverity.HIGH, "org-1"),
                ("A-3", 85, RiskSeverity.CRITICAL, "org-1"),
                ("B-1", 99, RiskSeverity.CRITICAL, "org-2"),
            ]:
                await store.upsert(RiskProfile(
                    animal_id=animal_id,
                    organization_id=org,
                    urgency_score=score,
                    severity=severity,
                ))

            distribution = await store.get_severity_distribution("org-1")
            top = await store.get_top_at_risk("org-1", limit=2)

            assert distribution[RiskSeverity.CRITICAL] == 2
            assert distribution[RiskSeverity.HIGH] == 1
            assert distribution[RiskSeverity.LOW] == 0
            assert [p.animal_id for p in top] == ["A-1", "A-3"]
        finally:
            await engine.dispose()


class TestServiceWithDatabase:

    @pytest.mark.asyncio
    async def test_service_persists_through_store(self, tmp_path, provider):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
        try:
            assert await verify_database_connection(engine) is True
            await init_database(engine)
            store = SqlAlchemyRiskProfileStore(get_session_factory(engine))
            service = RiskScoringService(provider, store, clock=lambda: AS_OF_DT)
            provider.add_animal(make_snapshot("A-1", days=45))

            profile = await service.recalculate_animal("A-1")
            await service.set_manual_override("A-1", 75, "transfer pending", "staff")
            recomputed = await service.recalculate_animal("A-1")

            assert (await store.get("A-1")).urgency_score == 75
            assert recomputed.length_of_stay == profile.length_of_stay
        finally:
            await engine.dispose()
