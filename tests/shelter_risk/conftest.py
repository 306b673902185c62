"""
Shared fixtures for the shelter risk tests.
"""

import pytest

from shelter_risk import (
    InMemoryAlertSink,
    InMemoryAnimalRecordProvider,
    InMemoryRiskProfileStore,
    PopulationCounts,
    RiskScoringConfig,
    RiskScoringService,
    get_default_config,
)

from .factories import AS_OF_DT


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def config() -> RiskScoringConfig:
    return get_default_config()


@pytest.fixture
def provider() -> InMemoryAnimalRecordProvider:
    provider = InMemoryAnimalRecordProvider()
    provider.set_population("org-1", PopulationCounts(current=50, capacity=100))
    return provider


@pytest.fixture
def store() -> InMemoryRiskProfileStore:
    return InMemoryRiskProfileStore()


@pytest.fixture
def sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def service(provider, store, sink, config) -> RiskScoringService:
    return RiskScoringService(
        provider,
        store,
        config=config,
        alert_sink=sink,
        clock=lambda: AS_OF_DT,
    )
