"""
Shelter Risk Engine - Collaborator Interfaces.

============================================================
PURPOSE
============================================================
Protocols for everything the engine reaches outside itself:

- AnimalRecordProvider: animal snapshots and supporting records
- RiskProfileStore: persistence of one profile per animal
- AlertSink: delivery of threshold-crossing alerts
- ConfigSource: validated scoring configuration

The engine and the batch recalculator depend only on these;
in-memory and SQLAlchemy implementations ship with the
package.

============================================================
"""

from typing import Iterable, List, Optional, Protocol, Sequence

from .config import RiskScoringConfig
from .types import (
    AdoptionInterest,
    AnimalSnapshot,
    AnimalStatus,
    BehavioralAssessment,
    MedicalRecord,
    PopulationCounts,
    RiskAlert,
    RiskProfile,
)


class AnimalRecordProvider(Protocol):
    """
    Source of animal records.

    get_animal returns None (or raises AnimalNotFoundError) for
    unknown ids. Other lookups return empty results or None when
    the data does not exist.
    """

    async def get_animal(self, animal_id: str) -> Optional[AnimalSnapshot]:
        ...

    async def get_medical_records(self, animal_id: str) -> Sequence[MedicalRecord]:
        ...

    async def get_behavioral_assessments(self, animal_id: str) -> Sequence[BehavioralAssessment]:
        ...

    async def get_population_counts(
        self,
        organization_id: str,
        species: Optional[str] = None,
    ) -> Optional[PopulationCounts]:
        """Org-wide counts when species is None, species counts otherwise."""
        ...

    async def get_adoption_interest(self, animal_id: str) -> Optional[AdoptionInterest]:
        ...

    async def list_animal_ids(
        self,
        organization_id: str,
        statuses: Iterable[AnimalStatus],
    ) -> List[str]:
        ...


class RiskProfileStore(Protocol):
    """
    Persistence for RiskProfile.

    upsert must be atomic per animal; the last writer wins.
    """

    async def upsert(self, profile: RiskProfile) -> None:
        ...

    async def get(self, animal_id: str) -> Optional[RiskProfile]:
        ...


class AlertSink(Protocol):
    """
    Destination for alerts (webhook, email, push, log).

    Delivery is the sink's concern; the service only publishes.
    """

    async def publish(self, alert: RiskAlert) -> None:
        ...


class ConfigSource(Protocol):
    """Loads a validated RiskScoringConfig or raises ConfigurationError."""

    def load_risk_scoring_config(self) -> RiskScoringConfig:
        ...
