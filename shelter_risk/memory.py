"""
Shelter Risk Engine - In-Memory Collaborators.

Dictionary-backed implementations of the provider, store and
alert sink protocols. Used by the CLI dataset runner and by
tests.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

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


class InMemoryAnimalRecordProvider:
    """Serves animals and their supporting records from memory."""

    def __init__(self) -> None:
        self._animals: Dict[str, AnimalSnapshot] = {}
        self._medical: Dict[str, Tuple[MedicalRecord, ...]] = {}
        self._behavioral: Dict[str, Tuple[BehavioralAssessment, ...]] = {}
        self._interest: Dict[str, AdoptionInterest] = {}
        self._population: Dict[Tuple[str, Optional[str]], PopulationCounts] = {}

    def add_animal(
        self,
        snapshot: AnimalSnapshot,
        medical_records: Iterable[MedicalRecord] = (),
        behavioral_assessments: Iterable[BehavioralAssessment] = (),
        adoption_interest: Optional[AdoptionInterest] = None,
    ) -> None:
        self._animals[snapshot.animal_id] = snapshot
        self._medical[snapshot.animal_id] = tuple(medical_records)
        self._behavioral[snapshot.animal_id] = tuple(behavioral_assessments)
        if adoption_interest is not None:
            self._interest[snapshot.animal_id] = adoption_interest

    def remove_animal(self, animal_id: str) -> None:
        self._animals.pop(animal_id, None)

    def set_population(
        self,
        organization_id: str,
        counts: PopulationCounts,
        species: Optional[str] = None,
    ) -> None:
        key = (organization_id, species.upper() if species else None)
        self._population[key] = counts

    def set_adoption_interest(self, animal_id: str, interest: AdoptionInterest) -> None:
        self._interest[animal_id] = interest

    def animal_ids(self, statuses: Optional[Iterable[AnimalStatus]] = None) -> List[str]:
        """Ids across all organizations, optionally filtered by status."""
        wanted = set(statuses) if statuses is not None else None
        return [
            animal_id
            for animal_id, snapshot in self._animals.items()
            if wanted is None or snapshot.status in wanted
        ]

    async def get_animal(self, animal_id: str) -> Optional[AnimalSnapshot]:
        return self._animals.get(animal_id)

    async def get_medical_records(self, animal_id: str) -> Sequence[MedicalRecord]:
        return self._medical.get(animal_id, ())

    async def get_behavioral_assessments(self, animal_id: str) -> Sequence[BehavioralAssessment]:
        return self._behavioral.get(animal_id, ())

    async def get_population_counts(
        self,
        organization_id: str,
        species: Optional[str] = None,
    ) -> Optional[PopulationCounts]:
        return self._population.get((organization_id, species.upper() if species else None))

    async def get_adoption_interest(self, animal_id: str) -> Optional[AdoptionInterest]:
        return self._interest.get(animal_id)

    async def list_animal_ids(
        self,
        organization_id: str,
        statuses: Iterable[AnimalStatus],
    ) -> List[str]:
        wanted = set(statuses)
        return [
            animal_id
            for animal_id, snapshot in self._animals.items()
            if snapshot.organization_id == organization_id and snapshot.status in wanted
        ]


class InMemoryRiskProfileStore:
    """Keeps one profile per animal; upsert replaces."""

    def __init__(self) -> None:
        self._profiles: Dict[str, RiskProfile] = {}

    async def upsert(self, profile: RiskProfile) -> None:
        self._profiles[profile.animal_id] = profile

    async def get(self, animal_id: str) -> Optional[RiskProfile]:
        return self._profiles.get(animal_id)

    def all(self, organization_id: Optional[str] = None) -> List[RiskProfile]:
        return [
            p for p in self._profiles.values()
            if organization_id is None or p.organization_id == organization_id
        ]

    def __len__(self) -> int:
        return len(self._profiles)


class InMemoryAlertSink:
    """Collects published alerts in order."""

    def __init__(self) -> None:
        self.alerts: List[RiskAlert] = []

    async def publish(self, alert: RiskAlert) -> None:
        self.alerts.append(alert)

    def clear(self) -> None:
        self.alerts.clear()
