"""
Pydantic Schemas for Scoring Requests and Datasets.

Validate JSON input for the CLI and convert it into the
frozen domain dataclasses.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .memory import InMemoryAnimalRecordProvider
from .types import (
    AdoptionInterest,
    AgeCategory,
    AnimalSize,
    AnimalSnapshot,
    AnimalStatus,
    BatchItemError,
    BehavioralAssessment,
    BehavioralResult,
    MedicalRecord,
    PopulationCounts,
    SpecialNeedsCategory,
    SupportingContext,
)


# =============================================================
# SUPPORTING RECORD SCHEMAS
# =============================================================

class MedicalRecordSchema(BaseModel):
    """Medical record relevant to placement."""
    diagnosis: str
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None
    affects_adoptability: bool = False
    is_treatable: bool = True
    recorded_at: Optional[date] = None

    def to_domain(self) -> MedicalRecord:
        return MedicalRecord(**self.model_dump())


class BehavioralAssessmentSchema(BaseModel):
    """Behavioral assessment; overall_score on a 0-10 scale."""
    result: BehavioralResult
    assessed_at: date
    overall_score: Optional[float] = Field(default=None, ge=0, le=10)

    def to_domain(self) -> BehavioralAssessment:
        return BehavioralAssessment(**self.model_dump())


class PopulationCountsSchema(BaseModel):
    current: int = Field(ge=0)
    capacity: int = Field(ge=0)

    def to_domain(self) -> PopulationCounts:
        return PopulationCounts(current=self.current, capacity=self.capacity)


class AdoptionInterestSchema(BaseModel):
    profile_views: int = Field(default=0, ge=0)
    inquiry_count: int = Field(default=0, ge=0)

    def to_domain(self) -> AdoptionInterest:
        return AdoptionInterest(
            profile_views=self.profile_views,
            inquiry_count=self.inquiry_count,
        )


# =============================================================
# ANIMAL SCHEMAS
# =============================================================

class AnimalSchema(BaseModel):
    """Animal record as read from JSON."""
    animal_id: str = Field(min_length=1)
    species: str = Field(min_length=1)
    intake_date: date
    organization_id: Optional[str] = None
    age_category: Optional[AgeCategory] = None
    birth_date: Optional[date] = None
    size: Optional[AnimalSize] = None
    color_primary: Optional[str] = None
    special_needs: Optional[str] = None
    medical_conditions: List[str] = Field(default_factory=list)
    special_needs_categories: List[SpecialNeedsCategory] = Field(default_factory=list)
    status: AnimalStatus = AnimalStatus.IN_SHELTER

    def to_snapshot(self) -> AnimalSnapshot:
        return AnimalSnapshot(
            animal_id=self.animal_id,
            species=self.species,
            intake_date=self.intake_date,
            organization_id=self.organization_id,
            age_category=self.age_category,
            birth_date=self.birth_date,
            size=self.size,
            color_primary=self.color_primary,
            special_needs=self.special_needs,
            medical_conditions=tuple(self.medical_conditions),
            special_needs_categories=tuple(self.special_needs_categories),
            status=self.status,
        )


class DatasetAnimalSchema(AnimalSchema):
    """Animal with its supporting records, as stored in a dataset file."""
    medical_records: List[MedicalRecordSchema] = Field(default_factory=list)
    behavioral_assessments: List[BehavioralAssessmentSchema] = Field(default_factory=list)
    adoption_interest: Optional[AdoptionInterestSchema] = None


# =============================================================
# REQUEST SCHEMAS
# =============================================================

class ScoringRequest(BaseModel):
    """Single-animal scoring request (`shelter-risk score`)."""
    animal: AnimalSchema
    medical_records: List[MedicalRecordSchema] = Field(default_factory=list)
    behavioral_assessments: List[BehavioralAssessmentSchema] = Field(default_factory=list)
    organization_population: Optional[PopulationCountsSchema] = None
    species_population: Optional[PopulationCountsSchema] = None
    adoption_interest: Optional[AdoptionInterestSchema] = None
    as_of: Optional[datetime] = None

    def to_domain(self) -> Tuple[AnimalSnapshot, SupportingContext]:
        context = SupportingContext(
            medical_records=tuple(r.to_domain() for r in self.medical_records),
            behavioral_assessments=tuple(a.to_domain() for a in self.behavioral_assessments),
            organization_population=(
                self.organization_population.to_domain() if self.organization_population else None
            ),
            species_population=(
                self.species_population.to_domain() if self.species_population else None
            ),
            adoption_interest=self.adoption_interest.to_domain() if self.adoption_interest else None,
        )
        return self.animal.to_snapshot(), context


class OrganizationSchema(BaseModel):
    """Population counts of one organization."""
    population: Optional[PopulationCountsSchema] = None
    species: Dict[str, PopulationCountsSchema] = Field(default_factory=dict)


class DatasetSchema(BaseModel):
    """
    Population dataset (`shelter-risk recalculate`).

    Animals are kept raw and validated one by one so that a
    malformed record becomes a per-animal error instead of
    rejecting the whole file.
    """
    organizations: Dict[str, OrganizationSchema] = Field(default_factory=dict)
    animals: List[Dict[str, Any]] = Field(default_factory=list)

    def build_provider(
        self,
        organization_id: Optional[str] = None,
    ) -> Tuple[InMemoryAnimalRecordProvider, List[BatchItemError]]:
        """
        Load valid animals into an in-memory provider.

        Args:
            organization_id: Only report invalid records of this organization

        Returns:
            (provider, errors for animals that failed validation)
        """
        provider = InMemoryAnimalRecordProvider()
        for org_id, org in self.organizations.items():
            if org.population is not None:
                provider.set_population(org_id, org.population.to_domain())
            for species, counts in org.species.items():
                provider.set_population(org_id, counts.to_domain(), species=species)

        errors: List[BatchItemError] = []
        for index, raw in enumerate(self.animals):
            try:
                animal = DatasetAnimalSchema.model_validate(raw)
            except ValidationError as e:
                if organization_id is not None and raw.get("organization_id") != organization_id:
                    continue
                animal_id = str(raw.get("animal_id") or f"#{index}")
                errors.append(BatchItemError(
                    animal_id,
                    f"Invalid animal record: {e.error_count()} validation error(s)",
                ))
                continue

            provider.add_animal(
                animal.to_snapshot(),
                medical_records=[r.to_domain() for r in animal.medical_records],
                behavioral_assessments=[a.to_domain() for a in animal.behavioral_assessments],
                adoption_interest=(
                    animal.adoption_interest.to_domain() if animal.adoption_interest else None
                ),
            )

        return provider, errors
