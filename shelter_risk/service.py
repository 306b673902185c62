"""
Shelter Risk Engine - Recompute Service.

============================================================
PURPOSE
============================================================
Runs the full pipeline for one animal:

    provider -> engine -> assembler -> store -> detector -> sink

============================================================
CONCURRENCY
============================================================
- Recomputes of the same animal are serialized with a
  per-animal asyncio.Lock; different animals run freely.
- recalculate_animal is the inline discipline: callers await
  it and the profile is persisted before it returns.
- schedule_recalculation is the fire-and-forget discipline:
  it returns the task immediately and failures are logged
  with the animal id, never raised.

============================================================
USAGE
============================================================
    service = RiskScoringService(provider, store, config, alert_sink)

    profile = await service.recalculate_animal("A-123")
    service.schedule_recalculation("A-124")

============================================================
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Set

from .alerting import ThresholdCrossingDetector
from .config import RiskScoringConfig, get_default_config
from .engine import RiskScoringEngine
from .interfaces import AlertSink, AnimalRecordProvider, RiskProfileStore
from .profile import apply_manual_override, assemble_profile
from .types import (
    AnimalNotFoundError,
    AnimalSnapshot,
    ProviderError,
    RiskAlert,
    RiskProfile,
    RiskScoringError,
    SupportingContext,
    utc_now,
)


logger = logging.getLogger(__name__)


class RiskScoringService:
    """
    Per-animal recompute service.

    Usage:
        service = RiskScoringService(provider, store)
        profile = await service.recalculate_animal(animal_id)
        print(f"{profile.urgency_score} {profile.severity.value}")
    """

    def __init__(
        self,
        provider: AnimalRecordProvider,
        store: RiskProfileStore,
        config: Optional[RiskScoringConfig] = None,
        alert_sink: Optional[AlertSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or get_default_config()
        self.engine = RiskScoringEngine(self.config)
        self.detector = ThresholdCrossingDetector(self.config.thresholds, self.config.alerting)

        self._provider = provider
        self._store = store
        self._alert_sink = alert_sink
        self._clock = clock or utc_now

        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._tasks: Set[asyncio.Task] = set()

    # --------------------------------------------------
    # Inline recompute
    # --------------------------------------------------

    async def recalculate_animal(
        self,
        animal_id: str,
        clear_override: bool = False,
    ) -> RiskProfile:
        """
        Score one animal, persist its profile and publish any alert.

        Args:
            animal_id: Animal to recompute
            clear_override: Replace a manual override with the computed score

        Returns:
            The persisted RiskProfile

        Raises:
            AnimalNotFoundError: If the provider has no such animal
            ProviderError: If the provider or store fails
            ScoringError: If an evaluator fails
        """
        async with self._lock_for(animal_id):
            return await self._recalculate_locked(animal_id, clear_override)

    async def _recalculate_locked(self, animal_id: str, clear_override: bool) -> RiskProfile:
        snapshot = await self._get_snapshot(animal_id)
        context = await self._load_context(snapshot)

        assessment = self.engine.score(snapshot, context, as_of=self._clock())

        existing = await self._call(self._store.get(animal_id), "Profile lookup", animal_id)
        profile = assemble_profile(
            assessment,
            existing=existing,
            clear_override=clear_override,
            calculated_at=assessment.assessed_at,
        )
        await self._call(self._store.upsert(profile), "Profile upsert", animal_id)

        logger.debug(
            f"Recalculated animal {animal_id}: {profile.urgency_score} {profile.severity.value}"
            + (" (manual override kept)" if profile.is_manual_override else "")
        )

        alert = self.detector.detect(
            animal_id,
            previous_score=existing.urgency_score if existing is not None else None,
            new_score=profile.urgency_score,
            reasons=profile.risk_reasons,
            organization_id=profile.organization_id,
        )
        if alert is not None:
            await self._publish(alert)

        return profile

    # --------------------------------------------------
    # Fire-and-forget recompute
    # --------------------------------------------------

    def schedule_recalculation(self, animal_id: str) -> "asyncio.Task[Optional[RiskProfile]]":
        """
        Start a background recompute and return immediately.

        The task resolves to the profile, or None if the
        recompute failed (the failure is logged).
        """
        task = asyncio.create_task(
            self._recalculate_logged(animal_id),
            name=f"risk-recalculate-{animal_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _recalculate_logged(self, animal_id: str) -> Optional[RiskProfile]:
        try:
            return await self.recalculate_animal(animal_id)
        except Exception as e:
            logger.exception(f"Background risk recalculation failed for animal {animal_id}: {e}")
            return None

    async def wait_for_pending(self) -> None:
        """Wait for every scheduled recompute to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --------------------------------------------------
    # Manual overrides
    # --------------------------------------------------

    async def set_manual_override(
        self,
        animal_id: str,
        urgency_score: int,
        reason: str,
        author: str,
    ) -> RiskProfile:
        """
        Pin an animal's urgency score.

        An animal without a profile is scored first so that its
        factor fields are populated.
        """
        async with self._lock_for(animal_id):
            profile = await self._call(self._store.get(animal_id), "Profile lookup", animal_id)
            if profile is None:
                profile = await self._recalculate_locked(animal_id, clear_override=False)

            overridden = apply_manual_override(
                profile,
                urgency_score,
                reason,
                author,
                thresholds=self.config.thresholds,
                calculated_at=self._clock(),
            )
            await self._call(self._store.upsert(overridden), "Profile upsert", animal_id)

        logger.info(
            f"Manual override set for animal {animal_id}: {urgency_score} by {author} ({reason})"
        )
        return overridden

    async def clear_manual_override(self, animal_id: str) -> RiskProfile:
        """Drop the override and store the freshly computed score."""
        profile = await self.recalculate_animal(animal_id, clear_override=True)
        logger.info(f"Manual override cleared for animal {animal_id}")
        return profile

    async def get_profile(self, animal_id: str) -> Optional[RiskProfile]:
        return await self._call(self._store.get(animal_id), "Profile lookup", animal_id)

    # --------------------------------------------------
    # Internals
    # --------------------------------------------------

    def _lock_for(self, animal_id: str) -> asyncio.Lock:
        lock = self._locks.get(animal_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[animal_id] = lock
        return lock

    async def _get_snapshot(self, animal_id: str) -> AnimalSnapshot:
        snapshot = await self._call(self._provider.get_animal(animal_id), "Animal lookup", animal_id)
        if snapshot is None:
            raise AnimalNotFoundError(animal_id)
        return snapshot

    async def _load_context(self, snapshot: AnimalSnapshot) -> SupportingContext:
        animal_id = snapshot.animal_id
        org_id = snapshot.organization_id

        medical, behavioral, interest, org_counts, species_counts = await asyncio.gather(
            self._call(self._provider.get_medical_records(animal_id), "Medical records", animal_id),
            self._call(self._provider.get_behavioral_assessments(animal_id), "Behavioral assessments", animal_id),
            self._call(self._provider.get_adoption_interest(animal_id), "Adoption interest", animal_id),
            self._population(org_id, None, animal_id),
            self._population(org_id, snapshot.species, animal_id),
        )

        return SupportingContext(
            medical_records=tuple(medical or ()),
            behavioral_assessments=tuple(behavioral or ()),
            organization_population=org_counts,
            species_population=species_counts,
            adoption_interest=interest,
        )

    async def _population(self, org_id: Optional[str], species: Optional[str], animal_id: str):
        if org_id is None:
            return None
        return await self._call(
            self._provider.get_population_counts(org_id, species),
            "Population counts",
            animal_id,
        )

    async def _call(self, awaitable: Awaitable[Any], action: str, animal_id: str) -> Any:
        try:
            return await awaitable
        except RiskScoringError:
            raise
        except Exception as e:
            raise ProviderError(
                f"{action} failed for animal {animal_id}: {e}",
                animal_id=animal_id,
                context={"action": action},
            ) from e

    async def _publish(self, alert: RiskAlert) -> None:
        if self._alert_sink is None:
            logger.warning(f"Risk alert not delivered (no sink configured): {alert.message}")
            return
        try:
            await self._alert_sink.publish(alert)
        except Exception:
            logger.exception(f"Failed to publish risk alert for animal {alert.animal_id}")
