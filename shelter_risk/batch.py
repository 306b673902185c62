"""
Shelter Risk Engine - Batch Recalculator.

============================================================
PURPOSE
============================================================
Recomputes risk profiles across a population (an
organization's active animals or an explicit id list).

============================================================
GUARANTEES
============================================================
- A failing animal never aborts the batch; it is logged with
  its id and reported in BatchSummary.errors
- Bounded parallelism (asyncio.Semaphore, max_concurrency)
- Best-effort per-item timeout, recorded as an error
- Cooperative cancellation: once cancel_event is set no new
  item starts; items not started count as skipped
- Safe to re-run: every item is an upsert, so an unchanged
  population yields the same counts

============================================================
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Union

from .config import RiskScoringConfig
from .interfaces import AnimalRecordProvider
from .service import RiskScoringService
from .types import AnimalStatus, BatchItemError, BatchSummary, ProviderError, utc_now


logger = logging.getLogger(__name__)


_UPDATED = "updated"
_SKIPPED = "skipped"


class BatchRecalculator:
    """
    Drives the recompute pipeline over many animals.

    Usage:
        batch = BatchRecalculator(service, provider)
        summary = await batch.recalculate_organization("org-1")
        print(summary.to_dict())
    """

    def __init__(
        self,
        service: RiskScoringService,
        provider: AnimalRecordProvider,
        config: Optional[RiskScoringConfig] = None,
    ) -> None:
        self._service = service
        self._provider = provider
        self.config = config or service.config

    async def recalculate_organization(
        self,
        organization_id: str,
        cancel_event: Optional[asyncio.Event] = None,
        statuses: Optional[Iterable[AnimalStatus]] = None,
    ) -> BatchSummary:
        """
        Recompute every active animal of an organization.

        Args:
            organization_id: Organization whose population to rescore
            cancel_event: Set to stop starting new items
            statuses: Statuses to include (defaults to active statuses)

        Raises:
            ProviderError: If the animal listing itself fails
        """
        statuses = tuple(statuses) if statuses is not None else AnimalStatus.active_statuses()
        try:
            animal_ids = await self._provider.list_animal_ids(organization_id, statuses)
        except Exception as e:
            logger.error(f"Failed to list animals for organization {organization_id}: {e}")
            raise ProviderError(
                f"Animal listing failed for organization {organization_id}: {e}",
                context={"action": "Animal listing", "organization_id": organization_id},
            ) from e
        logger.info(
            f"Organization {organization_id}: {len(animal_ids)} active animals queued for risk recalculation"
        )
        return await self.recalculate_animals(animal_ids, cancel_event)

    async def recalculate_animals(
        self,
        animal_ids: Iterable[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchSummary:
        """
        Recompute an explicit list of animals.

        Duplicate ids are scored once; input order is kept for
        the error list.
        """
        unique_ids = list(dict.fromkeys(animal_ids))
        max_concurrency = self.config.batch.max_concurrency
        timeout = self.config.batch.item_timeout_seconds
        semaphore = asyncio.Semaphore(max_concurrency)
        stop_flag = cancel_event or asyncio.Event()
        started_at = utc_now()

        logger.info(
            f"Risk batch started: {len(unique_ids)} animals, "
            f"concurrency={max_concurrency}, timeout={timeout}s"
        )

        async def run_with_semaphore(animal_id: str) -> Union[str, BatchItemError]:
            async with semaphore:
                if stop_flag.is_set():
                    return _SKIPPED
                try:
                    await asyncio.wait_for(
                        self._service.recalculate_animal(animal_id),
                        timeout=timeout,
                    )
                    return _UPDATED
                except asyncio.TimeoutError:
                    logger.error(f"Risk recalculation timed out for animal {animal_id} after {timeout}s")
                    return BatchItemError(animal_id, f"Timed out after {timeout}s")
                except Exception as e:
                    logger.error(f"Risk recalculation failed for animal {animal_id}: {e}")
                    return BatchItemError(animal_id, f"{type(e).__name__}: {e}")

        outcomes = await asyncio.gather(*(run_with_semaphore(a) for a in unique_ids))

        errors: List[BatchItemError] = [o for o in outcomes if isinstance(o, BatchItemError)]
        summary = BatchSummary(
            total=len(unique_ids),
            updated=sum(1 for o in outcomes if o == _UPDATED),
            errors=tuple(errors),
            skipped=sum(1 for o in outcomes if o == _SKIPPED),
            cancelled=stop_flag.is_set(),
            started_at=started_at,
            finished_at=utc_now(),
        )

        log = logger.warning if summary.errors or summary.cancelled else logger.info
        log(
            f"Risk batch finished: {summary.updated}/{summary.total} updated, "
            f"{summary.failed} failed, {summary.skipped} skipped"
            + (" (cancelled)" if summary.cancelled else "")
            + f" in {summary.duration_seconds:.2f}s"
        )
        return summary
