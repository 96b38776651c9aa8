"""
Medication Resolver.

Turns a sanitized name into a canonical MedicationRecord by asking the
registries in order. Successful resolutions are cached; soft failures are
returned but never cached, so the next request asks again.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from medsafe.constants import CacheTTL, Sources
from medsafe.knowledge import (
    UNKNOWN_CATEGORY, categorize, formulary_lookup, is_critical_category, pregnancy_category_for,
)
from medsafe.schemas import MedicationRecord
from medsafe.services.cache import TTLCache
from medsafe.services.fallback import Provider, first_success
from medsafe.services.idempotency import IdempotencyStore
from medsafe.services.registries import RegistryMatch

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_record(match: RegistryMatch, now: Optional[datetime] = None) -> MedicationRecord:
    """
    Build a record from a registry match.

    Class metadata and pregnancy category missing from the registry are
    filled from the curated formulary and pregnancy tables.
    """
    pharm_classes = list(match.pharm_classes)
    pregnancy = match.pregnancy_category
    brand_names = list(match.brand_names)

    entry = formulary_lookup(match.generic_name or match.name) or formulary_lookup(match.name)
    if entry is not None:
        if not pharm_classes:
            pharm_classes = list(entry.pharm_classes)
        if not brand_names:
            brand_names = list(entry.brand_names)
        pregnancy = pregnancy or entry.pregnancy_category

    category = categorize(pharm_classes)
    record = MedicationRecord(
        name=match.name,
        generic_name=match.generic_name,
        brand_names=brand_names,
        category=category,
        normalized_id=match.normalized_id,
        fda_approved=match.fda_approved,
        is_critical=is_critical_category(category),
        source=match.source,
        resolved_at=now or _utcnow(),
        pharm_classes=pharm_classes,
        active_ingredients=list(match.active_ingredients),
        pregnancy_category=pregnancy,
    )
    if record.pregnancy_category is None:
        table_category = pregnancy_category_for(record.match_terms())
        if table_category:
            record = record.model_copy(update={"pregnancy_category": table_category})
    return record


def soft_failure_record(
    name: str, upstream_unavailable: bool = False, now: Optional[datetime] = None
) -> MedicationRecord:
    """Placeholder record for a name no registry recognised."""
    return MedicationRecord(
        name=name,
        category=UNKNOWN_CATEGORY,
        is_critical=False,
        fda_approved=False,
        source=Sources.UNRESOLVED,
        resolved_at=now or _utcnow(),
        pregnancy_category=pregnancy_category_for([name.lower()]),
        validation_warning=True,
        upstream_unavailable=upstream_unavailable,
    )


class MedicationResolver:
    """Resolve names through an ordered registry chain with caching."""

    def __init__(
        self,
        providers: Sequence[Provider[RegistryMatch]],
        cache: Optional[TTLCache[MedicationRecord]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.providers = list(providers)
        self.cache = cache if cache is not None else TTLCache(CacheTTL.MEDICATION, name="medications")
        self._clock = clock
        # Collapses concurrent resolutions of one name; results live in self.cache
        self._single_flight = IdempotencyStore()

    async def resolve(self, sanitized_name: str) -> MedicationRecord:
        key = sanitized_name.lower()
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Medication cache hit: {sanitized_name}")
            return cached

        return await self._single_flight.run(
            f"resolve:{key}", lambda: self._resolve_uncached(sanitized_name), remember=False
        )

    async def _resolve_uncached(self, name: str) -> MedicationRecord:
        outcome = await first_success(self.providers, name)

        if outcome.found:
            record = build_record(outcome.value, now=self._clock())
            self.cache.set(name.lower(), record)
            logger.info(f"Resolved medication via {outcome.source} (category={record.category})")
            return record

        if outcome.degraded:
            logger.warning(f"Medication unresolved; {len(outcome.errors)} registries failed")
        else:
            logger.info("Medication not found in any registry")
        return soft_failure_record(name, upstream_unavailable=outcome.degraded, now=self._clock())
