"""
Fill in address and coordinate for places that lack them.

Lookups run concurrently under their own cap. Each task only writes the
fields of the one place it owns; places that could not be resolved are
removed from the registry after every lookup has finished.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List

from .config import DEFAULT_GEOCODE_CONCURRENCY
from .geocoding import GeocodeFailure, Geocoder
from .logger import get_logger
from .models import Registry

logger = get_logger()


@dataclass
class EnrichSummary:
    enriched: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


def places_needing_geocode(registry: Registry) -> List[str]:
    return [name for name, place in registry.items() if not place.is_enriched]


async def enrich_registry(
    registry: Registry,
    geocoder: Geocoder,
    region: str,
    concurrency: int = DEFAULT_GEOCODE_CONCURRENCY,
) -> EnrichSummary:
    """
    Geocode every place missing a coordinate or address.

    Args:
        registry: Registry to update in place
        geocoder: Forward geocoding collaborator
        region: Region hint passed with every lookup
        concurrency: Maximum lookups in flight

    Returns:
        EnrichSummary with the names enriched and the names dropped
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    names = places_needing_geocode(registry)
    summary = EnrichSummary()
    if not names:
        logger.info("All places already geocoded")
        return summary

    logger.info(f"Found {len(names)} places needing geocoding", concurrency=concurrency)
    semaphore = asyncio.Semaphore(concurrency)

    async def geocode_one(name: str) -> bool:
        async with semaphore:
            try:
                result = await geocoder.forward(name, region)
            except GeocodeFailure as e:
                logger.record_geocode(False, "GeocodeFailure")
                logger.error("Failed to geocode place", name=name, error=str(e))
                return False
            except Exception as e:
                logger.record_geocode(False, type(e).__name__)
                logger.error("Unexpected geocoding error", name=name, error_type=type(e).__name__, error=str(e))
                return False

        if result is None:
            logger.record_geocode(False, "NoMatch")
            logger.warning("No geocoding results", name=name, region=region)
            return False

        place = registry[name]
        place.address = result.address
        place.coordinate = result.coordinate
        logger.record_geocode(True)
        logger.debug(f"Geocoded {name}: {result.address}")
        return True

    outcomes = await asyncio.gather(*(geocode_one(name) for name in names))

    for name, ok in zip(names, outcomes):
        if ok:
            summary.enriched.append(name)
        else:
            del registry[name]
            summary.dropped.append(name)

    logger.info(
        "Geocoding complete",
        enriched=len(summary.enriched),
        dropped=len(summary.dropped),
    )
    return summary
