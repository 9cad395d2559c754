"""
Pipeline controller.

One run:
    load registry -> reset current flags -> fetch all sources -> merge
    batches -> sweep stale places -> geocode missing places -> dedupe
    coordinates -> (optionally drop closed places) -> robust center and
    geographic midpoint -> reverse geocode both -> save registry and center.

If any phase raises, the registry as it stands in memory is saved before
the error propagates.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .center import CenterSolver, dedupe_coordinates, geographic_midpoint, robust_spherical_center
from .config import PipelineConfig
from .enrich import EnrichSummary, enrich_registry, places_needing_geocode
from .geocoding import GeocodeFailure, Geocoder
from .logger import get_logger
from .models import Coordinate, Registry
from .orchestrator import FetchOrchestrator
from .reconcile import ReconcileSummary, apply_batch, closed_places_by_list, reset_current, sweep_stale
from .scrapers.common import SourceFetcher
from .storage import PersistenceFailure, load_registry, save_center, save_registry

logger = get_logger()

ADDRESS_NOT_FOUND = "Address not found"
ADDRESS_LOOKUP_FAILED = "Address lookup failed"


@dataclass
class LabelledPoint:
    coordinate: Coordinate
    address: str

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.coordinate.lat, "lng": self.coordinate.lng, "address": self.address}


@dataclass
class CenterResult:
    """The robust center (what gets saved) and the vector-mean midpoint shown next to it."""

    coordinate: Coordinate
    address: str
    places: int
    midpoint: Optional[LabelledPoint] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.coordinate.lat, "lng": self.coordinate.lng, "address": self.address}

    def report(self) -> Dict[str, Any]:
        out = {"centerOfMinimumDistance": self.to_dict()}
        if self.midpoint is not None:
            out["geographicMidpoint"] = self.midpoint.to_dict()
        return out


@dataclass
class PipelineResult:
    registry: Registry
    center: Optional[CenterResult] = None
    reconcile: ReconcileSummary = field(default_factory=ReconcileSummary)
    enrich: EnrichSummary = field(default_factory=EnrichSummary)
    closed_places: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def midpoint(self) -> Optional[LabelledPoint]:
        return self.center.midpoint if self.center is not None else None


def collect_coordinates(registry: Registry, exclude_closed: bool = False) -> List[Coordinate]:
    """Deduplicated coordinates of the registry, optionally without closed places."""
    coords = [
        place.coordinate
        for place in registry.values()
        if place.coordinate is not None and not (exclude_closed and place.permanently_closed)
    ]
    return dedupe_coordinates(coords)


async def describe_location(geocoder: Optional[Geocoder], coordinate: Coordinate) -> str:
    """Reverse geocode a coordinate into a display address; never raises."""
    if geocoder is None:
        logger.warning("No geocoder configured, skipping reverse lookup")
        return ADDRESS_LOOKUP_FAILED
    try:
        address = await geocoder.reverse(coordinate)
    except GeocodeFailure as e:
        logger.error("Reverse geocoding failed", lat=coordinate.lat, lng=coordinate.lng, error=str(e))
        return ADDRESS_LOOKUP_FAILED
    return address or ADDRESS_NOT_FOUND


async def locate_center(
    registry: Registry,
    geocoder: Optional[Geocoder],
    solver: CenterSolver = robust_spherical_center,
    exclude_closed: bool = False,
) -> Optional[CenterResult]:
    """
    Compute and label the center of the registry, together with the
    geographic midpoint. None if no place has a coordinate.

    Both points are reverse geocoded concurrently.
    """
    coords = collect_coordinates(registry, exclude_closed)
    if not coords:
        logger.warning("No unique coordinates found to calculate a center")
        return None

    logger.info(f"Calculating center from {len(coords)} unique coordinates", exclude_closed=exclude_closed)
    center = solver(coords)
    midpoint = geographic_midpoint(coords)
    address, midpoint_address = await asyncio.gather(
        describe_location(geocoder, center),
        describe_location(geocoder, midpoint),
    )
    result = CenterResult(
        coordinate=center,
        address=address,
        places=len(coords),
        midpoint=LabelledPoint(midpoint, midpoint_address),
    )
    logger.info("Geographic midpoint", **result.midpoint.to_dict())
    logger.info("Center of minimum distance", **result.to_dict())
    return result


def log_closed_places(report: Dict[str, List[str]]) -> None:
    if not report:
        logger.info("No permanently closed places found in fetched lists")
        return
    for label, names in report.items():
        logger.info(f"Permanently closed in '{label}': {', '.join(names)}")


class PipelineController:
    def __init__(
        self,
        config: PipelineConfig,
        fetcher: SourceFetcher,
        geocoder: Optional[Geocoder] = None,
        solver: CenterSolver = robust_spherical_center,
    ):
        self.config = config
        self.fetcher = fetcher
        self.geocoder = geocoder
        self.solver = solver

    async def run(self) -> PipelineResult:
        cfg = self.config
        registry = load_registry(cfg.registry_path)
        logger.info("Starting place processing", places=len(registry), sources=len(cfg.sources))
        try:
            result = await self._run_phases(registry)
            save_registry(cfg.registry_path, registry)
            if result.center is not None and cfg.center_path is not None:
                save_center(cfg.center_path, result.center.to_dict())
            return result
        except Exception:
            logger.error("Pipeline failed, saving registry state")
            self._save_best_effort(registry)
            raise

    async def _run_phases(self, registry: Registry) -> PipelineResult:
        cfg = self.config
        result = PipelineResult(registry=registry)

        reset_current(registry)
        orchestrator = FetchOrchestrator(self.fetcher)
        batches = await orchestrator.run(
            cfg.sources,
            concurrency_cap=cfg.fetch_concurrency,
            max_attempts=cfg.max_attempts,
            retry_delay=cfg.retry_delay,
        )

        summary = ReconcileSummary()
        for batch in batches:
            apply_batch(registry, batch, summary)
        summary.removed = sweep_stale(registry)
        result.reconcile = summary
        logger.record_registry_change(
            created=len(summary.created),
            updated=len(summary.updated),
            removed=len(summary.removed),
        )

        result.closed_places = closed_places_by_list(batches)
        log_closed_places(result.closed_places)

        if self.geocoder is None:
            pending = places_needing_geocode(registry)
            if pending:
                logger.warning("No geocoder configured, skipping geocoding", pending=len(pending))
        else:
            result.enrich = await enrich_registry(
                registry, self.geocoder, cfg.region, concurrency=cfg.geocode_concurrency
            )

        result.center = await locate_center(
            registry, self.geocoder, self.solver, exclude_closed=cfg.exclude_closed
        )
        return result

    def _save_best_effort(self, registry: Registry) -> None:
        try:
            save_registry(self.config.registry_path, registry)
        except PersistenceFailure as e:
            logger.critical("Could not save registry after failure", error=str(e))
