"""
Reconciliation of fetched batches into the registry.

A run goes: reset_current() once, apply_batch() for every batch, then
sweep_stale() once. After the sweep the registry holds exactly the names
observed in the run's batches, each with current == True.

Batch order only matters for permanently_closed when two batches disagree
about the same place: the batch applied last wins.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .logger import get_logger
from .models import Place, Registry, SourceBatch

logger = get_logger()


@dataclass
class ReconcileSummary:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


def reset_current(registry: Registry) -> None:
    for place in registry.values():
        place.current = False


def upsert_place(registry: Registry, name: str, label: str, permanently_closed: bool) -> str:
    """Create or update one place. Returns "new" or "updated"."""
    place = registry.get(name)
    if place is None:
        registry[name] = Place(
            name=name,
            categories=[label],
            permanently_closed=permanently_closed,
            current=True,
        )
        return "new"
    place.current = True
    place.permanently_closed = permanently_closed
    place.add_category(label)
    return "updated"


def apply_batch(registry: Registry, batch: SourceBatch, summary: Optional[ReconcileSummary] = None) -> ReconcileSummary:
    """Merge one batch into the registry in place."""
    if summary is None:
        summary = ReconcileSummary()
    for name, permanently_closed in batch.entries:
        if not name or not name.strip():
            continue
        status = upsert_place(registry, name, batch.list_label, permanently_closed)
        if status == "new":
            logger.debug("Adding new place", name=name, list=batch.list_label)
            summary.created.append(name)
        else:
            logger.debug("Updating existing place", name=name, list=batch.list_label)
            # A place seen in several lists counts once.
            if name not in summary.updated and name not in summary.created:
                summary.updated.append(name)
    return summary


def sweep_stale(registry: Registry) -> List[str]:
    """Delete every place not seen in this run. Returns the removed names."""
    stale = [name for name, place in registry.items() if not place.current]
    for name in stale:
        del registry[name]
    if stale:
        logger.info(f"Removing {len(stale)} places not found in this run", names=stale)
    return stale


def reconcile(registry: Registry, batches: Iterable[SourceBatch]) -> ReconcileSummary:
    """Run a full reset / merge / sweep cycle over all batches of a run."""
    reset_current(registry)
    summary = ReconcileSummary()
    for batch in batches:
        apply_batch(registry, batch, summary)
    summary.removed = sweep_stale(registry)
    return summary


def closed_places_by_list(batches: Iterable[SourceBatch]) -> Dict[str, List[str]]:
    """Group names reported as permanently closed by list label."""
    report: Dict[str, List[str]] = {}
    for batch in batches:
        for name, permanently_closed in batch.entries:
            if not permanently_closed or not name:
                continue
            names = report.setdefault(batch.list_label, [])
            if name not in names:
                names.append(name)
    return report
