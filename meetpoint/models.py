"""
Domain model: places, the registry, and fetched batches.
"""

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional


class Coordinate(NamedTuple):
    """A point on the globe in degrees."""

    lat: float
    lng: float


class Observation(NamedTuple):
    """One place name seen on a list, with its closed status."""

    name: str
    permanently_closed: bool = False


@dataclass
class SourceBatch:
    """Result of fetching one list source."""

    list_label: str
    entries: List[Observation] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entries


@dataclass
class Place:
    name: str
    categories: List[str] = field(default_factory=list)
    address: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    permanently_closed: bool = False
    # Run-local marker, never persisted.
    current: bool = False

    def add_category(self, label: str) -> bool:
        """Append label unless already present. Returns True if added."""
        if label in self.categories:
            return False
        self.categories.append(label)
        return True

    @property
    def is_enriched(self) -> bool:
        return self.coordinate is not None and bool(self.address)


# Keyed by Place.name.
Registry = Dict[str, Place]
