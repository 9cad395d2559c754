"""Test doubles shared across test modules."""

from typing import Dict, List, Optional

from meetpoint.geocoding import GeocodeFailure, GeocodeResult
from meetpoint.models import Coordinate, Observation, SourceBatch


def list_page(title: Optional[str], places: List[tuple]) -> str:
    """Render a minimal saved-list page: (name, status_text) per card."""
    cards = []
    for name, status in places:
        status_html = f'<div class="IIrLbb">{status}</div>' if status is not None else ""
        cards.append(
            f'<div class="BsJqK xgHk6">'
            f'<div class="fontHeadlineSmall rZF81c"> {name} </div>{status_html}</div>'
        )
    h1 = f"<h1>{title}</h1>" if title else ""
    return f"<html><body>{h1}<div class='list'>{''.join(cards)}</div></body></html>"


class FakeFetcher:
    """In-memory SourceFetcher: source -> batch, or an exception to raise."""

    def __init__(self, batches: Dict[str, object]):
        self.batches = batches
        self.calls: List[str] = []

    async def fetch(self, source: str) -> SourceBatch:
        self.calls.append(source)
        outcome = self.batches[source]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeGeocoder:
    """Geocoder backed by dicts; unknown names have no match."""

    def __init__(
        self,
        places: Optional[Dict[str, Coordinate]] = None,
        failing: Optional[set] = None,
        reverse_address: Optional[str] = "Center Str. 1, Berlin",
    ):
        self.places = places or {}
        self.failing = failing or set()
        self.reverse_address = reverse_address
        self.forward_calls: List[str] = []
        self.reverse_calls: List[Coordinate] = []

    async def forward(self, name: str, region: str) -> Optional[GeocodeResult]:
        self.forward_calls.append(name)
        if name in self.failing:
            raise GeocodeFailure(f"boom for {name}")
        coordinate = self.places.get(name)
        if coordinate is None:
            return None
        return GeocodeResult(address=f"{name}, {region}", coordinate=coordinate)

    async def reverse(self, coordinate: Coordinate) -> Optional[str]:
        self.reverse_calls.append(coordinate)
        return self.reverse_address


def batch(label: str, *entries) -> SourceBatch:
    """Build a batch from names or (name, closed) pairs."""
    observations = []
    for e in entries:
        if isinstance(e, tuple):
            observations.append(Observation(*e))
        else:
            observations.append(Observation(e, False))
    return SourceBatch(list_label=label, entries=observations)
