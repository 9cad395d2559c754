"""Forward and reverse geocoding through the Google Geocoding API.

A geocoder is created once per run with the API key from PipelineConfig and
shared by all concurrent lookups. No match is a normal result (None); only
transport, HTTP and API errors raise GeocodeFailure.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from .logger import get_logger
from .models import Coordinate

logger = get_logger()

GOOGLE_GEOCODE_ENDPOINT = "https://maps.googleapis.com/maps/api/geocode/json"


class GeocodeFailure(Exception):
    """The geocoding service could not be queried or rejected the request."""


@dataclass(frozen=True)
class GeocodeResult:
    address: str
    coordinate: Coordinate


class Geocoder(Protocol):
    async def forward(self, name: str, region: str) -> Optional[GeocodeResult]:
        ...

    async def reverse(self, coordinate: Coordinate) -> Optional[str]:
        ...


class GoogleGeocoder:
    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        endpoint: str = GOOGLE_GEOCODE_ENDPOINT,
    ):
        if not api_key:
            raise ValueError("Missing GOOGLE_API_KEY. Set env var or pass --api-key.")
        self.api_key = api_key
        self.endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "GoogleGeocoder":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _query(self, params: Dict[str, str]) -> list:
        params = {**params, "key": self.api_key}
        try:
            resp = await self._client.get(self.endpoint, params=params)
            resp.raise_for_status()
            data: Any = resp.json()
        except httpx.HTTPStatusError as e:
            raise GeocodeFailure(f"Geocoding request failed ({e.response.status_code})") from e
        except httpx.HTTPError as e:
            raise GeocodeFailure(f"Geocoding request error: {e}") from e
        except ValueError as e:
            raise GeocodeFailure("Geocoding response is not valid JSON") from e

        if not isinstance(data, dict):
            raise GeocodeFailure("Geocoding response is not a JSON object")

        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            message = data.get("error_message") or "no error message"
            raise GeocodeFailure(f"Geocoding API status {status}: {message}")
        return data.get("results") or []

    async def forward(self, name: str, region: str) -> Optional[GeocodeResult]:
        """Resolve a place name within a region to its address and coordinate."""
        params = {"address": name}
        if region:
            params["components"] = f"administrative_area:{region}"
        results = await self._query(params)
        if not results:
            return None

        best = results[0]
        try:
            location = best["geometry"]["location"]
            coordinate = Coordinate(float(location["lat"]), float(location["lng"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeFailure(f"Geocoding result for '{name}' has no usable location") from e
        return GeocodeResult(address=best.get("formatted_address") or name, coordinate=coordinate)

    async def reverse(self, coordinate: Coordinate) -> Optional[str]:
        """Resolve a coordinate to a formatted address."""
        results = await self._query({"latlng": f"{coordinate.lat},{coordinate.lng}"})
        if not results:
            return None
        return results[0].get("formatted_address") or None
