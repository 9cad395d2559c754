"""
Validation and (de)serialization of persisted registry entries.

The registry file is a JSON object keyed by place name:

    {"Cafe X": {"address": "...", "coordinate": {"lat": 52.5, "lng": 13.4},
                "categories": ["Coffee"], "permanentlyClosed": false}}

Files written by older versions used "latLng" instead of "coordinate";
both are accepted on read, only "coordinate" is written.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from .models import Coordinate, Place

LEGACY_COORDINATE_KEY = "latLng"


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def validate_coordinate(data: Any) -> List[str]:
    errors: List[str] = []
    if not isinstance(data, dict):
        return ["Field 'coordinate' must be an object with 'lat' and 'lng'"]
    for key, bound in (("lat", 90.0), ("lng", 180.0)):
        if key not in data:
            errors.append(f"Missing coordinate field: {key}")
        elif not _is_number(data[key]):
            errors.append(f"Coordinate field '{key}' must be a finite number")
        elif not -bound <= data[key] <= bound:
            errors.append(f"Coordinate field '{key}' out of range [-{bound:g}, {bound:g}]")
    return errors


def validate_place_entry(name: Any, data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    """
    errors: List[str] = []

    if not _is_non_empty_str(name):
        errors.append("Place name must be a non-empty string")
    if not isinstance(data, dict):
        errors.append("Place entry must be an object")
        return errors

    categories = data.get("categories")
    if categories is None:
        errors.append("Missing required field: categories")
    elif not isinstance(categories, list) or not all(_is_non_empty_str(c) for c in categories):
        errors.append("Field 'categories' must be a list of non-empty strings")

    if "address" in data and data["address"] is not None and not isinstance(data["address"], str):
        errors.append("Field 'address' must be a string if provided")

    coordinate = data.get("coordinate", data.get(LEGACY_COORDINATE_KEY))
    if coordinate is not None:
        errors.extend(validate_coordinate(coordinate))

    closed = data.get("permanentlyClosed")
    if closed is not None and not isinstance(closed, bool):
        errors.append("Field 'permanentlyClosed' must be a boolean if provided")

    return errors


def place_from_dict(name: str, data: Dict[str, Any]) -> Place:
    """Build a Place from a validated entry. Raises ValueError if invalid."""
    errors = validate_place_entry(name, data)
    if errors:
        raise ValueError(f"Invalid place entry '{name}': {'; '.join(errors)}")

    raw_coordinate = data.get("coordinate", data.get(LEGACY_COORDINATE_KEY))
    coordinate: Optional[Coordinate] = None
    if raw_coordinate is not None:
        coordinate = Coordinate(float(raw_coordinate["lat"]), float(raw_coordinate["lng"]))

    categories: List[str] = []
    for label in data["categories"]:
        if label not in categories:
            categories.append(label)

    return Place(
        name=name,
        categories=categories,
        address=data.get("address"),
        coordinate=coordinate,
        permanently_closed=bool(data.get("permanentlyClosed", False)),
    )


def place_to_dict(place: Place) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if place.address is not None:
        out["address"] = place.address
    if place.coordinate is not None:
        out["coordinate"] = {"lat": place.coordinate.lat, "lng": place.coordinate.lng}
    out["categories"] = list(place.categories)
    out["permanentlyClosed"] = place.permanently_closed
    return out


def validate_registry_data(data: Any) -> List[Tuple[str, List[str]]]:
    """Validate a whole decoded registry file. Returns (name, errors) pairs for bad entries."""
    if not isinstance(data, dict):
        return [("<root>", ["Registry must be a JSON object keyed by place name"])]
    problems = []
    for name, entry in data.items():
        errors = validate_place_entry(name, entry)
        if errors:
            problems.append((name, errors))
    return problems
