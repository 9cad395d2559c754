"""
Pytest configuration and shared fixtures.
"""

import json
from pathlib import Path

import pytest

from meetpoint.logger import get_logger

from fakes import list_page


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Each test starts with zeroed run metrics."""
    get_logger().reset_metrics()
    yield


@pytest.fixture
def sample_list_html() -> str:
    """Saved list page with one closed place."""
    return list_page(
        "Coffee",
        [
            ("Cafe X", "4.5 · Cafe"),
            ("Bar Y", "Permanently closed"),
            ("", None),
            ("Bakery Z", None),
        ],
    )


@pytest.fixture
def populated_registry_file(tmp_path) -> Path:
    """Registry file with two enriched places and one bare one."""
    path = tmp_path / "places.json"
    data = {
        "Cafe X": {
            "address": "Weserstr. 1, Berlin",
            "coordinate": {"lat": 52.4851, "lng": 13.4300},
            "categories": ["Coffee"],
            "permanentlyClosed": False,
        },
        "Bar Y": {
            "address": "Sanderstr. 2, Berlin",
            "coordinate": {"lat": 52.4930, "lng": 13.4240},
            "categories": ["Bars", "Coffee"],
            "permanentlyClosed": True,
        },
        "Bakery Z": {"categories": ["Bakeries"]},
    }
    path.write_text(json.dumps(data, indent=2))
    return path
