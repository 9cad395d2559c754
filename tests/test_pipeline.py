"""End-to-end tests for the pipeline controller, with fake collaborators."""

import asyncio
import json

import pytest

from meetpoint.center import geographic_midpoint
from meetpoint.config import PipelineConfig
from meetpoint.geocoding import GeocodeFailure
from meetpoint.models import Coordinate, Place
from meetpoint.pipeline import (
    ADDRESS_LOOKUP_FAILED,
    ADDRESS_NOT_FOUND,
    PipelineController,
    collect_coordinates,
    describe_location,
    locate_center,
)
from meetpoint.scrapers.common import FetchFailure
from meetpoint.storage import load_registry

from fakes import FakeFetcher, FakeGeocoder, batch

CAFE = Coordinate(52.4851, 13.4300)
BAR = Coordinate(52.4930, 13.4240)
BAKERY = Coordinate(52.5000, 13.4100)
LOCATIONS = {"Cafe X": CAFE, "Bar Y": BAR, "Bakery Z": BAKERY}


def make_config(tmp_path, sources, **kwargs):
    return PipelineConfig(
        registry_path=tmp_path / "places.json",
        center_path=tmp_path / "center.json",
        sources=list(sources),
        retry_delay=0,
        max_attempts=2,
        **kwargs,
    )


def run_pipeline(config, batches, geocoder=None, **kwargs):
    controller = PipelineController(config, FakeFetcher(batches), geocoder=geocoder, **kwargs)
    return asyncio.run(controller.run())


class TestFullRun:
    def test_first_run_builds_registry_and_center(self, tmp_path):
        batches = {
            "coffee.html": batch("Coffee", "Cafe X", "Bakery Z"),
            "bars.html": batch("Bars", ("Bar Y", True), "Cafe X"),
        }
        config = make_config(tmp_path, batches)

        result = run_pipeline(config, batches, FakeGeocoder(LOCATIONS))

        registry = load_registry(config.registry_path)
        assert set(registry) == {"Cafe X", "Bar Y", "Bakery Z"}
        assert registry["Cafe X"].categories == ["Coffee", "Bars"]
        assert registry["Bar Y"].permanently_closed is True
        assert registry["Bakery Z"].coordinate == BAKERY
        assert sorted(result.reconcile.created) == ["Bakery Z", "Bar Y", "Cafe X"]
        assert result.closed_places == {"Bars": ["Bar Y"]}

        center = json.loads(config.center_path.read_text())
        assert set(center) == {"lat", "lng", "address"}
        assert center["address"] == "Center Str. 1, Berlin"
        assert 52.48 < center["lat"] < 52.51
        assert 13.40 < center["lng"] < 13.44

    def test_current_is_not_persisted(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X")}
        config = make_config(tmp_path, batches)
        run_pipeline(config, batches, FakeGeocoder(LOCATIONS))

        data = json.loads(config.registry_path.read_text())
        assert "current" not in data["Cafe X"]
        assert data["Cafe X"]["coordinate"] == {"lat": CAFE.lat, "lng": CAFE.lng}

    def test_places_missing_from_next_run_are_removed(self, tmp_path):
        config = make_config(tmp_path, ["coffee.html"])
        geocoder = FakeGeocoder(LOCATIONS)
        run_pipeline(config, {"coffee.html": batch("Coffee", "Cafe X", "Bakery Z")}, geocoder)

        result = run_pipeline(config, {"coffee.html": batch("Coffee", "Cafe X")}, geocoder)

        assert result.reconcile.removed == ["Bakery Z"]
        assert result.reconcile.updated == ["Cafe X"]
        assert set(load_registry(config.registry_path)) == {"Cafe X"}
        # Already enriched; only the first run looked it up.
        assert geocoder.forward_calls.count("Cafe X") == 1

    def test_failed_source_removes_places_only_it_listed(self, tmp_path):
        config = make_config(tmp_path, ["coffee.html", "bars.html"])
        geocoder = FakeGeocoder(LOCATIONS)
        run_pipeline(
            config,
            {"coffee.html": batch("Coffee", "Cafe X"), "bars.html": batch("Bars", "Bar Y")},
            geocoder,
        )

        result = run_pipeline(
            config,
            {"coffee.html": batch("Coffee", "Cafe X"), "bars.html": FetchFailure("down", "bars.html")},
            geocoder,
        )

        assert result.reconcile.removed == ["Bar Y"]
        assert set(result.registry) == {"Cafe X"}

    def test_unresolvable_places_are_dropped(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X", "Ghost")}
        config = make_config(tmp_path, batches)

        result = run_pipeline(config, batches, FakeGeocoder(LOCATIONS))

        assert result.enrich.dropped == ["Ghost"]
        assert "Ghost" not in load_registry(config.registry_path)

    def test_exclude_closed(self, tmp_path):
        batches = {"bars.html": batch("Bars", "Cafe X", ("Bar Y", True))}
        seen = []

        def solver(coords):
            seen.extend(coords)
            return coords[0]

        config = make_config(tmp_path, batches, exclude_closed=True)
        result = run_pipeline(config, batches, FakeGeocoder(LOCATIONS), solver=solver)

        assert seen == [CAFE]
        assert result.center.coordinate == CAFE
        assert result.center.places == 1

    def test_injected_solver_is_used(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X", "Bar Y")}
        config = make_config(tmp_path, batches)

        result = run_pipeline(
            config, batches, FakeGeocoder(LOCATIONS), solver=lambda coords: Coordinate(1.0, 2.0)
        )

        assert result.center.coordinate == Coordinate(1.0, 2.0)
        assert json.loads(config.center_path.read_text())["lat"] == 1.0


class TestWithoutGeocoder:
    def test_registry_is_kept_and_no_center(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X")}
        config = make_config(tmp_path, batches)

        result = run_pipeline(config, batches)

        assert result.center is None
        assert set(load_registry(config.registry_path)) == {"Cafe X"}
        assert not config.center_path.exists()

    def test_existing_coordinates_still_give_a_center(self, tmp_path, populated_registry_file):
        batches = {"coffee.html": batch("Coffee", "Cafe X", "Bar Y")}
        config = make_config(tmp_path, batches)
        assert config.registry_path == populated_registry_file

        result = run_pipeline(config, batches)

        assert result.center is not None
        assert result.center.address == ADDRESS_LOOKUP_FAILED
        assert result.reconcile.removed == ["Bakery Z"]


class TestFailureHandling:
    def test_registry_saved_when_a_phase_crashes(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X")}
        config = make_config(tmp_path, batches)

        def broken_solver(coords):
            raise RuntimeError("solver exploded")

        with pytest.raises(RuntimeError, match="solver exploded"):
            run_pipeline(config, batches, FakeGeocoder(LOCATIONS), solver=broken_solver)

        registry = load_registry(config.registry_path)
        assert registry["Cafe X"].coordinate == CAFE
        assert not config.center_path.exists()

    def test_center_not_written_without_path(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X")}
        config = make_config(tmp_path, batches)
        config.center_path = None

        result = run_pipeline(config, batches, FakeGeocoder(LOCATIONS))

        assert result.center is not None
        assert list(tmp_path.iterdir()) == [config.registry_path]


class TestHelpers:
    def test_collect_coordinates_dedupes(self, populated_registry_file):
        registry = load_registry(populated_registry_file)
        registry["Cafe X copy"] = registry["Cafe X"]

        assert collect_coordinates(registry) == [CAFE, BAR]
        assert collect_coordinates(registry, exclude_closed=True) == [CAFE]

    def test_describe_location_without_match(self):
        address = asyncio.run(describe_location(FakeGeocoder(reverse_address=None), CAFE))
        assert address == ADDRESS_NOT_FOUND

    def test_describe_location_on_failure(self):
        class Failing(FakeGeocoder):
            async def reverse(self, coordinate):
                raise GeocodeFailure("quota exceeded")

        assert asyncio.run(describe_location(Failing(), CAFE)) == ADDRESS_LOOKUP_FAILED

    def test_locate_center_empty_registry(self):
        assert asyncio.run(locate_center({}, FakeGeocoder())) is None


class TestMidpointReport:
    @staticmethod
    def registry_with_outlier():
        coords = dict(LOCATIONS, Potsdam=Coordinate(52.3906, 13.0645))
        return {
            name: Place(name=name, categories=["Trips"], address=f"{name} address", coordinate=coord)
            for name, coord in coords.items()
        }

    def test_both_points_are_reverse_geocoded(self):
        class LabellingGeocoder(FakeGeocoder):
            async def reverse(self, coordinate):
                self.reverse_calls.append(coordinate)
                return f"near {coordinate.lat:.4f},{coordinate.lng:.4f}"

        geocoder = LabellingGeocoder()
        result = asyncio.run(locate_center(self.registry_with_outlier(), geocoder))

        assert len(geocoder.reverse_calls) == 2
        assert set(geocoder.reverse_calls) == {result.coordinate, result.midpoint.coordinate}
        assert result.midpoint.coordinate == geographic_midpoint(collect_coordinates(self.registry_with_outlier()))
        assert result.midpoint.address.startswith("near ")
        assert result.address != result.midpoint.address

    def test_midpoint_is_pulled_by_the_outlier_but_the_center_is_not(self):
        result = asyncio.run(locate_center(self.registry_with_outlier(), FakeGeocoder()))

        assert result.coordinate.lng > 13.40
        assert result.midpoint.coordinate.lng < result.coordinate.lng

    def test_report_lists_both_points(self):
        result = asyncio.run(locate_center(self.registry_with_outlier(), FakeGeocoder()))
        report = result.report()

        assert report["centerOfMinimumDistance"] == result.to_dict()
        assert report["geographicMidpoint"]["address"] == "Center Str. 1, Berlin"
        assert set(report["geographicMidpoint"]) == {"lat", "lng", "address"}

    def test_pipeline_result_carries_midpoint_but_artifact_does_not(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X", "Bar Y", "Bakery Z")}
        config = make_config(tmp_path, batches)

        result = run_pipeline(config, batches, FakeGeocoder(LOCATIONS))

        assert result.midpoint is not None
        assert result.midpoint.coordinate == geographic_midpoint([CAFE, BAR, BAKERY])
        assert set(json.loads(config.center_path.read_text())) == {"lat", "lng", "address"}

    def test_no_midpoint_without_coordinates(self, tmp_path):
        batches = {"coffee.html": batch("Coffee", "Cafe X")}
        result = run_pipeline(make_config(tmp_path, batches), batches)
        assert result.midpoint is None
