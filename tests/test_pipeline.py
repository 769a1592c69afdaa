"""End-to-end tests for the generation pipeline."""

import json

import numpy as np
import pytest

from worldgen import Settings, WorldConfig, generate_world, graph_records
from worldgen.core.biomes import BiomeType
from worldgen.core.dual_graph import CellState, build_dual
from worldgen.core.errors import AttributeMissing, DegenerateInput, IllConditioned, InvalidParameter
from worldgen.core.fields import assign_elevation
from worldgen.core.hydrology import Hydrology
from worldgen.core.interpolation import ControlPoint, fit
from worldgen.core.pipeline import elevation_controls
from worldgen.core.sampler import sample
from worldgen.core.triangulation import triangulate

SQUARE = {"min_x": 0, "min_y": 0, "max_x": 100, "max_y": 100}

# Zero-valued controls far outside the map leave a purely radial Gaussian
FAR_ZEROS = [
    {"x": -1000, "y": -1000, "value": 0.0},
    {"x": 1100, "y": -1000, "value": 0.0},
    {"x": 50, "y": 1200, "value": 0.0},
]


@pytest.fixture
def settings():
    return Settings(workers=1)


class TestRadialFalloff:
    """Test a single central peak: seed 42, 50 sites in a 100x100 square."""

    @pytest.fixture
    def world(self, settings):
        config = WorldConfig(
            seed=42,
            site_count=50,
            bounds=SQUARE,
            control_points=[{"x": 50, "y": 50, "value": 1.0}] + FAR_ZEROS,
            elevation_kernel="gaussian",
            elevation_epsilon=20.0,
            resolution=(64, 64),
        )
        return generate_world(config, settings)

    @pytest.fixture
    def peak(self, world):
        sites = world.graph.site_points()
        return int(np.argmin(np.hypot(sites[:, 0] - 50, sites[:, 1] - 50)))

    def test_peak_cell_is_highest(self, world, peak):
        """Test that the cell nearest the control has the highest elevation."""
        elevations = world.graph.attribute_array("elevation")
        assert int(np.argmax(elevations)) == peak

    def test_every_other_cell_has_higher_neighbor(self, world, peak):
        """Test that the peak is the only local maximum."""
        elevations = world.graph.attribute_array("elevation")
        for cell in world.graph:
            if cell.id != peak:
                assert max(elevations[n] for n in cell.neighbors) > elevations[cell.id]

    def test_elevation_decreases_with_graph_distance(self, world, peak):
        """Test that the highest cell of each ring around the peak gets lower ring by ring."""
        elevations = world.graph.attribute_array("elevation")
        distances = world.graph.graph_distances(peak)
        ring_max = [elevations[distances == d].max() for d in range(distances.max() + 1)]
        assert all(a > b for a, b in zip(ring_max, ring_max[1:]))

    def test_nothing_flows_into_peak(self, world, peak):
        """Test that the peak drains downhill and receives no inflow."""
        assert world.graph[peak].attributes.flow_target in world.graph[peak].neighbors
        assert world.drainage.accumulation[peak] == 1


class TestDeterminism:
    """Test that identical inputs give identical worlds."""

    @pytest.fixture
    def config(self):
        return WorldConfig(
            seed=1234,
            site_count=120,
            bounds=SQUARE,
            control_points=[
                {"x": 30, "y": 40, "value": 0.9},
                {"x": 70, "y": 65, "value": 0.6},
                {"x": 20, "y": 80, "value": 0.8, "field": "moisture"},
            ],
            peaks={"count": 2},
            resolution=(48, 48),
        )

    def test_byte_identical(self, config, settings):
        first = generate_world(config, settings)
        second = generate_world(config, settings)
        assert list(graph_records(first.graph)) == list(graph_records(second.graph))
        assert first.raster.cell_ids.tobytes() == second.raster.cell_ids.tobytes()
        assert first.raster.values.tobytes() == second.raster.values.tobytes()

    def test_worker_count_irrelevant(self, config):
        serial = generate_world(config, Settings(workers=1))
        threaded = generate_world(config, Settings(workers=4))
        np.testing.assert_array_equal(serial.raster.values, threaded.raster.values)
        np.testing.assert_array_equal(
            serial.graph.attribute_array("flow"), threaded.graph.attribute_array("flow"),
        )

    def test_different_seed_differs(self, config, settings):
        first = generate_world(config, settings)
        second = generate_world(config.model_copy(update={"seed": 4321}), settings)
        assert not np.array_equal(first.graph.site_points(), second.graph.site_points())


class TestGenerateWorld:
    """Test pipeline outputs and error reporting."""

    @pytest.fixture
    def world(self, settings):
        config = WorldConfig.from_seed_string(
            "pipeline",
            site_count=150,
            bounds=SQUARE,
            peaks={"count": 3},
            resolution=(40, 40),
        )
        return generate_world(config, settings)

    def test_all_cells_classified(self, world):
        assert all(cell.attributes.state == CellState.CLASSIFIED for cell in world.graph)
        assert len(world.sites) == len(world.graph) == 150
        assert world.moisture_field is None

    def test_biome_counts(self, world):
        counts = world.biome_counts()
        assert sum(counts.values()) == len(world.graph)
        assert "Ocean" in counts

    def test_rivers_marked_as_river_biome(self, world):
        for cell in world.graph:
            if cell.attributes.is_river:
                assert cell.attributes.biome == BiomeType.RIVER

    def test_graph_records(self, world):
        """Test export records: id order and plain values."""
        records = list(graph_records(world.graph))
        assert [r["id"] for r in records] == list(range(len(world.graph)))
        assert records[0]["state"] == "classified"
        assert set(records[0]) >= {"site", "position", "polygon", "neighbors", "elevation", "moisture", "flow", "biome"}
        json.dumps(records)

    def test_interpolated_moisture(self, settings):
        config = WorldConfig(
            seed=3,
            site_count=60,
            bounds=SQUARE,
            peaks={"count": 2},
            moisture_mode="interpolate",
            control_points=[
                {"x": 10, "y": 10, "value": 0.9, "field": "moisture"},
                {"x": 90, "y": 20, "value": 0.1, "field": "moisture"},
                {"x": 50, "y": 90, "value": 0.5, "field": "moisture"},
            ],
            resolution=(16, 16),
        )
        world = generate_world(config, settings)
        moisture = world.graph.attribute_array("moisture")
        assert world.moisture_field is not None
        assert world.moisture_field.name == "moisture"
        assert moisture.min() >= 0.0 and moisture.max() <= 1.0

    def test_elevation_controls_include_peaks(self):
        config = WorldConfig(control_points=[{"x": 500, "y": 500, "value": 1.0}], peaks={"count": 2})
        controls = elevation_controls(config)
        assert controls[0] == ControlPoint(500, 500, 1.0, "elevation")
        assert len(controls) == 1 + 2 + 8

    def test_default_bounds(self, settings):
        """Test a world on the default 1000x1000 bounds with synthesized peaks."""
        config = WorldConfig(seed=7, site_count=300, peaks={"count": 3}, resolution=(64, 64))
        world = generate_world(config, settings)
        assert world.graph.bounds == config.bounds.to_rect()
        assert all(cell.attributes.state == CellState.CLASSIFIED for cell in world.graph)
        elevations = world.graph.attribute_array("elevation")
        assert np.all(np.isfinite(elevations))

    def test_too_many_sites(self):
        with pytest.raises(InvalidParameter) as excinfo:
            generate_world(WorldConfig(site_count=50, bounds=SQUARE), Settings(max_sites=10))
        assert excinfo.value.context["max_sites"] == 10

    def test_invalid_count(self, settings):
        with pytest.raises(InvalidParameter):
            generate_world(WorldConfig(site_count=0, bounds=SQUARE, peaks={"count": 1}), settings)

    def test_two_sites(self, settings):
        """Test that two sites cannot be triangulated."""
        with pytest.raises(DegenerateInput):
            generate_world(WorldConfig(site_count=2, bounds=SQUARE, peaks={"count": 1}), settings)

    def test_missing_elevation_controls(self, settings):
        with pytest.raises(IllConditioned):
            generate_world(WorldConfig(seed=1, site_count=20, bounds=SQUARE), settings)

    def test_bad_resolution(self, settings):
        config = WorldConfig(site_count=20, bounds=SQUARE, peaks={"count": 1}, resolution=(0, 4))
        with pytest.raises(InvalidParameter):
            generate_world(config, settings)


class TestStageOrdering:
    """Test that stages invoked out of order fail."""

    def test_hydrology_before_moisture(self):
        bounds = (0, 0, 100, 100)
        graph = build_dual(triangulate(sample(6, 40, bounds)), bounds)
        field = fit([ControlPoint(0, 0, 0.0), ControlPoint(100, 0, 1.0), ControlPoint(0, 100, 0.5)])
        assign_elevation(graph, field)
        with pytest.raises(AttributeMissing):
            Hydrology(graph).run()
