"""Tests for biomes classification module."""

import numpy as np
import pytest

from worldgen.core.biomes import (
    BIOME_MATRIX,
    BIOME_NAMES,
    BiomeClassifier,
    BiomeOptions,
    BiomeType,
    classify_cell,
)
from worldgen.core.dual_graph import CellState, build_dual
from worldgen.core.errors import AttributeMissing
from worldgen.core.fields import assign_elevation
from worldgen.core.geometry import Rect
from worldgen.core.hydrology import Hydrology, HydrologyOptions
from worldgen.core.interpolation import ControlPoint, RBFKernel, fit
from worldgen.core.moisture import diffuse_moisture
from worldgen.core.sampler import sample
from worldgen.core.triangulation import triangulate

BOUNDS = Rect(0, 0, 100, 100)


class TestBiomeTable:
    """Test the biome lookup table."""

    def test_every_biome_named(self):
        assert set(BIOME_NAMES) == set(BiomeType)

    def test_matrix_shape(self):
        """Test 4 elevation zones by 6 moisture bands."""
        assert len(BIOME_MATRIX) == 4
        assert all(len(row) == 6 for row in BIOME_MATRIX)

    def test_matrix_excludes_water_biomes(self):
        used = {biome for row in BIOME_MATRIX for biome in row}
        assert not used & {BiomeType.OCEAN, BiomeType.LAKE, BiomeType.RIVER}


class TestClassifyCell:
    """Test single-cell classification rules."""

    def test_ocean_below_sea_level(self):
        """Test that sea level wins over flow and moisture."""
        assert classify_cell(0.1, 1.0, 500, is_river=True) == BiomeType.OCEAN

    def test_river(self):
        assert classify_cell(0.5, 0.2, 10, is_river=True) == BiomeType.RIVER
        assert classify_cell(0.5, 0.2, 500) != BiomeType.RIVER

    def test_lake(self):
        """Test that a land sink with inflow becomes a lake."""
        assert classify_cell(0.5, 0.2, 3, is_sink=True) == BiomeType.LAKE
        assert classify_cell(0.5, 0.2, 1, is_sink=True) != BiomeType.LAKE

    @pytest.mark.parametrize("elevation,moisture,expected", [
        (0.3, 0.05, BiomeType.SUBTROPICAL_DESERT),
        (0.3, 0.95, BiomeType.TROPICAL_RAIN_FOREST),
        (0.5, 0.25, BiomeType.GRASSLAND),
        (0.5, 0.95, BiomeType.TEMPERATE_RAIN_FOREST),
        (0.7, 0.7, BiomeType.TAIGA),
        (0.9, 0.05, BiomeType.SCORCHED),
        (0.9, 0.9, BiomeType.SNOW),
    ])
    def test_matrix_lookup(self, elevation, moisture, expected):
        assert classify_cell(elevation, moisture, 1) == expected

    def test_band_edges(self):
        """Test that a threshold value belongs to the upper band."""
        options = BiomeOptions()
        assert classify_cell(0.4, 0.0, 1, options=options) == BiomeType.TEMPERATE_DESERT
        assert classify_cell(0.8, 0.0, 1, options=options) == BiomeType.SCORCHED

    def test_custom_options(self):
        options = BiomeOptions(sea_level=0.6)
        assert classify_cell(0.5, 0.5, 1, options=options) == BiomeType.OCEAN
        assert classify_cell(0.7, 0.5, 2, is_river=True, options=options) == BiomeType.RIVER


class TestBiomeClassifier:
    """Test classification over a graph."""

    @pytest.fixture
    def resolved_graph(self):
        """Graph with elevation, moisture and flow resolved."""
        graph = build_dual(triangulate(sample(9, 250, BOUNDS, relax_iterations=2)), BOUNDS)
        controls = [ControlPoint(0, 0, 0.0), ControlPoint(100, 0, 0.4), ControlPoint(0, 100, 0.4),
                    ControlPoint(100, 100, 1.0), ControlPoint(60, 60, 0.9)]
        assign_elevation(graph, fit(controls, RBFKernel.THIN_PLATE))
        diffuse_moisture(graph)
        Hydrology(graph, HydrologyOptions(river_threshold=10)).run()
        return graph

    def test_classifies_every_cell(self, resolved_graph):
        biomes = BiomeClassifier(resolved_graph).classify_biomes()
        assert biomes.dtype == np.uint8
        assert len(biomes) == len(resolved_graph)
        for cell, biome in zip(resolved_graph, biomes):
            assert cell.attributes.state == CellState.CLASSIFIED
            assert cell.attributes.biome == biome

    def test_matches_single_cell_rules(self, resolved_graph):
        options = BiomeOptions()
        biomes = BiomeClassifier(resolved_graph, options).classify_biomes(workers=4)
        for cell in resolved_graph:
            a = cell.attributes
            assert biomes[cell.id] == classify_cell(a.elevation, a.moisture, a.flow, a.is_river, a.is_sink, options)

    def test_river_biome_follows_hydrology_flag(self):
        """Test that RIVER cells are exactly the cells hydrology flagged, whatever its threshold."""
        graph = build_dual(triangulate(sample(11, 200, BOUNDS, relax_iterations=1)), BOUNDS)
        controls = [ControlPoint(0, 0, 0.0), ControlPoint(100, 0, 0.5), ControlPoint(0, 100, 0.5),
                    ControlPoint(100, 100, 1.0)]
        assign_elevation(graph, fit(controls, RBFKernel.THIN_PLATE))
        diffuse_moisture(graph)
        Hydrology(graph, HydrologyOptions(river_threshold=2)).run()
        biomes = BiomeClassifier(graph).classify_biomes()
        rivers = graph.attribute_array("is_river", dtype=bool)
        assert rivers.any()
        np.testing.assert_array_equal(biomes == BiomeType.RIVER, rivers)

    def test_ocean_and_land_present(self, resolved_graph):
        biomes = BiomeClassifier(resolved_graph).classify_biomes()
        assert (biomes == BiomeType.OCEAN).any()
        assert (biomes != BiomeType.OCEAN).any()

    def test_requires_flow(self):
        graph = build_dual(triangulate(sample(9, 30, BOUNDS)), BOUNDS)
        with pytest.raises(AttributeMissing):
            BiomeClassifier(graph).classify_biomes()
