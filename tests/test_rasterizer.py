"""Tests for rasterization."""

import numpy as np
import pytest
from scipy.spatial import cKDTree

from worldgen.config import Settings, WorldConfig
from worldgen.core.dual_graph import build_dual
from worldgen.core.errors import AttributeMissing, InvalidParameter
from worldgen.core.geometry import Rect
from worldgen.core.pipeline import generate_world
from worldgen.core.rasterizer import OUTSIDE_CELL, OUTSIDE_VALUE, pixel_centers, rasterize
from worldgen.core.sampler import sample
from worldgen.core.triangulation import triangulate


@pytest.fixture(scope="module")
def world():
    config = WorldConfig(
        seed=8,
        site_count=80,
        bounds={"min_x": 0, "min_y": 0, "max_x": 100, "max_y": 100},
        peaks={"count": 2},
        resolution=(32, 24),
    )
    return generate_world(config, Settings(workers=1))


class TestRasterize:
    """Test rasterizing a classified graph."""

    def test_shape(self, world):
        raster = world.raster
        assert (raster.width, raster.height) == (32, 24)
        assert raster.cell_ids.shape == (24, 32)
        assert raster.values.dtype == np.uint8

    def test_full_coverage_inside_bounds(self, world):
        """Test that every pixel inside the bounds has a cell."""
        raster = world.raster
        assert not raster.outside_mask.any()
        assert raster.cell_ids.min() >= 0
        assert raster.cell_ids.max() < len(world.graph)
        assert not (raster.values == OUTSIDE_VALUE).any()

    def test_pixels_owned_by_nearest_site(self, world):
        raster = world.raster
        centers = pixel_centers((32, 24), raster.viewport).reshape(-1, 2)
        _, nearest = cKDTree(world.graph.site_points()).query(centers)
        np.testing.assert_array_equal(raster.cell_ids.ravel(), nearest)

    def test_values_are_owner_biomes(self, world):
        biomes = world.graph.attribute_array("biome", dtype=np.int64)
        np.testing.assert_array_equal(world.raster.values, biomes[world.raster.cell_ids])

    def test_verify_pixel_polygons(self, world):
        """Test that each pixel lies inside its owner's polygon."""
        raster = rasterize(world.graph, (40, 40), verify=True)
        assert not raster.outside_mask.any()

    def test_row_zero_is_min_y(self):
        centers = pixel_centers((4, 2), Rect(0, 0, 8, 4))
        np.testing.assert_allclose(centers[0, 0], [1, 1])
        np.testing.assert_allclose(centers[1, 3], [7, 3])

    def test_workers_do_not_change_ownership(self, world):
        serial = rasterize(world.graph, (50, 50), workers=1)
        parallel = rasterize(world.graph, (50, 50), workers=4)
        np.testing.assert_array_equal(serial.cell_ids, parallel.cell_ids)


class TestViewport:
    """Test viewports extending beyond the bounds."""

    def test_outside_pixels_get_sentinel(self, world):
        """Test sentinel values outside the sampling bounds."""
        raster = rasterize(world.graph, (40, 40), viewport=Rect(-50, -50, 150, 150))
        outside = raster.outside_mask
        assert outside.sum() == 40 * 40 - 20 * 20
        assert np.all(raster.cell_ids[outside] == OUTSIDE_CELL)
        assert np.all(raster.values[outside] == OUTSIDE_VALUE)
        assert np.all(raster.cell_ids[~outside] >= 0)

    def test_sample_continuous_attribute(self, world):
        """Test projecting elevation through the ownership map."""
        raster = rasterize(world.graph, (40, 40), viewport=Rect(-50, -50, 150, 150))
        image = raster.sample(world.graph, "elevation")
        elevations = world.graph.attribute_array("elevation")
        assert np.isnan(image[raster.outside_mask]).all()
        inside = ~raster.outside_mask
        np.testing.assert_array_equal(image[inside], elevations[raster.cell_ids[inside]])


class TestRasterizeValidation:
    """Test rejection of bad raster requests."""

    @pytest.mark.parametrize("resolution", [(0, 10), (10, -1), (10.5, 10)])
    def test_bad_resolution(self, world, resolution):
        with pytest.raises(InvalidParameter):
            rasterize(world.graph, resolution)

    def test_empty_viewport(self, world):
        with pytest.raises(InvalidParameter):
            rasterize(world.graph, (10, 10), viewport=Rect(5, 5, 5, 20))

    def test_unclassified_graph(self):
        """Test that rasterizing before classification fails."""
        bounds = Rect(0, 0, 100, 100)
        graph = build_dual(triangulate(sample(2, 30, bounds)), bounds)
        with pytest.raises(AttributeMissing):
            rasterize(graph, (10, 10))
