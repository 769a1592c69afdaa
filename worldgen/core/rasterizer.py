"""
Rasterization of per-cell attributes onto a pixel grid.

The owner of a pixel is the cell whose site is nearest to the pixel centre,
which is exactly the Voronoi cell containing it. Pixels whose centre lies
outside the sampling bounds get the reserved sentinel instead.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import structlog
from scipy.spatial import cKDTree

from .dual_graph import CellState, Graph
from .errors import GeometryError, InvalidParameter
from .geometry import Rect, point_in_polygon

logger = structlog.get_logger()

# Cell id of pixels outside the sampling bounds
OUTSIDE_CELL = -1

# Attribute value of pixels outside the sampling bounds
OUTSIDE_VALUE = 255


@dataclass
class RasterBuffer:
    """Fixed-size grid of discrete attribute values.

    Row 0 covers the viewport's ``min_y`` edge; column 0 its ``min_x`` edge.
    """
    width: int
    height: int
    viewport: Rect
    cell_ids: np.ndarray  # (height, width) int32, OUTSIDE_CELL outside bounds
    values: np.ndarray  # (height, width) uint8 biome ids, OUTSIDE_VALUE outside bounds

    @property
    def outside_mask(self) -> np.ndarray:
        return self.cell_ids == OUTSIDE_CELL

    def sample(self, graph: Graph, attribute: str) -> np.ndarray:
        """
        Project a continuous cell attribute through the pixel ownership map.

        Args:
            graph: Graph the buffer was rasterized from
            attribute: Attribute name, e.g. "elevation", "moisture" or "flow"

        Returns:
            (height, width) float64 image, NaN outside the bounds
        """
        per_cell = graph.attribute_array(attribute)
        image = np.full(self.cell_ids.shape, np.nan)
        inside = ~self.outside_mask
        image[inside] = per_cell[self.cell_ids[inside]]
        return image


def pixel_centers(resolution: Tuple[int, int], viewport: Rect) -> np.ndarray:
    """(height, width, 2) array of pixel centre coordinates."""
    width, height = resolution
    xs = viewport.min_x + (np.arange(width) + 0.5) * viewport.width / width
    ys = viewport.min_y + (np.arange(height) + 0.5) * viewport.height / height
    grid_x, grid_y = np.meshgrid(xs, ys)
    return np.stack([grid_x, grid_y], axis=-1)


def rasterize(
    graph: Graph,
    resolution: Tuple[int, int],
    viewport: Optional[Rect] = None,
    workers: Optional[int] = None,
    verify: bool = False,
) -> RasterBuffer:
    """
    Rasterize the classified graph.

    Args:
        graph: Graph with every cell CLASSIFIED
        resolution: (width, height) in pixels
        viewport: Region covered by the raster; defaults to the graph bounds
        workers: Threads for the nearest-site query
        verify: Also confirm each pixel lies inside its owner's polygon

    Returns:
        RasterBuffer with full coverage inside the bounds
    """
    width, height = resolution
    if int(width) != width or int(height) != height or width <= 0 or height <= 0:
        raise InvalidParameter("resolution must be positive integers", resolution=tuple(resolution))
    width, height = int(width), int(height)
    viewport = Rect(*viewport) if viewport is not None else graph.bounds
    if viewport.width <= 0 or viewport.height <= 0:
        raise InvalidParameter("viewport must have positive area", viewport=tuple(viewport))

    graph.require_state(CellState.CLASSIFIED, "rasterization")
    logger.info("Rasterizing", width=width, height=height, viewport=tuple(viewport))

    centers = pixel_centers((width, height), viewport).reshape(-1, 2)
    bounds = graph.bounds
    inside = (
        (centers[:, 0] >= bounds.min_x) & (centers[:, 0] <= bounds.max_x)
        & (centers[:, 1] >= bounds.min_y) & (centers[:, 1] <= bounds.max_y)
    )

    cell_ids = np.full(len(centers), OUTSIDE_CELL, dtype=np.int32)
    if inside.any():
        tree = cKDTree(graph.site_points())
        _, owners = tree.query(centers[inside], workers=workers or 1)
        cell_ids[inside] = owners

    if verify:
        tolerance = 1e-9 * max(bounds.width, bounds.height)
        for pixel in np.flatnonzero(inside):
            owner = graph[int(cell_ids[pixel])]
            x, y = centers[pixel]
            if not point_in_polygon(x, y, owner.polygon, tolerance):
                raise GeometryError("pixel outside its owner cell", cell_id=owner.id, x=float(x), y=float(y))

    biomes = graph.attribute_array("biome", dtype=np.int64)
    values = np.full(len(centers), OUTSIDE_VALUE, dtype=np.uint8)
    values[inside] = biomes[cell_ids[inside]]

    logger.info("Rasterization complete", outside_pixels=int((~inside).sum()))
    return RasterBuffer(
        width=width,
        height=height,
        viewport=viewport,
        cell_ids=cell_ids.reshape(height, width),
        values=values.reshape(height, width),
    )
