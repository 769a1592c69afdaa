"""Evaluation of fitted fields at cell sites."""

from typing import Optional

import numpy as np
import structlog

from .dual_graph import CellState, Graph
from .interpolation import ScalarField
from .parallel import DEFAULT_CHUNK_SIZE, parallel_map

logger = structlog.get_logger()


def evaluate_at_sites(
    graph: Graph,
    field: ScalarField,
    workers: Optional[int] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> np.ndarray:
    """
    Evaluate a field at every cell's site coordinate.

    Sites, not polygon centroids, are used so a control point that coincides
    with a site is reproduced exactly.

    Returns:
        (n,) values in cell id order
    """
    points = graph.site_points()
    if len(points) == 0:
        return np.empty(0)
    blocks = parallel_map(field.evaluate_many, points, workers=workers, chunk_size=chunk_size)
    return np.concatenate(blocks)


def assign_elevation(graph: Graph, field: ScalarField, workers: Optional[int] = None) -> np.ndarray:
    """
    Populate every cell's elevation from a fitted field.

    Args:
        graph: Dual graph with all cells UNASSIGNED
        field: Fitted elevation field
        workers: Worker threads for evaluation

    Returns:
        Elevation per cell, in id order
    """
    graph.require_state(CellState.UNASSIGNED, "elevation assignment")
    logger.info("Assigning elevation", cells=len(graph), field=field.name)

    elevations = evaluate_at_sites(graph, field, workers)
    for cell, elevation in zip(graph, elevations):
        cell.attributes.set_elevation(cell.id, elevation)

    logger.info("Elevation assigned",
                min_elevation=float(elevations.min()) if len(elevations) else None,
                max_elevation=float(elevations.max()) if len(elevations) else None)
    return elevations
