"""
Moisture assignment.

Two modes are supported:
- interpolate: evaluate a radial-basis field fitted to moisture controls
- diffuse: spread moisture from sources (controls and below-sea-level cells)
  across the cell graph with synchronous relaxation sweeps

Moisture is kept in [0, 1].
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import structlog
from scipy.sparse import csr_matrix
from scipy.spatial import cKDTree

from .dual_graph import CellState, Graph
from .fields import evaluate_at_sites
from .interpolation import ControlPoint, ScalarField

logger = structlog.get_logger()


@dataclass
class MoistureOptions:
    """Moisture diffusion options."""
    decay: float = 0.85  # Fraction of neighbour moisture carried per hop
    max_iterations: int = 200  # Upper bound on relaxation sweeps
    tolerance: float = 1e-6  # Stop once no cell changes by more than this
    sea_level: float = 0.2  # Cells below this elevation are water sources
    water_moisture: float = 1.0  # Moisture of water source cells


def _store(graph: Graph, moisture: np.ndarray) -> None:
    for cell, value in zip(graph, moisture):
        cell.attributes.set_moisture(cell.id, value)


def assign_moisture(graph: Graph, field: ScalarField, workers: Optional[int] = None) -> np.ndarray:
    """
    Populate moisture from a fitted field, clipped to [0, 1].

    Args:
        graph: Dual graph with elevation set on every cell
        field: Fitted moisture field
        workers: Worker threads for evaluation

    Returns:
        Moisture per cell, in id order
    """
    graph.require_state(CellState.ELEVATION_SET, "moisture assignment")
    logger.info("Assigning interpolated moisture", cells=len(graph), field=field.name)

    raw = evaluate_at_sites(graph, field, workers)
    moisture = np.clip(raw, 0.0, 1.0)
    clipped = int(np.count_nonzero(raw != moisture))
    if clipped:
        logger.info("Moisture clipped to [0, 1]", cells=clipped)

    _store(graph, moisture)
    return moisture


def adjacency_matrix(graph: Graph) -> csr_matrix:
    """Sparse symmetric 0/1 adjacency of the cell graph."""
    rows = []
    cols = []
    for cell in graph:
        rows.extend([cell.id] * len(cell.neighbors))
        cols.extend(cell.neighbors)
    data = np.ones(len(rows), dtype=np.float64)
    n = len(graph)
    return csr_matrix((data, (rows, cols)), shape=(n, n))


def moisture_sources(
    graph: Graph,
    controls: Sequence[ControlPoint],
    options: MoistureOptions,
) -> np.ndarray:
    """Source moisture per cell: controls snapped to their nearest cell, plus water."""
    sources = np.zeros(len(graph), dtype=np.float64)

    elevations = graph.attribute_array("elevation")
    sources[elevations < options.sea_level] = options.water_moisture

    if controls:
        tree = cKDTree(graph.site_points())
        _, nearest = tree.query([[c.x, c.y] for c in controls])
        for control, cell_id in zip(controls, np.atleast_1d(nearest)):
            sources[cell_id] = max(sources[cell_id], float(np.clip(control.value, 0.0, 1.0)))

    return sources


def diffuse_moisture(
    graph: Graph,
    controls: Sequence[ControlPoint] = (),
    options: Optional[MoistureOptions] = None,
) -> np.ndarray:
    """
    Spread moisture over the graph from its sources.

    Each sweep sets ``m' = max(source, decay * mean(m over neighbours))`` for
    all cells at once, so the result does not depend on cell visiting order.

    Args:
        graph: Dual graph with elevation set on every cell
        controls: Moisture controls, each seeding its nearest cell
        options: Diffusion options

    Returns:
        Moisture per cell, in id order
    """
    options = options or MoistureOptions()
    graph.require_state(CellState.ELEVATION_SET, "moisture assignment")
    logger.info("Diffusing moisture", cells=len(graph), controls=len(controls), decay=options.decay)

    sources = moisture_sources(graph, controls, options)
    adjacency = adjacency_matrix(graph)
    degree = np.asarray(adjacency.sum(axis=1)).ravel()
    degree[degree == 0] = 1.0

    moisture = sources.copy()
    sweeps = 0
    for sweeps in range(1, options.max_iterations + 1):
        spread = options.decay * (adjacency @ moisture) / degree
        updated = np.maximum(sources, spread)
        change = float(np.max(np.abs(updated - moisture))) if len(moisture) else 0.0
        moisture = updated
        if change <= options.tolerance:
            break

    moisture = np.clip(moisture, 0.0, 1.0)
    logger.info("Moisture diffusion complete", sweeps=sweeps,
                mean_moisture=float(moisture.mean()) if len(moisture) else None)

    _store(graph, moisture)
    return moisture
