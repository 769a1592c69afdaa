"""
Hydrology over the cell graph.

This module implements:
- Downslope assignment (steepest strictly-lower neighbour, lowest id on ties)
- Reverse-topological scheduling of the downslope forest, in waves
- Flow accumulation (1 + inflow) and river marking
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import structlog

from .dual_graph import CellState, Graph
from .errors import CycleDetected

logger = structlog.get_logger()

# Flow target value of a local sink
NO_TARGET = -1


@dataclass
class HydrologyOptions:
    """Hydrology calculation options."""
    river_threshold: int = 10  # Accumulated flow at which a land cell is a river
    sea_level: float = 0.2  # Cells below this elevation are water


@dataclass
class Drainage:
    """Result of drainage resolution, arrays in cell id order."""
    flow_targets: np.ndarray
    accumulation: np.ndarray
    waves: List[np.ndarray] = field(default_factory=list)
    rivers: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=bool))

    @property
    def sinks(self) -> List[int]:
        return [int(i) for i in np.flatnonzero(self.flow_targets == NO_TARGET)]


def assign_downslope(elevations: np.ndarray, neighbors: Sequence[Sequence[int]]) -> np.ndarray:
    """
    Pick each cell's flow target.

    The target is the lowest neighbour whose elevation is strictly lower than
    the cell's own; among equally low neighbours the lowest id wins. Cells
    with no lower neighbour are sinks.

    Args:
        elevations: Elevation per cell
        neighbors: Neighbour ids per cell

    Returns:
        Flow target per cell, NO_TARGET for sinks
    """
    targets = np.full(len(elevations), NO_TARGET, dtype=np.int64)
    for cell_id, cell_neighbors in enumerate(neighbors):
        lowest = elevations[cell_id]
        best = NO_TARGET
        for neighbor in sorted(cell_neighbors):
            if elevations[neighbor] < lowest:
                lowest = elevations[neighbor]
                best = neighbor
        targets[cell_id] = best
    return targets


def topological_waves(flow_targets: np.ndarray) -> List[np.ndarray]:
    """
    Schedule the downslope relation from sources to sinks.

    Wave k holds the cells all of whose upstream cells appear in earlier
    waves, so a wave can be processed in any order (or in parallel).

    Args:
        flow_targets: Flow target per cell

    Returns:
        List of ascending cell id arrays

    Raises:
        CycleDetected: if the relation contains a cycle
    """
    n = len(flow_targets)
    has_target = flow_targets != NO_TARGET
    indegree = np.bincount(flow_targets[has_target], minlength=n)

    waves = []
    wave = np.flatnonzero(indegree == 0)
    scheduled = 0
    while len(wave):
        waves.append(wave)
        scheduled += len(wave)
        downstream = flow_targets[wave]
        downstream = downstream[downstream != NO_TARGET]
        if not len(downstream):
            break
        released = np.bincount(downstream, minlength=n)
        before = indegree.copy()
        indegree -= released
        wave = np.flatnonzero((indegree == 0) & (before > 0))

    if scheduled < n:
        remaining = np.flatnonzero(indegree > 0)
        raise CycleDetected(
            "downslope relation is not acyclic",
            cells=[int(c) for c in remaining[:10]], unscheduled=n - scheduled,
        )
    return waves


def accumulate_flow(flow_targets: np.ndarray, waves: Sequence[np.ndarray]) -> np.ndarray:
    """Accumulated flow per cell: 1 plus the accumulated flow of its inflows."""
    accumulation = np.ones(len(flow_targets), dtype=np.int64)
    for wave in waves:
        targets = flow_targets[wave]
        mask = targets != NO_TARGET
        np.add.at(accumulation, targets[mask], accumulation[wave[mask]])
    return accumulation


class Hydrology:
    """Resolves drainage on a graph whose elevation and moisture are set."""

    def __init__(self, graph: Graph, options: Optional[HydrologyOptions] = None):
        """
        Initialize hydrology system.

        Args:
            graph: Dual graph with every cell in MOISTURE_SET state
            options: Hydrology calculation options
        """
        self.graph = graph
        self.options = options or HydrologyOptions()

        self.flow_targets: Optional[np.ndarray] = None
        self.waves: Optional[List[np.ndarray]] = None
        self.accumulation: Optional[np.ndarray] = None

    def calculate_flow_directions(self) -> np.ndarray:
        """Assign every cell's downslope target."""
        self.graph.require_state(CellState.MOISTURE_SET, "flow resolution")
        logger.info("Calculating flow directions", cells=len(self.graph))

        elevations = self.graph.attribute_array("elevation")
        self.flow_targets = assign_downslope(elevations, [cell.neighbors for cell in self.graph])

        logger.info("Flow directions calculated", sinks=int(np.sum(self.flow_targets == NO_TARGET)))
        return self.flow_targets

    def simulate_water_flow(self) -> np.ndarray:
        """Accumulate flow along the downslope forest."""
        if self.flow_targets is None:
            self.calculate_flow_directions()

        self.waves = topological_waves(self.flow_targets)
        self.accumulation = accumulate_flow(self.flow_targets, self.waves)

        logger.info("Water flow simulation completed", waves=len(self.waves),
                    max_flow=int(self.accumulation.max()) if len(self.accumulation) else 0)
        return self.accumulation

    def run(self) -> Drainage:
        """Resolve drainage and write it to the graph's cells."""
        if self.accumulation is None:
            self.simulate_water_flow()

        elevations = self.graph.attribute_array("elevation")
        rivers = (self.accumulation >= self.options.river_threshold) & (elevations >= self.options.sea_level)

        for cell in self.graph:
            target = int(self.flow_targets[cell.id])
            cell.attributes.resolve_flow(
                cell.id,
                None if target == NO_TARGET else target,
                int(self.accumulation[cell.id]),
                bool(rivers[cell.id]),
            )

        logger.info("Drainage resolved", river_cells=int(rivers.sum()))
        return Drainage(
            flow_targets=self.flow_targets,
            accumulation=self.accumulation,
            waves=self.waves,
            rivers=rivers,
        )
