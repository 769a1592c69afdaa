"""
Biome classification from elevation, moisture and flow.

Classification of a cell reads only that cell's own resolved attributes, so
cells are classified independently and in parallel.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence

import numpy as np
import structlog

from .dual_graph import CellState, Graph
from .parallel import parallel_map

logger = structlog.get_logger()


class BiomeType(IntEnum):
    """Biome types."""

    OCEAN = 0
    LAKE = 1
    RIVER = 2
    SNOW = 3
    TUNDRA = 4
    BARE = 5
    SCORCHED = 6
    TAIGA = 7
    SHRUBLAND = 8
    TEMPERATE_DESERT = 9
    TEMPERATE_RAIN_FOREST = 10
    TEMPERATE_DECIDUOUS_FOREST = 11
    GRASSLAND = 12
    TROPICAL_RAIN_FOREST = 13
    TROPICAL_SEASONAL_FOREST = 14
    SUBTROPICAL_DESERT = 15


# Biome names for display
BIOME_NAMES = {
    BiomeType.OCEAN: "Ocean",
    BiomeType.LAKE: "Lake",
    BiomeType.RIVER: "River",
    BiomeType.SNOW: "Snow",
    BiomeType.TUNDRA: "Tundra",
    BiomeType.BARE: "Bare",
    BiomeType.SCORCHED: "Scorched",
    BiomeType.TAIGA: "Taiga",
    BiomeType.SHRUBLAND: "Shrubland",
    BiomeType.TEMPERATE_DESERT: "Temperate Desert",
    BiomeType.TEMPERATE_RAIN_FOREST: "Temperate Rain Forest",
    BiomeType.TEMPERATE_DECIDUOUS_FOREST: "Temperate Deciduous Forest",
    BiomeType.GRASSLAND: "Grassland",
    BiomeType.TROPICAL_RAIN_FOREST: "Tropical Rain Forest",
    BiomeType.TROPICAL_SEASONAL_FOREST: "Tropical Seasonal Forest",
    BiomeType.SUBTROPICAL_DESERT: "Subtropical Desert",
}


# Biome matrix [elevation_zone][moisture_band], lowland first
BIOME_MATRIX = [
    # Lowland
    [
        BiomeType.SUBTROPICAL_DESERT,
        BiomeType.GRASSLAND,
        BiomeType.TROPICAL_SEASONAL_FOREST,
        BiomeType.TROPICAL_SEASONAL_FOREST,
        BiomeType.TROPICAL_RAIN_FOREST,
        BiomeType.TROPICAL_RAIN_FOREST,
    ],
    # Midland
    [
        BiomeType.TEMPERATE_DESERT,
        BiomeType.GRASSLAND,
        BiomeType.GRASSLAND,
        BiomeType.TEMPERATE_DECIDUOUS_FOREST,
        BiomeType.TEMPERATE_DECIDUOUS_FOREST,
        BiomeType.TEMPERATE_RAIN_FOREST,
    ],
    # Highland
    [
        BiomeType.TEMPERATE_DESERT,
        BiomeType.TEMPERATE_DESERT,
        BiomeType.SHRUBLAND,
        BiomeType.SHRUBLAND,
        BiomeType.TAIGA,
        BiomeType.TAIGA,
    ],
    # Alpine
    [
        BiomeType.SCORCHED,
        BiomeType.BARE,
        BiomeType.TUNDRA,
        BiomeType.SNOW,
        BiomeType.SNOW,
        BiomeType.SNOW,
    ],
]


@dataclass
class BiomeOptions:
    """Biome classification options."""

    sea_level: float = 0.2  # Below this elevation a cell is ocean
    elevation_zones: Sequence[float] = (0.4, 0.6, 0.8)  # Zone boundaries above sea level
    moisture_bands: Sequence[float] = (1 / 6, 2 / 6, 3 / 6, 4 / 6, 5 / 6)


def _band(value: float, thresholds: Sequence[float]) -> int:
    for i, threshold in enumerate(thresholds):
        if value < threshold:
            return i
    return len(thresholds)


def classify_cell(
    elevation: float,
    moisture: float,
    flow: int,
    is_river: bool = False,
    is_sink: bool = False,
    options: Optional[BiomeOptions] = None,
) -> BiomeType:
    """
    Classify one cell.

    Args:
        elevation: Cell elevation
        moisture: Cell moisture in [0, 1]
        flow: Accumulated flow through the cell
        is_river: River flag resolved by hydrology
        is_sink: Whether the cell has no downslope target
        options: Classification thresholds

    Returns:
        BiomeType for the cell
    """
    options = options or BiomeOptions()

    if elevation < options.sea_level:
        return BiomeType.OCEAN
    if is_river:
        return BiomeType.RIVER
    # A land sink that collects water pools into a lake
    if is_sink and flow > 1:
        return BiomeType.LAKE

    zone = _band(elevation, options.elevation_zones)
    band = _band(moisture, options.moisture_bands)
    return BIOME_MATRIX[zone][band]


class BiomeClassifier:
    """Classifies every cell of a graph whose flow is resolved."""

    def __init__(self, graph: Graph, options: Optional[BiomeOptions] = None):
        self.graph = graph
        self.options = options or BiomeOptions()
        self.biomes: Optional[np.ndarray] = None

    def _classify_chunk(self, cell_ids: Sequence[int]) -> List[int]:
        result = []
        for cell_id in cell_ids:
            attributes = self.graph[cell_id].attributes
            result.append(int(classify_cell(
                attributes.elevation,
                attributes.moisture,
                attributes.flow,
                attributes.is_river,
                attributes.is_sink,
                self.options,
            )))
        return result

    def classify_biomes(self, workers: Optional[int] = None) -> np.ndarray:
        """
        Classify biomes for all cells and record them on the graph.

        Args:
            workers: Worker threads for per-cell classification

        Returns:
            Biome id per cell, in id order
        """
        self.graph.require_state(CellState.FLOW_RESOLVED, "biome classification")
        logger.info("Classifying biomes", cells=len(self.graph))

        chunks = parallel_map(self._classify_chunk, range(len(self.graph)), workers=workers)
        self.biomes = np.array([b for chunk in chunks for b in chunk], dtype=np.uint8)

        for cell, biome in zip(self.graph, self.biomes):
            cell.attributes.classify(cell.id, int(biome))

        logger.info("Biome classification completed", unique_biomes=len(np.unique(self.biomes)))
        return self.biomes
