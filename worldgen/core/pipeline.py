"""
World generation pipeline.

Runs Sampler -> Triangulation -> Dual Graph -> Interpolator -> Propagation
-> Rasterizer for one configuration. The triangulation is dropped once the
dual graph exists; everything later reads the graph.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import structlog

from ..config.generation import WorldConfig
from ..config.settings import Settings, settings as default_settings
from .biomes import BIOME_NAMES, BiomeClassifier, BiomeType
from .dual_graph import Graph, build_dual
from .errors import InvalidParameter
from .fields import assign_elevation
from .hydrology import Drainage, Hydrology
from .interpolation import ControlPoint, ScalarField, fit
from .moisture import assign_moisture, diffuse_moisture
from .rasterizer import RasterBuffer, rasterize
from .sampler import Site, sample, synthesize_peaks
from .triangulation import triangulate

logger = structlog.get_logger()


@dataclass
class World:
    """Everything one pipeline run produced."""
    config: WorldConfig
    sites: List[Site]
    graph: Graph
    elevation_field: ScalarField
    moisture_field: Optional[ScalarField]  # None in diffuse mode
    drainage: Drainage
    raster: RasterBuffer

    def biome_counts(self) -> Dict[str, int]:
        """Number of cells per biome name, for biomes that occur."""
        biomes = self.graph.attribute_array("biome", dtype=np.int64)
        ids, counts = np.unique(biomes, return_counts=True)
        return {BIOME_NAMES[BiomeType(int(i))]: int(c) for i, c in zip(ids, counts)}


def elevation_controls(config: WorldConfig) -> List[ControlPoint]:
    """Explicit elevation controls followed by any synthesized peaks."""
    controls = config.controls_for("elevation")
    if config.peaks.count:
        controls += synthesize_peaks(
            config.seed,
            config.peaks.count,
            config.bounds.to_rect(),
            config.peaks.distribution,
            (config.peaks.min_height, config.peaks.max_height),
        )
    return controls


def generate_world(config: WorldConfig, settings: Optional[Settings] = None) -> World:
    """
    Generate a world.

    Identical configurations produce identical worlds regardless of the
    worker count.

    Args:
        config: Per-run configuration
        settings: Runtime settings; defaults to the environment-derived ones

    Returns:
        World holding the classified graph and its raster
    """
    settings = settings or default_settings
    if config.site_count > settings.max_sites:
        raise InvalidParameter(
            "site count exceeds the configured maximum",
            count=config.site_count, max_sites=settings.max_sites,
        )

    workers = settings.workers
    bounds = config.bounds.to_rect()
    log = logger.bind(seed=config.seed, sites=config.site_count)
    started = time.perf_counter()
    log.info("Generating world", bounds=tuple(bounds), workers=workers)

    sites = sample(config.seed, config.site_count, bounds,
                   relax_iterations=config.relax_iterations,
                   relax_tolerance=config.relax_tolerance)

    triangulation = triangulate(sites)
    graph = build_dual(triangulation, bounds)
    del triangulation

    elevation_field = fit(elevation_controls(config), config.elevation_kernel,
                          config.elevation_epsilon, name="elevation")
    assign_elevation(graph, elevation_field, workers)

    moisture_field = None
    if config.moisture_mode == "interpolate":
        moisture_field = fit(config.controls_for("moisture"), config.moisture_kernel,
                             config.moisture_epsilon, name="moisture")
        assign_moisture(graph, moisture_field, workers)
    else:
        diffuse_moisture(graph, config.controls_for("moisture"), config.moisture_options())

    drainage = Hydrology(graph, config.hydrology_options()).run()
    BiomeClassifier(graph, config.biome_options()).classify_biomes(workers)

    raster = rasterize(graph, config.resolution, workers=workers)

    log.info("World generated", cells=len(graph),
             elapsed_seconds=round(time.perf_counter() - started, 3))
    return World(
        config=config,
        sites=sites,
        graph=graph,
        elevation_field=elevation_field,
        moisture_field=moisture_field,
        drainage=drainage,
        raster=raster,
    )


def graph_records(graph: Graph) -> Iterator[Dict[str, Any]]:
    """
    Yield one plain record per cell, in ascending id order.

    Unset attributes are exported as None.
    """
    for cell in graph:
        attributes = cell.attributes
        yield {
            "id": cell.id,
            "site": [float(cell.site[0]), float(cell.site[1])],
            "centroid": [float(cell.centroid[0]), float(cell.centroid[1])],
            "position": [float(v) for v in cell.vertex_mean],
            "polygon": [[float(x), float(y)] for x, y in cell.polygon],
            "neighbors": list(cell.neighbors),
            "is_border": cell.is_border,
            "state": attributes.state.name.lower(),
            "elevation": attributes.elevation,
            "moisture": attributes.moisture,
            "flow_target": attributes.flow_target,
            "flow": attributes.flow,
            "is_river": attributes.is_river,
            "biome": attributes.biome,
        }
