"""
Core world generation functionality.
"""

from .errors import (
    AttributeMissing,
    CycleDetected,
    DegenerateInput,
    GeometryError,
    IllConditioned,
    InvalidParameter,
    WorldgenError,
)
from .geometry import Rect
from .sampler import PeakDistribution, Site, sample, synthesize_peaks
from .triangulation import Triangulation, circumcircle_violations, triangulate
from .dual_graph import BorderGraph, Cell, CellState, Graph, build_border_graph, build_dual
from .interpolation import ControlPoint, RBFKernel, ScalarField, fit
from .fields import assign_elevation
from .moisture import MoistureOptions, assign_moisture, diffuse_moisture
from .hydrology import Drainage, Hydrology, HydrologyOptions
from .biomes import BIOME_NAMES, BiomeClassifier, BiomeOptions, BiomeType
from .rasterizer import RasterBuffer, rasterize

__all__ = ['AttributeMissing', 'CycleDetected', 'DegenerateInput', 'GeometryError', 'IllConditioned',
           'InvalidParameter', 'WorldgenError', 'Rect', 'PeakDistribution', 'Site', 'sample',
           'synthesize_peaks', 'Triangulation', 'circumcircle_violations', 'triangulate',
           'BorderGraph', 'Cell', 'CellState', 'Graph', 'build_border_graph', 'build_dual',
           'ControlPoint', 'RBFKernel', 'ScalarField', 'fit', 'assign_elevation',
           'MoistureOptions', 'assign_moisture', 'diffuse_moisture', 'Drainage', 'Hydrology',
           'HydrologyOptions', 'BIOME_NAMES', 'BiomeClassifier', 'BiomeOptions', 'BiomeType',
           'RasterBuffer', 'rasterize']
