"""
Procedural world generation over a Voronoi cell graph.
"""

from .config import Settings, WorldConfig, settings
from .core.pipeline import World, generate_world, graph_records

__version__ = "0.1.0"

__all__ = ['Settings', 'WorldConfig', 'settings', 'World', 'generate_world', 'graph_records']
