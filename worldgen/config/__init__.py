"""
Configuration for world generation.
"""

from .settings import Settings, settings
from .generation import (
    BiomeSettings,
    BoundsModel,
    ControlPointModel,
    HydrologySettings,
    PeakSettings,
    WorldConfig,
)

__all__ = ['Settings', 'settings', 'BiomeSettings', 'BoundsModel', 'ControlPointModel',
           'HydrologySettings', 'PeakSettings', 'WorldConfig']
