"""Per-run generation configuration."""

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.biomes import BiomeOptions
from ..core.geometry import Rect
from ..core.hydrology import HydrologyOptions
from ..core.interpolation import ControlPoint, RBFKernel
from ..core.moisture import MoistureOptions
from ..core.sampler import PeakDistribution
from ..utils.random import MAX_SEED, seed_from_string


class BoundsModel(BaseModel):
    """Sampling rectangle."""

    model_config = ConfigDict(frozen=True)

    min_x: float = Field(0.0, description="Left edge")
    min_y: float = Field(0.0, description="Bottom edge")
    max_x: float = Field(1000.0, description="Right edge")
    max_y: float = Field(1000.0, description="Top edge")

    def to_rect(self) -> Rect:
        return Rect(self.min_x, self.min_y, self.max_x, self.max_y)


class ControlPointModel(BaseModel):
    """A control point tagged by the field it anchors."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    value: float
    field: Literal["elevation", "moisture"] = "elevation"

    def to_control(self) -> ControlPoint:
        return ControlPoint(x=self.x, y=self.y, value=self.value, field=self.field)


class PeakSettings(BaseModel):
    """Synthesized elevation peaks, used alongside explicit elevation controls."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(0, ge=0, description="Number of peaks to synthesize")
    distribution: PeakDistribution = Field(PeakDistribution.CENTERED_RANDOM)
    min_height: float = Field(0.6, description="Lowest peak elevation")
    max_height: float = Field(1.0, description="Highest peak elevation")


class HydrologySettings(BaseModel):
    """Drainage thresholds."""

    model_config = ConfigDict(frozen=True)

    sea_level: float = Field(0.2, description="Cells below this elevation are water")
    river_threshold: int = Field(10, ge=1, description="Accumulated flow forming a river")
    moisture_decay: float = Field(0.85, gt=0, le=1, description="Diffusion decay per hop")
    moisture_iterations: int = Field(200, ge=1, description="Diffusion sweep limit")


class BiomeSettings(BaseModel):
    """Biome table thresholds; sea level and rivers come from hydrology."""

    model_config = ConfigDict(frozen=True)

    elevation_zones: Tuple[float, float, float] = Field((0.4, 0.6, 0.8))
    moisture_bands: Tuple[float, float, float, float, float] = Field((1 / 6, 2 / 6, 3 / 6, 4 / 6, 5 / 6))


class WorldConfig(BaseModel):
    """Complete configuration for one world.

    Passed by value into ``generate_world``; nothing here is global.
    Count, bounds and resolution are checked by the stage that consumes them
    and rejected with ``InvalidParameter``.
    """

    model_config = ConfigDict(frozen=True)

    seed: int = Field(0, ge=0, le=MAX_SEED, description="64-bit generation seed")
    site_count: int = Field(1000, description="Number of sites")
    bounds: BoundsModel = Field(default_factory=BoundsModel)
    relax_iterations: int = Field(2, ge=0, description="Lloyd relaxation passes")
    relax_tolerance: float = Field(1e-3, gt=0, description="Relaxation early-stop threshold")
    control_points: List[ControlPointModel] = Field(default_factory=list)
    peaks: PeakSettings = Field(default_factory=PeakSettings)
    resolution: Tuple[int, int] = Field((512, 512), description="Raster (width, height)")
    elevation_kernel: RBFKernel = Field(RBFKernel.THIN_PLATE)
    elevation_epsilon: Optional[float] = Field(None, gt=0)
    moisture_mode: Literal["interpolate", "diffuse"] = Field("diffuse")
    moisture_kernel: RBFKernel = Field(RBFKernel.THIN_PLATE)
    moisture_epsilon: Optional[float] = Field(None, gt=0)
    hydrology: HydrologySettings = Field(default_factory=HydrologySettings)
    biome: BiomeSettings = Field(default_factory=BiomeSettings)

    @classmethod
    def from_seed_string(cls, text: str, **kwargs) -> "WorldConfig":
        """Build a config whose seed is derived from a text seed."""
        return cls(seed=seed_from_string(text), **kwargs)

    def controls_for(self, field: str) -> List[ControlPoint]:
        """Explicit control points anchoring one field, in declaration order."""
        return [c.to_control() for c in self.control_points if c.field == field]

    def hydrology_options(self) -> HydrologyOptions:
        return HydrologyOptions(
            river_threshold=self.hydrology.river_threshold,
            sea_level=self.hydrology.sea_level,
        )

    def moisture_options(self) -> MoistureOptions:
        return MoistureOptions(
            decay=self.hydrology.moisture_decay,
            max_iterations=self.hydrology.moisture_iterations,
            sea_level=self.hydrology.sea_level,
        )

    def biome_options(self) -> BiomeOptions:
        return BiomeOptions(
            sea_level=self.hydrology.sea_level,
            elevation_zones=self.biome.elevation_zones,
            moisture_bands=self.biome.moisture_bands,
        )
