#!/usr/bin/env python3
"""
Simple demo script showing world generation capabilities.
"""

import sys

import numpy as np

from worldgen import Settings, WorldConfig, generate_world
from worldgen.core.biomes import BiomeType
from worldgen.core.sampler import PeakDistribution
from worldgen.utils.logging import configure_logging


def print_world(world):
    """Print summary statistics for one generated world."""
    graph = world.graph
    elevations = graph.attribute_array("elevation")
    moisture = graph.attribute_array("moisture")
    sea_level = world.config.hydrology.sea_level

    land_cells = int(np.sum(elevations >= sea_level))
    land_pct = land_cells / len(graph) * 100
    print(f"  Total cells: {len(graph)}")
    print(f"  Land cells: {land_cells} ({land_pct:.1f}%)")
    print(f"  Elevation range: {elevations.min():.3f} to {elevations.max():.3f}")
    print(f"  Average moisture: {moisture.mean():.3f}")
    print(f"  Sinks: {len(world.drainage.sinks)}, river cells: {int(world.drainage.rivers.sum())}")
    print(f"  Largest flow: {int(world.drainage.accumulation.max())}")

    print("  Biomes:")
    counts = world.biome_counts()
    largest = max(counts.values())
    for name, count in sorted(counts.items(), key=lambda item: -item[1]):
        bar = '#' * int(count / largest * 20)
        print(f"    {name:<28} {bar} ({count})")


def print_raster(world, columns=48):
    """Print a coarse character map of the raster, north at the top."""
    symbols = {
        BiomeType.OCEAN: '~', BiomeType.LAKE: 'o', BiomeType.RIVER: '=',
        BiomeType.SNOW: '*', BiomeType.TUNDRA: '-', BiomeType.BARE: '.',
        BiomeType.SCORCHED: ':', BiomeType.TAIGA: 'T', BiomeType.SHRUBLAND: 's',
        BiomeType.TEMPERATE_DESERT: 'd', BiomeType.TEMPERATE_RAIN_FOREST: 'R',
        BiomeType.TEMPERATE_DECIDUOUS_FOREST: 'F', BiomeType.GRASSLAND: 'g',
        BiomeType.TROPICAL_RAIN_FOREST: 'J', BiomeType.TROPICAL_SEASONAL_FOREST: 'f',
        BiomeType.SUBTROPICAL_DESERT: 'D',
    }
    values = world.raster.values
    step = max(1, values.shape[1] // columns)
    for row in values[::-step * 2, ::step]:
        print("  " + "".join(symbols.get(int(v), ' ') for v in row))


def main():
    """Demonstrate world generation."""
    configure_logging(Settings(log_level="WARNING", log_format="console"))
    seed_text = sys.argv[1] if len(sys.argv) > 1 else "demo123"

    print("Worldgen Demo")
    print("=" * 40)

    for distribution in PeakDistribution:
        print(f"\n{distribution.value.upper()} peaks (seed '{seed_text}'):")
        print("-" * 30)
        config = WorldConfig.from_seed_string(
            seed_text,
            site_count=2000,
            bounds={"min_x": 0, "min_y": 0, "max_x": 1000, "max_y": 1000},
            peaks={"count": 5, "distribution": distribution},
            control_points=[
                {"x": 150, "y": 850, "value": 1.0, "field": "moisture"},
                {"x": 800, "y": 200, "value": 0.1, "field": "moisture"},
            ],
            resolution=(192, 192),
        )
        world = generate_world(config)
        print_world(world)
        print_raster(world)


if __name__ == "__main__":
    main()
