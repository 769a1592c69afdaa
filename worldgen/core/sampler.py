"""
Site sampling for world generation.

Produces the 2-D generation sites from a seeded random source, optionally
relaxed towards even spacing with Lloyd's algorithm, and synthesizes
elevation control points (peaks) when the caller supplies none.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError

from ..utils.random import MAX_SEED, make_rng
from .errors import DegenerateInput, InvalidParameter
from .geometry import Rect, bisector_halfplane, clip_halfplane, compute_polygon_centroid
from .interpolation import ControlPoint

logger = structlog.get_logger()

# Two sites closer than this on both axes are considered duplicates
DUPLICATE_EPSILON = 1e-3

# Redraw budget per requested site before giving up
MAX_DRAWS_PER_SITE = 100


@dataclass(frozen=True)
class Site:
    """A sampled generation point with a stable integer identity."""
    id: int
    x: float
    y: float

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y])


class PeakDistribution(str, Enum):
    """Placement strategy for synthesized elevation peaks."""
    CENTERED_RANDOM = "centered_random"
    UNIFORM = "uniform"


def validate_sampling(seed: int, count: int, bounds: Rect) -> None:
    """Raise ``InvalidParameter`` for unusable sampling parameters."""
    if not 0 <= seed <= MAX_SEED:
        raise InvalidParameter("seed out of 64-bit range", seed=seed)
    if count <= 0:
        raise InvalidParameter("site count must be positive", count=count)
    if not all(math.isfinite(v) for v in bounds):
        raise InvalidParameter("bounds must be finite", bounds=tuple(bounds))
    if bounds.width <= 0 or bounds.height <= 0:
        raise InvalidParameter("bounds must have positive area", bounds=tuple(bounds))


def site_coordinates(sites: Sequence[Site]) -> np.ndarray:
    """Stack site positions into an (n, 2) array ordered as given."""
    return np.array([[site.x, site.y] for site in sites], dtype=np.float64).reshape(-1, 2)


def _draw_points(rng: np.random.Generator, count: int, bounds: Rect) -> np.ndarray:
    """Draw ``count`` points strictly inside bounds with no near-duplicates."""
    accepted: List[Tuple[float, float]] = []
    occupied: Dict[Tuple[int, int], List[int]] = {}
    budget = count * MAX_DRAWS_PER_SITE
    draws = 0

    while len(accepted) < count:
        if draws >= budget:
            raise InvalidParameter(
                "bounds too small to place distinct sites",
                count=count, bounds=tuple(bounds), placed=len(accepted),
            )
        draws += 1
        x = float(rng.uniform(bounds.min_x, bounds.max_x))
        y = float(rng.uniform(bounds.min_y, bounds.max_y))
        if not bounds.strictly_contains(x, y):
            continue

        kx = int(math.floor(x / DUPLICATE_EPSILON))
        ky = int(math.floor(y / DUPLICATE_EPSILON))
        duplicate = False
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for idx in occupied.get((kx + dx, ky + dy), ()):
                    ox, oy = accepted[idx]
                    if abs(ox - x) < DUPLICATE_EPSILON and abs(oy - y) < DUPLICATE_EPSILON:
                        duplicate = True
                        break
        if duplicate:
            continue

        occupied.setdefault((kx, ky), []).append(len(accepted))
        accepted.append((x, y))

    return np.array(accepted, dtype=np.float64)


def clipped_voronoi_cells(points: np.ndarray, bounds: Rect) -> List[np.ndarray]:
    """
    Voronoi cell of every point, clipped to bounds.

    Each cell is the bounds rectangle cut by the bisector half-planes of the
    point's Delaunay neighbours.

    Args:
        points: (n, 2) array, n >= 3 and not all collinear
        bounds: Clipping rectangle

    Returns:
        List of counter-clockwise vertex arrays, one per point
    """
    try:
        tri = Delaunay(points)
    except QhullError as exc:
        raise DegenerateInput("sites cannot be triangulated", count=len(points)) from exc

    indptr, indices = tri.vertex_neighbor_vertices
    corners = bounds.corners()
    cells = []
    for i in range(len(points)):
        polygon = corners
        for j in indices[indptr[i]:indptr[i + 1]]:
            normal, offset = bisector_halfplane(points[i], points[j])
            polygon = clip_halfplane(polygon, normal, offset)
            if len(polygon) == 0:
                break
        cells.append(polygon)
    return cells


def relax_points(points: np.ndarray, bounds: Rect, iterations: int, tolerance: float = 1e-3) -> np.ndarray:
    """Apply Lloyd's relaxation to improve point distribution.

    Moves each point to the centroid of its bounds-clipped Voronoi cell.
    Stops after ``iterations`` passes or once the largest move falls below
    ``tolerance`` times the mean site spacing. Points never leave bounds.

    Args:
        points: Points to relax
        bounds: Sampling bounds
        iterations: Maximum number of relaxation passes
        tolerance: Convergence threshold relative to mean spacing

    Returns:
        Relaxed point coordinates
    """
    points = points.copy()
    if iterations <= 0 or len(points) < 3:
        return points

    spacing = math.sqrt(bounds.area / len(points))
    margin = 1e-6 * min(bounds.width, bounds.height)
    lo = np.array([bounds.min_x + margin, bounds.min_y + margin])
    hi = np.array([bounds.max_x - margin, bounds.max_y - margin])

    for iteration in range(iterations):
        cells = clipped_voronoi_cells(points, bounds)
        relaxed = points.copy()
        for i, polygon in enumerate(cells):
            if len(polygon) >= 3:
                relaxed[i] = compute_polygon_centroid(polygon)
        relaxed = np.clip(relaxed, lo, hi)

        displacement = float(np.max(np.hypot(*(relaxed - points).T)))
        points = relaxed
        logger.debug("Relaxation iteration complete", iteration=iteration + 1, max_move=displacement)
        if displacement < tolerance * spacing:
            logger.info("Relaxation converged", iterations=iteration + 1)
            break

    return points


def sample(
    seed: int,
    count: int,
    bounds: Rect,
    relax_iterations: int = 0,
    relax_tolerance: float = 1e-3,
) -> List[Site]:
    """
    Sample generation sites.

    Deterministic for a fixed seed, count and bounds. All sites lie strictly
    inside ``bounds``; site ids are 0..count-1 in draw order.

    Args:
        seed: 64-bit seed
        count: Number of sites
        bounds: Sampling rectangle
        relax_iterations: Maximum Lloyd passes (0 disables relaxation)
        relax_tolerance: Early-stop threshold relative to mean spacing

    Returns:
        List of sites ordered by id
    """
    bounds = Rect(*bounds)
    validate_sampling(seed, count, bounds)
    if relax_iterations < 0:
        raise InvalidParameter("relax_iterations must be non-negative", relax_iterations=relax_iterations)

    logger.info("Sampling sites", seed=seed, count=count, bounds=tuple(bounds),
                relax_iterations=relax_iterations)

    rng = make_rng(seed, "sites")
    points = _draw_points(rng, count, bounds)
    points = relax_points(points, bounds, relax_iterations, relax_tolerance)

    return [Site(id=i, x=float(x), y=float(y)) for i, (x, y) in enumerate(points)]


def synthesize_peaks(
    seed: int,
    count: int,
    bounds: Rect,
    distribution: PeakDistribution = PeakDistribution.CENTERED_RANDOM,
    height_range: Tuple[float, float] = (0.6, 1.0),
) -> List[ControlPoint]:
    """
    Synthesize elevation control points.

    Peaks are drawn inside the central 80% of the bounds; the four corners
    and four edge midpoints are pinned to elevation 0 so terrain falls off
    towards the map edge.

    Args:
        seed: 64-bit seed
        count: Number of peaks
        bounds: Map bounds
        distribution: Peak placement strategy
        height_range: Range of peak elevations

    Returns:
        Peak controls followed by the edge anchors
    """
    bounds = Rect(*bounds)
    if count < 0:
        raise InvalidParameter("peak count must be non-negative", count=count)
    if count == 0:
        return []

    rng = make_rng(seed, "peaks")
    inner = Rect(
        bounds.min_x + 0.1 * bounds.width,
        bounds.min_y + 0.1 * bounds.height,
        bounds.max_x - 0.1 * bounds.width,
        bounds.max_y - 0.1 * bounds.height,
    )
    center = bounds.center

    controls = []
    for _ in range(count):
        if distribution == PeakDistribution.CENTERED_RANDOM:
            # Redraw peaks that land outside the inner rectangle
            while True:
                x = float(rng.normal(center[0], bounds.width / 6))
                y = float(rng.normal(center[1], bounds.height / 6))
                if inner.contains(x, y):
                    break
        else:
            x = float(rng.uniform(inner.min_x, inner.max_x))
            y = float(rng.uniform(inner.min_y, inner.max_y))
        value = float(rng.uniform(*height_range))
        controls.append(ControlPoint(x=x, y=y, value=value, field="elevation"))

    mid_x, mid_y = center
    for x, y in (
        (bounds.min_x, bounds.min_y), (mid_x, bounds.min_y),
        (bounds.max_x, bounds.min_y), (bounds.max_x, mid_y),
        (bounds.max_x, bounds.max_y), (mid_x, bounds.max_y),
        (bounds.min_x, bounds.max_y), (bounds.min_x, mid_y),
    ):
        controls.append(ControlPoint(x=float(x), y=float(y), value=0.0, field="elevation"))

    logger.info("Synthesized peaks", count=count, distribution=distribution.value)
    return controls
