"""
Delaunay triangulation of generation sites.

Wraps ``scipy.spatial.Delaunay`` and canonicalizes its output so that the
result depends only on the site set: sites are fed to Qhull in ascending id
order, every triangle is stored counter-clockwise starting from its lowest
site id, and triangles are sorted lexicographically.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError, cKDTree

from .errors import DegenerateInput
from .sampler import Site, site_coordinates

logger = structlog.get_logger()


@dataclass
class Triangulation:
    """Delaunay triangulation over a set of sites.

    ``triangles`` holds site ids (not array positions), one row per face.
    """
    sites: Tuple[Site, ...]
    points: np.ndarray
    triangles: np.ndarray
    hull: Set[int]
    _index: Dict[int, int] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self._index = {site.id: i for i, site in enumerate(self.sites)}

    @property
    def site_ids(self) -> List[int]:
        return [site.id for site in self.sites]

    def position(self, site_id: int) -> np.ndarray:
        """Coordinates of a site."""
        return self.points[self._index[site_id]]

    def triangle_points(self, triangle: int) -> np.ndarray:
        """(3, 2) vertex coordinates of one triangle."""
        return np.array([self.position(int(s)) for s in self.triangles[triangle]])

    def edges(self) -> List[Tuple[int, int]]:
        """All triangulation edges as sorted (low id, high id) pairs, sorted."""
        unique = set()
        for a, b, c in self.triangles:
            for u, v in ((a, b), (b, c), (c, a)):
                unique.add((int(min(u, v)), int(max(u, v))))
        return sorted(unique)

    def neighbors(self) -> Dict[int, Tuple[int, ...]]:
        """Site id -> ascending ids of sites sharing an edge with it."""
        adjacency: Dict[int, Set[int]] = {site.id: set() for site in self.sites}
        for a, b in self.edges():
            adjacency[a].add(b)
            adjacency[b].add(a)
        return {site_id: tuple(sorted(ids)) for site_id, ids in adjacency.items()}

    def incident_triangles(self) -> Dict[int, List[int]]:
        """Site id -> indices of the triangles having it as a vertex."""
        incident: Dict[int, List[int]] = {site.id: [] for site in self.sites}
        for t, row in enumerate(self.triangles):
            for s in row:
                incident[int(s)].append(t)
        return incident

    def circumcenters(self) -> np.ndarray:
        """(t, 2) circumcenters, one per triangle."""
        idx = np.vectorize(self._index.__getitem__, otypes=[np.int64])(self.triangles)
        a = self.points[idx[:, 0]]
        b = self.points[idx[:, 1]]
        c = self.points[idx[:, 2]]
        d = 2.0 * (a[:, 0] * (b[:, 1] - c[:, 1]) + b[:, 0] * (c[:, 1] - a[:, 1]) + c[:, 0] * (a[:, 1] - b[:, 1]))
        a2 = (a * a).sum(axis=1)
        b2 = (b * b).sum(axis=1)
        c2 = (c * c).sum(axis=1)
        ux = (a2 * (b[:, 1] - c[:, 1]) + b2 * (c[:, 1] - a[:, 1]) + c2 * (a[:, 1] - b[:, 1])) / d
        uy = (a2 * (c[:, 0] - b[:, 0]) + b2 * (a[:, 0] - c[:, 0]) + c2 * (b[:, 0] - a[:, 0])) / d
        return np.column_stack([ux, uy])


def _canonical_triangles(ids: np.ndarray, points: np.ndarray, simplices: np.ndarray) -> np.ndarray:
    """Orient triangles counter-clockwise, rotate lowest id first, sort rows."""
    a = points[simplices[:, 0]]
    b = points[simplices[:, 1]]
    c = points[simplices[:, 2]]
    signed = (b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (c[:, 0] - a[:, 0]) * (b[:, 1] - a[:, 1])

    oriented = simplices.copy()
    clockwise = signed < 0
    oriented[clockwise] = oriented[clockwise][:, [0, 2, 1]]

    triangles = ids[oriented]
    rotation = np.argmin(triangles, axis=1)
    rows = np.arange(len(triangles))[:, None]
    cols = (rotation[:, None] + np.arange(3)[None, :]) % 3
    triangles = triangles[rows, cols]

    order = np.lexsort((triangles[:, 2], triangles[:, 1], triangles[:, 0]))
    return triangles[order]


def triangulate(sites: Sequence[Site]) -> Triangulation:
    """
    Compute the Delaunay triangulation of the sites.

    Co-circular ties are resolved deterministically: Qhull always receives the
    sites in ascending id order, so identical input yields identical faces.

    Args:
        sites: At least three sites, not all collinear

    Returns:
        Canonicalized Triangulation
    """
    if len(sites) < 3:
        raise DegenerateInput("at least 3 sites are required", count=len(sites))

    ordered = tuple(sorted(sites, key=lambda s: s.id))
    ids = np.array([s.id for s in ordered], dtype=np.int64)
    if len(np.unique(ids)) != len(ids):
        raise DegenerateInput("site ids must be unique", count=len(ids))

    points = site_coordinates(ordered)
    offsets = points - points[0]
    scale = max(1.0, float(np.abs(offsets).max()))
    if np.linalg.matrix_rank(offsets, tol=1e-12 * scale) < 2:
        raise DegenerateInput("all sites are collinear", count=len(sites))

    logger.info("Triangulating sites", count=len(ordered))

    try:
        tri = Delaunay(points)
    except QhullError as exc:
        raise DegenerateInput("sites cannot be triangulated", count=len(sites)) from exc

    if len(tri.coplanar):
        dropped = sorted(int(ids[i]) for i in tri.coplanar[:, 0])
        raise DegenerateInput("coincident sites left out of the triangulation", site_ids=dropped)

    triangles = _canonical_triangles(ids, points, tri.simplices)
    hull = {int(ids[i]) for i in np.unique(tri.convex_hull)}

    logger.info("Triangulation complete", triangles=len(triangles), hull_sites=len(hull))

    return Triangulation(sites=ordered, points=points, triangles=triangles, hull=hull)


def circumcircle_violations(triangulation: Triangulation, tolerance: float = 1e-9) -> List[Tuple[int, int]]:
    """
    Check the empty-circumcircle property.

    Args:
        triangulation: Triangulation to verify
        tolerance: Relative radius shrink treating co-circular sites as outside

    Returns:
        (triangle index, site id) pairs where the site lies strictly inside the
        triangle's circumcircle; empty for a valid Delaunay triangulation
    """
    centers = triangulation.circumcenters()
    tree = cKDTree(triangulation.points)
    site_ids = triangulation.site_ids
    violations = []

    for t, row in enumerate(triangulation.triangles):
        center = centers[t]
        if not np.all(np.isfinite(center)):
            continue
        radius = float(np.hypot(*(triangulation.position(int(row[0])) - center)))
        own = {int(s) for s in row}
        for i in tree.query_ball_point(center, radius * (1.0 - tolerance)):
            if site_ids[i] not in own:
                violations.append((t, site_ids[i]))

    return violations
