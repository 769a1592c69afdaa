"""Planar geometry helpers shared by the sampler, dual graph and rasterizer."""

from typing import NamedTuple

import numpy as np

# Vertices closer than this are merged when building polygons
VERTEX_EPSILON = 1e-9


class Rect(NamedTuple):
    """Axis-aligned rectangle."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> np.ndarray:
        return np.array([(self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2])

    def contains(self, x: float, y: float) -> bool:
        """True if (x, y) lies inside or on the rectangle."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def strictly_contains(self, x: float, y: float) -> bool:
        return self.min_x < x < self.max_x and self.min_y < y < self.max_y

    def corners(self) -> np.ndarray:
        """Rectangle corners in counter-clockwise order."""
        return np.array([
            [self.min_x, self.min_y],
            [self.max_x, self.min_y],
            [self.max_x, self.max_y],
            [self.min_x, self.max_y],
        ], dtype=np.float64)


def polygon_area(vertices: np.ndarray) -> float:
    """Signed shoelace area; positive for counter-clockwise polygons."""
    if len(vertices) < 3:
        return 0.0
    x = vertices[:, 0]
    y = vertices[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def compute_polygon_centroid(vertices: np.ndarray) -> np.ndarray:
    """Compute the area centroid of a polygon.

    Falls back to the vertex mean for polygons with (near) zero area.

    Args:
        vertices: Array of [x, y] vertex coordinates

    Returns:
        [x, y] centroid coordinates
    """
    if len(vertices) < 3:
        return np.mean(vertices, axis=0)

    x = vertices[:, 0]
    y = vertices[:, 1]
    xn = np.roll(x, -1)
    yn = np.roll(y, -1)
    cross = x * yn - xn * y
    area = 0.5 * cross.sum()

    if abs(area) < 1e-10:
        return np.mean(vertices, axis=0)

    cx = ((x + xn) * cross).sum() / (6.0 * area)
    cy = ((y + yn) * cross).sum() / (6.0 * area)
    return np.array([cx, cy])


def order_counter_clockwise(points: np.ndarray, center: np.ndarray) -> np.ndarray:
    """Sort points by angle around ``center``, counter-clockwise."""
    angles = np.arctan2(points[:, 1] - center[1], points[:, 0] - center[0])
    return points[np.argsort(angles, kind="stable")]


def dedupe_vertices(vertices: np.ndarray, epsilon: float = VERTEX_EPSILON) -> np.ndarray:
    """Drop consecutive (cyclically) coincident vertices."""
    if len(vertices) == 0:
        return vertices
    kept = [vertices[0]]
    for vertex in vertices[1:]:
        if np.abs(vertex - kept[-1]).max() > epsilon:
            kept.append(vertex)
    if len(kept) > 1 and np.abs(kept[0] - kept[-1]).max() <= epsilon:
        kept.pop()
    return np.array(kept, dtype=np.float64)


def clip_halfplane(vertices: np.ndarray, normal: np.ndarray, offset: float) -> np.ndarray:
    """Keep the part of a convex polygon where ``dot(normal, p) <= offset``.

    One Sutherland-Hodgman pass.
    """
    if len(vertices) == 0:
        return vertices

    result = []
    n = len(vertices)
    for i in range(n):
        current = vertices[i]
        following = vertices[(i + 1) % n]
        d_current = float(np.dot(normal, current)) - offset
        d_following = float(np.dot(normal, following)) - offset

        if d_current <= 0:
            result.append(current)
        if (d_current < 0 < d_following) or (d_following < 0 < d_current):
            t = d_current / (d_current - d_following)
            result.append(current + t * (following - current))

    if not result:
        return np.empty((0, 2), dtype=np.float64)
    return dedupe_vertices(np.array(result, dtype=np.float64))


def clip_polygon_to_rect(vertices: np.ndarray, bounds: Rect) -> np.ndarray:
    """Clip a convex polygon to a rectangle."""
    clipped = vertices
    for normal, offset in (
        (np.array([-1.0, 0.0]), -bounds.min_x),
        (np.array([1.0, 0.0]), bounds.max_x),
        (np.array([0.0, -1.0]), -bounds.min_y),
        (np.array([0.0, 1.0]), bounds.max_y),
    ):
        clipped = clip_halfplane(clipped, normal, offset)
        if len(clipped) == 0:
            break
    return clipped


def bisector_halfplane(site: np.ndarray, other: np.ndarray):
    """Half-plane of points closer to ``site`` than to ``other``.

    Returns (normal, offset) for use with ``clip_halfplane``.
    """
    normal = other - site
    offset = float(np.dot(normal, (site + other) / 2))
    return normal, offset


def is_convex(vertices: np.ndarray, tolerance: float = 1e-9) -> bool:
    """True if the polygon turns the same way at every vertex."""
    n = len(vertices)
    if n < 3:
        return False
    edges = np.roll(vertices, -1, axis=0) - vertices
    nxt = np.roll(edges, -1, axis=0)
    cross = edges[:, 0] * nxt[:, 1] - edges[:, 1] * nxt[:, 0]
    scale = max(1.0, float(np.abs(vertices).max()) ** 2)
    return bool(np.all(cross >= -tolerance * scale) or np.all(cross <= tolerance * scale))


def point_in_polygon(x: float, y: float, vertices: np.ndarray, tolerance: float = 1e-12) -> bool:
    """Even-odd ray casting test.

    Points within ``tolerance`` of an edge count as inside.
    """
    n = len(vertices)
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = vertices[i]
        xj, yj = vertices[j]
        # On-edge check
        length = float(np.hypot(xj - xi, yj - yi))
        cross = (xj - xi) * (y - yi) - (yj - yi) * (x - xi)
        if (
            length > 0
            and abs(cross) <= tolerance * length
            and min(xi, xj) - tolerance <= x <= max(xi, xj) + tolerance
            and min(yi, yj) - tolerance <= y <= max(yi, yj) + tolerance
        ):
            return True
        if (yi > y) != (yj > y):
            x_cross = xi + (y - yi) * (xj - xi) / (yj - yi)
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Unsigned triangle area."""
    return 0.5 * abs((b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1]))

