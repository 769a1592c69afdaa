"""
Voronoi dual graph of a Delaunay triangulation.

Cells live in an arena indexed by site id; neighbour sets are id tuples, so
the symmetric cell adjacency never forms ownership cycles. Each cell carries a
mutable attribute record whose fields are filled in a fixed order:

    UNASSIGNED -> ELEVATION_SET -> MOISTURE_SET -> FLOW_RESOLVED -> CLASSIFIED

Every transition belongs to exactly one stage and is checked, so a stage run
out of order fails with ``AttributeMissing`` instead of reading empty fields.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .errors import AttributeMissing, GeometryError, InvalidParameter
from .geometry import (
    Rect,
    bisector_halfplane,
    clip_halfplane,
    clip_polygon_to_rect,
    compute_polygon_centroid,
    dedupe_vertices,
    order_counter_clockwise,
    polygon_area,
    triangle_area,
)
from .triangulation import Triangulation

logger = structlog.get_logger()

# Relative tolerance when comparing a cell area with its triangle fan
AREA_RELATIVE_TOLERANCE = 1e-7


class CellState(IntEnum):
    """Attribute completion state of a cell."""
    UNASSIGNED = 0
    ELEVATION_SET = 1
    MOISTURE_SET = 2
    FLOW_RESOLVED = 3
    CLASSIFIED = 4


@dataclass
class CellAttributes:
    """Per-cell attribute record, filled stage by stage."""
    state: CellState = CellState.UNASSIGNED
    elevation: Optional[float] = None
    moisture: Optional[float] = None
    flow_target: Optional[int] = None  # None = local sink
    flow: Optional[int] = None  # Accumulated flow, 1 + inflow
    is_river: bool = False
    biome: Optional[int] = None

    def require(self, state: CellState, stage: str, cell_id: int) -> None:
        """Fail unless the record is exactly in ``state``."""
        if self.state != state:
            raise AttributeMissing(
                f"{stage} requires cell state {state.name}",
                cell_id=cell_id, state=self.state.name,
            )

    def set_elevation(self, cell_id: int, elevation: float) -> None:
        self.require(CellState.UNASSIGNED, "elevation assignment", cell_id)
        self.elevation = float(elevation)
        self.state = CellState.ELEVATION_SET

    def set_moisture(self, cell_id: int, moisture: float) -> None:
        self.require(CellState.ELEVATION_SET, "moisture assignment", cell_id)
        self.moisture = float(moisture)
        self.state = CellState.MOISTURE_SET

    def resolve_flow(self, cell_id: int, flow_target: Optional[int], flow: int, is_river: bool) -> None:
        self.require(CellState.MOISTURE_SET, "flow resolution", cell_id)
        self.flow_target = flow_target
        self.flow = int(flow)
        self.is_river = bool(is_river)
        self.state = CellState.FLOW_RESOLVED

    def classify(self, cell_id: int, biome: int) -> None:
        self.require(CellState.FLOW_RESOLVED, "biome classification", cell_id)
        self.biome = int(biome)
        self.state = CellState.CLASSIFIED

    @property
    def is_sink(self) -> bool:
        return self.state >= CellState.FLOW_RESOLVED and self.flow_target is None


@dataclass
class Cell:
    """One node of the dual graph."""
    id: int
    site: np.ndarray  # Defining point; fields are evaluated here
    polygon: np.ndarray  # Counter-clockwise vertices, clipped to bounds
    neighbors: Tuple[int, ...]
    is_border: bool
    centroid: np.ndarray
    attributes: CellAttributes = field(default_factory=CellAttributes)

    @property
    def area(self) -> float:
        return polygon_area(self.polygon)

    @property
    def vertex_mean(self) -> np.ndarray:
        """Average of the polygon vertices."""
        if len(self.polygon) == 0:
            return self.site.copy()
        return self.polygon.mean(axis=0)


class Graph:
    """Arena of cells indexed by id, with O(1) adjacency lookups."""

    def __init__(self, cells: Sequence[Cell], bounds: Rect):
        self.cells: List[Cell] = list(cells)
        self.bounds = bounds
        self._neighbor_sets: List[FrozenSet[int]] = [frozenset(c.neighbors) for c in self.cells]

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[Cell]:
        return iter(self.cells)

    def __getitem__(self, cell_id: int) -> Cell:
        return self.cells[cell_id]

    def neighbors(self, cell_id: int) -> Tuple[int, ...]:
        return self.cells[cell_id].neighbors

    def is_neighbor(self, a: int, b: int) -> bool:
        return b in self._neighbor_sets[a]

    def site_points(self) -> np.ndarray:
        """(n, 2) site coordinates in id order."""
        return np.array([cell.site for cell in self.cells], dtype=np.float64).reshape(-1, 2)

    def border_cells(self) -> List[int]:
        return [cell.id for cell in self.cells if cell.is_border]

    def require_state(self, state: CellState, stage: str) -> None:
        """Fail fast unless every cell is exactly in ``state``."""
        for cell in self.cells:
            cell.attributes.require(state, stage, cell.id)

    def attribute_array(self, name: str, dtype=np.float64) -> np.ndarray:
        """Collect one attribute across all cells (None becomes NaN/-1)."""
        values = [getattr(cell.attributes, name) for cell in self.cells]
        if np.issubdtype(np.dtype(dtype), np.floating):
            return np.array([np.nan if v is None else v for v in values], dtype=dtype)
        return np.array([-1 if v is None else v for v in values], dtype=dtype)

    def graph_distances(self, source: int) -> np.ndarray:
        """Breadth-first hop count from ``source`` (-1 where unreachable)."""
        distances = np.full(len(self.cells), -1, dtype=np.int64)
        distances[source] = 0
        queue = deque([source])
        while queue:
            current = queue.popleft()
            for neighbor in self.cells[current].neighbors:
                if distances[neighbor] == -1:
                    distances[neighbor] = distances[current] + 1
                    queue.append(neighbor)
        return distances

    def is_connected(self) -> bool:
        if not self.cells:
            return True
        return bool(np.all(self.graph_distances(0) >= 0))

    def is_symmetric(self) -> bool:
        return all(
            cell.id in self._neighbor_sets[neighbor]
            for cell in self.cells
            for neighbor in cell.neighbors
        )


def _touches_bounds(polygon: np.ndarray, bounds: Rect) -> bool:
    epsilon = 1e-9 * max(bounds.width, bounds.height)
    return bool(
        np.any(np.abs(polygon[:, 0] - bounds.min_x) <= epsilon)
        or np.any(np.abs(polygon[:, 0] - bounds.max_x) <= epsilon)
        or np.any(np.abs(polygon[:, 1] - bounds.min_y) <= epsilon)
        or np.any(np.abs(polygon[:, 1] - bounds.max_y) <= epsilon)
    )


def _fan_area(site: np.ndarray, polygon: np.ndarray) -> float:
    """Sum of the triangles (site, v_i, v_i+1) around the polygon."""
    n = len(polygon)
    return sum(triangle_area(site, polygon[i], polygon[(i + 1) % n]) for i in range(n))


def _interior_polygon(site: np.ndarray, circumcenters: np.ndarray, bounds: Rect) -> np.ndarray:
    """Cell of a non-hull site from the circumcenters of its incident triangles."""
    polygon = dedupe_vertices(order_counter_clockwise(circumcenters, site))
    return clip_polygon_to_rect(polygon, bounds)


def _hull_polygon(site: np.ndarray, neighbor_points: np.ndarray, bounds: Rect) -> np.ndarray:
    """Cell of a hull site: the bounds cut by the bisectors with its neighbours."""
    polygon = bounds.corners()
    for other in neighbor_points:
        normal, offset = bisector_halfplane(site, other)
        polygon = clip_halfplane(polygon, normal, offset)
        if len(polygon) == 0:
            break
    return polygon


def build_dual(triangulation: Triangulation, bounds: Rect) -> Graph:
    """
    Derive the Voronoi dual graph of a triangulation.

    Interior cells are the counter-clockwise polygon of their incident
    triangles' circumcenters; hull cells, unbounded in the plane, are clipped
    to ``bounds``. Cells are neighbours when their sites share a
    triangulation edge.

    Args:
        triangulation: Delaunay triangulation with site ids 0..n-1
        bounds: Clipping rectangle (the sampling bounds)

    Returns:
        Graph with one cell per site, in id order
    """
    bounds = Rect(*bounds)
    ids = triangulation.site_ids
    if ids != list(range(len(ids))):
        raise InvalidParameter("site ids must be 0..n-1", first_ids=ids[:5])

    logger.info("Building dual graph", sites=len(ids), bounds=tuple(bounds))

    neighbors = triangulation.neighbors()
    incident = triangulation.incident_triangles()
    circumcenters = triangulation.circumcenters()
    area_floor = 1e-12 * bounds.area

    cells = []
    for site_id in ids:
        site = triangulation.position(site_id)
        on_hull = site_id in triangulation.hull

        if on_hull:
            neighbor_points = np.array([triangulation.position(n) for n in neighbors[site_id]])
            polygon = _hull_polygon(site, neighbor_points, bounds)
        else:
            polygon = _interior_polygon(site, circumcenters[incident[site_id]], bounds)

        area = polygon_area(polygon)
        if len(polygon) < 3 or area <= area_floor:
            if not on_hull:
                raise GeometryError("degenerate cell polygon", cell_id=site_id, vertices=len(polygon), area=area)
            logger.warning("Degenerate boundary cell", cell_id=site_id, area=area)
        elif not on_hull:
            fan = _fan_area(site, polygon)
            if abs(fan - area) > AREA_RELATIVE_TOLERANCE * area + area_floor:
                raise GeometryError(
                    "cell area does not match its triangle fan",
                    cell_id=site_id, area=area, fan_area=fan,
                )

        cells.append(Cell(
            id=site_id,
            site=site.copy(),
            polygon=polygon,
            neighbors=neighbors[site_id],
            is_border=on_hull or (len(polygon) > 0 and _touches_bounds(polygon, bounds)),
            centroid=compute_polygon_centroid(polygon) if len(polygon) else site.copy(),
        ))

    graph = Graph(cells, bounds)
    if not graph.is_symmetric():
        raise GeometryError("neighbour relation is not symmetric")

    logger.info("Dual graph complete", cells=len(graph), border_cells=len(graph.border_cells()),
                edges=sum(len(c.neighbors) for c in graph) // 2)
    return graph


@dataclass
class Corner:
    """A polygon vertex shared by one or more cells."""
    id: int
    position: np.ndarray
    cells: List[int] = field(default_factory=list)


@dataclass
class Border:
    """A polygon side separating one cell from another (or from the outside)."""
    id: int
    corners: Tuple[int, int]
    cells: List[int] = field(default_factory=list)

    @property
    def cell_edge(self) -> Optional[Tuple[int, int]]:
        """The pair of cells this side separates, if it has two."""
        if len(self.cells) == 2:
            return tuple(sorted(self.cells))
        return None


@dataclass
class BorderGraph:
    """Corner/border graph complementing the cell graph."""
    corners: List[Corner]
    borders: List[Border]
    cell_borders: Dict[int, List[int]]

    def corner_neighbors(self, corner_id: int) -> List[int]:
        """Corners joined to ``corner_id`` by a border, ascending."""
        adjacent = set()
        for border in self.borders:
            a, b = border.corners
            if a == corner_id:
                adjacent.add(b)
            elif b == corner_id:
                adjacent.add(a)
        return sorted(adjacent)


def build_border_graph(graph: Graph, precision: float = 1e-6) -> BorderGraph:
    """
    Derive the corner/border graph from the cell polygons.

    Polygon vertices within ``precision`` (relative to the bounds size) merge
    into one corner. Corner and border ids follow first appearance while
    walking cells in id order.

    Args:
        graph: Dual graph
        precision: Relative snapping resolution for shared vertices

    Returns:
        BorderGraph with cross-references to cells
    """
    resolution = precision * max(graph.bounds.width, graph.bounds.height)
    corner_index: Dict[Tuple[int, int], int] = {}
    border_index: Dict[Tuple[int, int], int] = {}
    corners: List[Corner] = []
    borders: List[Border] = []
    cell_borders: Dict[int, List[int]] = {}

    def corner_for(vertex: np.ndarray) -> int:
        key = (int(round(vertex[0] / resolution)), int(round(vertex[1] / resolution)))
        if key not in corner_index:
            corner_index[key] = len(corners)
            corners.append(Corner(id=len(corners), position=vertex.copy()))
        return corner_index[key]

    for cell in graph:
        cell_corner_ids = [corner_for(v) for v in cell.polygon]
        cell_borders[cell.id] = []
        for corner_id in dict.fromkeys(cell_corner_ids):
            corners[corner_id].cells.append(cell.id)

        n = len(cell_corner_ids)
        for i in range(n):
            a, b = cell_corner_ids[i], cell_corner_ids[(i + 1) % n]
            if a == b:
                continue
            key = (min(a, b), max(a, b))
            if key not in border_index:
                border_index[key] = len(borders)
                borders.append(Border(id=len(borders), corners=key))
            border = borders[border_index[key]]
            if cell.id not in border.cells:
                border.cells.append(cell.id)
                cell_borders[cell.id].append(border.id)

    logger.info("Border graph complete", corners=len(corners), borders=len(borders))
    return BorderGraph(corners=corners, borders=borders, cell_borders=cell_borders)
