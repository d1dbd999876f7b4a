# grid_map.py
# In-memory walkability grid and an A* pathfinder over it.
# Depends only on grid_utils and models; nothing else from this project.

import heapq
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np

from .grid_utils import DIAGONAL_FACTOR, adjusted_block_distance, distance
from .models import Coord


NEIGHBOURS: Tuple[Tuple[int, int], ...] = (
    (1, 0), (-1, 0), (0, 1), (0, -1),
    (1, 1), (1, -1), (-1, 1), (-1, -1),
)


# ---------------------------------------------------------------------------
# Grid field
# ---------------------------------------------------------------------------

class GridField:
    """
    A named 2-D map of walkable and blocked cells.

    The grid is indexed [y, x]; True means walkable.

    Args:
        name:     Map identity, compared when checking for map changes.
        walkable: Boolean array of shape (height, width).
    """

    def __init__(self, name: str, walkable: np.ndarray) -> None:
        self.name = name
        self.walkable = np.asarray(walkable, dtype=bool)
        self.height, self.width = self.walkable.shape
        self.occupied: Set[Coord] = set()
        self._wall_cost: Optional[np.ndarray] = None

    @classmethod
    def from_ascii(cls, name: str, rows: Iterable[str]) -> "GridField":
        """Build a field from text rows; '#' is blocked, anything else walkable. Row 0 is y = 0."""
        grid = np.array([[ch != "#" for ch in row] for row in rows], dtype=bool)
        return cls(name, grid)

    @classmethod
    def open(cls, name: str, width: int, height: int) -> "GridField":
        return cls(name, np.ones((height, width), dtype=bool))

    def __repr__(self) -> str:
        return f"GridField({self.name!r}, {self.width}x{self.height})"

    # ------------------------------------------------------------------
    # Cell queries
    # ------------------------------------------------------------------

    def in_bounds(self, pos: Coord) -> bool:
        return 0 <= pos.x < self.width and 0 <= pos.y < self.height

    def is_walkable(self, pos: Coord) -> bool:
        return self.in_bounds(pos) and bool(self.walkable[pos.y, pos.x])

    def is_cell_occupied(self, pos: Coord) -> bool:
        return pos in self.occupied

    def closest_walkable_spot(self, pos: Coord, radius: int) -> Optional[Coord]:
        """
        Nearest walkable cell within `radius` blocks of pos.

        Returns:
            pos itself when walkable, the closest walkable neighbour otherwise,
            or None when the whole neighbourhood is blocked.
        """
        if self.is_walkable(pos):
            return pos
        best = None
        best_dist = float("inf")
        for dy in range(-radius, radius + 1):
            for dx in range(-radius, radius + 1):
                candidate = Coord(pos.x + dx, pos.y + dy)
                if not self.is_walkable(candidate):
                    continue
                d = distance(pos, candidate)
                if d < best_dist:
                    best, best_dist = candidate, d
        return best

    def wall_cost(self) -> np.ndarray:
        """Number of blocked (or off-map) cells around each cell, 0..8."""
        if self._wall_cost is None:
            blocked = np.pad(~self.walkable, 1, constant_values=True).astype(np.int32)
            cost = np.zeros_like(self.walkable, dtype=np.int32)
            for dx, dy in NEIGHBOURS:
                cost += blocked[1 + dy:1 + dy + self.height, 1 + dx:1 + dx + self.width]
            self._wall_cost = cost
        return self._wall_cost


# ---------------------------------------------------------------------------
# A* pathfinder
# ---------------------------------------------------------------------------

def _reconstruct_path(came_from: Dict[Coord, Optional[Coord]], end: Coord) -> List[Coord]:
    path = []
    curr = end
    while came_from[curr] is not None:
        path.append(curr)
        curr = came_from[curr]
    path.reverse()
    return path


class AStarPathfinder:
    """
    8-connected A* over a GridField.

    Diagonal moves may not cut blocked corners. With avoid_walls, every step
    into a cell pays `wall_penalty` per blocked cell around it.

    Args:
        wall_penalty: Extra cost per adjacent blocked cell.
    """

    def __init__(self, wall_penalty: float = 0.5) -> None:
        self.wall_penalty = wall_penalty

    def find_path(
        self, field: GridField, start: Coord, goal: Coord, avoid_walls: bool = True
    ) -> Optional[List[Coord]]:
        """
        Returns:
            Cells to walk on, start excluded and goal included; None when unreachable.
        """
        if not field.is_walkable(start) or not field.is_walkable(goal):
            return None
        if start == goal:
            return []

        wall_cost = field.wall_cost() if avoid_walls else None
        counter = 0
        open_set: list = []
        heapq.heappush(open_set, (0.0, counter, start))
        came_from: Dict[Coord, Optional[Coord]] = {start: None}
        cost_so_far: Dict[Coord, float] = {start: 0.0}
        visited: set = set()

        while open_set:
            _, _, current = heapq.heappop(open_set)
            if current in visited:
                continue
            visited.add(current)
            if current == goal:
                return _reconstruct_path(came_from, goal)

            for dx, dy in NEIGHBOURS:
                neighbor = Coord(current.x + dx, current.y + dy)
                if not field.is_walkable(neighbor):
                    continue
                if dx and dy and not (
                    field.is_walkable(Coord(current.x + dx, current.y))
                    and field.is_walkable(Coord(current.x, current.y + dy))
                ):
                    continue
                step = DIAGONAL_FACTOR if dx and dy else 1.0
                if wall_cost is not None:
                    step += self.wall_penalty * wall_cost[neighbor.y, neighbor.x]
                new_cost = cost_so_far[current] + step
                if neighbor not in cost_so_far or new_cost < cost_so_far[neighbor]:
                    cost_so_far[neighbor] = new_cost
                    counter += 1
                    priority = new_cost + adjusted_block_distance(neighbor, goal)
                    heapq.heappush(open_set, (priority, counter, neighbor))
                    came_from[neighbor] = current

        return None
