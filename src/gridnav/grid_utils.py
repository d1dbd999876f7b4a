# grid_utils.py
# Pure grid metrics and walk-time projections.
# No side effects, no imports from other project modules except models.

import math
from typing import List, Optional, Sequence

import numpy as np

from .models import Actor, Coord


DIAGONAL_FACTOR = math.sqrt(2)


def block_distance(a: Coord, b: Coord) -> int:
    """Number of 8-connected moves between two cells (Chebyshev distance)."""
    return max(abs(a.x - b.x), abs(a.y - b.y))


def adjusted_block_distance(a: Coord, b: Coord) -> float:
    """
    Walk-cost distance between two cells.

    Diagonal moves count sqrt(2), orthogonal moves count 1 (octile distance).
    """
    dx = abs(a.x - b.x)
    dy = abs(a.y - b.y)
    return max(dx, dy) + (DIAGONAL_FACTOR - 1) * min(dx, dy)


def distance(a: Coord, b: Coord) -> float:
    """Euclidean distance."""
    return math.hypot(a.x - b.x, a.y - b.y)


def time_out(start: Optional[float], timeout: float, now: float) -> bool:
    """True when more than `timeout` seconds have passed since `start`."""
    if start is None:
        return True
    return now - start > timeout


def straight_walk(start: Coord, end: Coord) -> List[Coord]:
    """
    Cells visited walking from start to end, diagonal moves first.

    Both endpoints are included.
    """
    cells = [start]
    x, y = start.x, start.y
    while (x, y) != (end.x, end.y):
        x += (end.x > x) - (end.x < x)
        y += (end.y > y) - (end.y < y)
        cells.append(Coord(x, y))
    return cells


def calc_steps_walked(steps: Sequence[Coord], speed: float, elapsed: float) -> int:
    """
    How many moves along `steps` fit into `elapsed` seconds.

    Args:
        steps:   Consecutive cells; the first one is where the walk began.
        speed:   Seconds needed for one orthogonal move.
        elapsed: Seconds since the walk began.

    Returns:
        Index into `steps` of the cell the walker has most likely reached.
    """
    if len(steps) < 2 or elapsed <= 0:
        return 0
    arrival = _arrival_times(steps, speed)
    return int(np.searchsorted(arrival, elapsed, side="right"))


def walk_time(steps: Sequence[Coord], speed: float) -> float:
    """Seconds needed to walk the whole of `steps`, first cell to last."""
    if len(steps) < 2:
        return 0.0
    return float(_arrival_times(steps, speed)[-1])


def _arrival_times(steps: Sequence[Coord], speed: float) -> np.ndarray:
    pts = np.array([(c.x, c.y) for c in steps], dtype=float)
    moves = np.abs(np.diff(pts, axis=0))
    diagonal = (moves[:, 0] > 0) & (moves[:, 1] > 0)
    move_time = np.where(diagonal, speed * DIAGONAL_FACTOR, speed)
    return np.cumsum(move_time)


def calc_position(actor: Actor, now: float, default_speed: float) -> Coord:
    """
    Estimate the cell the actor stands on right now.

    Projects the last move (pos → pos_to) forward by the time elapsed since it started.
    """
    if actor.pos is None or actor.pos == actor.pos_to:
        return actor.pos_to
    path = straight_walk(actor.pos, actor.pos_to)
    speed = actor.walk_speed or default_speed
    return path[calc_steps_walked(path, speed, now - actor.time_move)]
