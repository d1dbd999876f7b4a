# route_calculator.py
# Convenience wrapper around the pathfinder: snaps both endpoints to walkable
# cells, then asks the pathfinder for the cells to walk on.

import logging
from typing import List, Optional

from .grid_map import AStarPathfinder
from .models import Coord, Field, Pathfinder

logger = logging.getLogger(__name__)

SNAP_RADIUS = 1

_default_pathfinder = AStarPathfinder()


def get_route(
    field: Field,
    start: Coord,
    dest: Optional[Coord],
    avoid_walls: bool = True,
    solution: Optional[List[Coord]] = None,
    pathfinder: Optional[Pathfinder] = None,
    snap_radius: int = SNAP_RADIUS,
) -> bool:
    """
    Calculate how to walk from start to dest on field, or just check that a path exists.

    Args:
        field:       Map the route is calculated on.
        start:       Start cell.
        dest:        Destination cell; None (or a None component) means "already there".
        avoid_walls: Prefer cells away from walls.
        solution:    If given, replaced in place with the cells to walk on
                     (start excluded, destination included).
        pathfinder:  Pathfinder override; defaults to AStarPathfinder.
        snap_radius: How far to look for a walkable cell around each endpoint.

    Returns:
        True if the calculation succeeded, False if not.
    """
    if dest is None or dest.x is None or dest.y is None:
        if solution is not None:
            solution.clear()
        return True

    # The exact endpoints may not be cells we can stand on.
    closest_start = field.closest_walkable_spot(start, snap_radius)
    closest_dest = field.closest_walkable_spot(dest, snap_radius)
    if closest_start is None or closest_dest is None:
        logger.debug(f"No walkable cell near start {start} or destination {dest} on {field.name}.")
        return False

    finder = pathfinder or _default_pathfinder
    path = finder.find_path(field, closest_start, closest_dest, avoid_walls)
    if path is None:
        return False

    if solution is not None:
        solution[:] = path
    return True
