# route_state.py
# Mutable state of one route task. Owned and mutated only by RouteController.

from dataclasses import dataclass, field
from typing import List, Optional, Union

from .models import Actor, Coord, Destination, RouteStage


@dataclass
class RouteConstraints:
    max_distance: Optional[Union[int, float]] = None
    max_steps: Optional[int] = None       # max_distance as a step count, fixed on the first trim
    max_time: Optional[float] = None
    dist_from_goal: Optional[int] = None
    py_dist_from_goal: Optional[float] = None
    avoid_walls: bool = True
    notify_upon_arrival: bool = False


@dataclass
class RouteState:
    actor: Actor
    destination: Destination
    constraints: RouteConstraints

    stage: RouteStage = RouteStage.NOT_INITIALIZED
    solution: List[Coord] = field(default_factory=list)   # remaining waypoints, earliest first

    # Walking bookkeeping
    step_index: Optional[int] = None         # lookahead offset into solution
    last_pos: Optional[Coord] = None         # reconciliation point of the previous tick
    next_pos: Optional[Coord] = None         # cell of the last issued step
    last_start_pos: Optional[Coord] = None   # actor cell when the solution was accepted
    zero_step_grace_used: bool = False

    # Timers
    time_start: Optional[float] = None
    time_step: Optional[float] = None
    interruption_time: Optional[float] = None

    map_changed: bool = False

    def reset_walk(self, now: float) -> None:
        """Forget per-solution walking progress before a fresh walk begins."""
        self.map_changed = False
        self.step_index = None
        self.last_pos = None
        self.next_pos = None
        self.zero_step_grace_used = False
        self.time_step = now

    def reset_route(self) -> None:
        self.solution = []
        self.stage = RouteStage.CALCULATE_ROUTE
