# sim_agent.py
# Simulated actor and single-step mover.
# Stands in for a live agent when running the demo or the tests.

import time
from dataclasses import dataclass
from typing import Callable, Optional

from .grid_map import GridField
from .grid_utils import calc_position, calc_steps_walked, straight_walk, walk_time
from .models import Coord, StepMoverFactory
from .route_config import DEFAULT_WALK_SPEED
from .task import Task


@dataclass
class SimulatedActor:
    """
    Actor whose position follows the move commands it is given.

    `pos` is where the last move started, `pos_to` where it ends; the cell in
    between is estimated from time_move and walk_speed.
    """
    name: str
    field: Optional[GridField]
    pos: Optional[Coord] = None
    pos_to: Optional[Coord] = None
    walk_speed: Optional[float] = DEFAULT_WALK_SPEED
    time_move: float = 0.0
    moves_issued: int = 0

    def __str__(self) -> str:
        return self.name

    def place(self, cell: Coord, now: float) -> None:
        """Put the actor on cell, standing still."""
        self.pos = cell
        self.pos_to = cell
        self.time_move = now

    def position(self, now: float) -> Coord:
        return calc_position(self, now, DEFAULT_WALK_SPEED)

    def move_to(self, target: Coord, now: float) -> None:
        """
        Start walking to target from wherever the current move has got to.

        A move still in progress keeps the time already spent on its current
        cell, so re-issuing the same target every tick does not restart it.
        """
        start, started_at = self.pos_to, now
        if self.pos is not None and self.pos != self.pos_to:
            path = straight_walk(self.pos, self.pos_to)
            speed = self.walk_speed or DEFAULT_WALK_SPEED
            walked = calc_steps_walked(path, speed, now - self.time_move)
            if walked < len(path) - 1:
                start = path[walked]
                started_at = self.time_move + walk_time(path[:walked + 1], speed)
        self.pos = start
        self.pos_to = target
        self.time_move = started_at
        self.moves_issued += 1


class SimulatedStepMover(Task):
    """
    Issues one move command for the actor on its first tick, then finishes.

    Fails when the target cell is not walkable on the actor's current field.
    """

    def __init__(
        self,
        actor: SimulatedActor,
        target: Coord,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name=f"Move {actor.name} to {target}", clock=clock)
        self.actor = actor
        self.target = target
        self.activate()

    @classmethod
    def factory(cls, clock: Callable[[], float] = time.time) -> StepMoverFactory:
        return lambda actor, target: cls(actor, target, clock=clock)

    def advance(self) -> bool:
        if not super().advance():
            return False
        field = self.actor.field
        if field is None or not field.is_walkable(self.target):
            self.set_error("blocked", f"Cannot walk to {self.target}.")
            return False
        self.actor.move_to(self.target, self._clock())
        self.set_done()
        return False
