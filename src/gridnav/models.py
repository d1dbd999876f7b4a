# models.py
# Shared data structures, enums and collaborator interfaces used across all modules.

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable grid cell."""
    x: int
    y: int

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @staticmethod
    def from_dict(d: dict) -> "Coord":
        return Coord(int(d["x"]), int(d["y"]))

    def __str__(self) -> str:
        return f"({self.x},{self.y})"


@dataclass(frozen=True)
class Destination:
    """Target map and cell of a route."""
    field_name: str
    pos: Coord


# ---------------------------------------------------------------------------
# Route stages and outcomes
# ---------------------------------------------------------------------------

class RouteStage(Enum):
    NOT_INITIALIZED = 1
    CALCULATE_ROUTE = 2
    SOLUTION_READY  = 3
    WALKING         = 4


class RouteErrorCode(Enum):
    TOO_MUCH_TIME          = "too_much_time"
    CANNOT_CALCULATE_ROUTE = "cannot_calculate_route"
    STUCK                  = "stuck"
    UNEXPECTED_STATE       = "unexpected_state"


class TaskStatus(Enum):
    INACTIVE    = "inactive"
    RUNNING     = "running"
    INTERRUPTED = "interrupted"
    DONE        = "done"
    ERROR       = "error"
    STOPPED     = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.ERROR, TaskStatus.STOPPED)


@dataclass(frozen=True)
class TaskError:
    """Terminal failure reported by a task."""
    code: Any
    message: str


class InvalidArgumentError(ValueError):
    """Raised when a task is constructed with malformed input."""


# ---------------------------------------------------------------------------
# Route options
# ---------------------------------------------------------------------------

@dataclass
class RouteOptions:
    """Caller supplied movement constraints. Every field is optional."""
    max_distance: Optional[Union[int, float]] = None   # blocks, or a fraction in (0, 1)
    max_time: Optional[float] = None                   # seconds
    dist_from_goal: Optional[int] = None               # blocks trimmed off the end
    py_dist_from_goal: Optional[float] = None          # euclidean radius around the goal
    avoid_walls: Optional[bool] = None
    notify_upon_arrival: bool = False

    @classmethod
    def from_kwargs(cls, **kwargs: Any) -> "RouteOptions":
        allowed = {f.name for f in fields(cls)}
        unknown = sorted(set(kwargs) - allowed)
        if unknown:
            raise InvalidArgumentError(f"Unknown route option(s): {', '.join(unknown)}")
        return cls(**{k: v for k, v in kwargs.items() if v is not None})


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------

@runtime_checkable
class Field(Protocol):
    """Map the route is computed on."""
    name: str

    def is_walkable(self, pos: Coord) -> bool: ...

    def closest_walkable_spot(self, pos: Coord, radius: int) -> Optional[Coord]: ...

    def is_cell_occupied(self, pos: Coord) -> bool: ...


@runtime_checkable
class Actor(Protocol):
    """Movable agent. `pos` is where the last move started, `pos_to` where it ends."""
    name: str
    field: Optional[Field]
    pos: Optional[Coord]
    pos_to: Optional[Coord]
    walk_speed: Optional[float]     # seconds per cell
    time_move: float                # instant the last move started


@runtime_checkable
class StepMover(Protocol):
    """Single-step motion primitive, polled once per tick until terminal."""
    status: TaskStatus
    error: Optional[TaskError]

    def advance(self) -> None: ...

    def stop(self) -> None: ...


@runtime_checkable
class Pathfinder(Protocol):
    def find_path(
        self, field: Field, start: Coord, goal: Coord, avoid_walls: bool
    ) -> Optional[List[Coord]]: ...


StepMoverFactory = Callable[[Actor, Coord], StepMover]
UnstuckHandler = Callable[[Actor], None]
HookPayload = Dict[str, Any]
