"""Long-distance movement within one grid map: route calculation and walking."""

from .grid_map import AStarPathfinder, GridField
from .hooks import MAP_CHANGED_HOOK, ROUTE_HOOK, HookRegistry
from .models import (
    Coord,
    InvalidArgumentError,
    RouteErrorCode,
    RouteOptions,
    RouteStage,
    TaskStatus,
)
from .navigator import NavigationSystem
from .route_calculator import get_route
from .route_config import RouteConfig
from .route_task import RouteController

__all__ = [
    "AStarPathfinder",
    "Coord",
    "GridField",
    "HookRegistry",
    "InvalidArgumentError",
    "MAP_CHANGED_HOOK",
    "NavigationSystem",
    "ROUTE_HOOK",
    "RouteConfig",
    "RouteController",
    "RouteErrorCode",
    "RouteOptions",
    "RouteStage",
    "TaskStatus",
    "get_route",
]
