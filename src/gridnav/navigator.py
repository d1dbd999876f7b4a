# navigator.py
# Public entry point for moving one actor around one map.
# Owns no walking logic; delegates everything to RouteController.

import logging
import time
from typing import Any, Callable, Optional

from .grid_map import AStarPathfinder
from .hooks import MAP_CHANGED_HOOK, ROUTE_HOOK, HookRegistry
from .models import Actor, Coord, Field, HookPayload, Pathfinder, RouteStage, StepMoverFactory, TaskStatus, UnstuckHandler
from .nav_logger import RouteJournal
from .route_calculator import get_route
from .route_config import RouteConfig
from .route_task import RouteController
from .sim_agent import SimulatedStepMover

logger = logging.getLogger(__name__)


class NavigationSystem:
    """
    High-level route facade and scheduler for a single actor.

    Typical lifecycle:
        nav = NavigationSystem(field, actor)
        nav.start_route(9, 0, notify_upon_arrival=True)

        # Tick loop:
        status = nav.tick()

    Args:
        field:              Map the actor walks on.
        actor:              The actor to move.
        config:             Optional RouteConfig; defaults to RouteConfig().
        pathfinder:         Optional Pathfinder; defaults to AStarPathfinder().
        hooks:              Hook registry shared with the route tasks.
        journal:            Optional RouteJournal for solutions and events.
        clock:              Time source in seconds.
        step_mover_factory: Builds step movers; defaults to SimulatedStepMover.
        unstuck_handler:    Escape action used when stuck and teleport_auto_unstuck is on.
    """

    def __init__(
        self,
        field: Field,
        actor: Actor,
        config: Optional[RouteConfig] = None,
        pathfinder: Optional[Pathfinder] = None,
        hooks: Optional[HookRegistry] = None,
        journal: Optional[RouteJournal] = None,
        clock: Callable[[], float] = time.time,
        step_mover_factory: Optional[StepMoverFactory] = None,
        unstuck_handler: Optional[UnstuckHandler] = None,
    ) -> None:
        self.config = config or RouteConfig()
        self.field = field
        self.actor = actor
        self.hooks = hooks or HookRegistry()
        self.last_outcome: Optional[str] = None

        self._clock = clock
        self._journal = journal
        self._pathfinder = pathfinder or AStarPathfinder()
        self._step_mover_factory = step_mover_factory or SimulatedStepMover.factory(clock)
        self._unstuck_handler = unstuck_handler
        self._route: Optional[RouteController] = None
        self._solution_saved = False
        self._route_hook = self.hooks.add_hook(ROUTE_HOOK, self._on_route_event)

    def close(self) -> None:
        """Stop the active route and detach from the hook registry."""
        self.stop_route()
        self.hooks.del_hook(self._route_hook)

    # ------------------------------------------------------------------
    # Route control
    # ------------------------------------------------------------------

    def start_route(self, x: int, y: int, **options: Any) -> RouteController:
        """
        Begin walking to (x, y) on the current field.

        Any route still running is stopped first; only one movement task runs per actor.

        Args:
            x, y:      Destination cell.
            **options: Route options (max_distance, max_time, dist_from_goal,
                       py_dist_from_goal, avoid_walls, notify_upon_arrival).

        Returns:
            The activated RouteController.
        """
        self.stop_route()
        route = RouteController(
            self.actor, self.field, x, y,
            self._step_mover_factory,
            config=self.config,
            pathfinder=self._pathfinder,
            hooks=self.hooks,
            clock=self._clock,
            unstuck_handler=self._unstuck_handler,
            **options,
        )
        route.activate()
        self._route = route
        self._solution_saved = False
        self.last_outcome = None
        logger.info(f"Route started: {self.actor.name} -> {self.field.name} ({x},{y})")
        return route

    def stop_route(self) -> None:
        """Forcibly end the current route."""
        if self._route is not None and not self._route.is_terminal:
            self._route.stop()
            logger.info("Route stopped by user.")

    def interrupt(self) -> None:
        if self._route is not None:
            self._route.interrupt()

    def resume(self) -> None:
        if self._route is not None:
            self._route.resume()

    def notify_map_changed(self) -> None:
        """Tell listening routes that the world map has changed."""
        self.hooks.call_hook(MAP_CHANGED_HOOK)

    def can_reach(self, start: Coord, dest: Coord) -> bool:
        """Whether a path exists from start to dest on the current field."""
        return get_route(
            self.field, start, dest, self.config.route_avoid_walls,
            pathfinder=self._pathfinder,
            snap_radius=self.config.snap_radius,
        )

    # ------------------------------------------------------------------
    # Tick: call this once per scheduler round
    # ------------------------------------------------------------------

    def tick(self) -> TaskStatus:
        """
        Advance the active route once.

        Returns:
            Status of the route, INACTIVE when none was started.
        """
        route = self._route
        if route is None:
            return TaskStatus.INACTIVE
        if route.is_terminal:
            return route.status

        route.advance()

        if self._journal is not None:
            if not self._solution_saved and route.stage == RouteStage.WALKING and route.solution:
                self._solution_saved = self._journal.save_route(route.solution, route.state.destination)
            self._journal.log_event(
                route.status.value,
                self.actor.pos_to,
                stage=route.stage.name,
                steps_left=len(route.solution),
            )

        if route.status == TaskStatus.ERROR:
            logger.warning(f"Route failed: {route.error.message}")
        elif route.status == TaskStatus.DONE:
            logger.info(f"Route finished at {self.actor.pos_to}.")
        return route.status

    def _on_route_event(self, hook_name: str, payload: Optional[HookPayload], user_data: Any) -> None:
        self.last_outcome = (payload or {}).get("status")
        if self._journal is not None:
            self._journal.log_event(f"route_{self.last_outcome}", self.actor.pos_to)

    # ------------------------------------------------------------------
    # Convenience read-only properties
    # ------------------------------------------------------------------

    @property
    def route(self) -> Optional[RouteController]:
        return self._route

    @property
    def is_active(self) -> bool:
        return self._route is not None and not self._route.is_terminal

    @property
    def remaining_steps(self) -> int:
        return len(self._route.solution) if self._route is not None else 0
