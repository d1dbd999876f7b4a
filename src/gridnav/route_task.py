# route_task.py
# Long-distance movement within one map.
# Calculates a route, then keeps reconciling the actor's reported position
# against it and hands one step at a time to a step mover.

import logging
import time
import weakref
from typing import Any, Callable, Optional, Tuple

from .grid_utils import (
    adjusted_block_distance,
    block_distance,
    calc_position,
    calc_steps_walked,
    distance,
    time_out,
)
from .hooks import MAP_CHANGED_HOOK, ROUTE_HOOK, HookRegistry, hooks as default_hooks
from .models import (
    Actor,
    Coord,
    Destination,
    Field,
    InvalidArgumentError,
    Pathfinder,
    RouteErrorCode,
    RouteOptions,
    RouteStage,
    StepMoverFactory,
    UnstuckHandler,
)
from .route_calculator import get_route
from .route_config import RouteConfig
from .route_state import RouteConstraints, RouteState
from .task import Task

logger = logging.getLogger(__name__)


def _on_map_changed(hook_name: str, payload: Any, holder: "weakref.ref[RouteController]") -> None:
    controller = holder()
    if controller is not None:
        controller.state.map_changed = True


class RouteController(Task):
    """
    Walks an actor to a cell on the same map.

    Unlike a single step, the destination may lie far outside the actor's
    immediate surroundings. The controller is polled with advance() once per
    tick and finishes as done (arrived, or the map changed) or with one of the
    RouteErrorCode errors.

    Args:
        actor:              The actor to move.
        field:              Map of the destination.
        x, y:               Destination cell; must be non-negative.
        step_mover_factory: Builds the step mover for one target cell.
        config:             RouteConfig with the actor's route settings.
        pathfinder:         Pathfinder override for get_route().
        hooks:              Hook registry for map-change and route events.
        clock:              Time source in seconds.
        unstuck_handler:    Escape action run when stuck and teleport_auto_unstuck is on.
        **options:          RouteOptions fields (max_distance, max_time, dist_from_goal,
                            py_dist_from_goal, avoid_walls, notify_upon_arrival).

    Raises:
        InvalidArgumentError: on a malformed field, actor, coordinate or option.
    """

    mutexes: Tuple[str, ...] = ("movement",)

    def __init__(
        self,
        actor: Actor,
        field: Field,
        x: int,
        y: int,
        step_mover_factory: StepMoverFactory,
        config: Optional[RouteConfig] = None,
        pathfinder: Optional[Pathfinder] = None,
        hooks: Optional[HookRegistry] = None,
        clock: Callable[[], float] = time.time,
        unstuck_handler: Optional[UnstuckHandler] = None,
        **options: Any,
    ) -> None:
        if not isinstance(field, Field):
            raise InvalidArgumentError("Invalid Field argument.")
        if not isinstance(actor, Actor):
            raise InvalidArgumentError("Invalid Actor argument.")
        if not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in (x, y)):
            raise InvalidArgumentError("Invalid Coordinates argument.")
        if not callable(step_mover_factory):
            raise InvalidArgumentError("Invalid step mover factory argument.")

        super().__init__(name=f"Route {actor.name}", clock=clock)
        opts = RouteOptions.from_kwargs(**options)
        self.config = config or RouteConfig()

        if self.config.route_avoid_walls:
            avoid_walls = True if opts.avoid_walls is None else bool(opts.avoid_walls)
        else:
            avoid_walls = False

        self.state = RouteState(
            actor=actor,
            destination=Destination(field.name, Coord(int(x), int(y))),
            constraints=RouteConstraints(
                max_distance=opts.max_distance,
                max_time=opts.max_time,
                dist_from_goal=opts.dist_from_goal,
                py_dist_from_goal=opts.py_dist_from_goal,
                avoid_walls=avoid_walls,
                notify_upon_arrival=opts.notify_upon_arrival,
            ),
        )
        self._field = field
        self._step_mover_factory = step_mover_factory
        self._pathfinder = pathfinder
        self._unstuck_handler = unstuck_handler
        self._hooks = hooks or default_hooks

        # The hook only holds a weak reference, so it never keeps us alive.
        handle = self._hooks.add_hook(MAP_CHANGED_HOOK, _on_map_changed, weakref.ref(self))
        self._release_map_hook = weakref.finalize(self, self._hooks.del_hook, handle)

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def dest_coords(self) -> Coord:
        return self.state.destination.pos

    @property
    def stage(self) -> RouteStage:
        return self.state.stage

    @property
    def solution(self) -> Tuple[Coord, ...]:
        return tuple(self.state.solution)

    @property
    def step_index(self) -> Optional[int]:
        return self.state.step_index

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self) -> None:
        super().activate()
        self.state.stage = RouteStage.CALCULATE_ROUTE
        self.state.time_start = self._clock()

    def interrupt(self) -> None:
        was_running = self.is_running
        super().interrupt()
        if was_running:
            self.state.interruption_time = self._clock()

    def resume(self) -> None:
        st = self.state
        was_interrupted = st.interruption_time is not None
        super().resume()
        if not was_interrupted or not self.is_running:
            return
        # Time spent preempted does not count against our timeouts.
        paused = self._clock() - st.interruption_time
        st.interruption_time = None
        if st.time_start is not None:
            st.time_start += paused
        if st.time_step is not None:
            st.time_step += paused

    def reset_route(self) -> None:
        self.state.reset_route()

    def _finished(self) -> None:
        self._release_map_hook()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def advance(self) -> None:
        if not super().advance():
            return
        actor = self.state.actor
        if actor.field is None or actor.pos_to is None:
            return

        while True:
            began = self._clock()
            proceed = self._iterate(began)
            if not proceed or not self.is_running:
                return
            if self._clock() - began >= self.config.negligible_time:
                return
            if self.subtask is not None:
                # A step was just dispatched: start moving right away.
                self._poll_subtask()
                return

    def _iterate(self, now: float) -> bool:
        """Run one stage. Returns True if the next stage may follow in the same tick."""
        st = self.state
        max_time = st.constraints.max_time

        if max_time and time_out(st.time_start, max_time, now):
            logger.debug(f"{self.name} - we spent too much time; bailing out.")
            self.set_error(RouteErrorCode.TOO_MUCH_TIME, "Too much time spent on walking.")
            return False

        current_field = st.actor.field
        if current_field.name != st.destination.field_name or st.map_changed:
            logger.debug(f"Map changed: {st.destination.field_name} -> {current_field.name}")
            self.set_done()
            return False

        if st.stage == RouteStage.CALCULATE_ROUTE:
            return self._calculate_route(now)
        if st.stage == RouteStage.SOLUTION_READY:
            return self._trim_solution(now)
        if st.stage == RouteStage.WALKING:
            return self._walk(now)

        logger.debug(f"Unexpected route stage [{st.stage}] occurred.")
        self.set_error(RouteErrorCode.UNEXPECTED_STATE, f"Unexpected route stage [{st.stage}] occurred.")
        return False

    # ------------------------------------------------------------------
    # Stage: calculate route
    # ------------------------------------------------------------------

    def _calculate_route(self, now: float) -> bool:
        st = self.state
        dest = st.destination.pos
        pos = calc_position(st.actor, now, self.config.default_walk_speed)

        if pos == dest:
            logger.debug(f"{self.name}: current position and destination are the same.")
            self.set_done()
            return False

        found = get_route(
            self._field, pos, dest, st.constraints.avoid_walls,
            solution=st.solution,
            pathfinder=self._pathfinder,
            snap_radius=self.config.snap_radius,
        )
        if not found:
            logger.debug(
                f"No path on {st.destination.field_name} from {pos} to {dest}."
            )
            self.set_error(RouteErrorCode.CANNOT_CALCULATE_ROUTE, "Unable to calculate a route.")
            return False

        st.stage = RouteStage.SOLUTION_READY
        st.last_start_pos = pos
        logger.debug(
            f"{self.name} solution ready: {st.destination.field_name} {pos} -> {dest}, "
            f"{len(st.solution)} steps."
        )
        return True

    # ------------------------------------------------------------------
    # Stage: solution ready (one-shot trimming)
    # ------------------------------------------------------------------

    def _trim_solution(self, now: float) -> bool:
        st = self.state
        solution = st.solution
        limits = st.constraints

        if limits.max_steps is None and limits.max_distance:
            if 0 < limits.max_distance < 1:
                # Fraction of the first solution; replans keep the count.
                limits.max_steps = int(limits.max_distance * len(solution))
            else:
                limits.max_steps = int(limits.max_distance)
        if limits.max_steps is not None and limits.max_steps < len(solution):
            del solution[1 + limits.max_steps:]

        if limits.py_dist_from_goal:
            trim = 0
            if solution:
                goal = solution[-1]
                while trim < len(solution) and distance(solution[-1 - trim], goal) < limits.py_dist_from_goal:
                    trim += 1
            logger.debug(f"{self.name} - trimming solution by {trim} steps for py_dist_from_goal {limits.py_dist_from_goal}")
            if trim:
                del solution[-trim:]
        elif limits.dist_from_goal:
            trim = min(int(limits.dist_from_goal), len(solution))
            logger.debug(f"{self.name} - trimming solution by {trim} steps for dist_from_goal {limits.dist_from_goal}")
            if trim:
                del solution[-trim:]

        st.reset_walk(now)
        st.stage = RouteStage.WALKING

        if not solution:
            logger.debug(f"{self.name}: goal distance trimming consumed the whole solution.")
            self.set_done()
            return False
        return True

    # ------------------------------------------------------------------
    # Stage: walking the solution
    # ------------------------------------------------------------------

    def _closest_step(self, sample: Coord) -> int:
        """
        Index of the waypoint nearest to sample.

        Keeps looking `lookahead_failsafe` waypoints past the best one found so
        far, so a later stretch of the route that bends back closer still wins.
        """
        solution = self.state.solution
        best = 0
        misses = 0
        for candidate in range(1, len(solution)):
            if adjusted_block_distance(sample, solution[best]) > adjusted_block_distance(sample, solution[candidate]):
                best = candidate
                misses = 0
            else:
                misses += 1
                if misses == self.config.lookahead_failsafe:
                    break
        return best

    def _walk(self, now: float) -> bool:
        st = self.state
        actor = st.actor
        solution = st.solution

        # pos: where the last move started; pos_to: where it ends.
        moved_from = actor.pos if actor.pos is not None else actor.pos_to
        moved_to = actor.pos_to

        if not solution or moved_from == solution[-1]:
            self._arrived()
            return False

        if st.last_pos is None:
            # Pathfinding leaves the start cell out, but the lookahead needs it as step zero.
            current = st.last_start_pos
            solution.insert(0, current)
        else:
            best_from = self._closest_step(moved_from)
            best_to = self._closest_step(moved_to)

            if best_from > best_to:
                logger.debug(f"{self.name} - movement interrupted: reset route (moving against the solution)")
                st.reset_route()
                return False

            if best_from == best_to:
                current = solution[best_from]
                logger.debug(f"{self.name} - trimming solution ({len(solution)}) by {best_from} steps")
                # The current cell stays, or a stuck actor would keep dropping the head.
                if best_from > 0:
                    del solution[:best_from]
            else:
                stride = solution[best_from:best_to + 1]
                speed = actor.walk_speed or self.config.default_walk_speed
                walked = calc_steps_walked(stride, speed, now - actor.time_move)
                guessed = best_from + walked
                current = solution[guessed]
                logger.debug(f"{self.name} - trimming solution ({len(solution)}) by {guessed} steps")
                del solution[:guessed]

        steps_left = len(solution)

        if steps_left == 0:
            self._arrived()
            return False

        if steps_left == 2 and self._field.is_cell_occupied(solution[-1]):
            logger.debug(f"{self.name} - stopping 1 cell away from destination, it is occupied.")
            self._arrived()
            return False

        if st.last_pos == current and time_out(st.time_step, self.config.step_timeout, now):
            self._handle_stuck(current, steps_left, now)
            return False

        return self._dispatch_step(current, steps_left, now)

    def _arrived(self) -> None:
        actor = self.state.actor
        if self.state.constraints.notify_upon_arrival:
            logger.info(f"{actor.name} reached the destination.")
        else:
            logger.debug(f"{actor.name} reached the destination.")
        self._hooks.call_hook(ROUTE_HOOK, {"status": "success"})
        self.set_done()

    def _handle_stuck(self, current: Coord, steps_left: int, now: float) -> None:
        st = self.state
        previous = st.step_index or 0
        st.step_index = int(previous * self.config.step_decay)

        if st.step_index:
            logger.debug(f"{self.name} - not moving, decreasing step size to {st.step_index}")
            if st.step_index >= steps_left:
                st.step_index = steps_left - 1
            st.next_pos = st.solution[st.step_index]
            st.time_step = now
            self.set_subtask(self._step_mover_factory(st.actor, st.next_pos))
            return

        if previous == 0 and not st.zero_step_grace_used:
            # The smallest step gets one full timeout window of its own.
            logger.debug(f"{self.name} - not moving at minimal step size, retrying once")
            st.zero_step_grace_used = True
            st.time_step = now
            return

        self._stuck(current)

    def _stuck(self, current: Coord) -> None:
        st = self.state
        dest = st.destination
        teleport = self.config.teleport_auto_unstuck
        msg = (
            f"Stuck at {dest.field_name} {st.actor.pos_to}, "
            f"while walking from {current} to {dest.pos}."
        )
        if teleport:
            msg += " Teleporting to unstuck."
        logger.warning(msg)
        if teleport and self._unstuck_handler is not None:
            self._unstuck_handler(st.actor)
        self.set_error(RouteErrorCode.STUCK, "Stuck during route.")
        self._hooks.call_hook(ROUTE_HOOK, {"status": "stuck"})

    def _dispatch_step(self, current: Coord, steps_left: int, now: float) -> bool:
        st = self.state
        max_index = self.config.route_step - 1
        moved = st.last_pos is not None and st.last_pos != current

        if not st.step_index:
            st.step_index = max_index
        if st.step_index < max_index and moved:
            st.step_index += 1
        # Near the goal the stride shrinks to what is left.
        if st.step_index >= steps_left:
            st.step_index = steps_left - 1

        st.next_pos = st.solution[st.step_index]

        if block_distance(st.next_pos, current) > self.config.max_step_distance:
            # We ended up somewhere unexpected, e.g. knocked back or relocated.
            logger.debug(f"{self.name} - movement interrupted: reset route (next point is abnormally far)")
            st.reset_route()
            return False

        if moved:
            st.time_step = now
            st.zero_step_grace_used = False
        st.last_pos = current
        logger.debug(
            f"{self.name} - next step moving to {st.next_pos}, index {st.step_index}, "
            f"{steps_left} steps left"
        )
        self.set_subtask(self._step_mover_factory(st.actor, st.next_pos))
        return True
