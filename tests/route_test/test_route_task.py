import gc

import pytest

from gridnav.grid_map import GridField
from gridnav.hooks import MAP_CHANGED_HOOK, ROUTE_HOOK
from gridnav.models import Coord, InvalidArgumentError, RouteErrorCode, RouteStage, TaskStatus
from gridnav.route_config import RouteConfig
from gridnav.route_task import RouteController
from gridnav.sim_agent import SimulatedActor


def make_route(actor, dest, movers, clock, registry, config, **options):
    route = RouteController(
        actor, actor.field, dest.x, dest.y, movers,
        config=config, hooks=registry, clock=clock, **options
    )
    route.activate()
    return route


@pytest.fixture
def outcomes(registry):
    seen = []
    registry.add_hook(ROUTE_HOOK, lambda name, payload, data: seen.append(payload["status"]))
    return seen


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_invalid_arguments_are_rejected(actor, open_field, movers):
    with pytest.raises(InvalidArgumentError):
        RouteController(actor, open_field, -1, 2, movers)
    with pytest.raises(InvalidArgumentError):
        RouteController(actor, open_field, 3, None, movers)
    with pytest.raises(InvalidArgumentError):
        RouteController(actor, object(), 3, 2, movers)
    with pytest.raises(InvalidArgumentError):
        RouteController(object(), open_field, 3, 2, movers)
    with pytest.raises(InvalidArgumentError):
        RouteController(actor, open_field, 3, 2, None)
    with pytest.raises(InvalidArgumentError):
        RouteController(actor, open_field, 3, 2, movers, walk_fast=True)


@pytest.mark.parametrize("x, y", [("3", 2), (3, 2.5), (True, 2), (3, [2])])
def test_non_integer_coordinates_are_rejected(actor, open_field, movers, x, y):
    with pytest.raises(InvalidArgumentError, match="Invalid Coordinates argument."):
        RouteController(actor, open_field, x, y, movers)


def test_avoid_walls_follows_agent_config(actor, open_field, movers, registry):
    default = RouteController(actor, open_field, 3, 2, movers, hooks=registry)
    assert default.state.constraints.avoid_walls is True

    opted_out = RouteController(actor, open_field, 3, 2, movers, hooks=registry, avoid_walls=False)
    assert opted_out.state.constraints.avoid_walls is False

    disabled = RouteController(
        actor, open_field, 3, 2, movers, hooks=registry,
        config=RouteConfig(route_avoid_walls=False), avoid_walls=True,
    )
    assert disabled.state.constraints.avoid_walls is False


def test_route_claims_movement_mutex(actor, open_field, movers, registry):
    route = RouteController(actor, open_field, 3, 2, movers, hooks=registry)
    assert route.mutexes == ("movement",)
    assert route.stage == RouteStage.NOT_INITIALIZED
    assert route.dest_coords == Coord(3, 2)
    route.activate()
    assert route.stage == RouteStage.CALCULATE_ROUTE


# ---------------------------------------------------------------------------
# Route calculation and trimming
# ---------------------------------------------------------------------------

def test_destination_equal_to_position_is_done_immediately(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(0, 2), movers, clock, registry, plain_config)
    route.advance()
    assert route.status == TaskStatus.DONE
    assert route.solution == ()
    assert movers.targets == []


def test_unreachable_destination_fails(clock, movers, registry, plain_config):
    field = GridField.from_ascii("split", ["..#..", "..#..", "..#.."])
    walker = SimulatedActor("Walker", field)
    walker.place(Coord(0, 0), clock())
    route = make_route(walker, Coord(4, 0), movers, clock, registry, plain_config)
    route.advance()
    assert route.status == TaskStatus.ERROR
    assert route.error.code == RouteErrorCode.CANNOT_CALCULATE_ROUTE
    assert route.error.message == "Unable to calculate a route."


def test_first_walking_tick_prepends_start_and_dispatches(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(10, 2), movers, clock, registry, plain_config)
    route.advance()
    assert route.stage == RouteStage.WALKING
    assert route.solution == tuple(Coord(x, 2) for x in range(11))
    assert route.step_index == plain_config.route_step - 1
    assert movers.targets == [Coord(5, 2)]


def test_max_distance_fraction_keeps_leading_step(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(10, 2), movers, clock, registry, plain_config, max_distance=0.5)
    route.advance()
    # 10 waypoints → floor(0.5 * 10) + 1 = 6 kept, plus the start cell put back in front.
    assert route.state.constraints.max_steps == 5
    assert len(route.solution) == 7
    assert route.solution[-1] == Coord(6, 2)


def test_small_max_distance_fraction_keeps_one_waypoint(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(4, 2), movers, clock, registry, plain_config, max_distance=0.2)
    route.advance()
    # 4 waypoints: floor(0.2 * 4) + 1 = 1 kept, plus the start cell.
    assert route.state.constraints.max_steps == 0
    assert route.solution == (Coord(0, 2), Coord(1, 2))
    assert movers.targets == [Coord(1, 2)]


def test_max_distance_absolute(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(10, 2), movers, clock, registry, plain_config, max_distance=3)
    route.advance()
    assert route.solution == tuple(Coord(x, 2) for x in range(5))


def test_dist_from_goal_drops_trailing_waypoints(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(10, 2), movers, clock, registry, plain_config, dist_from_goal=3)
    route.advance()
    assert len(route.solution) == 8
    assert route.solution[-1] == Coord(7, 2)


@pytest.mark.parametrize("dist", [10, 25])
def test_dist_from_goal_covering_whole_route_is_done(actor, movers, clock, registry, plain_config, dist):
    route = make_route(actor, Coord(10, 2), movers, clock, registry, plain_config, dist_from_goal=dist)
    route.advance()
    assert route.status == TaskStatus.DONE
    assert route.solution == ()
    assert movers.targets == []


def test_py_dist_from_goal_drops_waypoints_inside_radius(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(10, 2), movers, clock, registry, plain_config, py_dist_from_goal=2.5)
    route.advance()
    assert route.solution[-1] == Coord(7, 2)


def test_py_dist_from_goal_covering_whole_route_is_done(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(3, 2), movers, clock, registry, plain_config, py_dist_from_goal=5)
    route.advance()
    assert route.status == TaskStatus.DONE
    assert route.solution == ()
    assert movers.targets == []


# ---------------------------------------------------------------------------
# Walking reconciliation
# ---------------------------------------------------------------------------

def test_equal_samples_trim_up_to_current_cell(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()

    actor.place(Coord(3, 2), clock())
    clock.advance(0.5)
    route.advance()
    assert route.solution[0] == Coord(3, 2)
    assert len(route.solution) == 13
    assert route.state.last_pos == Coord(3, 2)


def test_mid_stride_trim_uses_elapsed_time(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()

    # Walking (0,2) → (5,2) at 0.5 s per cell, one second in: two cells done.
    actor.pos, actor.pos_to, actor.time_move = Coord(0, 2), Coord(5, 2), clock()
    clock.advance(1.0)
    route.advance()
    assert route.solution[0] == Coord(2, 2)
    assert len(route.solution) == 14
    assert movers.targets[-1] == Coord(7, 2)


def test_moving_against_solution_resets_route(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()

    actor.pos, actor.pos_to = Coord(6, 2), Coord(2, 2)
    clock.advance(0.5)
    route.advance()
    assert route.stage == RouteStage.CALCULATE_ROUTE
    assert route.solution == ()
    assert route.status == TaskStatus.RUNNING

    route.advance()
    assert route.stage == RouteStage.WALKING


def test_abnormally_far_next_step_resets_route(actor, movers, clock, registry):
    config = RouteConfig(route_avoid_walls=False, route_step=15)
    route = make_route(actor, Coord(15, 2), movers, clock, registry, config)
    route.advance()
    assert route.stage == RouteStage.CALCULATE_ROUTE
    assert route.solution == ()
    assert movers.targets == []


def test_reaching_final_waypoint_is_success(actor, movers, clock, registry, plain_config, outcomes):
    route = make_route(actor, Coord(3, 2), movers, clock, registry, plain_config, notify_upon_arrival=True)
    route.advance()

    actor.place(Coord(3, 2), clock())
    route.advance()
    assert route.status == TaskStatus.DONE
    assert outcomes == ["success"]


def test_occupied_goal_counts_as_arrival_one_cell_early(actor, open_field, movers, clock, registry, plain_config, outcomes):
    route = make_route(actor, Coord(2, 2), movers, clock, registry, plain_config)
    route.advance()
    assert movers.targets == [Coord(2, 2)]

    actor.place(Coord(1, 2), clock())
    open_field.occupied.add(Coord(2, 2))
    clock.advance(0.5)
    route.advance()
    assert route.status == TaskStatus.DONE
    assert outcomes == ["success"]


# ---------------------------------------------------------------------------
# Stuck handling
# ---------------------------------------------------------------------------

def test_stuck_step_index_decays_until_failure(actor, movers, clock, registry, plain_config, outcomes):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()
    assert route.step_index == 5

    decayed = []
    for _ in range(4):
        clock.advance(3.5)
        route.advance()
        assert route.status == TaskStatus.RUNNING
        decayed.append(route.step_index)

    assert decayed == [4, 3, 2, 1]
    assert movers.targets[-4:] == [Coord(4, 2), Coord(3, 2), Coord(2, 2), Coord(1, 2)]

    clock.advance(3.5)
    route.advance()
    assert route.status == TaskStatus.ERROR
    assert route.error.code == RouteErrorCode.STUCK
    assert route.error.message == "Stuck during route."
    assert outcomes == ["stuck"]


def test_retries_within_step_timeout_are_not_stuck(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    for _ in range(5):
        route.advance()
        clock.advance(0.5)
    assert route.status == TaskStatus.RUNNING
    assert route.step_index == 5
    assert movers.targets == [Coord(5, 2)] * 5


def test_minimal_step_gets_one_grace_window(actor, movers, clock, registry):
    config = RouteConfig(route_avoid_walls=False, route_step=1)
    route = make_route(actor, Coord(5, 2), movers, clock, registry, config)
    route.advance()
    assert route.step_index == 0

    clock.advance(3.5)
    route.advance()
    assert route.status == TaskStatus.RUNNING
    assert route.state.zero_step_grace_used

    clock.advance(1.0)
    route.advance()
    assert route.status == TaskStatus.RUNNING

    clock.advance(3.0)
    route.advance()
    assert route.status == TaskStatus.ERROR
    assert route.error.code == RouteErrorCode.STUCK


def test_decayed_step_is_clamped_to_remaining_waypoints(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(4, 2), movers, clock, registry, plain_config)
    route.advance()
    assert route.step_index == 4

    # A lookahead wider than what is left: 10 decays to 8, but only 5 waypoints remain.
    route.state.step_index = 10
    clock.advance(3.5)
    route.advance()
    assert route.status == TaskStatus.RUNNING
    assert route.step_index == 4
    assert movers.targets[-1] == Coord(4, 2)


def test_stuck_runs_unstuck_handler_when_enabled(actor, movers, clock, registry):
    escapes = []
    config = RouteConfig(route_avoid_walls=False, route_step=2, teleport_auto_unstuck=True)
    route = RouteController(
        actor, actor.field, 15, 2, movers,
        config=config, hooks=registry, clock=clock, unstuck_handler=escapes.append,
    )
    route.activate()
    route.advance()

    clock.advance(3.5)
    route.advance()
    assert route.error.code == RouteErrorCode.STUCK
    assert escapes == [actor]


# ---------------------------------------------------------------------------
# Termination, timers and lifecycle
# ---------------------------------------------------------------------------

def test_map_changed_notification_finishes_route(actor, movers, clock, registry, plain_config, outcomes):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()

    registry.call_hook(MAP_CHANGED_HOOK)
    route.advance()
    assert route.status == TaskStatus.DONE
    assert route.error is None
    assert len(route.solution) == 16
    assert outcomes == []


def test_actor_on_another_map_finishes_route(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()

    actor.field = GridField.open("geffen", 20, 5)
    route.advance()
    assert route.status == TaskStatus.DONE


def test_terminal_state_is_sticky(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config, max_time=5)
    route.advance()
    clock.advance(6)
    route.advance()
    assert route.status == TaskStatus.ERROR
    assert route.error.code == RouteErrorCode.TOO_MUCH_TIME
    assert route.error.message == "Too much time spent on walking."

    snapshot = (route.stage, route.solution, route.step_index, len(movers.targets))
    for _ in range(3):
        clock.advance(1)
        route.advance()
    assert (route.stage, route.solution, route.step_index, len(movers.targets)) == snapshot
    assert route.status == TaskStatus.ERROR


def test_resume_shifts_timers_by_interruption(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config, max_time=5)
    route.advance()
    targets_before = len(movers.targets)

    route.interrupt()
    clock.advance(10)
    route.advance()
    assert route.status == TaskStatus.INTERRUPTED
    assert len(movers.targets) == targets_before

    route.resume()
    assert route.state.time_start == pytest.approx(1010.0)
    assert route.state.time_step == pytest.approx(1010.0)

    clock.advance(1)
    route.advance()
    assert route.status == TaskStatus.RUNNING


def test_unknown_stage_is_fatal(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.state.stage = RouteStage.NOT_INITIALIZED
    route.advance()
    assert route.status == TaskStatus.ERROR
    assert route.error.code == RouteErrorCode.UNEXPECTED_STATE


def test_stop_is_terminal(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(15, 2), movers, clock, registry, plain_config)
    route.advance()
    route.stop()
    route.advance()
    assert route.status == TaskStatus.STOPPED
    assert len(movers.targets) == 1


def test_map_change_subscription_does_not_keep_route_alive(actor, open_field, movers, registry):
    route = RouteController(actor, open_field, 3, 2, movers, hooks=registry)
    assert registry.count(MAP_CHANGED_HOOK) == 1
    del route
    gc.collect()
    assert registry.count(MAP_CHANGED_HOOK) == 0


def test_map_change_subscription_released_when_finished(actor, movers, clock, registry, plain_config):
    route = make_route(actor, Coord(0, 2), movers, clock, registry, plain_config)
    route.advance()
    assert route.status == TaskStatus.DONE
    assert registry.count(MAP_CHANGED_HOOK) == 0
