# main.py
# Entry point: simulates a tick loop walking an actor across an ASCII map.
# In production, replace SimulatedActor / SimulatedStepMover with the live agent.
#
# Run with: python -m gridnav.main

import logging
import time

from .grid_map import GridField
from .models import Coord, TaskStatus
from .nav_logger import RouteJournal
from .navigator import NavigationSystem
from .route_config import RouteConfig
from .sim_agent import SimulatedActor

# ------------------------------------------------------------------
# Logging setup: configure once here, all modules inherit
# ------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# ------------------------------------------------------------------
# Config: tweak thresholds or paths here, not inside the modules
# ------------------------------------------------------------------
config = RouteConfig.from_dict(
    {"route_avoidWalls": "1", "route_step": "8", "teleportAuto_unstuck": "0"},
    log_dir="logs",
)

# ------------------------------------------------------------------
# Simulation map
# ------------------------------------------------------------------
MAP_ROWS = [
    "..............................",
    "..............................",
    "..........#########...........",
    "..........#.......#...........",
    "..........#.......#...........",
    "..........#...........########",
    "..........#...................",
    "..........#########...........",
    "..............................",
    "..............................",
]

ORIGIN      = Coord(0, 0)
DESTINATION = Coord(15, 4)
TICK_S      = 0.05


def main() -> None:
    # 1. Boot the world
    field = GridField.from_ascii("demo_field", MAP_ROWS)
    actor = SimulatedActor("Walker", field, walk_speed=0.12)
    actor.place(ORIGIN, time.time())

    nav = NavigationSystem(field, actor, config=config, journal=RouteJournal(config))

    # 2. Request a route
    nav.start_route(DESTINATION.x, DESTINATION.y, notify_upon_arrival=True)

    print("\n--- Tick Loop Active ---")

    # 3. Tick loop: replace with the real scheduler in production
    status = TaskStatus.RUNNING
    for tick in range(1000):
        status = nav.tick()
        print(f"  tick {tick:3d} pos {actor.position(time.time())} → [{status.name}] {nav.remaining_steps} steps left")
        if status.is_terminal:
            break
        time.sleep(TICK_S)

    print("\n--- Session complete ---")
    if nav.route is not None and nav.route.error is not None:
        print(f"    Failed: {nav.route.error.message}")
    print(f"    Log files written to: {config.log_dir}/")
    nav.close()


if __name__ == "__main__":
    main()
