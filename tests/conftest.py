import sys
from pathlib import Path

import pytest

# Ensure src/ is on PYTHONPATH so `import gridnav` works without installing
_SRC = Path(__file__).resolve().parents[1] / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from gridnav.grid_map import GridField  # noqa: E402
from gridnav.hooks import HookRegistry  # noqa: E402
from gridnav.models import Coord  # noqa: E402
from gridnav.route_config import RouteConfig  # noqa: E402
from gridnav.sim_agent import SimulatedActor  # noqa: E402
from gridnav.task import Task  # noqa: E402


class FakeClock:
    """Time only moves when a test says so."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InstantMover(Task):
    """Step mover that finishes on its first tick without moving anybody."""

    def __init__(self, target: Coord) -> None:
        super().__init__(name=f"InstantMover{target}")
        self.target = target
        self.activate()

    def advance(self) -> bool:
        if super().advance():
            self.set_done()
        return False


class RecordingMoverFactory:
    """Remembers every target a route asked to step to."""

    def __init__(self) -> None:
        self.targets = []

    def __call__(self, actor, target):
        self.targets.append(target)
        return InstantMover(target)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return HookRegistry()


@pytest.fixture
def movers():
    return RecordingMoverFactory()


@pytest.fixture
def open_field():
    return GridField.open("prontera", 20, 5)


@pytest.fixture
def plain_config():
    # No wall penalty: straight lines are the unique shortest paths on an open field.
    return RouteConfig(route_avoid_walls=False, route_step=6)


@pytest.fixture
def actor(open_field, clock):
    a = SimulatedActor("Tester", open_field, walk_speed=0.5)
    a.place(Coord(0, 2), clock())
    return a
