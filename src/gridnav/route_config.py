# route_config.py
# All tuneable constants in one place.
# Pass a RouteConfig instance to every module that needs settings.

import os
from dataclasses import dataclass
from typing import Any, Mapping


# ---------------------------------------------------------------------------
# Core constants
# ---------------------------------------------------------------------------

STEP_TIMEOUT_S: float = 3.0         # no progress for this long → smaller stride
NEGLIGIBLE_TIME_S: float = 0.01     # below this a stage may continue within the same tick
DEFAULT_WALK_SPEED: float = 0.12    # seconds per cell


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(value)


# ---------------------------------------------------------------------------
# Main config
# ---------------------------------------------------------------------------

@dataclass
class RouteConfig:
    # Per-agent settings
    route_avoid_walls: bool = True
    route_step: int = 8                     # maximum stride, in solution steps
    teleport_auto_unstuck: bool = False

    # Walking algorithm
    step_timeout: float = STEP_TIMEOUT_S
    negligible_time: float = NEGLIGIBLE_TIME_S
    lookahead_failsafe: int = 5             # non-improving candidates before the search stops
    max_step_distance: int = 10             # next waypoint further than this → reset route
    step_decay: float = 0.8                 # stride multiplier applied when stuck
    default_walk_speed: float = DEFAULT_WALK_SPEED
    snap_radius: int = 1

    # Journal
    log_dir: str = "."
    route_filename: str = "active_route.json"
    events_filename: str = "route_events.jsonl"

    def __post_init__(self) -> None:
        self.route_step = max(1, int(self.route_step))

    @property
    def route_filepath(self) -> str:
        return os.path.join(self.log_dir, self.route_filename)

    @property
    def events_filepath(self) -> str:
        return os.path.join(self.log_dir, self.events_filename)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any], prefix: str = "", **overrides: Any) -> "RouteConfig":
        """
        Build a config from a flat key/value namespace.

        Args:
            values:    Flat configuration, e.g. {"route_step": "15"}.
            prefix:    Agent namespace prefix prepended to every key.
            overrides: Extra RouteConfig fields set directly.

        Returns:
            RouteConfig instance.
        """
        kwargs = dict(overrides)
        if prefix + "route_avoidWalls" in values:
            kwargs["route_avoid_walls"] = _as_bool(values[prefix + "route_avoidWalls"])
        if prefix + "route_step" in values:
            kwargs["route_step"] = int(values[prefix + "route_step"])
        if prefix + "teleportAuto_unstuck" in values:
            kwargs["teleport_auto_unstuck"] = _as_bool(values[prefix + "teleportAuto_unstuck"])
        return cls(**kwargs)
