# nav_logger.py
# Handles all file I/O for route tasks.
# Saves accepted solutions and route events as JSON.

import json
import logging
import os
from datetime import datetime
from typing import Any, List, Optional, Sequence

from .models import Coord, Destination
from .route_config import RouteConfig

# Standard Python logger: configure at app entry point if needed
logger = logging.getLogger(__name__)


class RouteJournal:
    """
    Persists route solutions and route events to JSON files.

    Args:
        config: RouteConfig instance for file paths and directories.
    """

    def __init__(self, config: Optional[RouteConfig] = None) -> None:
        self.config = config or RouteConfig()
        os.makedirs(self.config.log_dir, exist_ok=True)

    # ------------------------------------------------------------------
    # Solution persistence
    # ------------------------------------------------------------------

    def save_route(self, solution: Sequence[Coord], destination: Optional[Destination] = None) -> bool:
        """
        Serialize a solution to JSON.

        Args:
            solution:    Cells of the route, earliest first.
            destination: Map and cell the route leads to.

        Returns:
            True on success, False on failure.
        """
        filepath = self.config.route_filepath
        data = {
            "saved_at": datetime.now().isoformat(),
            "destination": None if destination is None else {
                "field": destination.field_name,
                **destination.pos.to_dict(),
            },
            "step_count": len(solution),
            "steps": [c.to_dict() for c in solution],
        }
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            logger.info(f"Route saved to {filepath} ({len(solution)} steps).")
            return True
        except OSError as e:
            logger.error(f"Failed to save route to {filepath}: {e}")
            return False

    def load_route(self, filepath: Optional[str] = None) -> Optional[List[Coord]]:
        """
        Load a previously saved solution.

        Args:
            filepath: Path override; uses config default if omitted.

        Returns:
            List of Coord, or None if loading failed.
        """
        path = filepath or self.config.route_filepath
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            steps = [Coord.from_dict(s) for s in data["steps"]]
            logger.info(f"Route loaded from {path} ({len(steps)} steps).")
            return steps
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to load route from {path}: {e}")
            return None

    # ------------------------------------------------------------------
    # Session event logging
    # ------------------------------------------------------------------

    def log_event(self, status: str, position: Optional[Coord], **extra: Any) -> bool:
        """
        Append a single route event to the session log file.

        Args:
            status:   Task status or route outcome, e.g. "running", "success", "stuck".
            position: Actor cell at the time of the event.
            **extra:  Additional JSON-serializable fields.
        """
        entry = {
            "timestamp": datetime.now().isoformat(),
            "status": status,
            "position": None if position is None else position.to_dict(),
            **extra,
        }
        try:
            with open(self.config.events_filepath, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
            return True
        except OSError as e:
            logger.error(f"Failed to write event log: {e}")
            return False
