# hooks.py
# Process-wide publish points. Tasks subscribe to world notifications here
# and publish their observable outcomes for UI / automation listeners.

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .models import HookPayload

logger = logging.getLogger(__name__)

MAP_CHANGED_HOOK = "map_changed"   # no payload: the actor's map changed
ROUTE_HOOK = "route"               # {"status": "success" | "stuck"}

HookCallback = Callable[[str, Optional[HookPayload], Any], None]


@dataclass(frozen=True)
class HookHandle:
    name: str
    hook_id: int


class HookRegistry:
    """
    Named hooks with any number of callbacks each.

    Callbacks are invoked as callback(hook_name, payload, user_data).
    """

    def __init__(self) -> None:
        self._hooks: Dict[str, Dict[int, Tuple[HookCallback, Any]]] = {}
        self._ids = itertools.count(1)

    def add_hook(self, name: str, callback: HookCallback, user_data: Any = None) -> HookHandle:
        handle = HookHandle(name, next(self._ids))
        self._hooks.setdefault(name, {})[handle.hook_id] = (callback, user_data)
        return handle

    def del_hook(self, handle: HookHandle) -> bool:
        """Remove a callback. Returns False if it was already gone."""
        callbacks = self._hooks.get(handle.name)
        if not callbacks or handle.hook_id not in callbacks:
            return False
        del callbacks[handle.hook_id]
        if not callbacks:
            del self._hooks[handle.name]
        return True

    def call_hook(self, name: str, payload: Optional[HookPayload] = None) -> int:
        """Invoke every callback registered under name. Returns how many ran."""
        callbacks = list(self._hooks.get(name, {}).values())
        for callback, user_data in callbacks:
            callback(name, payload, user_data)
        if callbacks:
            logger.debug(f"Hook '{name}' delivered to {len(callbacks)} listener(s).")
        return len(callbacks)

    def count(self, name: str) -> int:
        return len(self._hooks.get(name, {}))


# Shared registry used when a task is not given its own.
hooks = HookRegistry()
