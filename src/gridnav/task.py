# task.py
# Minimal cooperative task: lifecycle, terminal error state and a single
# subtask slot. A scheduler calls advance() once per tick.

import logging
import time
from typing import Any, Callable, Optional, Tuple

from .models import StepMover, TaskError, TaskStatus

logger = logging.getLogger(__name__)


class Task:
    """
    Base class for resumable units of work.

    Lifecycle:
        INACTIVE --activate()--> RUNNING <--interrupt()/resume()--> INTERRUPTED
        RUNNING --set_done()/set_error()/stop()--> DONE / ERROR / STOPPED

    Terminal states are final; advance() on a terminal task does nothing.

    Args:
        name:  Label used in log messages.
        clock: Time source in seconds.
    """

    # Names of resources this task needs exclusively while it runs.
    mutexes: Tuple[str, ...] = ()

    def __init__(self, name: Optional[str] = None, clock: Callable[[], float] = time.time) -> None:
        self.name = name or type(self).__name__
        self._clock = clock
        self.status = TaskStatus.INACTIVE
        self.error: Optional[TaskError] = None
        self._subtask: Optional[StepMover] = None

    def __repr__(self) -> str:
        return f"{self.name}<{self.status.value}>"

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.status == TaskStatus.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def subtask(self) -> Optional[StepMover]:
        return self._subtask

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self) -> None:
        if self.status != TaskStatus.INACTIVE:
            raise RuntimeError(f"{self.name} cannot be activated while {self.status.value}.")
        self.status = TaskStatus.RUNNING

    def interrupt(self) -> None:
        if self.status == TaskStatus.RUNNING:
            self.status = TaskStatus.INTERRUPTED

    def resume(self) -> None:
        if self.status == TaskStatus.INTERRUPTED:
            self.status = TaskStatus.RUNNING

    def stop(self) -> None:
        if self.is_terminal:
            return
        self._stop_subtask()
        self.status = TaskStatus.STOPPED
        self._finished()

    def set_done(self) -> None:
        if self.is_terminal:
            return
        self._stop_subtask()
        self.status = TaskStatus.DONE
        self._finished()

    def set_error(self, code: Any, message: str) -> None:
        if self.is_terminal:
            return
        self._stop_subtask()
        self.error = TaskError(code, message)
        self.status = TaskStatus.ERROR
        self._finished()

    def _finished(self) -> None:
        """Called once when the task reaches a terminal state."""

    # ------------------------------------------------------------------
    # Subtask handling
    # ------------------------------------------------------------------

    def set_subtask(self, subtask: StepMover) -> None:
        """Install a subtask, stopping the previous one if it is still busy."""
        self._stop_subtask()
        self._subtask = subtask

    def _stop_subtask(self) -> None:
        previous, self._subtask = self._subtask, None
        if previous is not None and not previous.status.is_terminal:
            previous.stop()

    def _poll_subtask(self) -> bool:
        """
        Give the subtask its tick.

        Returns:
            True when there is no busy subtask left and the task's own logic may run.
        """
        subtask = self._subtask
        if subtask is None:
            return True
        if not subtask.status.is_terminal:
            subtask.advance()
        if not subtask.status.is_terminal:
            return False

        self._subtask = None
        if subtask.status == TaskStatus.ERROR:
            message = subtask.error.message if subtask.error else "unknown error"
            logger.debug(f"{self.name}: subtask {subtask} failed: {message}")
        return True

    def advance(self) -> bool:
        """
        Per-tick entry point.

        Returns:
            True when the task is running and not waiting on its subtask.
            Subclasses call this first and return early on False.
        """
        if self.status != TaskStatus.RUNNING:
            return False
        return self._poll_subtask()
