"""Suspension gate for a task: running, suspended or terminated."""

from __future__ import annotations

import threading
from enum import Enum

from conch.errors import ConchRuntimeError


class ActionState(Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class Action:
    __slots__ = ("_cond", "state")

    def __init__(self):
        self._cond = threading.Condition()
        self.state = ActionState.RUNNING

    def resume(self) -> None:
        with self._cond:
            if self.state is not ActionState.SUSPENDED:
                raise ConchRuntimeError("can't continue a task that has not been suspended")
            self.state = ActionState.RUNNING
            self._cond.notify_all()

    def runnable(self) -> bool:
        """Block while suspended; report whether the task may keep running."""
        with self._cond:
            while self.state is ActionState.SUSPENDED:
                self._cond.wait()
            return self.state is ActionState.RUNNING

    def suspend(self) -> None:
        with self._cond:
            if self.state is not ActionState.RUNNING:
                raise ConchRuntimeError("can't suspend a task that is not running")
            self.state = ActionState.SUSPENDED

    def try_suspend(self) -> bool:
        """Suspend if running; report whether this call did it."""
        with self._cond:
            if self.state is not ActionState.RUNNING:
                return False
            self.state = ActionState.SUSPENDED
            return True

    def try_resume(self) -> bool:
        """Resume if suspended; report whether this call did it."""
        with self._cond:
            if self.state is not ActionState.SUSPENDED:
                return False
            self.state = ActionState.RUNNING
            self._cond.notify_all()
            return True

    def terminate(self) -> None:
        with self._cond:
            if self.state is ActionState.TERMINATED:
                raise ConchRuntimeError("can't terminate a task that has already been terminated")
            self.state = ActionState.TERMINATED
            self._cond.notify_all()

    def finish(self) -> bool:
        """Terminate unless already terminated; report whether this call did it."""
        with self._cond:
            if self.state is ActionState.TERMINATED:
                return False
            self.state = ActionState.TERMINATED
            self._cond.notify_all()
            return True

    @property
    def running(self) -> bool:
        return self.state is ActionState.RUNNING

    @property
    def suspended(self) -> bool:
        return self.state is ActionState.SUSPENDED

    @property
    def terminated(self) -> bool:
        return self.state is ActionState.TERMINATED
