"""First-class continuations.

A continuation is a snapshot of a task's operand stack (`dump`) and control
stack (`stack`). Both are immutable cons lists from the evaluator's point of
view, so taking a snapshot is just keeping the two references. Invoking a
continuation replaces both registers, which discards whatever was in progress.
"""

from __future__ import annotations

from conch.types.cell import Cell
from conch.types.handles import handles


class Continuation(Cell):
    __slots__ = ("dump", "stack", "__weakref__")

    def __init__(self, dump: Cell, stack: Cell):
        self.dump = dump
        self.stack = stack

    def __str__(self) -> str:
        return handles.token("continuation", self)
