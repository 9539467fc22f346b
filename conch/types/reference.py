from __future__ import annotations

from conch.errors import ConchRuntimeError
from conch.types.cell import Cell


class Variable:
    """A mutable box holding the value bound to a name."""

    __slots__ = ("v",)

    def __init__(self, v: Cell):
        self.v = v

    def get(self) -> Cell:
        return self.v

    def set(self, v: Cell) -> None:
        self.v = v

    def copy(self) -> Variable:
        return Variable(self.v)

    def __repr__(self) -> str:
        return f"Variable({self.v})"


class Constant(Variable):
    """A reference that cannot be rebound once created."""

    __slots__ = ()

    def set(self, v: Cell) -> None:
        raise ConchRuntimeError("constant cannot be set")

    def copy(self) -> Constant:
        return Constant(self.v)

    def __repr__(self) -> str:
        return f"Constant({self.v})"
