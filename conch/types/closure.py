"""Closures and the bindings that attach them to a receiver.

A closure bundles an applier with a body, a parameter list, optional self and
caller labels and the scope it was defined in. The three flavors only differ
in how the evaluator prepares their arguments:

- Builtin: arguments evaluated with simple lookups, then glob/tilde expanded.
- Method:  arguments fully evaluated.
- Syntax:  arguments passed unevaluated.
"""

from __future__ import annotations

from typing import Optional

from conch import Applier
from conch.types.cell import Cell
from conch.types.handles import handles
from conch.types.pair import Null


class Closure:
    __slots__ = ("applier", "body", "clabel", "params", "slabel", "scope")

    def __init__(
        self,
        applier: Applier,
        body: Cell = Null,
        clabel: Cell = Null,
        params: Cell = Null,
        slabel: Cell = Null,
        scope=None,
    ):
        self.applier = applier
        self.body = body
        self.clabel = clabel
        self.params = params
        self.slabel = slabel
        self.scope = scope

    def __repr__(self) -> str:
        return f"{type(self).__name__}(params={self.params}, body={self.body})"


class Builtin(Closure):
    __slots__ = ()


class Method(Closure):
    __slots__ = ()


class Syntax(Closure):
    __slots__ = ()


class Binding(Cell):
    """A closure paired with (Bound) or without (Unbound) a receiver."""

    __slots__ = ("ref", "__weakref__")

    def __init__(self, ref: Closure):
        self.ref = ref

    def __str__(self) -> str:
        return handles.token(type(self.ref).__name__.lower(), self)

    def bind(self, context: Optional[Cell]) -> Binding:
        raise NotImplementedError

    def self_(self) -> Cell | None:
        raise NotImplementedError


class Bound(Binding):
    __slots__ = ("context",)

    def __init__(self, ref: Closure, context: Optional[Cell]):
        super().__init__(ref)
        self.context = context

    def equal(self, other: Cell) -> bool:
        return self is other or (
            isinstance(other, Bound)
            and other.ref is self.ref
            and other.context is self.context
        )

    def bind(self, context: Optional[Cell]) -> Binding:
        if context is self.context:
            return self
        return Bound(self.ref, context)

    def self_(self) -> Cell | None:
        return self.context


class Unbound(Binding):
    __slots__ = ()

    def equal(self, other: Cell) -> bool:
        return self is other or (isinstance(other, Unbound) and other.ref is self.ref)

    def bind(self, context: Optional[Cell]) -> Binding:
        return self

    def self_(self) -> Cell | None:
        return None
