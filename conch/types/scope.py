"""Environments and scopes.

An `Env` is a table from names to references with an optional parent. A
`Scope` layers a private Env over a public Env and links to the lexically
enclosing context (`prev`). An `Object` exposes only the public layers of a
scope, which is how private members are hidden.

Resolution of a name searches the lexical context chain first and then the
dynamic Env chain; see `resolve`.
"""

from __future__ import annotations

from io import StringIO
from typing import Callable, Optional

from conch.errors import ConchRuntimeError, ConchTypeError
from conch.types.cell import Cell, Symbol, raw
from conch.types.handles import handles
from conch.types.reference import Constant, Variable


def _key(k) -> str:
    return k if isinstance(k, str) else raw(k)


class Env:
    """A chained name to reference table."""

    __slots__ = ("hash", "prev")

    def __init__(self, prev: Optional[Env] = None):
        self.hash: dict[str, Variable] = {}
        self.prev: Env | None = prev

    def access(self, key) -> Variable | None:
        k = _key(key)
        env: Env | None = self
        while env is not None:
            ref = env.hash.get(k)
            if ref is not None:
                return ref
            env = env.prev
        return None

    def add(self, key, value: Cell) -> None:
        self.hash[_key(key)] = Variable(value)

    def add_constant(self, key, value: Cell) -> None:
        self.hash[_key(key)] = Constant(value)

    def copy(self) -> Env:
        fresh = Env(self.prev.copy() if self.prev is not None else None)
        for k, v in self.hash.items():
            fresh.hash[k] = v.copy()
        return fresh

    def remove(self, key) -> bool:
        return self.hash.pop(_key(key), None) is not None

    def prefixed(self, prefix: str) -> dict[str, Cell]:
        return {k: v.get() for k, v in self.hash.items() if k.startswith(prefix)}

    def complete(self, prefix: str = "") -> list[str]:
        names = list(self.prefixed(prefix))
        if self.prev is not None:
            names.extend(self.prev.complete(prefix))
        return names

    def __repr__(self) -> str:
        with StringIO() as buffer:
            buffer.write("Env(")
            buffer.write(", ".join(sorted(self.hash)))
            if self.prev is not None:
                buffer.write(" -> ")
                buffer.write(repr(self.prev))
            buffer.write(")")
            return buffer.getvalue()


class Context(Cell):
    """Common protocol of Scope and Object."""

    __slots__ = ()

    def access(self, key) -> Variable | None:
        raise NotImplementedError

    def expose(self) -> Scope:
        raise NotImplementedError


class Scope(Context):
    """A private Env layered over a public Env, linked to an enclosing context."""

    __slots__ = ("env", "prev", "__weakref__")

    def __init__(self, prev: Optional[Context] = None, fixed: Optional[Env] = None):
        self.env = Env(Env(fixed))
        self.prev: Context | None = prev

    def __str__(self) -> str:
        return handles.token("scope", self)

    def faces(self) -> Env:
        return self.env

    def access(self, key) -> Variable | None:
        ctx: Context | None = self
        while ctx is not None:
            ref = ctx.faces().access(key)
            if ref is not None:
                return ref
            ctx = ctx.prev
        return None

    def define(self, key, value: Cell) -> None:
        self.env.add(key, value)

    def public(self, key, value: Cell) -> None:
        self.env.prev.add(key, value)

    def remove(self, key) -> bool:
        return self.env.remove(key) or self.env.prev.remove(key)

    def copy(self) -> Scope:
        s = Scope.__new__(Scope)
        s.env = self.env.copy()
        s.prev = self.prev
        return s

    def expose(self) -> Scope:
        return self

    def complete(self, prefix: str = "") -> list[str]:
        names: list[str] = []
        ctx: Context | None = self
        while ctx is not None:
            names.extend(ctx.faces().complete(prefix))
            ctx = ctx.prev
        return names

    def exported(self) -> dict[str, Cell]:
        """Public bindings whose names look like environment variables."""
        return self.env.prev.prefixed("$")

    # --- Closure registration helpers used by the builtin modules ---

    def define_builtin(self, name: str, fn: Callable) -> None:
        from conch.types.closure import Builtin, Unbound
        self.define(Symbol(name), Unbound(Builtin(fn, scope=self)))

    def define_method(self, name: str, fn: Callable) -> None:
        from conch.types.closure import Bound, Method
        self.define(Symbol(name), Bound(Method(fn, scope=self), self))

    def public_method(self, name: str, fn: Callable) -> None:
        from conch.types.closure import Bound, Method
        self.public(Symbol(name), Bound(Method(fn, scope=self), self))

    def define_syntax(self, name: str, fn: Callable) -> None:
        from conch.types.closure import Bound, Syntax
        self.define(Symbol(name), Bound(Syntax(fn, scope=self), self))

    def public_syntax(self, name: str, fn: Callable) -> None:
        from conch.types.closure import Bound, Syntax
        self.public(Symbol(name), Bound(Syntax(fn, scope=self), self))


class Object(Context):
    """A view of a scope that only reveals its public members."""

    __slots__ = ("context", "__weakref__")

    def __init__(self, context: Context):
        self.context: Scope = context.expose()

    def __str__(self) -> str:
        return handles.token("object", self)

    def equal(self, other: Cell) -> bool:
        return self is other or (
            isinstance(other, Object) and other.context is self.context
        )

    @property
    def prev(self) -> Context | None:
        return self.context.prev

    def faces(self) -> Env:
        return self.context.faces()

    def access(self, key) -> Variable | None:
        ctx: Context | None = self
        while ctx is not None:
            ref = ctx.faces().prev.access(key)
            if ref is not None:
                return ref
            ctx = ctx.prev
        return None

    def define(self, key, value: Cell) -> None:
        raise ConchRuntimeError("private members cannot be added to an object")

    def public(self, key, value: Cell) -> None:
        self.context.public(key, value)

    def remove(self, key) -> bool:
        return self.context.faces().prev.remove(key)

    def copy(self) -> Object:
        return Object(self.context.copy())

    def expose(self) -> Scope:
        return self.context

    def complete(self, prefix: str = "") -> list[str]:
        names: list[str] = []
        ctx: Context | None = self
        while ctx is not None:
            names.extend(ctx.faces().prev.complete(prefix))
            ctx = ctx.prev
        return names


# Method scopes for cells that are not contexts themselves (strings, pairs,
# conduits); filled in by conch.builtin.contexts.
_type_contexts: dict[type, Callable[[], Context]] = {}


def register_type_context(cls: type, factory: Callable[[], Context]) -> None:
    _type_contexts[cls] = factory


def as_context(c: Cell) -> Context | None:
    if isinstance(c, Context):
        return c
    for cls in type(c).__mro__:
        factory = _type_contexts.get(cls)
        if factory is not None:
            return factory()
    return None


def to_context(c: Cell) -> Context:
    context = as_context(c)
    if context is None:
        raise ConchTypeError(f"not an object: {c}")
    return context


def resolve(lexical: Cell | None, dynamic: Env | None, key) -> tuple[Variable | None, Cell | None]:
    """Find `key`, returning (reference, owner) or (None, None).

    The owner is the lexical cell the name was found through, or None when the
    name was found in the dynamic chain.
    """
    if lexical is not None:
        context = as_context(lexical)
        if context is not None:
            ref = context.access(key)
            if ref is not None:
                return ref, lexical
    if dynamic is not None:
        ref = dynamic.access(key)
        if ref is not None:
            return ref, None
    return None, None
