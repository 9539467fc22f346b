"""Pairs and the list operations built on them.

`Null` is a single pair whose head and tail are itself. It terminates every
list, is tested by identity, and is never mutated.
"""

from __future__ import annotations

from io import StringIO
from typing import Iterable, Iterator

from conch.errors import ConchRuntimeError, ConchTypeError
from conch.types.cell import Atom, Cell


class Pair(Cell):
    __slots__ = ("car", "cdr")

    def __init__(self, car: Cell, cdr: Cell):
        self.car = car
        self.cdr = cdr

    def __bool__(self) -> bool:
        return self is not Null

    def equal(self, other: Cell) -> bool:
        a, b = self, other
        while True:
            if a is b:
                return True
            if a is Null or b is Null:
                return False
            if not isinstance(a, Pair):
                return a.equal(b)
            if not isinstance(b, Pair):
                return False
            if not a.car.equal(b.car):
                return False
            a, b = a.cdr, b.cdr

    def __str__(self) -> str:
        if self is Null:
            return "()"
        with StringIO() as buffer:
            buffer.write("(")
            c: Cell = self
            first = True
            while isinstance(c, Pair) and c is not Null:
                if not first:
                    buffer.write(" ")
                buffer.write(str(c.car))
                first = False
                c = c.cdr
            if c is not Null:
                buffer.write(" . ")
                buffer.write(str(c))
            buffer.write(")")
            return buffer.getvalue()


Null = Pair.__new__(Pair)
Null.car = Null
Null.cdr = Null


def cons(head: Cell, tail: Cell) -> Pair:
    return Pair(head, tail)


def _pair(c: Cell) -> Pair:
    if not isinstance(c, Pair):
        raise ConchTypeError(f"not a pair: {c}")
    return c


def car(c: Cell) -> Cell:
    return _pair(c).car


def cdr(c: Cell) -> Cell:
    return _pair(c).cdr


def cadr(c: Cell) -> Cell:
    return car(cdr(c))


def cddr(c: Cell) -> Cell:
    return cdr(cdr(c))


def caddr(c: Cell) -> Cell:
    return car(cddr(c))


def set_car(c: Cell, value: Cell) -> None:
    p = _pair(c)
    if p is Null:
        raise ConchTypeError("cannot modify the empty list")
    p.car = value


def set_cdr(c: Cell, value: Cell) -> None:
    p = _pair(c)
    if p is Null:
        raise ConchTypeError("cannot modify the empty list")
    p.cdr = value


def is_cons(c: Cell) -> bool:
    return isinstance(c, Pair) and c is not Null


def is_simple(c: Cell) -> bool:
    return isinstance(c, (Atom, Pair))


def list_of(*cells: Cell) -> Cell:
    result: Cell = Null
    for c in reversed(cells):
        result = Pair(c, result)
    return result


def from_iterable(cells: Iterable[Cell]) -> Cell:
    return list_of(*cells)


def iterate(c: Cell) -> Iterator[Cell]:
    """Yield the elements of a proper list; a non-pair tail ends iteration."""
    while isinstance(c, Pair) and c is not Null:
        yield c.car
        c = c.cdr


def to_list(c: Cell) -> list[Cell]:
    return list(iterate(c))


def length(c: Cell) -> int:
    n = 0
    while is_cons(c):
        n += 1
        c = c.cdr
    return n


def reverse(c: Cell) -> Cell:
    result: Cell = Null
    for item in iterate(c):
        result = Pair(item, result)
    return result


def append_to(lst: Cell, *cells: Cell) -> Cell:
    """Destructively append `cells` to `lst`, returning the head of the list."""
    if not cells:
        return lst
    extra = list_of(*cells)
    if lst is Null:
        return extra
    last = lst
    while is_cons(last.cdr):
        last = last.cdr
    set_cdr(last, extra)
    return lst


def join(lst: Cell, c: Cell) -> Cell:
    """Non-destructively append the list `c` to a copy of `lst`."""
    items = to_list(lst)
    result = c
    for item in reversed(items):
        result = Pair(item, result)
    return result


def tail(c: Cell, index: int) -> Cell:
    """Return the sublist starting at `index`; negative indexes count from the end."""
    if index < 0:
        index += length(c)
    if index < 0:
        raise ConchRuntimeError("index out of bounds")
    while index > 0:
        if not is_cons(c):
            raise ConchRuntimeError("index out of bounds")
        c = c.cdr
        index -= 1
    return c


def slice_list(c: Cell, start: int, end: int | None = None) -> Cell:
    items = to_list(c)
    return list_of(*items[start:end])
