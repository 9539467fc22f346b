"""Token table for values that have no textual representation.

Scopes, tasks, continuations, conduits and bindings print as ``%kind N%``.
The reader turns such a token back into the live value through `deref`, so
printed values can be pasted back into code while they are still alive.
Entries hold their cells weakly.
"""

from __future__ import annotations

import itertools
import threading
import weakref

from conch.types.cell import Cell


class HandleTable:
    __slots__ = ("_lock", "_numbers", "_cells", "_counter")

    def __init__(self):
        self._lock = threading.Lock()
        self._numbers: weakref.WeakKeyDictionary[Cell, int] = weakref.WeakKeyDictionary()
        self._cells: weakref.WeakValueDictionary[tuple[str, int], Cell] = (
            weakref.WeakValueDictionary()
        )
        self._counter = itertools.count(1)

    def token(self, kind: str, cell: Cell) -> str:
        with self._lock:
            n = self._numbers.get(cell)
            if n is None:
                n = next(self._counter)
                self._numbers[cell] = n
                self._cells[(kind, n)] = cell
        return f"%{kind} {n}%"

    def deref(self, kind: str, number: int) -> Cell | None:
        with self._lock:
            return self._cells.get((kind, number))

    def __len__(self) -> int:
        return len(self._cells)


handles = HandleTable()
