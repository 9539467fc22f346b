"""Register set of the evaluator and the save/restore protocol.

The control stack (`stack`) is a cons list of tags and saved registers. A
save mask tag sits directly above the registers it recorded, pushed in the
order code, dynamic, lexical, dump. The operand stack (`dump`) is a cons list
of intermediate values; a `None` entry marks the start of an argument list.
"""

from __future__ import annotations

from typing import Optional

from conch.types.cell import Cell, Integer
from conch.types.pair import Null, Pair, car, cdr, set_car
from conch.types.scope import Context, Env, Scope
from conch.evaluation.states import (
    SAVE_CAR_CODE,
    SAVE_CODE,
    SAVE_DUMP,
    SAVE_DYNAMIC,
    SAVE_LEXICAL,
    SAVE_MAX,
)


class Registers:
    __slots__ = ("code", "dump", "stack", "dynamic", "lexical")

    def __init__(
        self,
        code: Cell = Null,
        dump: Cell = Null,
        stack: Cell = Null,
        dynamic: Optional[Env] = None,
        lexical: Optional[Cell] = None,
    ):
        self.code = code
        self.dump = dump
        self.stack = stack
        self.dynamic = dynamic
        self.lexical = lexical

    def snapshot(self) -> Registers:
        return Registers(self.code, self.dump, self.stack, self.dynamic, self.lexical)

    def restore(self, saved: Registers) -> None:
        self.code = saved.code
        self.dump = saved.dump
        self.stack = saved.stack
        self.dynamic = saved.dynamic
        self.lexical = saved.lexical

    def get_state(self) -> int:
        if self.stack is Null:
            return 0
        return self.stack.car.v

    def new_states(self, *states: int) -> None:
        for f in states:
            f = int(f)
            if f >= SAVE_MAX:
                self.stack = Pair(Integer(f), self.stack)
                continue

            s = self.get_state()
            if s < SAVE_MAX and f & s == f:
                continue

            if f & SAVE_CODE:
                if f & SAVE_CODE == SAVE_CODE:
                    saved = self.code
                elif f & SAVE_CAR_CODE:
                    saved = car(self.code)
                else:
                    saved = cdr(self.code)
                self.stack = Pair(saved, self.stack)
            if f & SAVE_DYNAMIC:
                self.stack = Pair(self.dynamic, self.stack)
            if f & SAVE_LEXICAL:
                self.stack = Pair(self.lexical, self.stack)
            if f & SAVE_DUMP:
                self.stack = Pair(self.dump, self.stack)

            self.stack = Pair(Integer(f), self.stack)

    def remove_state(self) -> None:
        f = self.get_state()
        self.stack = cdr(self.stack)
        if f >= SAVE_MAX:
            return
        if f & SAVE_CODE:
            self.stack = cdr(self.stack)
        if f & SAVE_DYNAMIC:
            self.stack = cdr(self.stack)
        if f & SAVE_LEXICAL:
            self.stack = cdr(self.stack)
        if f & SAVE_DUMP:
            self.stack = cdr(self.stack)

    def replace_states(self, *states: int) -> None:
        self.remove_state()
        self.new_states(*states)

    def restore_state(self) -> None:
        f = self.get_state()
        self.stack = cdr(self.stack)
        if f >= SAVE_MAX:
            return
        if f & SAVE_DUMP:
            self.dump = self.stack.car
            self.stack = self.stack.cdr
        if f & SAVE_LEXICAL:
            self.lexical = self.stack.car
            self.stack = self.stack.cdr
        if f & SAVE_DYNAMIC:
            self.dynamic = self.stack.car
            self.stack = self.stack.cdr
        if f & SAVE_CODE:
            self.code = self.stack.car
            self.stack = self.stack.cdr

    def arguments(self) -> Cell:
        """Pop evaluated arguments down to the `None` marker, in call order."""
        e = self.dump
        args: Cell = Null
        while e is not Null and e.car is not None:
            args = Pair(e.car, args)
            e = e.cdr
        self.dump = e.cdr
        return args

    def return_(self, rv: Cell) -> bool:
        set_car(self.dump, rv)
        return False

    def new_block(self, dynamic: Optional[Env], lexical: Optional[Context]) -> None:
        self.dynamic = Env(dynamic)
        self.lexical = Scope(lexical)
