import pytest

from conch.evaluation.registers import Registers
from conch.evaluation.states import (
    SAVE_CAR_CODE,
    SAVE_CDR_CODE,
    SAVE_CODE,
    SAVE_DUMP,
    SAVE_DYNAMIC,
    SAVE_LEXICAL,
    SAVE_MAX,
    State,
)
from conch.types.cell import Integer, Symbol
from conch.types.pair import Null, Pair, length, list_of
from conch.types.scope import Env, Scope


HEAD = Symbol("head")
REST = Symbol("rest")
CLOBBERED = Symbol("clobbered")


def _registers():
    return Registers(
        code=Pair(HEAD, REST),
        dump=list_of(Integer(1)),
        stack=list_of(Integer(State.EVAL_BLOCK)),
        dynamic=Env(),
        lexical=Scope(),
    )


@pytest.mark.parametrize("mask", range(SAVE_MAX))
def test_restore_state_recovers_every_masked_register(mask):
    r = _registers()
    before = r.snapshot()
    r.new_states(mask)

    r.code = CLOBBERED
    r.dump = Null
    r.dynamic = Env()
    r.lexical = Scope()

    r.restore_state()

    assert r.get_state() == State.EVAL_BLOCK
    assert r.stack.cdr is Null
    assert (r.dump is before.dump) == bool(mask & SAVE_DUMP)
    assert (r.dynamic is before.dynamic) == bool(mask & SAVE_DYNAMIC)
    assert (r.lexical is before.lexical) == bool(mask & SAVE_LEXICAL)

    code = mask & SAVE_CODE
    if code == SAVE_CODE:
        assert r.code is before.code
    elif code == SAVE_CAR_CODE:
        assert r.code is HEAD
    elif code == SAVE_CDR_CODE:
        assert r.code is REST
    else:
        assert r.code is CLOBBERED


@pytest.mark.parametrize("mask", range(SAVE_MAX))
def test_remove_state_discards_saved_registers(mask):
    r = _registers()
    r.new_states(mask)
    r.remove_state()
    assert r.get_state() == State.EVAL_BLOCK
    assert length(r.stack) == 1


def test_redundant_save_is_skipped():
    r = _registers()
    r.new_states(SAVE_DYNAMIC | SAVE_LEXICAL)
    depth = length(r.stack)
    r.new_states(SAVE_LEXICAL)
    assert length(r.stack) == depth


def test_replace_states_swaps_the_top_phase():
    r = _registers()
    r.replace_states(State.EVAL_COMMAND, State.EVAL_ELEMENT)
    assert r.get_state() == State.EVAL_ELEMENT
    r.remove_state()
    assert r.get_state() == State.EVAL_COMMAND
    r.remove_state()
    assert r.stack is Null
    assert r.get_state() == 0


def test_arguments_pop_down_to_the_marker():
    r = _registers()
    r.dump = list_of(Integer(3), Integer(2), None, Symbol("f"))
    args = r.arguments()
    assert str(args) == "(2 3)"
    assert str(r.dump) == "(f)"


def test_return_replaces_top_of_dump():
    r = _registers()
    assert r.return_(Integer(9)) is False
    assert r.dump.car is Integer(9)
