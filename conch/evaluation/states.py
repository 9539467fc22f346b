"""Control stack tags.

A tag below SAVE_MAX is a save mask: a bitset naming the registers pushed
just beneath it. A tag at or above SAVE_MAX is a pseudo-state naming an
evaluation phase.
"""

from enum import IntEnum

SAVE_CAR_CODE = 1
SAVE_CDR_CODE = 2
SAVE_DYNAMIC = 4
SAVE_LEXICAL = 8
SAVE_DUMP = 16
SAVE_MAX = 32

SAVE_CODE = SAVE_CAR_CODE | SAVE_CDR_CODE


class State(IntEnum):
    CHANGE_CONTEXT = SAVE_MAX
    EVAL_ARGUMENTS = SAVE_MAX + 1
    EVAL_ARGUMENTS_BUILTIN = SAVE_MAX + 2
    EVAL_BLOCK = SAVE_MAX + 3
    EVAL_COMMAND = SAVE_MAX + 4
    EVAL_ELEMENT = SAVE_MAX + 5
    EVAL_ELEMENT_BUILTIN = SAVE_MAX + 6
    EVAL_MEMBER = SAVE_MAX + 7
    EXEC_BUILTIN = SAVE_MAX + 8
    EXEC_COMMAND = SAVE_MAX + 9
    EXEC_DEFINE = SAVE_MAX + 10
    EXEC_DYNAMIC = SAVE_MAX + 11
    EXEC_IF = SAVE_MAX + 12
    EXEC_METHOD = SAVE_MAX + 13
    EXEC_PUBLIC = SAVE_MAX + 14
    EXEC_SET = SAVE_MAX + 15
    EXEC_SETENV = SAVE_MAX + 16
    EXEC_SPLICE = SAVE_MAX + 17
    EXEC_SYNTAX = SAVE_MAX + 18
    EXEC_WHILE_BODY = SAVE_MAX + 19
    EXEC_WHILE_TEST = SAVE_MAX + 20
    FATAL = SAVE_MAX + 21
    RETURN = SAVE_MAX + 22
    EXEC_REDIRECT = SAVE_MAX + 23
    EXEC_REDIRECT_CLEANUP = SAVE_MAX + 24


# Phase that follows each looping phase once its test succeeds.
NEXT: dict[int, tuple[int, ...]] = {
    State.EVAL_ARGUMENTS: (SAVE_CDR_CODE, State.EVAL_ELEMENT),
    State.EVAL_ARGUMENTS_BUILTIN: (SAVE_CDR_CODE, State.EVAL_ELEMENT_BUILTIN),
    State.EXEC_IF: (State.EVAL_BLOCK,),
    State.EXEC_WHILE_BODY: (State.EXEC_WHILE_TEST, SAVE_CODE, State.EVAL_BLOCK),
}
