"""Special forms: closures receiving their arguments unevaluated.

Each form rearranges the control stack of the calling task and returns True
when it pushed more work, or sets its value with `task.return_` and returns
False when it is done.
"""

from __future__ import annotations

from conch.builtin.contexts import object_scope
from conch.builtin.core_builtin import report_throw
from conch.errors import ConchSyntaxError
from conch.evaluation.states import (
    SAVE_CAR_CODE,
    SAVE_CDR_CODE,
    SAVE_CODE,
    SAVE_DYNAMIC,
    SAVE_LEXICAL,
    State,
)
from conch.evaluation.task import THROW, Task
from conch.types.cell import FALSE, TRUE, Cell, Symbol
from conch.types.closure import Builtin, Method, Syntax, Unbound
from conch.types.conduit import Pipe, pipe_pair
from conch.types.continuation import Continuation
from conch.types.pair import (
    Null,
    Pair,
    car,
    cadr,
    caddr,
    cddr,
    cdr,
    is_cons,
    join,
    length,
    list_of,
    set_car,
)
from conch.types.scope import Env, Object, Scope, resolve, to_context


# -------------------------------
# Blocks and control flow
# -------------------------------
def block(task: Task, args: Cell) -> bool:
    """(block body...): evaluate body in a fresh scope."""
    task.replace_states(SAVE_DYNAMIC | SAVE_LEXICAL, State.EVAL_BLOCK)
    task.new_block(task.dynamic, task.lexical)
    task.return_(Null)
    return True


def if_(task: Task, args: Cell) -> bool:
    """(if test body... [else [if ...] body...])"""
    task.replace_states(SAVE_DYNAMIC | SAVE_LEXICAL, State.EXEC_IF, SAVE_CODE, State.EVAL_ELEMENT)
    task.new_block(task.dynamic, task.lexical)
    task.code = car(args)
    task.dump = cdr(task.dump)
    return True


def while_(task: Task, args: Cell) -> bool:
    """(while test body... [else body...])"""
    task.replace_states(SAVE_DYNAMIC | SAVE_LEXICAL, State.EXEC_WHILE_TEST)
    task.new_block(task.dynamic, task.lexical)
    return True


def object_(task: Task, args: Cell) -> bool:
    """(object body...): evaluate body in a fresh scope and answer it as an object."""
    task.replace_states(SAVE_DYNAMIC | SAVE_LEXICAL, State.EVAL_BLOCK)
    task.new_block(task.dynamic, to_context(task.lexical))
    task.code = join(args, list_of(Object(task.lexical)))
    return True


def quote(task: Task, args: Cell) -> bool:
    return task.return_(car(args))


def splice(task: Task, args: Cell) -> bool:
    """(splice list) or @list: the elements of list as separate values."""
    task.replace_states(State.EXEC_SPLICE, State.EVAL_ELEMENT)
    task.code = car(args)
    task.dump = cdr(task.dump)
    return True


def resolves(task: Task, args: Cell) -> bool:
    ref, _ = resolve(task.lexical, task.dynamic, car(args))
    return task.return_(TRUE if ref is not None else FALSE)


# -------------------------------
# Bindings
# -------------------------------
def define(task: Task, args: Cell) -> bool:
    return task.lexical_var(State.EXEC_DEFINE)


def public(task: Task, args: Cell) -> bool:
    return task.lexical_var(State.EXEC_PUBLIC)


def dynamic(task: Task, args: Cell) -> bool:
    return task.dynamic_var(State.EXEC_DYNAMIC)


def setenv(task: Task, args: Cell) -> bool:
    return task.dynamic_var(State.EXEC_SETENV)


def set_(task: Task, args: Cell) -> bool:
    """(set name [=] value) or (set obj::name [=] value)"""
    n = length(args)
    if n == 3:
        if not (isinstance(cadr(args), Symbol) and cadr(args).v == "="):
            raise ConchSyntaxError("expected '='")
        value = caddr(args)
    elif n == 2:
        value = cadr(args)
    else:
        raise ConchSyntaxError("expected '='")

    task.dump = cdr(task.dump)
    target = car(args)
    task.code = target
    if not is_cons(target):
        task.replace_states(State.EXEC_SET, SAVE_CODE)
    else:
        task.replace_states(
            SAVE_DYNAMIC | SAVE_LEXICAL,
            State.EXEC_SET,
            SAVE_CDR_CODE,
            State.CHANGE_CONTEXT,
            State.EVAL_ELEMENT,
            SAVE_CAR_CODE,
        )
    task.new_states(State.EVAL_ELEMENT)
    task.code = value
    return True


# -------------------------------
# Closures
# -------------------------------
def method(task: Task, args: Cell) -> bool:
    return task.closure(Method)


def syntax(task: Task, args: Cell) -> bool:
    return task.closure(Syntax)


def builtin(task: Task, args: Cell) -> bool:
    return task.closure(Builtin)


# -------------------------------
# Tasks and errors
# -------------------------------
def spawn(task: Task, args: Cell) -> bool:
    """(spawn body...): run body concurrently; the value is the new task."""
    child = Task(
        args,
        Scope(to_context(task.lexical)),
        Env(task.dynamic or task.env0),
        parent=task,
    )
    child.start()
    return task.return_(child)


def catch(task: Task, args: Cell) -> bool:
    """(catch name handler body...)

    Evaluates body. If it throws, the thrown value is bound to name and the
    value of handler becomes the value of the catch form.
    """
    name = car(args)
    if not isinstance(name, Symbol):
        raise ConchSyntaxError("catch needs a name for the thrown value")
    handler = cadr(args)
    caller_dynamic = task.dynamic
    caller_lexical = task.lexical

    task.replace_states(SAVE_DYNAMIC | SAVE_LEXICAL, State.EVAL_BLOCK)
    k = Continuation(cdr(task.dump), cdr(task.stack))

    def intercept(t: Task, thrown: Cell) -> bool:
        if t is not task:
            return report_throw(t, thrown)
        t.stack = k.stack
        t.dump = k.dump
        t.problem = None
        t.rethrows = 0
        t.new_block(caller_dynamic, caller_lexical)
        t.lexical.define(name, car(thrown))
        t.new_states(State.EVAL_ELEMENT)
        t.code = handler
        return True

    task.new_block(task.dynamic, task.lexical)
    task.dynamic.add(THROW, Unbound(Method(intercept)))
    task.code = cddr(args)
    task.return_(Null)
    return True


# -------------------------------
# Redirection
# -------------------------------
STDIN = Symbol("$stdin")
STDOUT = Symbol("$stdout")


def _redirect(form: str, name: str, mode: str):
    """(form target body...): evaluate body with name bound to target.

    A target that is not a conduit names a file, opened with mode and closed
    once body is done.
    """

    def redirect(task: Task, args: Cell) -> bool:
        if length(args) < 2:
            raise ConchSyntaxError(f"{form} expects a target and a body")
        task.code = Pair(Symbol(name), Pair(Symbol(mode), cdr(args)))
        task.replace_states(
            SAVE_DYNAMIC,
            State.EXEC_REDIRECT_CLEANUP,
            State.EXEC_REDIRECT,
            SAVE_CODE,
            State.EVAL_ELEMENT,
        )
        task.code = car(args)
        task.dump = cdr(task.dump)
        return True

    redirect.__name__ = form
    return redirect


def _producer(task: Task, body: Cell, name: Symbol, writer: Pipe) -> Task:
    child = Task(
        body,
        Scope(to_context(task.lexical)),
        Env(task.dynamic or task.env0),
        parent=task,
    )
    child.dynamic.add(name, writer)
    child.start(writer.writer_close)
    return child


def _pipe(form: str, name: str):
    """(form producer consumer...): connect a concurrent producer to consumer.

    The producer runs in a child task with name writing to a pipe; the
    consumer runs in this task with $stdin reading from it.
    """

    def pipe(task: Task, args: Cell) -> bool:
        if length(args) < 2:
            raise ConchSyntaxError(f"{form} expects a producer and a consumer")
        reader, writer = pipe_pair()
        _producer(task, list_of(car(args)), Symbol(name), writer)

        task.replace_states(SAVE_DYNAMIC, State.EXEC_REDIRECT_CLEANUP, State.EVAL_BLOCK)
        task.dynamic = Env(task.dynamic or task.env0)
        task.dynamic.add(STDIN, reader)
        set_car(task.dump, reader)
        task.dump = Pair(Null, task.dump)
        task.code = cdr(args)
        return True

    pipe.__name__ = form
    return pipe


def backtick(task: Task, args: Cell) -> bool:
    """(backtick body...): the lines body writes to $stdout, as strings."""
    reader, writer = pipe_pair()
    _producer(task, args, STDOUT, writer)
    lines = []
    try:
        line = reader.readline()
        while line is not Null:
            lines.append(line)
            line = reader.readline()
    finally:
        reader.close()
    return task.return_(list_of(*lines))


def register(scope: Scope) -> None:
    for name, fn in {
        "backtick": backtick,
        "block": block,
        "builtin": builtin,
        "catch": catch,
        "dynamic": dynamic,
        "if": if_,
        "method": method,
        "object": object_,
        "quote": quote,
        "resolves": resolves,
        "set": set_,
        "setenv": setenv,
        "spawn": spawn,
        "splice": splice,
        "syntax": syntax,
        "while": while_,
    }.items():
        scope.define_syntax(name, fn)
    for form, name, mode in (
        ("redirect-stdin", "$stdin", "r"),
        ("redirect-stdout", "$stdout", "w"),
        ("redirect-stderr", "$stderr", "w"),
        ("append-stdout", "$stdout", "a"),
        ("append-stderr", "$stderr", "a"),
    ):
        scope.define_syntax(form, _redirect(form, name, mode))
    for form, name in (("pipe-stdout", "$stdout"), ("pipe-stderr", "$stderr")):
        scope.define_syntax(form, _pipe(form, name))

    object_scope.public_syntax("define", define)
    object_scope.public_syntax("public", public)
