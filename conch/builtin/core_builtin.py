"""Core builtins: arithmetic, comparison, lists, conduits, tasks and jobs.

Methods receive evaluated arguments; builtins receive arguments evaluated
with simple lookups and then brace, tilde and glob expanded, the way a shell
treats words.
"""
from __future__ import annotations

import fnmatch
import itertools
import logging
import os
import sys
from fractions import Fraction

from conch.errors import ConchArityError, ConchRuntimeError, ConchTypeError
from conch.evaluation.states import State
from conch.evaluation.task import EXTERNAL, Task
from conch.reader.parser import read_all
from conch.system import process
from conch.types.cell import (
    FAILURE,
    FALSE,
    ONE,
    SUCCESS,
    TRUE,
    ZERO,
    Atom,
    Boolean,
    Cell,
    Float,
    Integer,
    Rational,
    Status,
    String,
    Symbol,
    int_of,
    is_atom,
    is_number,
    rational_of,
    raw,
)
from conch.types.closure import Binding, Builtin, Method, Syntax, Unbound
from conch.types.conduit import Channel, Conduit, Pipe
from conch.types.pair import (
    Null,
    Pair,
    car,
    cadr,
    cdr,
    is_cons,
    iterate,
    join,
    length,
    list_of,
    reverse,
    set_car,
    set_cdr,
    to_list,
)
from conch.types.scope import Env, Object, Scope, resolve

_logger = logging.getLogger("conch.builtin")


def _rat(c: Cell) -> Fraction:
    r = rational_of(c)
    if r is None:
        raise ConchTypeError(f"{c} is not a number")
    return r


def _at_least(args: Cell, n: int, name: str) -> list[Cell]:
    items = to_list(args)
    if len(items) < n:
        raise ConchArityError(f"{name} expects at least {n} argument{'s' if n > 1 else ''}")
    return items


# -------------------------------
# Arithmetic
# -------------------------------
def add(task, args: Cell) -> bool:
    """Sum of the arguments; 0 without arguments."""
    acc = ZERO
    for c in iterate(args):
        acc = acc.add(c)
    return task.return_(acc)


def sub(task, args: Cell) -> bool:
    """Subtract the rest from the first argument; negation for one argument."""
    items = _at_least(args, 1, "sub")
    if len(items) == 1:
        return task.return_(ZERO.subtract(items[0]))
    acc = Rational(_rat(items[0]))
    for c in items[1:]:
        acc = acc.subtract(c)
    return task.return_(acc)


def mul(task, args: Cell) -> bool:
    acc = ONE
    for c in iterate(args):
        acc = acc.multiply(c)
    return task.return_(acc)


def div(task, args: Cell) -> bool:
    """Divide the first argument by the rest; reciprocal for one argument."""
    items = _at_least(args, 1, "div")
    if len(items) == 1:
        return task.return_(ONE.divide(items[0]))
    acc = Rational(_rat(items[0]))
    for c in items[1:]:
        acc = acc.divide(c)
    return task.return_(acc)


def mod(task, args: Cell) -> bool:
    items = to_list(args)
    if len(items) != 2:
        raise ConchArityError("mod expects 2 arguments")
    return task.return_(Rational(_rat(items[0])).modulo(items[1]))


# -------------------------------
# Comparison
# -------------------------------
def _compare(a: Cell, b: Cell) -> int:
    ra, rb = rational_of(a), rational_of(b)
    if ra is not None and rb is not None:
        return (ra > rb) - (ra < rb)
    x, y = raw(a), raw(b)
    return (x > y) - (x < y)


def _relation(name: str, test):
    def relation(task, args: Cell) -> bool:
        items = _at_least(args, 2, name)
        ok = all(test(_compare(a, b)) for a, b in zip(items, items[1:]))
        return task.return_(TRUE if ok else FALSE)

    relation.__name__ = name
    return relation


def eq(task, args: Cell) -> bool:
    """True when every argument equals the first."""
    items = _at_least(args, 2, "eq")
    first = items[0]
    return task.return_(Boolean(all(first.equal(c) for c in items[1:])))


def ne(task, args: Cell) -> bool:
    items = _at_least(args, 2, "ne")
    first = items[0]
    return task.return_(Boolean(not all(first.equal(c) for c in items[1:])))


def not_(task, args: Cell) -> bool:
    return task.return_(Boolean(not car(args)))


def is_(task, args: Cell) -> bool:
    """True when every argument is the very same value as the first."""
    items = _at_least(args, 2, "is")
    first = items[0]
    return task.return_(Boolean(all(c is first for c in items[1:])))


# -------------------------------
# Predicates and generators
# -------------------------------
_PREDICATES = {
    "is-atom": is_atom,
    "is-boolean": lambda c: isinstance(c, Boolean),
    "is-builtin": lambda c: isinstance(c, Binding) and isinstance(c.ref, Builtin),
    "is-channel": lambda c: isinstance(c, Channel),
    "is-cons": is_cons,
    "is-float": lambda c: isinstance(c, Float),
    "is-integer": lambda c: isinstance(c, Integer),
    "is-list": lambda c: isinstance(c, Pair),
    "is-method": lambda c: isinstance(c, Binding) and isinstance(c.ref, Method),
    "is-null": lambda c: c is Null,
    "is-number": is_number,
    "is-object": lambda c: isinstance(c, (Object, Scope)),
    "is-pipe": lambda c: isinstance(c, Pipe),
    "is-rational": lambda c: isinstance(c, Rational),
    "is-status": lambda c: isinstance(c, Status),
    "is-string": lambda c: isinstance(c, String),
    "is-symbol": lambda c: isinstance(c, Symbol),
    "is-syntax": lambda c: isinstance(c, Binding) and isinstance(c.ref, Syntax),
}

_GENERATORS = {
    "boolean": lambda c: Boolean(bool(c)),
    "float": lambda c: Float(float(_rat(c))),
    "integer": lambda c: Integer(int(_rat(c))),
    "rational": lambda c: Rational(_rat(c)),
    "status": lambda c: Status(c.to_status() if isinstance(c, Atom) else 1),
    "string": lambda c: String(raw(c)),
    "symbol": lambda c: Symbol(raw(c)),
}


def _unary(name: str, fn, boolean: bool):
    def unary(task, args: Cell) -> bool:
        if args is Null:
            raise ConchArityError(f"{name} expects 1 argument")
        v = fn(car(args))
        return task.return_(Boolean(v) if boolean else v)

    unary.__name__ = name
    return unary


# -------------------------------
# Lists
# -------------------------------
def cons(task, args: Cell) -> bool:
    return task.return_(Pair(car(args), cadr(args)))


def car_(task, args: Cell) -> bool:
    return task.return_(car(car(args)))


def cdr_(task, args: Cell) -> bool:
    return task.return_(cdr(car(args)))


def list_(task, args: Cell) -> bool:
    return task.return_(args)


def append(task, args: Cell) -> bool:
    """(append list item...): a copy of list with the items added."""
    return task.return_(join(car(args), cdr(args)))


def reverse_(task, args: Cell) -> bool:
    return task.return_(reverse(car(args)))


def length_(task, args: Cell) -> bool:
    c = car(args)
    if isinstance(c, (String, Symbol)):
        return task.return_(Integer(len(c.v)))
    return task.return_(Integer(length(c)))


def set_car_(task, args: Cell) -> bool:
    set_car(car(args), cadr(args))
    return task.return_(cadr(args))


def set_cdr_(task, args: Cell) -> bool:
    set_cdr(car(args), cadr(args))
    return task.return_(cadr(args))


def _cxr(path: str):
    """car/cdr composition named by path, applied right to left as in cadr."""

    def cxr(task, args: Cell) -> bool:
        c = car(args)
        for step in reversed(path):
            c = car(c) if step == "a" else cdr(c)
        return task.return_(c)

    cxr.__name__ = f"c{path}r"
    return cxr


_CXR = [
    "".join(p) for n in range(2, 5) for p in itertools.product("ad", repeat=n)
]


# -------------------------------
# Conduits
# -------------------------------
def channel(task, args: Cell) -> bool:
    capacity = int_of(car(args)) if args is not Null else 0
    return task.return_(Channel(capacity))


def pipe(task, args: Cell) -> bool:
    return task.return_(Pipe())


def open_(task, args: Cell) -> bool:
    """(open mode path): a pipe reading and/or writing a file."""
    mode, path = raw(car(args)), raw(cadr(args))
    try:
        f = open(path, mode)
    except (OSError, ValueError) as e:
        raise ConchRuntimeError(f"open {path}: {e}") from e
    if "+" in mode:
        return task.return_(Pipe(f, f))
    if "r" in mode:
        return task.return_(Pipe(r=f))
    return task.return_(Pipe(w=f))


def _print(task, text: str) -> None:
    ref, _ = resolve(task.lexical, task.dynamic or task.env0, Symbol("$stdout"))
    out = ref.get() if ref is not None else None
    if isinstance(out, Conduit):
        out.write(Symbol(text))
    else:
        print(text, file=sys.stdout, flush=True)


# -------------------------------
# Tasks and control
# -------------------------------
def wait(task, args: Cell) -> bool:
    """(wait): wait for every child. (wait t...): the results of those tasks."""
    if args is Null:
        task.wait()
        return task.return_(Null)
    children = to_list(args)
    for c in children:
        if not isinstance(c, Task):
            raise ConchTypeError(f"{c} is not a task")
    results = [task.wait_for(c) for c in children]
    if len(results) == 1:
        return task.return_(results[0])
    return task.return_(list_of(*results))


def exit_(task, args: Cell) -> bool:
    task.dump = list_of(car(args) if args is not Null else SUCCESS)
    task.stop()
    return True


def fatal(task, args: Cell) -> bool:
    task.dump = list_of(car(args) if args is not Null else FAILURE)
    task.replace_states(State.FATAL)
    return True


def source(task, args: Cell) -> bool:
    """(source path): evaluate the forms of a file in the caller's scope."""
    if args is Null:
        raise ConchArityError("source expects a file name")
    path = raw(car(args))
    try:
        with open(path) as f:
            text = f.read()
    except OSError as e:
        raise ConchRuntimeError(f"source {path}: {e}") from e
    _logger.debug("sourcing %s", path)
    forms = read_all(text)
    task.return_(SUCCESS)
    task.replace_states(State.EVAL_BLOCK)
    task.code = list_of(*forms)
    return True


def apply(task, args: Cell) -> bool:
    """(apply f arg...): call f with already evaluated arguments."""
    if args is Null:
        raise ConchArityError("apply expects something to call")
    return task.apply_values(car(args), cdr(args))


def _describe(thrown: Cell) -> tuple[str, int, str, int]:
    if isinstance(thrown, Object):
        def member(name, default):
            ref = thrown.access(name)
            return ref.get() if ref is not None else default

        message = raw(member("message", String("")))
        status = member("status", FAILURE)
        file = raw(member("file", String("")))
        line = member("line", Integer(-1))
        status = status.to_int() if isinstance(status, Atom) else 1
        return message, status, file, line.to_int() if isinstance(line, Atom) else -1
    return raw(thrown), 1, "", -1


def report_throw(task, args: Cell) -> bool:
    """Default `throw`: report the error and end the run unsuccessfully."""
    message, status, file, line = _describe(car(args))
    file = file or task.file or "conch"
    line = line if line >= 0 else task.line
    print(f"{file}: {line}: {message}", file=sys.stderr, flush=True)
    _logger.debug("uncaught error in task %d at %s:%d: %s", task.id, file, line, message)
    if task.problem is None:
        task.problem = ConchRuntimeError(message, status)
    task.return_(Status(status))
    task.replace_states(State.FATAL)
    return True


def match(task, args: Cell) -> bool:
    """(match pattern text...): true when every text matches the glob pattern."""
    items = _at_least(args, 2, "match")
    pattern = raw(items[0])
    return task.return_(Boolean(all(fnmatch.fnmatchcase(raw(c), pattern) for c in items[1:])))


def get_line_number(task, args: Cell) -> bool:
    return task.return_(Integer(task.line))


def get_source_file(task, args: Cell) -> bool:
    return task.return_(String(task.file))


# -------------------------------
# Shell builtins
# -------------------------------
def cd(task, args: Cell) -> bool:
    if args is Null:
        path = task.home() or os.path.expanduser("~")
    else:
        path = raw(car(args))
        if path == "-":
            ref = (task.dynamic or task.env0).access("$OLDPWD")
            if ref is None:
                raise ConchRuntimeError("cd: OLDPWD not set")
            path = raw(ref.get())
    return task.chdir(path)


def exists(task, args: Cell) -> bool:
    found = args is not Null and all(os.path.exists(raw(c)) for c in iterate(args))
    return task.return_(TRUE if found else FALSE)


def debug(task, args: Cell) -> bool:
    """(debug [on|off|LEVEL]): set the level of the conch loggers."""
    word = raw(car(args)).upper() if args is not Null else "ON"
    level = {"ON": logging.DEBUG, "OFF": logging.WARNING}.get(word, word)
    try:
        logging.getLogger("conch").setLevel(level)
    except (ValueError, TypeError) as e:
        raise ConchRuntimeError(f"debug: {e}") from e
    return task.return_(SUCCESS)


def command(task, args: Cell) -> bool:
    """(command name args...): run name as an external program."""
    if args is Null:
        raise ConchArityError("command expects a program name")
    set_car(task.dump, car(args))
    task.dump = Pair(EXTERNAL, task.dump)
    return task.external(cdr(args))


def _interpreter(task):
    interp = task.interpreter
    if interp is None:
        raise ConchRuntimeError("no job control in this task")
    return interp


def _job_number(interp, args: Cell) -> int:
    if args is Null:
        if not interp.jobs:
            raise ConchRuntimeError("no current job")
        return max(interp.jobs)
    text = raw(car(args)).lstrip("%")
    try:
        return int(text)
    except ValueError:
        raise ConchRuntimeError(f"{text}: no such job") from None


def jobs(task, args: Cell) -> bool:
    interp = _interpreter(task)
    for n, t in sorted(interp.live_jobs().items()):
        _print(task, f"[{n}]\t{t.job.command}")
    return task.return_(SUCCESS)


def fg(task, args: Cell) -> bool:
    interp = _interpreter(task)
    interp.foreground(_job_number(interp, args))
    return task.return_(SUCCESS)


def bg(task, args: Cell) -> bool:
    interp = _interpreter(task)
    interp.resume_job(_job_number(interp, args))
    return task.return_(SUCCESS)


# -------------------------------
# Registration
# -------------------------------
def register(scope: Scope, env: Env, strict: bool = False) -> None:
    methods = {
        "add": add,
        "sub": sub,
        "mul": mul,
        "div": div,
        "mod": mod,
        "eq": eq,
        "ne": ne,
        "lt": _relation("lt", lambda r: r < 0),
        "le": _relation("le", lambda r: r <= 0),
        "gt": _relation("gt", lambda r: r > 0),
        "ge": _relation("ge", lambda r: r >= 0),
        "not": not_,
        "is": is_,
        "cons": cons,
        "car": car_,
        "cdr": cdr_,
        "list": list_,
        "append": append,
        "reverse": reverse_,
        "length": length_,
        "set-car": set_car_,
        "set-cdr": set_cdr_,
        "channel": channel,
        "pipe": pipe,
        "open": open_,
        "wait": wait,
        "exit": exit_,
        "fatal": fatal,
        "source": source,
        "apply": apply,
        "match": match,
        "get-line-number": get_line_number,
        "get-source-file": get_source_file,
    }
    for name, test in _PREDICATES.items():
        methods[name] = _unary(name, test, True)
    for path in _CXR:
        methods[f"c{path}r"] = _cxr(path)
    for name, make in _GENERATORS.items():
        methods[name] = _unary(name, make, False)
    for name, fn in methods.items():
        scope.define_method(name, fn)

    for name, fn in {
        "bg": bg,
        "cd": cd,
        "command": command,
        "debug": debug,
        "exists": exists,
        "fg": fg,
        "jobs": jobs,
    }.items():
        scope.define_builtin(name, fn)

    for name, value in (("true", TRUE), ("false", FALSE), ("#t", TRUE), ("#f", FALSE)):
        scope.env.add_constant(Symbol(name), value)
    scope.define(Symbol("strict"), Boolean(strict))
    scope.env.add_constant(Symbol("_pid_"), Integer(os.getpid()))
    scope.env.add_constant(Symbol("_platform_"), Symbol(process.platform()))

    env.add(Symbol("throw"), Unbound(Method(report_throw)))
    for k, v in os.environ.items():
        env.add("$" + k, Symbol(v))
    if env.access("$PWD") is None:
        env.add("$PWD", Symbol(os.getcwd()))
    env.add("$stdin", Pipe(sys.stdin, None))
    env.add("$stdout", Pipe(None, sys.stdout))
    env.add("$stderr", Pipe(None, sys.stderr))
