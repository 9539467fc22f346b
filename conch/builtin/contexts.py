"""Method scopes shared by objects, strings, pairs and conduits.

Cells that are not contexts themselves answer `x::name` through one of these
scopes; the method receives the cell as its receiver (`task.self_()`).
"""

from __future__ import annotations

from conch.errors import ConchRuntimeError, ConchTypeError, ConchUndefined
from conch.evaluation.states import SAVE_LEXICAL, State
from conch.types.cell import FALSE, TRUE, Cell, Integer, String, Symbol, int_of, is_number, raw
from conch.types.conduit import Conduit
from conch.types.pair import (
    Null,
    Pair,
    car,
    cdr,
    from_iterable,
    iterate,
    length,
    list_of,
    reverse,
    set_car,
    set_cdr,
    slice_list,
    tail,
    to_list,
)
from conch.types.scope import Object, Scope, register_type_context, to_context


def _receiver(task) -> Cell:
    s = task.self_()
    if s is None:
        raise ConchTypeError("method needs a receiver")
    return s


def _index(c: Cell) -> int:
    return int_of(c)


def _keys(scope: Scope) -> Cell:
    names = sorted(set(scope.faces().complete()) | set(scope.faces().prev.complete()))
    return list_of(*(Symbol(n) for n in names))


# -------------------------------
# Object methods
# -------------------------------
def obj_child(task, args: Cell) -> bool:
    s = to_context(_receiver(task)).expose()
    return task.return_(Object(Scope(s)))


def obj_clone(task, args: Cell) -> bool:
    s = to_context(_receiver(task)).expose()
    return task.return_(Object(s.copy()))


def obj_context(task, args: Cell) -> bool:
    return task.return_(Object(to_context(_receiver(task))))


def obj_eval(task, args: Cell) -> bool:
    """Evaluate the first argument with the receiver as the lexical scope."""
    s = to_context(_receiver(task)).expose()
    task.remove_state()
    if task.lexical is not s:
        task.new_states(SAVE_LEXICAL)
        task.lexical = s
    task.new_states(State.EVAL_ELEMENT)
    task.code = car(args)
    task.dump = cdr(task.dump)
    return True


def obj_has(task, args: Cell) -> bool:
    c = to_context(_receiver(task))
    return task.return_(TRUE if c.access(car(args)) is not None else FALSE)


def obj_keys(task, args: Cell) -> bool:
    c = to_context(_receiver(task))
    if isinstance(c, Object):
        names = sorted(set(c.faces().prev.complete()))
        return task.return_(list_of(*(Symbol(n) for n in names)))
    return task.return_(_keys(c.expose()))


def obj_get(task, args: Cell) -> bool:
    key = car(args)
    ref = to_context(_receiver(task)).access(key)
    if ref is None:
        raise ConchUndefined(raw(key))
    return task.return_(ref.get())


def obj_set(task, args: Cell) -> bool:
    key, value = car(args), car(cdr(args))
    c = to_context(_receiver(task))
    ref = c.access(key)
    if ref is not None:
        ref.set(value)
    else:
        c.public(key, value)
    return task.return_(value)


def obj_del(task, args: Cell) -> bool:
    removed = to_context(_receiver(task)).remove(car(args))
    return task.return_(TRUE if removed else FALSE)


# -------------------------------
# String methods
# -------------------------------
def _text(task) -> str:
    s = _receiver(task)
    if not isinstance(s, (String, Symbol)):
        raise ConchTypeError(f"not a string: {s}")
    return s.v


def str_join(task, args: Cell) -> bool:
    if length(args) == 1 and isinstance(car(args), Pair):
        args = car(args)
    return task.return_(String(_text(task).join(raw(c) for c in iterate(args))))


def str_length(task, args: Cell) -> bool:
    return task.return_(Integer(len(_text(task))))


def str_slice(task, args: Cell) -> bool:
    text = _text(task)
    start = _index(car(args)) if args is not Null else 0
    end = _index(car(cdr(args))) if length(args) > 1 else None
    return task.return_(String(text[start:end]))


def str_split(task, args: Cell) -> bool:
    sep = _text(task)
    if not sep:
        raise ConchRuntimeError("empty separator")
    parts = raw(car(args)).split(sep) if args is not Null else []
    return task.return_(list_of(*(String(p) for p in parts)))


def _format_arg(c: Cell):
    if is_number(c):
        r = c.rat()
        return int(r) if r.denominator == 1 else float(r)
    return raw(c)


def str_sprintf(task, args: Cell) -> bool:
    """printf-style formatting with the receiver as the format string."""
    values = tuple(_format_arg(c) for c in iterate(args))
    try:
        return task.return_(String(_text(task) % values))
    except (TypeError, ValueError) as e:
        raise ConchRuntimeError(f"sprintf: {e}") from e


def str_to_list(task, args: Cell) -> bool:
    return task.return_(list_of(*(String(ch) for ch in _text(task))))


# -------------------------------
# Pair methods
# -------------------------------
def _pair(task) -> Cell:
    p = _receiver(task)
    if not isinstance(p, Pair):
        raise ConchTypeError(f"not a list: {p}")
    return p


def pair_append(task, args: Cell) -> bool:
    return task.return_(from_iterable(to_list(_pair(task)) + to_list(args)))


def pair_get(task, args: Cell) -> bool:
    return task.return_(car(tail(_pair(task), _index(car(args)))))


def pair_head(task, args: Cell) -> bool:
    return task.return_(car(_pair(task)))


def pair_length(task, args: Cell) -> bool:
    return task.return_(Integer(length(_pair(task))))


def pair_reverse(task, args: Cell) -> bool:
    return task.return_(reverse(_pair(task)))


def pair_set(task, args: Cell) -> bool:
    value = car(cdr(args))
    set_car(tail(_pair(task), _index(car(args))), value)
    return task.return_(value)


def pair_set_tail(task, args: Cell) -> bool:
    p = _pair(task)
    set_cdr(p, car(args))
    return task.return_(p)


def pair_slice(task, args: Cell) -> bool:
    start = _index(car(args)) if args is not Null else 0
    end = _index(car(cdr(args))) if length(args) > 1 else None
    return task.return_(slice_list(_pair(task), start, end))


def pair_tail(task, args: Cell) -> bool:
    return task.return_(cdr(_pair(task)))


def pair_to_string(task, args: Cell) -> bool:
    return task.return_(String("".join(raw(c) for c in iterate(_pair(task)))))


# -------------------------------
# Conduit methods
# -------------------------------
def _conduit(task) -> Conduit:
    c = _receiver(task)
    if not isinstance(c, Conduit):
        raise ConchTypeError(f"not a conduit: {c}")
    return c


def conduit_close(task, args: Cell) -> bool:
    _conduit(task).close()
    return task.return_(TRUE)


def conduit_read(task, args: Cell) -> bool:
    return task.return_(_conduit(task).read())


def conduit_readline(task, args: Cell) -> bool:
    return task.return_(_conduit(task).readline())


def conduit_write(task, args: Cell) -> bool:
    """Write the arguments as one line, separated by spaces."""
    c = _conduit(task)
    if length(args) == 1:
        c.write(car(args))
    else:
        c.write(Symbol(" ".join(raw(a) for a in iterate(args))))
    return task.return_(TRUE)


def conduit_reader_close(task, args: Cell) -> bool:
    _conduit(task).reader_close()
    return task.return_(TRUE)


def conduit_writer_close(task, args: Cell) -> bool:
    _conduit(task).writer_close()
    return task.return_(TRUE)


def scope_keys(task, args: Cell) -> bool:
    scope = to_context(_receiver(task)).expose()
    return task.return_(list_of(*(Symbol(n) for n in sorted(scope.faces().prev.hash))))


# -------------------------------
# Registration
# -------------------------------
def _install(scope: Scope, methods: dict) -> Scope:
    for name, fn in methods.items():
        scope.public_method(name, fn)
    return scope


object_scope = _install(Scope(), {
    "child": obj_child,
    "clone": obj_clone,
    "context": obj_context,
    "eval": obj_eval,
    "has": obj_has,
    "keys": obj_keys,
    "_get_": obj_get,
    "_set_": obj_set,
    "_del_": obj_del,
})

string_scope = _install(Scope(object_scope), {
    "join": str_join,
    "keys": scope_keys,
    "length": str_length,
    "slice": str_slice,
    "split": str_split,
    "sprintf": str_sprintf,
    "to-list": str_to_list,
})

pair_scope = _install(Scope(object_scope), {
    "append": pair_append,
    "get": pair_get,
    "head": pair_head,
    "keys": scope_keys,
    "length": pair_length,
    "reverse": pair_reverse,
    "set": pair_set,
    "set-tail": pair_set_tail,
    "slice": pair_slice,
    "tail": pair_tail,
    "to-string": pair_to_string,
})

conduit_scope = _install(Scope(object_scope), {
    "close": conduit_close,
    "keys": scope_keys,
    "read": conduit_read,
    "readline": conduit_readline,
    "write": conduit_write,
    "reader-close": conduit_reader_close,
    "writer-close": conduit_writer_close,
})

register_type_context(String, lambda: string_scope)
register_type_context(Symbol, lambda: string_scope)
register_type_context(Pair, lambda: pair_scope)
register_type_context(Conduit, lambda: conduit_scope)


def new_object() -> Object:
    """An empty object whose methods come from the object scope."""
    return Object(Scope(object_scope))
