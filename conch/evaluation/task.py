"""The evaluator: a task owns a register set and runs the dispatch loop.

All evaluation state lives on the control stack, never on the Python call
stack, so a task can be suspended between any two ticks and continuations are
plain snapshots of the operand and control stacks.
"""

from __future__ import annotations

import itertools
import logging
import os
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from conch.errors import (
    ConchArityError,
    ConchError,
    ConchNotExecutable,
    ConchNotFound,
    ConchRuntimeError,
    ConchSyntaxError,
    ConchTypeError,
    ConchUndefined,
)
from conch.evaluation.action import Action
from conch.evaluation.expand import expand
from conch.evaluation.job import Job
from conch.evaluation.registers import Registers
from conch.evaluation.states import (
    NEXT,
    SAVE_CAR_CODE,
    SAVE_CDR_CODE,
    SAVE_CODE,
    SAVE_DYNAMIC,
    SAVE_LEXICAL,
    SAVE_MAX,
    State,
)
from conch.system import process
from conch.types.cell import (
    FAILURE,
    SUCCESS,
    Cell,
    Integer,
    Status,
    String,
    Symbol,
    cache_symbols,
    is_atom,
    raw,
)
from conch.types.closure import Binding, Builtin, Bound, Closure, Method, Syntax, Unbound
from conch.types.conduit import Conduit, Pipe
from conch.types.continuation import Continuation
from conch.types.handles import handles
from conch.types.pair import (
    Null,
    Pair,
    car,
    cdr,
    cadr,
    cddr,
    caddr,
    is_cons,
    is_simple,
    iterate,
    length,
    list_of,
    set_car,
)
from conch.types.scope import Env, Object, as_context, resolve, to_context

_logger = logging.getLogger("conch.task")

cache_symbols("else", "throw", "return", "strict", "$HOME", "$PWD", "$OLDPWD")

AS = Symbol("as")
ELSE = Symbol("else")
RETURN = Symbol("return")
STRICT = Symbol("strict")
THROW = Symbol("throw")

# Consecutive error conversions allowed without a handler intercepting one.
MAX_RETHROW = 16

_task_ids = itertools.count(1)


class RunSignal:
    CONTINUE = 0  # keep the frame; the top of the stack says what is next
    REMOVE = 1  # phase finished; pop its frame
    DONE = 2  # the end marker was reached
    FATAL = 3


@dataclass
class Message:
    cmd: Cell
    file: str = ""
    line: int = -1


@dataclass
class Result:
    value: Optional[Cell]
    status: int
    error: Optional[ConchError] = None


def _is_symbol(c: Cell, name: str) -> bool:
    return isinstance(c, Symbol) and c.v == name


def _is_member(c: Cell) -> bool:
    return is_cons(c) and is_atom(c.cdr)


def _is_separator(c: Cell) -> bool:
    return _is_symbol(c, "=") or _is_symbol(c, "as")


class Task(Registers, Cell):
    """An independently schedulable evaluation with its own registers."""

    def __init__(
        self,
        code: Cell = Null,
        lexical: Optional[Cell] = None,
        dynamic: Optional[Env] = None,
        parent: Optional[Task] = None,
    ):
        super().__init__(
            code=code,
            dump=list_of(SUCCESS),
            stack=list_of(Integer(State.EVAL_BLOCK)),
            dynamic=dynamic,
            lexical=lexical,
        )
        self.id = next(_task_ids)
        self.job = parent.job if parent is not None else Job()
        self.parent = parent
        self.interpreter = parent.interpreter if parent is not None else None
        self.children: dict[Task, bool] = {}
        self.children_lock = threading.Lock()
        self.action = Action()
        self.done = threading.Event()
        self.messages: queue.Queue = queue.Queue(maxsize=1)
        self.results: queue.Queue = queue.Queue()
        self.pid = 0
        self.pid_lock = threading.Lock()
        self.file = parent.file if parent is not None else ""
        self.line = parent.line if parent is not None else 0
        self.problem: Optional[ConchError] = None
        self.result: Cell = Null
        self._end: Optional[Cell] = None
        self.rethrows = 0

        env0 = dynamic
        while env0 is not None and env0.prev is not None:
            env0 = env0.prev
        self.env0 = env0

        if parent is not None:
            with parent.children_lock:
                parent.children[self] = True

        self._dispatch: dict[int, Callable[[int], int]] = {}
        self._init_dispatch()

    def __str__(self) -> str:
        return handles.token("task", self)

    def __repr__(self) -> str:
        return f"Task({self.id})"

    def _init_dispatch(self) -> None:
        d = self._dispatch
        d[State.CHANGE_CONTEXT] = self.op_change_context
        d[State.EVAL_ARGUMENTS] = self.op_eval_arguments
        d[State.EVAL_ARGUMENTS_BUILTIN] = self.op_eval_arguments
        d[State.EVAL_BLOCK] = self.op_eval_block
        d[State.EVAL_COMMAND] = self.op_eval_command
        d[State.EVAL_ELEMENT] = self.op_eval_element
        d[State.EVAL_ELEMENT_BUILTIN] = self.op_eval_element
        d[State.EVAL_MEMBER] = self.op_eval_element
        d[State.EXEC_BUILTIN] = self.op_exec_builtin
        d[State.EXEC_COMMAND] = self.op_exec_command
        d[State.EXEC_DEFINE] = self.op_exec_define
        d[State.EXEC_DYNAMIC] = self.op_exec_dynamic
        d[State.EXEC_IF] = self.op_exec_if
        d[State.EXEC_METHOD] = self.op_exec_builtin
        d[State.EXEC_PUBLIC] = self.op_exec_define
        d[State.EXEC_REDIRECT] = self.op_exec_redirect
        d[State.EXEC_REDIRECT_CLEANUP] = self.op_exec_redirect_cleanup
        d[State.EXEC_SET] = self.op_exec_set
        d[State.EXEC_SETENV] = self.op_exec_dynamic
        d[State.EXEC_SPLICE] = self.op_exec_splice
        d[State.EXEC_SYNTAX] = self.op_exec_syntax
        d[State.EXEC_WHILE_BODY] = self.op_exec_if
        d[State.EXEC_WHILE_TEST] = self.op_exec_while_test
        d[State.FATAL] = self.op_fatal
        d[State.RETURN] = self.op_return

    # --- Dispatch loop ---

    def run(self, end: Optional[Cell] = None) -> int:
        """Run until the stack empties or `end` is reached.

        Returns 0 on success, 1 when an error ended the run and -1 when the
        program asked for a fatal exit.
        """
        self._end = end
        self.rethrows = 0
        while self.runnable() and self.stack is not Null:
            try:
                signal = self.step()
            except ConchError as e:
                self.rethrows += 1
                if self.rethrows > MAX_RETHROW:
                    _logger.error("giving up after repeated errors: %s", e)
                    self.problem = e
                    return 1
                self.throw(e)
                continue
            except Exception as e:
                _logger.exception("internal error in task %d", self.id)
                self.problem = ConchRuntimeError(f"internal error: {e}")
                return 1

            if signal == RunSignal.REMOVE:
                self.remove_state()
            elif signal == RunSignal.DONE:
                return 0
            elif signal == RunSignal.FATAL:
                return 1 if self.problem is not None else -1
        return 0

    def step(self) -> int:
        state = self.get_state()
        handler = self._dispatch.get(state)
        if handler is not None:
            return handler(state)
        if state >= SAVE_MAX:
            raise ConchRuntimeError(f"command not found: {self.code}")
        self.restore_state()
        return RunSignal.CONTINUE

    def op_change_context(self, state: int) -> int:
        self.lexical = car(self.dump)
        self.dynamic = None
        self.dump = cdr(self.dump)
        return RunSignal.REMOVE

    def op_exec_builtin(self, state: int) -> int:
        args = self.arguments()
        if state == State.EXEC_BUILTIN:
            args = expand(args, self.home())
        self.code = args
        return self.op_exec_syntax(state)

    def op_exec_syntax(self, state: int) -> int:
        m = car(self.dump)
        if m.ref.applier(self, self.code):
            return RunSignal.CONTINUE
        return RunSignal.REMOVE

    def op_exec_if(self, state: int) -> int:
        if not car(self.dump):
            code = cdr(self.code)
            while is_cons(code) and not _is_symbol(car(code), "else"):
                code = cdr(code)
            if not is_cons(code):
                if state == State.EXEC_IF:
                    raise ConchSyntaxError("expected 'else'")
                return RunSignal.REMOVE
            if is_cons(cdr(code)) and _is_symbol(cadr(code), "if"):
                code = list_of(ELSE, cdr(code))
            self.code = code

        if cdr(self.code) is Null:
            return RunSignal.REMOVE

        self.replace_states(*NEXT[state])
        self.code = cdr(self.code)
        return self.op_eval_block(State.EVAL_BLOCK)

    def op_eval_block(self, state: int) -> int:
        if self._end is not None and self.code is self._end:
            return RunSignal.DONE

        code = self.code
        if not is_cons(code) or _is_symbol(car(code), "else"):
            return RunSignal.REMOVE

        form = code.car
        rest = code.cdr
        command = is_cons(form) and not _is_member(form)
        phase = State.EVAL_COMMAND if command else State.EVAL_ELEMENT

        if rest is Null or (is_cons(rest) and _is_symbol(rest.car, "else")):
            self.replace_states(phase)
        else:
            self.new_states(SAVE_CDR_CODE, phase)

        self.code = form
        self.dump = cdr(self.dump)

        if command:
            return self.op_eval_command(phase)
        return self.op_eval_element(phase)

    def op_eval_command(self, state: int) -> int:
        if self.code is Null:
            self.dump = Pair(Null, self.dump)
            return RunSignal.REMOVE

        self.replace_states(State.EXEC_COMMAND, SAVE_CDR_CODE, State.EVAL_ELEMENT)
        self.code = car(self.code)
        return RunSignal.CONTINUE

    def op_exec_command(self, state: int) -> int:
        head = car(self.dump)
        if isinstance(head, (String, Symbol)):
            self.dump = Pair(EXTERNAL, self.dump)
            self.replace_states(State.EXEC_BUILTIN, State.EVAL_ARGUMENTS_BUILTIN)
        elif isinstance(head, Binding):
            closure = head.ref
            if isinstance(closure, Builtin):
                self.replace_states(State.EXEC_BUILTIN, State.EVAL_ARGUMENTS_BUILTIN)
            elif isinstance(closure, Method):
                self.replace_states(State.EXEC_METHOD, State.EVAL_ARGUMENTS)
            elif isinstance(closure, Syntax):
                self.replace_states(State.EXEC_SYNTAX)
                return RunSignal.CONTINUE
            else:
                raise ConchRuntimeError(f"can't evaluate: {head}")
        elif isinstance(head, Continuation):
            self.replace_states(State.RETURN, State.EVAL_ARGUMENTS)
        else:
            raise ConchRuntimeError(f"can't evaluate: {head}")

        self.dump = Pair(None, self.dump)
        return self.op_eval_arguments(self.get_state())

    def op_eval_arguments(self, state: int) -> int:
        if self.code is Null:
            return RunSignal.REMOVE

        self.new_states(*NEXT[state])
        self.code = car(self.code)
        return self.op_eval_element(self.get_state())

    def op_eval_element(self, state: int) -> int:
        code = self.code
        if code is Null:
            self.dump = Pair(Null, self.dump)
            return RunSignal.REMOVE

        if isinstance(code, Pair):
            if is_atom(code.cdr):
                self.replace_states(
                    SAVE_DYNAMIC | SAVE_LEXICAL,
                    State.EVAL_MEMBER,
                    State.CHANGE_CONTEXT,
                    SAVE_CDR_CODE,
                    State.EVAL_ELEMENT,
                )
                self.code = code.car
            else:
                self.replace_states(State.EVAL_COMMAND)
            return RunSignal.CONTINUE

        if isinstance(code, Symbol):
            self.lookup(code, state == State.EVAL_ELEMENT_BUILTIN)
        else:
            self.dump = Pair(code, self.dump)
        return RunSignal.REMOVE

    def op_exec_define(self, state: int) -> int:
        context = to_context(self.lexical)
        if state == State.EXEC_DEFINE:
            context.define(self.code, car(self.dump))
        else:
            context.public(self.code, car(self.dump))
        return RunSignal.REMOVE

    def op_exec_dynamic(self, state: int) -> int:
        k = self.code
        v = car(self.dump)
        if state == State.EXEC_SETENV:
            name = raw(k)
            if not name.startswith("$"):
                raise ConchSyntaxError("environment variable names must begin with '$'")
            os.environ[name[1:]] = raw(v)
            self.env0.add(k, v)
        else:
            self.dynamic.add(k, v)
        return RunSignal.REMOVE

    def op_exec_set(self, state: int) -> int:
        k = self.code
        v = car(self.dump)
        ref, _ = resolve(self.lexical, self.dynamic, k)
        if ref is not None:
            ref.set(v)
        elif self.strict() or isinstance(self.lexical, Object):
            raise ConchUndefined(raw(k))
        else:
            to_context(self.lexical).define(k, v)
        return RunSignal.REMOVE

    def op_exec_splice(self, state: int) -> int:
        v = car(self.dump)
        self.dump = cdr(self.dump)
        if not isinstance(v, Pair):
            self.dump = Pair(v, self.dump)
        for item in iterate(v):
            self.dump = Pair(item, self.dump)
        return RunSignal.REMOVE

    def op_exec_redirect(self, state: int) -> int:
        name, mode, body = car(self.code), raw(cadr(self.code)), cddr(self.code)
        target = car(self.dump)
        if isinstance(target, Conduit):
            conduit = target
        else:
            path = raw(target)
            try:
                f = open(path, mode)
            except OSError as e:
                raise ConchRuntimeError(f"{path}: {e}") from e
            conduit = Pipe(r=f) if mode == "r" else Pipe(w=f)
            conduit.implicit = True
        _logger.debug("task %d: %s redirected to %s", self.id, name, conduit)

        # The conduit stays beneath the body's value until cleanup.
        set_car(self.dump, conduit)
        self.dynamic = Env(self.dynamic or self.env0)
        self.dynamic.add(name, conduit)
        self.replace_states(State.EVAL_BLOCK)
        self.dump = Pair(Null, self.dump)
        self.code = body
        return RunSignal.CONTINUE

    def op_exec_redirect_cleanup(self, state: int) -> int:
        result = car(self.dump)
        conduit = cadr(self.dump)
        if isinstance(conduit, Pipe) and conduit.implicit:
            conduit.close()
        self.dump = Pair(result, cddr(self.dump))
        return RunSignal.REMOVE

    def op_exec_while_test(self, state: int) -> int:
        self.replace_states(State.EXEC_WHILE_BODY, SAVE_CODE, State.EVAL_ELEMENT)
        self.code = car(self.code)
        self.dump = cdr(self.dump)
        return RunSignal.CONTINUE

    def op_fatal(self, state: int) -> int:
        return RunSignal.FATAL

    def op_return(self, state: int) -> int:
        args = self.arguments()
        k = car(self.dump)
        self.stack = k.stack
        self.dump = Pair(car(args), k.dump)
        return RunSignal.REMOVE

    # --- Lookup and application ---

    def self_(self) -> Cell | None:
        return car(self.dump).self_()

    def strict(self) -> bool:
        ref, _ = resolve(self.lexical, None, STRICT)
        return ref is not None and bool(ref.get())

    def lookup(self, sym: Symbol, simple: bool) -> None:
        ref, owner = resolve(self.lexical, self.dynamic, sym)
        if ref is None:
            if self.get_state() == State.EVAL_MEMBER or (
                self.strict() and not sym.is_numeric()
            ):
                raise ConchUndefined(sym.v)
            self.dump = Pair(sym, self.dump)
            return

        v = ref.get()
        if simple and not is_simple(v):
            v = sym
        elif isinstance(v, Binding) and owner is not None:
            v = v.bind(owner)
        self.dump = Pair(v, self.dump)

    def apply(self, args: Cell) -> bool:
        """Applier of closures written in conch itself."""
        m = car(self.dump)
        closure: Closure = m.ref
        caller = self.lexical
        set_car(self.dump, Null)

        self.replace_states(SAVE_DYNAMIC | SAVE_LEXICAL, State.EVAL_BLOCK)
        self.new_block(self.dynamic, closure.scope)
        self.code = closure.body

        context = self.lexical
        if closure.clabel is not Null:
            context.define(closure.clabel, caller)

        if closure.slabel is not Null:
            receiver = m.self_()
            if receiver is not None and as_context(receiver) is not None:
                receiver = to_context(receiver).expose()
            context.define(closure.slabel, receiver if receiver is not None else Null)

        params = closure.params
        while params is not Null:
            p = car(params)
            if is_cons(p):
                context.define(car(p), args)
                args = Null
                break
            if args is Null:
                raise ConchArityError(f"expected {length(closure.params)} arguments")
            context.define(p, car(args))
            args, params = cdr(args), cdr(params)
        if args is not Null:
            raise ConchArityError(f"too many arguments, expected {length(closure.params)}")

        context.define(RETURN, Continuation(cdr(self.dump), self.stack))
        return True

    def apply_values(self, head: Cell, values: Cell) -> bool:
        """Call `head` with arguments that are already evaluated."""
        set_car(self.dump, head)
        if isinstance(head, (String, Symbol)):
            self.dump = Pair(EXTERNAL, self.dump)
            state = State.EXEC_BUILTIN
        elif isinstance(head, Binding) and isinstance(head.ref, Builtin):
            state = State.EXEC_BUILTIN
        elif isinstance(head, Binding) and isinstance(head.ref, Method):
            state = State.EXEC_METHOD
        elif isinstance(head, Binding) and isinstance(head.ref, Syntax):
            self.replace_states(State.EXEC_SYNTAX)
            self.code = values
            return True
        elif isinstance(head, Continuation):
            state = State.RETURN
        else:
            raise ConchTypeError(f"can't apply: {head}")

        self.replace_states(state)
        self.dump = Pair(None, self.dump)
        for v in iterate(values):
            self.dump = Pair(v, self.dump)
        return True

    def make_closure(self, flavor: type[Closure], code: Cell) -> Binding:
        """Build a closure from `[label] (params) [caller-label] = body...`."""
        label: Cell = Null
        if isinstance(car(code), Symbol) and not _is_separator(car(code)):
            label = car(code)
            code = cdr(code)

        params = car(code)
        if not isinstance(params, Pair):
            raise ConchSyntaxError("expected a parameter list")
        code = cdr(code)

        clabel: Cell = Null
        if isinstance(car(code), Symbol) and not _is_separator(car(code)):
            clabel = car(code)
            code = cdr(code)

        if not _is_separator(car(code)):
            raise ConchSyntaxError("expected '=' or 'as'")

        closure = flavor(Task.apply, cdr(code), clabel, params, label, to_context(self.lexical))
        if label is Null:
            return Unbound(closure)
        return Bound(closure, self.lexical)

    def closure(self, flavor: type[Closure]) -> bool:
        return self.return_(self.make_closure(flavor, self.code))

    def _binding_target(self, name: Cell) -> None:
        if not isinstance(name, Symbol):
            raise ConchSyntaxError(f"cannot bind to {name}")
        if self.strict() and name.is_numeric():
            raise ConchSyntaxError(f"numeric literal used as a name: {name}")

    def _value_form(self, code: Cell) -> Cell:
        n = length(code)
        if n == 3:
            if not _is_symbol(cadr(code), "="):
                raise ConchSyntaxError("expected '='")
            return caddr(code)
        if n > 3:
            raise ConchSyntaxError("expected '='")
        return cadr(code) if n == 2 else Null

    def lexical_var(self, state: int) -> bool:
        """Shared body of `define` and `public`."""
        code = self.code
        name = car(code)
        self._binding_target(name)

        receiver = self.self_()
        s = to_context(receiver if receiver is not None else self.lexical).expose()

        if _is_symbol(cadr(code), "as"):
            rest = cddr(code)
            binding = self.make_closure(Method, Pair(car(rest), Pair(AS, cdr(rest))))
            if state == State.EXEC_DEFINE:
                s.define(name, binding)
            else:
                s.public(name, binding)
            return self.return_(binding)

        value = self._value_form(code)

        self.remove_state()
        c = self.lexical
        if s is not c:
            self.new_states(SAVE_LEXICAL)
            self.lexical = s
        self.new_states(state)
        if s is not c:
            self.new_states(SAVE_CAR_CODE | SAVE_LEXICAL)
            self.lexical = c
        else:
            self.new_states(SAVE_CAR_CODE)
        self.new_states(State.EVAL_ELEMENT)

        self.code = value
        self.dump = cdr(self.dump)
        return True

    def dynamic_var(self, state: int) -> bool:
        """Shared body of `dynamic` and `setenv`."""
        self._binding_target(car(self.code))
        value = self._value_form(self.code)

        self.replace_states(state, SAVE_CAR_CODE | SAVE_DYNAMIC, State.EVAL_ELEMENT)
        self.code = value
        self.dump = cdr(self.dump)
        return True

    # --- Errors ---

    def exception(self, error: ConchError) -> Object:
        from conch.builtin.contexts import new_object

        obj = new_object()
        obj.public(Symbol("kind"), Symbol(error.kind))
        obj.public(Symbol("status"), Status(error.status))
        obj.public(Symbol("message"), String(error.message))
        obj.public(Symbol("line"), Integer(self.line))
        obj.public(Symbol("file"), String(self.file))
        return obj

    def throw(self, error: ConchError) -> None:
        """Hand `error` to the innermost `throw` handler in the language."""
        _logger.debug("task %d: throwing %s: %s", self.id, error.kind, error.message)
        self.problem = error

        while True:
            ref, _ = resolve(self.lexical, self.dynamic, THROW)
            if ref is not None:
                break
            if self.stack is Null:
                self.dynamic = self.env0
                break
            if self.get_state() < SAVE_MAX:
                self.restore_state()
            else:
                self.remove_state()

        self.new_states(State.FATAL, State.EVAL_BLOCK)
        self.dump = Pair(Null, self.dump)
        self.code = list_of(list_of(THROW, self.exception(error)))

    # --- External commands ---

    def home(self) -> str | None:
        ref, _ = resolve(None, self.dynamic or self.env0, Symbol("$HOME"))
        return raw(ref.get()) if ref is not None else None

    def make_env(self) -> dict[str, str]:
        chain: list[Env] = []
        env = self.dynamic or self.env0
        while env is not None:
            chain.append(env)
            env = env.prev
        exported: dict[str, str] = {}
        for env in reversed(chain):
            for k, v in env.prefixed("$").items():
                if is_atom(v):
                    exported[k[1:]] = raw(v)
        return exported

    def _stdio(self, name: str, writer: bool) -> int | None:
        ref, _ = resolve(self.lexical, self.dynamic or self.env0, Symbol(name))
        if ref is None or not isinstance(ref.get(), Pipe):
            return None
        pipe = ref.get()
        return pipe.write_fd() if writer else pipe.read_fd()

    def chdir(self, path: str) -> bool:
        env = self.dynamic or self.env0
        old = os.getcwd()
        try:
            os.chdir(path)
        except OSError as e:
            _logger.debug("cd %s: %s", path, e)
            return self.return_(FAILURE)
        for name, value in (("$OLDPWD", old), ("$PWD", os.getcwd())):
            ref = env.access(name)
            if ref is not None:
                ref.set(Symbol(value))
            else:
                env.add(name, Symbol(value))
        return self.return_(SUCCESS)

    def external(self, args: Cell) -> bool:
        """Run the program named by the command head."""
        self.dump = cdr(self.dump)
        name = raw(car(self.dump))
        set_car(self.dump, FAILURE)

        env = self.make_env()
        path, executable = process.look_path(name, env.get("PATH"))
        if path is None:
            raise ConchNotFound(f"{name}: command not found")
        if not executable:
            if os.path.isdir(path):
                return self.chdir(path)
            raise ConchNotExecutable(f"{name}: permission denied")

        argv = [name] + [raw(a) for a in iterate(args)]
        attributes = process.ProcessAttributes(
            dir=env.get("PWD"),
            env=env,
            files=(
                self._stdio("$stdin", False),
                self._stdio("$stdout", True),
                self._stdio("$stderr", True),
            ),
        )
        control = process.job_control_enabled()

        with self.job:
            if control:
                attributes.group = self.job.group
            self.job.command = " ".join(argv)
            proc, problem = process.start(path, argv, attributes)
            if proc is not None:
                with self.pid_lock:
                    self.pid = proc.pid
                if control and self.job.group == 0:
                    self.job.group = proc.pid
        if problem is not None:
            raise ConchNotExecutable(f"{name}: {problem}")

        if control:
            process.set_foreground_group(self.job.group)
        status = process.wait(proc)
        if control:
            process.set_foreground_group(os.getpgrp())
            self.job.apply_mode()
        with self.pid_lock:
            self.pid = 0
        return self.return_(status)

    # --- Lifecycle ---

    def runnable(self) -> bool:
        return self.action.runnable()

    def _live_children(self) -> list[Task]:
        with self.children_lock:
            return [k for k, live in self.children.items() if live]

    def forget(self, child: Task) -> None:
        with self.children_lock:
            self.children.pop(child, None)

    def suspend(self) -> None:
        # Children may finish or be stopped concurrently, so every transition
        # here is conditional and never raises.
        for child in self._live_children():
            if not child.action.terminated:
                child.suspend()
        with self.pid_lock:
            if self.pid > 0:
                process.suspend(self.pid)
        self.action.try_suspend()

    def resume(self) -> None:
        for child in self._live_children():
            if not child.action.terminated:
                child.resume()
        with self.pid_lock:
            if self.pid > 0:
                process.resume(self.pid)
        self.action.try_resume()

    def stop(self) -> None:
        for child in self._live_children():
            if not child.action.terminated:
                child.stop()
        with self.pid_lock:
            if self.pid > 0:
                process.terminate(self.pid)
        self.stack = Null
        self.action.finish()
        try:
            self.messages.put_nowait(None)
        except queue.Full:
            # The listener already has work queued and will observe termination.
            pass

    def wait(self) -> None:
        """Wait for every tracked child, then stop tracking them."""
        for child in self._live_children():
            child.done.wait()
            self.forget(child)

    def wait_for(self, child: Task) -> Cell:
        child.done.wait()
        self.forget(child)
        return child.result

    def launch(self, then: Optional[Callable[[], None]] = None) -> None:
        try:
            self.run(None)
        finally:
            self.result = car(self.dump) if self.dump is not Null else Null
            try:
                if then is not None:
                    then()
            finally:
                # Finished children are not tracked; their results stay on the task.
                if self.parent is not None:
                    self.parent.forget(self)
                self.done.set()

    def start(self, then: Optional[Callable[[], None]] = None) -> threading.Thread:
        """Run the task on its own thread, calling `then` once it finishes."""
        thread = threading.Thread(
            target=self.launch, args=(then,), name=f"conch-task-{self.id}", daemon=True
        )
        thread.start()
        return thread

    def evaluate(self, message: Message) -> Result:
        """Evaluate one top-level form, restoring the registers on failure."""
        saved = self.snapshot()
        end = Pair(None, Null)

        if message.file:
            self.file = message.file
        if message.line != -1:
            self.line = message.line

        cursor = self.code
        cursor.car = message.cmd
        cursor.cdr = end

        self.code = end
        cmd = message.cmd
        if is_cons(cmd) and not _is_member(cmd):
            self.new_states(SAVE_CODE, State.EVAL_COMMAND)
        else:
            self.new_states(SAVE_CODE, State.EVAL_ELEMENT)
        self.code = cmd
        self.problem = None

        status = self.run(end)
        if self.action.terminated:
            value = car(self.dump) if self.dump is not Null else Null
            return Result(value, 0)
        if status != 0:
            value = car(self.dump) if status < 0 and self.dump is not Null else None
            self.restore(saved)
            self.code.car = None
            self.code.cdr = Null
            return Result(value, status, self.problem)

        value = car(self.dump)
        self.dump = cdr(self.dump)
        return Result(value, 0)

    def listen(self) -> None:
        """Serve evaluation messages until the task is stopped."""
        self.code = Pair(None, Null)
        try:
            while not self.action.terminated:
                message = self.messages.get()
                if message is None:
                    break
                self.results.put((self, self.evaluate(message)))
        finally:
            self.done.set()


def _external(task: Task, args: Cell) -> bool:
    return task.external(args)


EXTERNAL = Unbound(Builtin(_external))
