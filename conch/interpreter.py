from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path
from typing import Optional

from conch import config
from conch.builtin import core_builtin, syntax_builtin
from conch.builtin.contexts import object_scope
from conch.errors import ConchFatal, ConchRuntimeError
from conch.evaluation.task import Message, Result, Task
from conch.reader.parser import parse
from conch.types.cell import Atom, Cell, Status, String, Symbol
from conch.types.pair import Null, list_of
from conch.types.scope import Env, Scope

_logger = logging.getLogger("conch.interpreter")

INTERRUPTED = 130


class Interpreter:
    """
    Owns the root scope, the foreground task and the table of stopped or
    background jobs. Code is fed to the foreground task one top-level form
    at a time.
    """

    def __init__(
        self,
        strict: Optional[bool] = None,
        prelude: bool = True,
        args: Optional[list[str]] = None,
    ):
        if strict is None:
            strict = config.strict_from_env()

        self.root = Scope(object_scope)
        self.env = Env()
        core_builtin.register(self.root, self.env, strict)
        syntax_builtin.register(self.root)

        self.scope = Scope(self.root)
        self.scope.define(Symbol("_args_"), list_of(*(String(a) for a in args or [])))

        self.jobs: dict[int, Task] = {}
        self.exit_status: Optional[Cell] = None
        self._outbox: queue.Queue = queue.Queue()
        self._pending = False
        self.task = self._launch_foreground()

        if prelude:
            for path in config.get_prelude_paths():
                self.run_file(path)

    def _launch_foreground(self) -> Task:
        task = Task(lexical=self.scope, dynamic=Env(self.env))
        task.interpreter = self
        task.results = self._outbox
        threading.Thread(
            target=task.listen, name=f"conch-foreground-{task.id}", daemon=True
        ).start()
        return task

    @property
    def exited(self) -> bool:
        return self.exit_status is not None

    def eval(self, code: str, filename: str = "") -> Cell:
        """Evaluate every top-level form of `code`, returning the last value."""
        last: Cell = Null

        def each(cell: Cell, file: str, line: int) -> bool:
            nonlocal last
            last = self._send(Message(cell, file, line))
            return not self.exited

        parse(code, each, filename=filename)
        return last

    def run_file(self, path) -> Cell:
        path = Path(path)
        _logger.debug("running %s", path)
        return self.eval(path.read_text(), filename=str(path))

    def _send(self, message: Message) -> Cell:
        if self.exited:
            raise ConchRuntimeError("interpreter has exited")
        self._pending = True
        try:
            self.task.messages.put(message)
            while True:
                sender, result = self._outbox.get()
                if sender is self.task:
                    break
                self._retire(sender)
        finally:
            self._pending = False

        if sender.action.terminated:
            self.exit_status = result.value if isinstance(result.value, Atom) else Status(0)
            return result.value
        if result.status < 0:
            value = result.value
            status = value.to_status() if isinstance(value, Atom) else 1
            raise ConchFatal(f"fatal: {value}", status=status)
        if result.status > 0:
            raise result.error or ConchRuntimeError("evaluation failed")
        return result.value

    def _retire(self, task: Task) -> None:
        # A background job finished the command it was running.
        for n, t in list(self.jobs.items()):
            if t is task:
                _logger.info("[%d] done\t%s", n, task.job.command)
                del self.jobs[n]
                task.stop()

    # --- Job control ---

    def live_jobs(self) -> dict[int, Task]:
        return {n: t for n, t in self.jobs.items() if not t.action.terminated}

    def background(self) -> int:
        """Stop the foreground task, file it as a job and start a fresh one."""
        task = self.task
        task.suspend()
        n = 1
        while n in self.jobs:
            n += 1
        self.jobs[n] = task
        self.task = self._launch_foreground()
        _logger.info("[%d] stopped\t%s", n, task.job.command)
        if self._pending:
            self._outbox.put((self.task, Result(Null, 0)))
        return n

    def interrupt(self) -> None:
        """Abandon whatever the foreground task is doing."""
        task = self.task
        self.task = self._launch_foreground()
        task.stop()
        if self._pending:
            error = ConchRuntimeError("interrupted", status=INTERRUPTED)
            self._outbox.put((self.task, Result(None, 1, error)))

    def foreground(self, number: int) -> None:
        task = self.jobs.pop(number, None)
        if task is None:
            raise ConchRuntimeError(f"{number}: no such job")
        current = self.task
        self.task = task
        if task.action.suspended:
            task.resume()
        current.stop()

    def resume_job(self, number: int) -> None:
        task = self.jobs.get(number)
        if task is None:
            raise ConchRuntimeError(f"{number}: no such job")
        if task.action.suspended:
            task.resume()

    def close(self) -> None:
        for task in self.jobs.values():
            task.stop()
        self.jobs.clear()
        self.task.stop()
