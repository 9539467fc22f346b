"""Conduits: pipes and channels.

The evaluator only uses the `Conduit` protocol (close, read, readline,
write, reader_close, writer_close). Pipes wrap file objects and speak the
textual cell format; channels pass cells between tasks in memory.
"""

from __future__ import annotations

import logging
import os
import queue
import sys
import threading
from typing import IO, Optional

from conch.errors import ConchRuntimeError
from conch.types.cell import Cell, String
from conch.types.handles import handles
from conch.types.pair import Null

_logger = logging.getLogger("conch.conduit")


class Conduit(Cell):
    __slots__ = ()

    def close(self) -> None:
        self.reader_close()
        self.writer_close()

    def read(self) -> Cell:
        raise NotImplementedError

    def readline(self) -> Cell:
        raise NotImplementedError

    def write(self, c: Cell) -> None:
        raise NotImplementedError

    def reader_close(self) -> None:
        raise NotImplementedError

    def writer_close(self) -> None:
        raise NotImplementedError


_CLOSED = object()


class Channel(Conduit):
    """An in-memory, capacity-bounded queue of cells."""

    __slots__ = ("q", "closed", "__weakref__")

    def __init__(self, capacity: int = 0):
        # An unbuffered channel still needs one slot in a queue.Queue.
        self.q: queue.Queue = queue.Queue(maxsize=max(capacity, 1))
        self.closed = False

    def __str__(self) -> str:
        return handles.token("channel", self)

    def read(self) -> Cell:
        item = self.q.get()
        if item is _CLOSED:
            self.q.put(_CLOSED)
            return Null
        return item

    def readline(self) -> Cell:
        c = self.read()
        if c is Null:
            return c
        return String(str(c))

    def write(self, c: Cell) -> None:
        if self.closed:
            raise ConchRuntimeError("write on closed channel")
        self.q.put(c)

    def reader_close(self) -> None:
        pass

    def writer_close(self) -> None:
        if not self.closed:
            self.closed = True
            self.q.put(_CLOSED)


class Pipe(Conduit):
    """A pair of file objects; `read` parses cells, `write` prints them."""

    __slots__ = ("r", "w", "buffer", "lock", "implicit", "__weakref__")

    def __init__(self, r: Optional[IO[str]] = None, w: Optional[IO[str]] = None):
        if r is None and w is None:
            rfd, wfd = os.pipe()
            r = os.fdopen(rfd, "r")
            w = os.fdopen(wfd, "w")
        self.r = r
        self.w = w
        self.buffer = ""
        self.lock = threading.Lock()
        # Set on pipes a redirection opened itself; they are closed afterwards.
        self.implicit = False

    def __str__(self) -> str:
        return handles.token("pipe", self)

    def read_fd(self) -> int | None:
        return _fileno(self.r)

    def write_fd(self) -> int | None:
        return _fileno(self.w)

    def read(self) -> Cell:
        from conch.reader.parser import read_form

        if self.r is None:
            raise ConchRuntimeError("pipe is not readable")
        with self.lock:
            while True:
                found = read_form(self.buffer)
                if found is not None:
                    cell, self.buffer = found
                    return cell
                try:
                    line = self.r.readline()
                except (OSError, ValueError) as e:
                    raise ConchRuntimeError(f"read: {e}") from e
                if not line:
                    self.buffer = ""
                    return Null
                self.buffer += line

    def readline(self) -> Cell:
        if self.r is None:
            raise ConchRuntimeError("pipe is not readable")
        with self.lock:
            if self.buffer:
                text, _, self.buffer = self.buffer.partition("\n")
                return String(text)
            try:
                line = self.r.readline()
            except (OSError, ValueError) as e:
                raise ConchRuntimeError(f"readline: {e}") from e
        if not line:
            return Null
        return String(line.rstrip("\n"))

    def write(self, c: Cell) -> None:
        if self.w is None:
            raise ConchRuntimeError("pipe is not writable")
        try:
            print(c, file=self.w, flush=True)
        except (OSError, ValueError) as e:
            raise ConchRuntimeError(f"write: {e}") from e

    def reader_close(self) -> None:
        if self.r is not None:
            _close(self.r)
            self.r = None

    def writer_close(self) -> None:
        if self.w is not None:
            try:
                _close(self.w)
            except OSError as e:
                # Unflushed output to a reader that has gone away is lost.
                _logger.debug("closing pipe writer: %s", e)
            finally:
                self.w = None


def _fileno(f) -> int | None:
    if f is None:
        return None
    try:
        return f.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _close(f) -> None:
    # Never close the interpreter's own standard streams.
    if f in (sys.stdin, sys.stdout, sys.stderr) or _fileno(f) in (0, 1, 2):
        _logger.debug("not closing standard stream %r", f)
        return
    f.close()


def pipe_pair() -> tuple[Pipe, Pipe]:
    """The two ends of an OS pipe as separate, implicitly closed conduits."""
    rfd, wfd = os.pipe()
    reader = Pipe(r=os.fdopen(rfd, "r"))
    writer = Pipe(w=os.fdopen(wfd, "w"))
    reader.implicit = writer.implicit = True
    return reader, writer
