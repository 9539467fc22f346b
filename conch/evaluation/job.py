"""Job handle shared by a task and the children that share its process group."""

from __future__ import annotations

import logging
import threading

_logger = logging.getLogger("conch.job")

try:
    import termios
except ImportError:  # not a POSIX platform; terminal modes are not tracked
    termios = None


def terminal_mode(fd: int = 0):
    if termios is None:
        return None
    try:
        return termios.tcgetattr(fd)
    except (termios.error, OSError):
        return None


class Job:
    __slots__ = ("lock", "command", "group", "mode")

    def __init__(self):
        self.lock = threading.Lock()
        self.command = ""
        self.group = 0
        self.mode = terminal_mode()

    def __enter__(self) -> Job:
        self.lock.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.lock.release()

    def apply_mode(self, fd: int = 0) -> None:
        if self.mode is None or termios is None:
            return
        try:
            termios.tcsetattr(fd, termios.TCSADRAIN, self.mode)
        except (termios.error, OSError) as e:
            _logger.debug("cannot restore terminal mode: %s", e)

    def reset(self) -> None:
        with self.lock:
            self.command = ""
            self.group = 0
