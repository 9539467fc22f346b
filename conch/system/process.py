"""Operating system process layer.

The evaluator asks for external programs through `execute` and controls them
through `terminate`, `resume` and `suspend`. Terminal ownership for job
control goes through `get_foreground_group` / `set_foreground_group`.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from conch.types.cell import Status

_logger = logging.getLogger("conch.process")

NOT_EXECUTABLE = 126
NOT_FOUND = 127


@dataclass
class ProcessAttributes:
    """How to start a process: directory, environment, stdio and group."""

    dir: Optional[str] = None
    env: Optional[dict[str, str]] = None
    files: tuple[Optional[int], Optional[int], Optional[int]] = field(
        default=(None, None, None)
    )
    # None: inherit our group; 0: lead a new group; otherwise join that group.
    group: Optional[int] = None


def job_control_enabled() -> bool:
    """True when we own an interactive terminal."""
    try:
        return os.isatty(0) and os.tcgetpgrp(0) == os.getpgrp()
    except OSError:
        return False


def look_path(name: str, path: Optional[str] = None) -> tuple[Optional[str], bool]:
    """Locate `name`, returning (path, executable).

    A directory is returned with executable False; a missing program returns
    (None, False).
    """
    if os.sep in name:
        if os.path.isdir(name):
            return name, False
        if os.path.isfile(name):
            return name, os.access(name, os.X_OK)
        return None, False
    found = shutil.which(name, path=path)
    if found is not None:
        return found, True
    if os.path.isdir(name):
        return name, False
    return None, False


def _status(returncode: int) -> Status:
    if returncode < 0:
        return Status(128 - returncode)
    return Status(returncode)


def start(
    path: str, argv: list[str], attributes: ProcessAttributes
) -> tuple[Optional[subprocess.Popen], Optional[Exception]]:
    stdin, stdout, stderr = attributes.files
    kwargs = {}
    if attributes.group is not None and hasattr(os, "setpgid"):
        kwargs["process_group"] = attributes.group
    try:
        proc = subprocess.Popen(
            argv,
            executable=path,
            cwd=attributes.dir,
            env=attributes.env,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            **kwargs,
        )
    except OSError as e:
        _logger.debug("cannot start %s: %s", path, e)
        return None, e
    return proc, None


def wait(proc: subprocess.Popen) -> Status:
    returncode = proc.wait()
    _logger.debug("%s exited with %d", proc.args[0], returncode)
    return _status(returncode)


def execute(
    path: str,
    argv: list[str],
    attributes: ProcessAttributes,
    started: Optional[Callable[[int], None]] = None,
) -> tuple[Optional[Status], Optional[Exception]]:
    """Run `path` with `argv` to completion, returning (status, error)."""
    proc, problem = start(path, argv, attributes)
    if proc is None:
        return None, problem
    if started is not None:
        started(proc.pid)
    return wait(proc), None


def _signal(pid: int, sig) -> bool:
    if sig is None:
        return False
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    return True


def terminate(pid: int) -> bool:
    return _signal(pid, signal.SIGTERM)


def resume(pid: int) -> bool:
    return _signal(pid, getattr(signal, "SIGCONT", None))


def suspend(pid: int) -> bool:
    return _signal(pid, getattr(signal, "SIGSTOP", None))


def get_foreground_group(fd: int = 0) -> Optional[int]:
    try:
        return os.tcgetpgrp(fd)
    except OSError:
        return None


def set_foreground_group(group: int, fd: int = 0) -> bool:
    try:
        os.tcsetpgrp(fd, group)
    except OSError as e:
        _logger.debug("cannot hand terminal to group %d: %s", group, e)
        return False
    return True


def ignore_terminal_signals() -> None:
    """Let an interactive shell keep running when it is not in the foreground."""
    for name in ("SIGTTOU", "SIGTTIN"):
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, signal.SIG_IGN)


def platform() -> str:
    return sys.platform
