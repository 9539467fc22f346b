"""
conch: an interpreter for a Lisp-flavoured Unix shell.

{0}

For example:

    conch script.conch arg1 arg2

runs script.conch with _args_ bound to ("arg1" "arg2"),

    conch -c '(add 1 2)'

evaluates a single command, and plain `conch` reads commands from stdin.
"""
import argparse
import logging
import signal
import sys

from conch import config
from conch.errors import ConchError, ConchFatal
from conch.interpreter import Interpreter
from conch.reader.parser import Incomplete, read_all
from conch.system import process
from conch.types.cell import Atom, Status
from conch.types.pair import Null

PROMPT = "conch> "
CONTINUATION_PROMPT = "...    "

parser = argparse.ArgumentParser(
    prog="conch",
    description="Interpreter for the conch shell language.",
)
parser.add_argument("-c", "--command", help="evaluate COMMAND and exit.")
parser.add_argument("--strict", action="store_true", help="treat undefined names as errors.")
parser.add_argument("--no-prelude", action="store_true", help="don't load the prelude scripts.")
parser.add_argument("script", nargs="?", help="script to run; commands are read from stdin without one.")
parser.add_argument("args", nargs=argparse.REMAINDER, help="arguments passed to the script as _args_.")


def _exit_code(value) -> int:
    if isinstance(value, Atom):
        try:
            return value.to_status()
        except ConchError:
            return 1
    return 0


def _install_job_control(interp: Interpreter) -> None:
    process.ignore_terminal_signals()
    signal.signal(signal.SIGINT, lambda signum, frame: interp.interrupt())
    if hasattr(signal, "SIGTSTP"):
        signal.signal(signal.SIGTSTP, lambda signum, frame: interp.background())


def repl(interp: Interpreter) -> int:
    interactive = sys.stdin.isatty()
    if interactive and process.job_control_enabled():
        _install_job_control(interp)

    status = 0
    buffer = ""
    while not interp.exited:
        if interactive:
            print(CONTINUATION_PROMPT if buffer else PROMPT, end="", file=sys.stderr, flush=True)
        line = sys.stdin.readline()
        if not line:
            break
        buffer += line
        try:
            read_all(buffer)
        except Incomplete:
            continue
        except ConchError as e:
            print(f"conch: {e.message}", file=sys.stderr)
            buffer = ""
            status = e.status
            continue

        code, buffer = buffer, ""
        try:
            value = interp.eval(code, filename="stdin")
        except ConchFatal as e:
            return e.status
        except ConchError as e:
            status = e.status
            continue
        status = _exit_code(value) if isinstance(value, Status) else 0
        if interactive and value is not Null and value is not None:
            print(value)

    if interp.exited:
        return _exit_code(interp.exit_status)
    return status


def run(args) -> int:
    logging.basicConfig(
        level=config.log_level_from_env(),
        format="%(name)s: %(levelname)s: %(message)s",
    )
    interp = Interpreter(
        strict=True if args.strict else None,
        prelude=not args.no_prelude,
        args=args.args,
    )
    try:
        if args.command is not None:
            value = interp.eval(args.command, filename="-c")
        elif args.script is not None:
            value = interp.run_file(args.script)
        else:
            return repl(interp)
    except ConchError as e:
        return e.status
    except OSError as e:
        print(f"conch: {e}", file=sys.stderr)
        return 1
    finally:
        interp.close()

    if interp.exited:
        return _exit_code(interp.exit_status)
    return _exit_code(value) if isinstance(value, Status) else 0


def main():
    sys.exit(run(parser.parse_args()))
