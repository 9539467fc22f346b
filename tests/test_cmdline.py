import io
import shutil

import pytest

from conch import cmdline


def run(argv):
    return cmdline.run(cmdline.parser.parse_args(argv))


def test_usage_text_mentions_the_program():
    assert "conch" in cmdline.parser.format_usage()


@pytest.mark.parametrize(
    "command,status",
    [
        ("(add 1 2)", 0),
        ("(exit 5)", 5),
        ("(fatal 3)", 3),
        ("(div 1 0)", 1),
        ("(conch-no-such-program-xyz)", 127),
    ],
)
def test_command_exit_status(command, status):
    assert run(["--no-prelude", "-c", command]) == status


@pytest.mark.skipif(shutil.which("sh") is None, reason="no sh on PATH")
def test_command_status_of_last_program():
    assert run(["--no-prelude", "-c", '(sh -c "exit 4")']) == 4


def test_script_with_arguments(tmp_path):
    script = tmp_path / "args.conch"
    script.write_text("(exit (length _args_))\n")
    assert run([str(script), "a", "b", "c"]) == 3


def test_missing_script(tmp_path):
    assert run([str(tmp_path / "missing.conch")]) == 1


def test_strict_flag():
    assert run(["--strict", "--no-prelude", "-c", "(add undefined-name 1)"]) == 1
    assert run(["--no-prelude", "-c", "(add undefined-name 1)"]) == 1
    assert run(["--no-prelude", "-c", "(is-symbol undefined-name)"]) == 0


def test_repl_reads_forms_across_lines(monkeypatch):
    source = "(define x\n  41)\n(exit (add x 1))\n(exit 0)\n"
    monkeypatch.setattr("sys.stdin", io.StringIO(source))
    assert run(["--no-prelude"]) == 42


def test_repl_continues_after_errors(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("(div 1 0)\n)\n(add 1 1)\n"))
    assert run(["--no-prelude"]) == 0


def test_repl_reports_a_failing_last_status(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("(div 1 0)\n"))
    assert run(["--no-prelude"]) == 1
