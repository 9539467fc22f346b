import shutil

import pytest

from conch.errors import ConchNotFound, ConchRuntimeError, ConchTypeError, ConchUndefined
from conch.types.cell import TRUE, String
from conch.types.pair import Null


def eval_conch(itp, code: str):
    return itp.eval(code)


@pytest.mark.parametrize(
    "code,printed",
    [
        ('(" "::join (list a b c))', '"a b c"'),
        ('("-"::join x y)', '"x-y"'),
        ('(","::split "x,y,,z")', '("x" "y" "" "z")'),
        ('("%s=%d"::sprintf n 4)', '"n=4"'),
        ('("%.2f"::sprintf 1/3)', '"0.33"'),
        ('("hello"::length)', "5"),
        ('("hello"::slice 1 3)', '"el"'),
        ('("hello"::slice 3)', '"lo"'),
        ('("abc"::to-list)', '("a" "b" "c")'),
        ("((list 1 2 3)::length)", "3"),
        ("((list 1 2 3)::get 1)", "2"),
        ("((list 1 2 3)::get -1)", "3"),
        ("((list 1 2 3)::head)", "1"),
        ("((list 1 2 3)::tail)", "(2 3)"),
        ("((list 1 2)::append 3 4)", "(1 2 3 4)"),
        ("((list 1 2 3)::reverse)", "(3 2 1)"),
        ("((list 1 2 3 4)::slice 1 3)", "(2 3)"),
        ('((list a "b" 3)::to-string)', '"ab3"'),
    ],
)
def test_type_methods(bare_interp, code, printed):
    assert str(eval_conch(bare_interp, code)) == printed


def test_pair_mutation(bare_interp):
    eval_conch(bare_interp, "(define xs (list 1 2 3))")
    eval_conch(bare_interp, "(xs::set 1 two)")
    assert str(eval_conch(bare_interp, "xs")) == "(1 two 3)"
    eval_conch(bare_interp, "(xs::set-tail (list 9))")
    assert str(eval_conch(bare_interp, "xs")) == "(1 9)"
    eval_conch(bare_interp, "(set-car xs 0)")
    assert str(eval_conch(bare_interp, "xs")) == "(0 9)"


def test_append_does_not_modify_the_receiver(bare_interp):
    eval_conch(bare_interp, "(define xs (list 1)) (define ys (xs::append 2))")
    assert str(eval_conch(bare_interp, "xs")) == "(1)"
    assert str(eval_conch(bare_interp, "ys")) == "(1 2)"


def test_methods_are_per_type(bare_interp):
    with pytest.raises(ConchUndefined):
        eval_conch(bare_interp, "((list 1)::split x)")


def test_list_methods_need_a_number_index(bare_interp):
    with pytest.raises(ConchTypeError):
        eval_conch(bare_interp, "((list 1 2)::get one)")


def test_empty_separator(bare_interp):
    with pytest.raises(ConchRuntimeError):
        eval_conch(bare_interp, '(""::split abc)')


def test_sprintf_argument_mismatch(bare_interp):
    with pytest.raises(ConchRuntimeError):
        eval_conch(bare_interp, '("%d %d"::sprintf 1)')


def test_type_scope_keys(bare_interp):
    keys = str(eval_conch(bare_interp, '("x"::keys)'))
    assert "join" in keys and "sprintf" in keys


def test_channel_between_tasks(bare_interp):
    code = """
    (define c (channel))
    (spawn (c::write 42))
    (c::read)
    """
    assert str(eval_conch(bare_interp, code)) == "42"


def test_channel_close_reads_null(bare_interp):
    eval_conch(bare_interp, "(define c (channel 1)) (c::writer-close)")
    assert eval_conch(bare_interp, "(c::read)") is Null


def test_pipe_write_joins_arguments(bare_interp):
    eval_conch(bare_interp, "(define p (pipe))")
    eval_conch(bare_interp, "(p::write hello world)")
    assert eval_conch(bare_interp, "(p::readline)").equal(String("hello world"))
    eval_conch(bare_interp, "(p::close)")


def test_open_files(bare_interp, tmp_path):
    path = tmp_path / "data.conch"
    eval_conch(bare_interp, f'(define out (open w "{path}"))')
    eval_conch(bare_interp, "(out::write (list 1 2 3)) (out::close)")
    assert path.read_text() == "(1 2 3)\n"

    eval_conch(bare_interp, f'(define in (open r "{path}"))')
    assert str(eval_conch(bare_interp, "(in::read)")) == "(1 2 3)"
    assert eval_conch(bare_interp, "(in::read)") is Null


def test_open_missing_file(bare_interp, tmp_path):
    with pytest.raises(ConchRuntimeError):
        eval_conch(bare_interp, f'(open r "{tmp_path / "missing"}")')


def test_prelude_helpers(interp):
    assert interp.eval("(and #t (lt 1 2))") is TRUE
    assert str(interp.eval("(and #t #f)")) == "false"
    assert str(interp.eval("(or #f 5)")) == "5"
    assert str(interp.eval("(or #f #f)")) == "false"
    assert str(interp.eval("(map (method (x) = (mul x 2)) (list 1 2 3))")) == "(2 4 6)"
    code = """
    (define acc ())
    (for (list 1 2 3) (method (x) = (set acc (cons x acc))))
    acc
    """
    assert str(interp.eval(code)) == "(3 2 1)"


def test_and_short_circuits(interp):
    interp.eval("(define n 0)")
    interp.eval("(and #f (set n 1))")
    assert str(interp.eval("n")) == "0"


def test_print_writes_to_the_stdout_conduit(interp):
    interp.eval("(define p (pipe))")
    interp.eval("(block (dynamic $stdout = p) (print hello 42))")
    assert interp.eval("(p::readline)").equal(String("hello 42"))


needs_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="no sh on PATH")


@needs_sh
def test_external_command_status(bare_interp):
    status = eval_conch(bare_interp, '(sh -c "exit 3")')
    assert str(status) == "3"
    assert not status


@needs_sh
def test_external_command_output_follows_stdout(bare_interp):
    eval_conch(bare_interp, "(define p (pipe))")
    eval_conch(bare_interp, '(block (dynamic $stdout = p) (sh -c "echo hi"))')
    assert eval_conch(bare_interp, "(p::readline)").equal(String("hi"))


@needs_sh
def test_external_command_sees_exported_variables(bare_interp):
    eval_conch(bare_interp, "(define p (pipe))")
    code = '(block (dynamic $stdout = p) (dynamic $CONCH_GREETING = hey) (sh -c "echo $CONCH_GREETING"))'
    eval_conch(bare_interp, code)
    assert eval_conch(bare_interp, "(p::readline)").equal(String("hey"))


@needs_sh
def test_command_builtin(bare_interp):
    assert str(eval_conch(bare_interp, '(command sh -c "exit 2")')) == "2"


def test_missing_command(bare_interp):
    with pytest.raises(ConchNotFound) as info:
        eval_conch(bare_interp, "(conch-no-such-program-xyz)")
    assert info.value.status == 127


def test_cd_updates_pwd(bare_interp, tmp_path, monkeypatch):
    import os

    monkeypatch.chdir(os.getcwd())
    eval_conch(bare_interp, f'(cd "{tmp_path}")')
    assert os.path.samefile(os.getcwd(), tmp_path)
    assert os.path.samefile(str(eval_conch(bare_interp, "$PWD")), tmp_path)
    eval_conch(bare_interp, "(cd -)")
    assert not os.path.samefile(os.getcwd(), tmp_path)


def test_exists(bare_interp, tmp_path):
    (tmp_path / "here").write_text("")
    assert str(eval_conch(bare_interp, f'(exists "{tmp_path / "here"}")')) == "true"
    assert str(eval_conch(bare_interp, f'(exists "{tmp_path / "gone"}")')) == "false"
