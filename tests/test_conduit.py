import os
import threading

import pytest

from conch.errors import ConchRuntimeError
from conch.types.cell import Integer, String, Symbol
from conch.types.conduit import Channel, Pipe, pipe_pair
from conch.types.pair import Null, list_of


def test_channel_passes_cells_unchanged():
    ch = Channel(2)
    lst = list_of(Integer(1), Symbol("two"))
    ch.write(lst)
    ch.write(Integer(3))
    assert ch.read() is lst
    assert ch.read() is Integer(3)


def test_channel_readline_is_text():
    ch = Channel(1)
    ch.write(list_of(Symbol("a"), Symbol("b")))
    line = ch.readline()
    assert isinstance(line, String)
    assert line.v == "(a b)"


def test_closed_channel_reads_null_forever():
    ch = Channel(1)
    ch.writer_close()
    assert ch.read() is Null
    assert ch.read() is Null
    with pytest.raises(ConchRuntimeError):
        ch.write(Integer(1))


def test_unbuffered_channel_hands_over_between_threads():
    ch = Channel()
    received = []

    def reader():
        for _ in range(3):
            received.append(ch.read())

    t = threading.Thread(target=reader)
    t.start()
    for i in range(3):
        ch.write(Integer(i))
    t.join(timeout=5)
    assert [c.v for c in received] == [0, 1, 2]


def test_pipe_round_trips_cells_as_text():
    p = Pipe()
    try:
        p.write(list_of(Symbol("a"), String("b c")))
        p.write(Symbol("next"))
        assert str(p.read()) == '(a "b c")'
        assert p.read().equal(Symbol("next"))
    finally:
        p.close()


def test_pipe_readline_and_end_of_input():
    p = Pipe()
    p.write(Symbol("hello"))
    p.writer_close()
    line = p.readline()
    assert line.v == "hello"
    assert p.readline() is Null
    p.reader_close()


def test_pipe_file_descriptors():
    p = Pipe()
    try:
        assert isinstance(p.read_fd(), int)
        assert isinstance(p.write_fd(), int)
    finally:
        p.close()


def test_one_sided_pipes():
    r, w = os.pipe()
    reader = Pipe(r=os.fdopen(r, "r"))
    writer = Pipe(w=os.fdopen(w, "w"))
    with pytest.raises(ConchRuntimeError):
        reader.write(Symbol("x"))
    with pytest.raises(ConchRuntimeError):
        writer.read()
    writer.close()
    reader.close()


def test_standard_streams_are_never_closed():
    import sys

    p = Pipe(None, sys.stdout)
    p.writer_close()
    assert not sys.stdout.closed


def test_pipe_pair_ends_are_one_way_and_implicit():
    reader, writer = pipe_pair()
    try:
        assert reader.implicit and writer.implicit
        writer.write(Symbol("hello"))
        writer.writer_close()
        assert reader.readline().equal(String("hello"))
        assert reader.readline() is Null
        with pytest.raises(ConchRuntimeError):
            reader.write(Symbol("x"))
    finally:
        reader.close()
        writer.close()
