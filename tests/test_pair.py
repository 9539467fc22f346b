import pytest
from hypothesis import given, strategies as st

from conch.errors import ConchRuntimeError, ConchTypeError
from conch.types.cell import Integer, Symbol
from conch.types.pair import (
    Null,
    Pair,
    append_to,
    car,
    cdr,
    cons,
    is_cons,
    join,
    length,
    list_of,
    reverse,
    set_car,
    slice_list,
    tail,
    to_list,
)

ints = st.lists(st.integers(-10**6, 10**6), max_size=30)


def _cells(xs):
    return list_of(*(Integer(x) for x in xs))


def test_null_is_self_referential():
    assert car(Null) is Null
    assert cdr(Null) is Null
    assert not Null
    assert not is_cons(Null)
    assert str(Null) == "()"


def test_null_cannot_be_modified():
    with pytest.raises(ConchTypeError):
        set_car(Null, Integer(1))


def test_cons_car_cdr():
    p = cons(Symbol("a"), Symbol("b"))
    assert car(p) is Symbol("a")
    assert cdr(p) is Symbol("b")
    assert str(p) == "(a . b)"


def test_car_of_atom_is_a_type_error():
    with pytest.raises(ConchTypeError):
        car(Symbol("a"))


@given(ints)
def test_reverse_twice_is_identity(xs):
    lst = _cells(xs)
    assert reverse(reverse(lst)).equal(lst)


@given(ints)
def test_length_and_to_list(xs):
    lst = _cells(xs)
    assert length(lst) == len(xs)
    assert [c.v for c in to_list(lst)] == xs


@given(ints, ints)
def test_join_does_not_modify_its_arguments(xs, ys):
    a, b = _cells(xs), _cells(ys)
    joined = join(a, b)
    assert [c.v for c in to_list(joined)] == xs + ys
    assert length(a) == len(xs)


def test_append_to_is_destructive():
    lst = list_of(Integer(1))
    result = append_to(lst, Integer(2), Integer(3))
    assert result is lst
    assert str(lst) == "(1 2 3)"
    assert str(append_to(Null, Integer(4))) == "(4)"


@pytest.mark.parametrize(
    "index,expected",
    [
        (0, "(a b c)"),
        (1, "(b c)"),
        (3, "()"),
        (-1, "(c)"),
    ],
)
def test_tail(index, expected):
    lst = list_of(Symbol("a"), Symbol("b"), Symbol("c"))
    assert str(tail(lst, index)) == expected


def test_tail_out_of_bounds():
    with pytest.raises(ConchRuntimeError):
        tail(list_of(Symbol("a")), 3)


def test_slice_list():
    lst = _cells([1, 2, 3, 4])
    assert str(slice_list(lst, 1, 3)) == "(2 3)"
    assert str(slice_list(lst, 2)) == "(3 4)"


def test_structural_equality():
    a = list_of(Symbol("x"), list_of(Integer(1), Integer(2)))
    b = list_of(Symbol("x"), list_of(Symbol("1"), Symbol("2")))
    assert a.equal(b)
    assert not a.equal(list_of(Symbol("x")))
    assert Pair(Symbol("a"), Symbol("b")).equal(Pair(Symbol("a"), Symbol("b")))
