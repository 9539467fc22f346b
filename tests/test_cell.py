from fractions import Fraction

import pytest
from hypothesis import given, strategies as st

from conch.errors import ConchRuntimeError, ConchTypeError
from conch.types.cell import (
    FALSE,
    TRUE,
    Boolean,
    Float,
    Integer,
    Rational,
    Status,
    String,
    Symbol,
    is_number,
    raw,
)


@given(st.integers(min_value=-256, max_value=255))
def test_small_integers_are_pooled(n):
    assert Integer(n) is Integer(n)


@given(st.integers(min_value=256, max_value=10**12))
def test_large_integers_are_distinct_but_equal(n):
    a, b = Integer(n), Integer(n)
    assert a is not b
    assert a.equal(b)


@given(st.text(max_size=3))
def test_short_symbols_and_strings_are_pooled(text):
    assert Symbol(text) is Symbol(text)
    assert String(text) is String(text)


def test_rational_normalizes_to_pooled_integer_value():
    assert Rational(Fraction(4, 2)) is Rational(2)
    assert str(Rational(Fraction(1, 3))) == "1/3"


def test_boolean_singletons():
    assert Boolean(True) is TRUE
    assert Boolean(False) is FALSE
    assert bool(TRUE) and not bool(FALSE)


@pytest.mark.parametrize(
    "cell,expected",
    [
        (Integer(0), False),
        (Integer(7), True),
        (Status(0), True),
        (Status(1), False),
        (String(""), False),
        (String("x"), True),
        (Symbol("false"), False),
        (Symbol("anything"), True),
        (Float(0.0), False),
    ],
)
def test_truthiness(cell, expected):
    assert bool(cell) is expected


@pytest.mark.parametrize(
    "a,b",
    [
        (Integer(3), Symbol("3")),
        (Symbol("3"), Integer(3)),
        (Rational(Fraction(1, 2)), Float(0.5)),
        (String("abc"), Symbol("abc")),
        (Symbol("abc"), String("abc")),
        (Status(2), Integer(2)),
    ],
)
def test_cross_type_equality(a, b):
    assert a.equal(b)


def test_unequal_cells():
    assert not Integer(3).equal(Symbol("three"))
    assert not String("a").equal(Integer(1))


@given(st.integers(-1000, 1000), st.integers(-1000, 1000))
def test_arithmetic_matches_python(x, y):
    assert Integer(x).add(Integer(y)).rat() == x + y
    assert Integer(x).subtract(Integer(y)).rat() == x - y
    assert Integer(x).multiply(Integer(y)).rat() == x * y


def test_symbols_are_numeric_literals():
    assert Symbol("12").add(Symbol("30")).equal(Integer(42))
    assert is_number(Symbol("1/2"))
    assert not is_number(Symbol("abc"))


def test_division_by_zero():
    with pytest.raises(ConchRuntimeError):
        Integer(1).divide(Integer(0))


def test_modulo_requires_integers():
    with pytest.raises(ConchRuntimeError):
        Rational(Fraction(1, 2)).modulo(Integer(2))


def test_non_numeric_operand():
    with pytest.raises(ConchTypeError):
        Integer(1).add(Symbol("abc"))


@pytest.mark.parametrize(
    "cell,text",
    [
        (String('say "hi"\n'), '"say \\"hi\\"\\n"'),
        (Symbol("abc"), "abc"),
        (Status(3), "3"),
        (TRUE, "true"),
    ],
)
def test_canonical_text(cell, text):
    assert str(cell) == text


def test_raw_strips_string_quotes():
    assert raw(String("a b")) == "a b"
    assert raw(Integer(5)) == "5"


def test_status_conversion():
    assert Status(0).to_status() == 0
    assert TRUE.to_status() == 0
    assert FALSE.to_status() == 1
    assert String("0x10").to_int() == 16
