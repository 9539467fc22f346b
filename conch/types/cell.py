"""Atoms: the immutable leaves of conch's value model.

Every value is a Cell. Cells answer truthiness (``__bool__``), structural
equality (``equal``) and a canonical textual form (``__str__``). Small integers,
rationals and statuses, and short symbols and strings, are drawn from shared
pools so that equal small values are the same object. Pooling is an
optimization only; code must compare cells with ``equal``.
"""

from __future__ import annotations

import sys
import threading
from fractions import Fraction

from conch.errors import ConchRuntimeError, ConchTypeError

POOL_MIN = -256
POOL_MAX = 255
SHORT_TEXT = 3


class Cell:
    """Base class of every conch value."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return True

    def equal(self, other: Cell) -> bool:
        return self is other

    def __repr__(self) -> str:
        return str(self)


class Atom(Cell):
    """A cell with defined numeric and text conversions."""

    __slots__ = ()

    def rat(self) -> Fraction:
        raise ConchTypeError(f"{self} is not a number")

    def to_float(self) -> float:
        return float(self.rat())

    def to_int(self) -> int:
        return int(self.rat())

    def to_status(self) -> int:
        return self.to_int()


def rational_of(c: Cell) -> Fraction | None:
    """Rational value of `c`, or None when `c` has no numeric reading."""
    if isinstance(c, Number):
        return c.rat()
    if isinstance(c, Symbol):
        return c.numeric()
    return None


def parse_rational(text: str) -> Fraction | None:
    if not text or text != text.strip():
        return None
    try:
        return Fraction(text)
    except (ValueError, ZeroDivisionError):
        return None


def _operand(c: Cell) -> Fraction:
    r = rational_of(c) if not isinstance(c, Boolean) else c.rat()
    if r is None:
        raise ConchTypeError(f"{c} is not a number")
    return r


def _modulo(x: Fraction, y: Fraction) -> Fraction:
    if x.denominator != 1 or y.denominator != 1:
        raise ConchRuntimeError("operation not permitted")
    if y == 0:
        raise ConchRuntimeError("division by zero")
    return Fraction(x.numerator % y.numerator)


class Arithmetic:
    """Arithmetic shared by every atom with a rational reading.

    The right-hand operand may be any atom; both sides are converted to
    rationals and the result is normalized to a (possibly pooled) Rational.
    """

    __slots__ = ()

    def add(self, c: Cell) -> Rational:
        return Rational(self.rat() + _operand(c))

    def subtract(self, c: Cell) -> Rational:
        return Rational(self.rat() - _operand(c))

    def multiply(self, c: Cell) -> Rational:
        return Rational(self.rat() * _operand(c))

    def divide(self, c: Cell) -> Rational:
        d = _operand(c)
        if d == 0:
            raise ConchRuntimeError("division by zero")
        return Rational(self.rat() / d)

    def modulo(self, c: Cell) -> Rational:
        return Rational(_modulo(self.rat(), _operand(c)))


class Number(Arithmetic, Atom):
    """Numeric atoms: Integer, Float, Rational and Status."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return self.rat() != 0

    def equal(self, other: Cell) -> bool:
        if self is other:
            return True
        r = rational_of(other)
        return r is not None and r == self.rat()

    def greater(self, c: Cell) -> bool:
        return self.rat() > _operand(c)

    def less(self, c: Cell) -> bool:
        return self.rat() < _operand(c)


# --- Boolean ---

class Boolean(Atom):
    __slots__ = ("v",)

    def __new__(cls, v: bool):
        return TRUE if v else FALSE

    @classmethod
    def _make(cls, v: bool) -> Boolean:
        b = object.__new__(cls)
        b.v = v
        return b

    def __bool__(self) -> bool:
        return self.v

    def equal(self, other: Cell) -> bool:
        return self is other or (isinstance(other, Atom) and bool(other) == self.v)

    def __str__(self) -> str:
        return "true" if self.v else "false"

    def rat(self) -> Fraction:
        return Fraction(1 if self.v else 0)

    def to_status(self) -> int:
        return 0 if self.v else 1


TRUE = Boolean._make(True)
FALSE = Boolean._make(False)


# --- Pools ---

_integers: dict[int, Integer] = {}
_integers_lock = threading.Lock()
_rationals: dict[int, Rational] = {}
_rationals_lock = threading.Lock()
_statuses: dict[int, Status] = {}
_statuses_lock = threading.Lock()
_symbols: dict[str, Symbol] = {}
_symbols_lock = threading.Lock()
_strings: dict[str, String] = {}
_strings_lock = threading.Lock()


def _pooled(pool, lock, key, make):
    with lock:
        p = pool.get(key)
        if p is None:
            p = make()
            pool[key] = p
        return p


class Integer(Number):
    __slots__ = ("v",)

    def __new__(cls, v: int):
        v = int(v)
        if POOL_MIN <= v <= POOL_MAX:
            return _pooled(_integers, _integers_lock, v, lambda: cls._make(v))
        return cls._make(v)

    @classmethod
    def _make(cls, v: int) -> Integer:
        i = object.__new__(cls)
        i.v = v
        return i

    def __str__(self) -> str:
        return str(self.v)

    def rat(self) -> Fraction:
        return Fraction(self.v)

    def to_int(self) -> int:
        return self.v


class Float(Number):
    __slots__ = ("v",)

    def __init__(self, v: float):
        self.v = float(v)

    def __bool__(self) -> bool:
        return self.v != 0

    def __str__(self) -> str:
        return repr(self.v)

    def rat(self) -> Fraction:
        try:
            return Fraction(self.v)
        except (ValueError, OverflowError):
            raise ConchTypeError(f"{self} has no rational value")

    def to_float(self) -> float:
        return self.v

    def to_int(self) -> int:
        return int(self.v)


class Rational(Number):
    """Arbitrary precision rational; the canonical result of arithmetic."""

    __slots__ = ("v",)

    def __new__(cls, v):
        v = Fraction(v)
        if v.denominator == 1 and POOL_MIN <= v.numerator <= POOL_MAX:
            n = v.numerator
            return _pooled(_rationals, _rationals_lock, n, lambda: cls._make(v))
        return cls._make(v)

    @classmethod
    def _make(cls, v: Fraction) -> Rational:
        r = object.__new__(cls)
        r.v = v
        return r

    def __str__(self) -> str:
        if self.v.denominator == 1:
            return str(self.v.numerator)
        return f"{self.v.numerator}/{self.v.denominator}"

    def rat(self) -> Fraction:
        return self.v


class Status(Number):
    """A process exit status; zero is success and is the only truthy status."""

    __slots__ = ("v",)

    def __new__(cls, v: int):
        v = int(v)
        if 0 <= v <= 255:
            return _pooled(_statuses, _statuses_lock, v, lambda: cls._make(v))
        return cls._make(v)

    @classmethod
    def _make(cls, v: int) -> Status:
        s = object.__new__(cls)
        s.v = v
        return s

    def __bool__(self) -> bool:
        return self.v == 0

    def __str__(self) -> str:
        return str(self.v)

    def rat(self) -> Fraction:
        return Fraction(self.v)

    def to_int(self) -> int:
        return self.v


ZERO = Rational(0)
ONE = Rational(1)
SUCCESS = Status(0)
FAILURE = Status(1)


# --- Text atoms ---

class Symbol(Arithmetic, Atom):
    """An immutable name, doubling as a loose numeric literal."""

    __slots__ = ("v",)

    def __new__(cls, v: str):
        if len(v) <= SHORT_TEXT or v in _symbols:
            return _pooled(_symbols, _symbols_lock, v, lambda: cls._make(v))
        return cls._make(v)

    @classmethod
    def _make(cls, v: str) -> Symbol:
        s = object.__new__(cls)
        s.v = sys.intern(v)
        return s

    def __bool__(self) -> bool:
        return self.v != "false"

    def __str__(self) -> str:
        return self.v

    def equal(self, other: Cell) -> bool:
        if self is other:
            return True
        if isinstance(other, (Symbol, String)):
            return self.v == other.v
        r = self.numeric()
        return r is not None and r == rational_of(other)

    def numeric(self) -> Fraction | None:
        return parse_rational(self.v)

    def is_numeric(self) -> bool:
        return self.numeric() is not None

    def rat(self) -> Fraction:
        r = self.numeric()
        if r is None:
            raise ConchTypeError(f"{self.v} is not a number")
        return r

    def greater(self, c: Cell) -> bool:
        return self.v > raw(c)

    def less(self, c: Cell) -> bool:
        return self.v < raw(c)


def cache_symbols(*names: str) -> None:
    """Pool the given names so every Symbol with that text is shared."""
    for name in names:
        _pooled(_symbols, _symbols_lock, name, lambda: Symbol._make(name))


_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}


class String(Atom):
    """Immutable text. Strings answer methods through their own scope."""

    __slots__ = ("v",)

    def __new__(cls, v: str):
        if len(v) <= SHORT_TEXT:
            return _pooled(_strings, _strings_lock, v, lambda: cls._make(v))
        return cls._make(v)

    @classmethod
    def _make(cls, v: str) -> String:
        s = object.__new__(cls)
        s.v = v
        return s

    def __bool__(self) -> bool:
        return len(self.v) > 0

    def __str__(self) -> str:
        return '"' + "".join(_ESCAPES.get(ch, ch) for ch in self.v) + '"'

    def equal(self, other: Cell) -> bool:
        return self is other or (
            isinstance(other, (Symbol, String)) and self.v == other.v
        )

    def rat(self) -> Fraction:
        r = parse_rational(self.v)
        if r is None:
            raise ConchTypeError(f"{self} is not a number")
        return r

    def to_int(self) -> int:
        try:
            return int(self.v, 0)
        except ValueError:
            return super().to_int()

    def greater(self, c: Cell) -> bool:
        return self.v > raw(c)

    def less(self, c: Cell) -> bool:
        return self.v < raw(c)


def raw(c: Cell) -> str:
    """Bare text of a cell: strings without quotes, everything else as printed."""
    if isinstance(c, String):
        return c.v
    return str(c)


def int_of(c: Cell) -> int:
    """Integer value of an atom; anything else is a type error."""
    if not isinstance(c, Atom):
        raise ConchTypeError(f"{c} is not a number")
    return c.to_int()


def is_atom(c: Cell) -> bool:
    return isinstance(c, Atom)


def is_number(c: Cell) -> bool:
    return isinstance(c, Number) or (isinstance(c, Symbol) and c.is_numeric())
