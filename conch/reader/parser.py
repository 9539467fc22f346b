"""
  conch reader: lexer and parser

- Streaming, lazy parsing into cells
    - lists           -> Pair chains ending in Null
    - dotted lists    -> (a . b)
    - words           -> Symbol (numbers included; they stay symbols)
    - "strings"       -> String, with \\n \\t \\r \\" \\\\ escapes
    - 'x              -> (quote x)
    - @x              -> (splice x)
    - a::b            -> (a . b), a member access
    - %kind N%        -> the live value registered under that handle
    - ; comment       -> skipped to end of line
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterator, NamedTuple, Optional

from conch import SExpression
from conch.errors import ConchSyntaxError
from conch.types.cell import Cell, String, Symbol
from conch.types.handles import handles
from conch.types.pair import Null, Pair, list_of

_logger = logging.getLogger("conch.reader")

TOKEN_RE = re.compile(
    r"(?P<comment>;[^\n]*)"  # single-line comment
    r"|(?P<lparen>\()"  # (
    r"|(?P<rparen>\))"  # )
    r'|(?P<string>"(?:\\.|[^\\"])*")'  # double-quoted strings
    r'|(?P<unterminated>"(?:\\.|[^\\"])*)'  # string running off the end
    r"|(?P<quote>')"  # 'x
    r"|(?P<splice>@(?=[^\s)]))"  # @x
    r"|(?P<handle>%[a-z]+ [0-9]+%)"  # %kind N%
    r'|(?P<symbol>[^\s()\'";]+)',  # fallback: words
    re.DOTALL,
)

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

QUOTE = Symbol("quote")
SPLICE = Symbol("splice")
MEMBER = "::"


class Token(NamedTuple):
    kind: str
    text: str
    line: int
    end: int


class Incomplete(ConchSyntaxError):
    """ Raised when input ends inside a form"""


def lex(source: str) -> Iterator[Token]:
    """Token generator: yields Token(kind, text, line, end) tuples."""
    pos = 0
    line = 1
    n = len(source)
    while pos < n:
        ch = source[pos]
        if ch.isspace():
            if ch == "\n":
                line += 1
            pos += 1
            continue
        m = TOKEN_RE.match(source, pos)
        if m is None:
            raise ConchSyntaxError(f"unexpected character at {pos}: {ch!r}")
        kind = m.lastgroup
        text = m.group(kind)
        if kind == "unterminated":
            raise Incomplete("unterminated string")
        if kind != "comment":
            yield Token(kind, text, line, m.end())
        line += text.count("\n")
        pos = m.end()


def unescape(text: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


def _member(text: str) -> Cell:
    parts = text.split(MEMBER)
    if any(not p for p in parts):
        raise ConchSyntaxError(f"malformed member access: {text}")
    c: Cell = Symbol(parts[0])
    for p in parts[1:]:
        c = Pair(c, Symbol(p))
    return c


class TokenStream:
    def __init__(
        self,
        token_iter: Iterator[Token],
        deref: Optional[Callable[[str, int], Cell | None]] = None,
    ):
        self.tokens = iter(token_iter)
        self.buffer: list[Token] = []
        self.deref = deref if deref is not None else handles.deref
        self.end = 0
        self.line = 1

    def peek(self) -> Optional[Token]:
        if not self.buffer:
            try:
                self.buffer.append(next(self.tokens))
            except StopIteration:
                return None
        return self.buffer[0]

    def advance(self) -> Token:
        tok = self.buffer.pop(0) if self.buffer else next(self.tokens, None)
        if tok is None:
            raise Incomplete("unexpected end of input")
        self.end = tok.end
        return tok

    def parse_expr(self) -> SExpression:
        """Parse one form, or return None at end of input."""
        tok = self.peek()
        if tok is None:
            return None
        self.line = tok.line
        expr = self._primary()
        # Trailing ::name accessors written directly after a list or string.
        while True:
            nxt = self.peek()
            if nxt is None or nxt.kind != "symbol" or not nxt.text.startswith(MEMBER):
                return expr
            self.advance()
            for name in nxt.text[len(MEMBER):].split(MEMBER):
                if not name:
                    raise ConchSyntaxError(f"malformed member access: {nxt.text}")
                expr = Pair(expr, Symbol(name))

    def _primary(self) -> Cell:
        tok = self.advance()

        if tok.kind == "symbol":
            if MEMBER in tok.text and not tok.text.startswith(MEMBER):
                return _member(tok.text)
            return Symbol(tok.text)

        if tok.kind == "string":
            return String(unescape(tok.text[1:-1]))

        if tok.kind == "quote":
            return list_of(QUOTE, self._required())

        if tok.kind == "splice":
            return list_of(SPLICE, self._required())

        if tok.kind == "handle":
            kind, number = tok.text[1:-1].split(" ")
            c = self.deref(kind, int(number))
            if c is None:
                raise ConchSyntaxError(f"stale handle: {tok.text}")
            return c

        if tok.kind == "lparen":
            items: list[Cell] = []
            while True:
                nxt = self.peek()
                if nxt is None:
                    raise Incomplete("unmatched '('")
                if nxt.kind == "rparen":
                    self.advance()
                    return list_of(*items)
                if nxt.kind == "symbol" and nxt.text == ".":
                    self.advance()
                    if not items:
                        raise ConchSyntaxError("expected an element before '.'")
                    tail = self._required()
                    closing = self.peek()
                    if closing is None:
                        raise Incomplete("unmatched '('")
                    if closing.kind != "rparen":
                        raise ConchSyntaxError("expected ')' after dotted tail")
                    self.advance()
                    result: Cell = tail
                    for item in reversed(items):
                        result = Pair(item, result)
                    return result
                items.append(self.parse_expr())

        if tok.kind == "rparen":
            raise ConchSyntaxError("unexpected ')'")

        raise ConchSyntaxError(f"unknown token: {tok.kind} {tok.text}")

    def _required(self) -> Cell:
        if self.peek() is None:
            raise Incomplete("unexpected end of input")
        return self.parse_expr()

    def parse_all(self) -> Iterator[tuple[Cell, int]]:
        while self.peek() is not None:
            line = self.peek().line
            yield self.parse_expr(), line


def parse(
    source: str,
    yield_fn: Callable[[Cell, str, int], bool],
    deref: Optional[Callable[[str, int], Cell | None]] = None,
    filename: str = "",
) -> bool:
    """Hand each top-level form of `source` to `yield_fn(cell, filename, line)`.

    Stops early, returning False, when `yield_fn` returns False. Returns True
    once the whole source has been consumed.
    """
    stream = TokenStream(lex(source), deref)
    for cell, line in stream.parse_all():
        _logger.debug("%s:%d: read %s", filename, line, cell)
        if not yield_fn(cell, filename, line):
            return False
    return True


def read_all(source: str) -> list[Cell]:
    return [cell for cell, _ in TokenStream(lex(source)).parse_all()]


def read_form(source: str) -> Optional[tuple[Cell, str]]:
    """Read the first form of `source`, returning it with the unread remainder.

    Returns None when `source` holds no complete form yet.
    """
    stream = TokenStream(lex(source))
    try:
        if stream.peek() is None:
            return None
        cell = stream.parse_expr()
    except Incomplete:
        return None
    return cell, source[stream.end:]
