"""Word expansion for builtin arguments: braces, tildes and globs."""

from __future__ import annotations

import glob
import os

from conch.errors import ConchRuntimeError
from conch.types.cell import Cell, String, Symbol, raw
from conch.types.pair import iterate, list_of

_GLOB_CHARS = "*?["


def brace_expand(word: str) -> list[str]:
    prefix, sep, rest = word.partition("{")
    if not sep:
        return [word]
    middle, sep, suffix = rest.partition("}")
    if not sep:
        return [word]
    choices = middle.split(",")
    if len(choices) <= 1:
        return [word]
    expanded: list[str] = []
    for choice in choices:
        expanded.extend(brace_expand(prefix + choice + suffix))
    return expanded


def tilde_expand(word: str, home: str | None = None) -> str:
    if not word.startswith("~"):
        return word
    if home is None:
        home = os.environ.get("HOME", "")
    return os.path.join(home, word[1:].lstrip("/")) if word != "~" else home


def expand(args: Cell, home: str | None = None) -> Cell:
    """Expand symbol arguments; any other value is passed on as its text."""
    words: list[Cell] = []
    for c in iterate(args):
        if not isinstance(c, Symbol):
            words.append(Symbol(raw(c)))
            continue
        for word in brace_expand(c.v):
            word = tilde_expand(word, home)
            if not any(ch in word for ch in _GLOB_CHARS):
                words.append(Symbol(word))
                continue
            matches = sorted(glob.glob(word))
            if not matches:
                raise ConchRuntimeError(f"no matches found: {word}")
            words.extend(String(m) for m in matches)
    return list_of(*words)
