"""Tokenizer and recursive-descent reader for the teaching dialect."""

from fractions import Fraction
from typing import Any

from .types import Symbol

# AST type: bool | int | float | Fraction | str | Symbol | list[AST]
# Lists are Python lists; `quote` turns them into Pair chains at run time.
AST = Any

QUOTE = Symbol("quote")

_OPEN = {"(": ")", "[": "]", "{": "}"}
_CLOSE = {")", "]", "}"}
_DELIMS = set("()[]{}\";'") | {" ", "\t", "\n", "\r", "\f"}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "0": "\0"}


class _Str(str):
    """Marks a string-literal token so it is never read as a symbol."""


def tokenize(src: str) -> list[str]:
    tokens: list[str] = []
    i = 0
    n = len(src)
    while i < n:
        ch = src[i]
        if ch.isspace():
            i += 1
            continue
        if ch == ";":
            while i < n and src[i] != "\n":
                i += 1
            continue
        if src.startswith("#|", i):
            end = src.find("|#", i + 2)
            if end < 0:
                raise SyntaxError("unterminated block comment")
            i = end + 2
            continue
        if ch in _OPEN or ch in _CLOSE or ch == "'":
            tokens.append(ch)
            i += 1
            continue
        if ch == '"':
            buf = []
            i += 1
            while True:
                if i >= n:
                    raise SyntaxError("unterminated string")
                c = src[i]
                if c == "\\":
                    if i + 1 >= n:
                        raise SyntaxError("unterminated string")
                    buf.append(_ESCAPES.get(src[i + 1], src[i + 1]))
                    i += 2
                    continue
                if c == '"':
                    i += 1
                    break
                buf.append(c)
                i += 1
            tokens.append(_Str("".join(buf)))
            continue
        start = i
        while i < n and src[i] not in _DELIMS:
            i += 1
        tokens.append(src[start:i])
    return tokens


def _atom(tok: str) -> AST:
    if isinstance(tok, _Str):
        return str(tok)
    if tok in ("#t", "#true"):
        return True
    if tok in ("#f", "#false"):
        return False
    if tok.startswith("#"):
        raise SyntaxError(f"bad syntax: {tok}")
    # Try number
    try:
        if "/" in tok:
            num, _, den = tok.partition("/")
            value = Fraction(int(num), int(den))
            return value.numerator if value.denominator == 1 else value
        if tok.lstrip("+-").isdigit():
            return int(tok)
        if any(c.isdigit() for c in tok):
            return float(tok)
    except (ValueError, ZeroDivisionError):
        pass
    return Symbol(tok)


def parse_all(src: str) -> list[AST]:
    """Read every datum in `src`."""
    tokens = tokenize(src)
    pos = [0]  # mutable index

    def _parse() -> AST:
        if pos[0] >= len(tokens):
            raise SyntaxError("unexpected EOF")
        tok = tokens[pos[0]]
        pos[0] += 1
        if isinstance(tok, _Str):
            return str(tok)
        if tok == "'":
            return [QUOTE, _parse()]
        if tok in _OPEN:
            close = _OPEN[tok]
            arr: list[AST] = []
            while True:
                if pos[0] >= len(tokens):
                    raise SyntaxError(f"unterminated {tok}")
                nxt = tokens[pos[0]]
                if not isinstance(nxt, _Str) and nxt in _CLOSE:
                    if nxt != close:
                        raise SyntaxError(f"expected {close} to close {tok}, found {nxt}")
                    pos[0] += 1
                    break
                arr.append(_parse())
            return arr
        if tok in _CLOSE:
            raise SyntaxError(f"unexpected {tok}")
        return _atom(tok)

    result = []
    while pos[0] < len(tokens):
        result.append(_parse())
    return result


def parse(src: str) -> AST:
    """Read exactly one datum."""
    data = parse_all(src.strip())
    if not data:
        raise SyntaxError("unexpected EOF")
    if len(data) != 1:
        raise SyntaxError("extra tokens")
    return data[0]
